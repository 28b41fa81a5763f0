import logging
import random
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from . import schemas

logger = logging.getLogger(__name__)

GDP_MULTIPLIER_MIN = 1000
GDP_MULTIPLIER_MAX = 2000


def compute_estimated_gdp(
    population: int, exchange_rate: Optional[float], rng: random.Random
) -> Optional[float]:
    """
    Estimate GDP as population * multiplier / exchange_rate, with the
    multiplier drawn from [1000, 2000). Returns None without a usable rate.
    """
    if not exchange_rate:
        return None
    multiplier = rng.uniform(GDP_MULTIPLIER_MIN, GDP_MULTIPLIER_MAX)
    return (population * multiplier) / exchange_rate


def resolve_currency(
    country_data: Dict[str, Any], rates: Dict[str, float]
) -> Tuple[Optional[str], Optional[float]]:
    """
    Pick the first listed currency and look up its rate.
    """
    currency_code: Optional[str] = None
    currencies = country_data.get("currencies") or []
    if isinstance(currencies, list) and currencies:
        first_currency = currencies[0]
        if isinstance(first_currency, dict):
            currency_code = first_currency.get("code") or None

    exchange_rate = rates.get(currency_code) if currency_code else None
    return currency_code, exchange_rate


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        value = value.strip()
    return value or None


def build_country(
    country_data: Dict[str, Any],
    rates: Dict[str, float],
    refreshed_at: datetime,
    rng: random.Random,
) -> Optional[schemas.CountryCreate]:
    """
    Turn one raw restcountries entry into a record ready to be upserted.
    Entries without a name or a valid population are skipped.
    """
    name = _text(country_data.get("name"))
    population = country_data.get("population")

    if not name or isinstance(population, bool) or not isinstance(population, int) or population < 0:
        logger.warning("Skipping country entry with missing name or population: %r", name)
        return None

    currency_code, exchange_rate = resolve_currency(country_data, rates)

    return schemas.CountryCreate(
        name=name,
        capital=_text(country_data.get("capital")),
        region=_text(country_data.get("region")),
        population=population,
        currency_code=currency_code,
        exchange_rate=exchange_rate,
        estimated_gdp=compute_estimated_gdp(population, exchange_rate, rng),
        flag_url=_text(country_data.get("flag")),
        last_refreshed_at=refreshed_at,
    )
