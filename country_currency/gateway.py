import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .config import settings
from .exceptions import SourceUnavailable

logger = logging.getLogger(__name__)

COUNTRIES_SOURCE = "Countries API"
EXCHANGE_RATES_SOURCE = "Exchange Rate API"


async def _get_json(client: httpx.AsyncClient, url: str, source: str) -> Any:
    try:
        response = await client.get(url)
        response.raise_for_status()
        return response.json()
    except httpx.TimeoutException as e:
        logger.warning("%s request timed out: %s", source, e)
        raise SourceUnavailable(source, f"{source} request timed out") from e
    except httpx.HTTPError as e:
        logger.warning("%s request failed: %s", source, e)
        raise SourceUnavailable(source, str(e)) from e
    except ValueError as e:
        # Body was not JSON
        logger.warning("%s returned an undecodable body: %s", source, e)
        raise SourceUnavailable(source, f"Invalid response format from {source}") from e


async def fetch_countries(client: httpx.AsyncClient) -> List[Dict[str, Any]]:
    """
    Fetch country reference data from restcountries.com.
    """
    data = await _get_json(client, settings.COUNTRIES_API_URL, COUNTRIES_SOURCE)
    if not isinstance(data, list):
        logger.warning("%s returned %s instead of a list", COUNTRIES_SOURCE, type(data).__name__)
        raise SourceUnavailable(COUNTRIES_SOURCE, f"Invalid response format from {COUNTRIES_SOURCE}")
    return data


async def fetch_exchange_rates(client: httpx.AsyncClient) -> Dict[str, float]:
    """
    Fetch latest USD exchange rates from open.er-api.com.
    A response without a 'rates' mapping is a failure, not an empty result.
    """
    data = await _get_json(client, settings.EXCHANGE_RATE_API_URL, EXCHANGE_RATES_SOURCE)
    rates = data.get("rates") if isinstance(data, dict) else None
    if not isinstance(rates, dict):
        logger.warning("%s response has no rates mapping", EXCHANGE_RATES_SOURCE)
        raise SourceUnavailable(
            EXCHANGE_RATES_SOURCE, f"Invalid response format from {EXCHANGE_RATES_SOURCE}"
        )
    return rates


async def fetch_sources(
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Tuple[List[Dict[str, Any]], Dict[str, float]]:
    """
    Fetch countries and exchange rates concurrently.
    Both must succeed; the first failure is raised at once and the other
    fetch is cancelled.
    """
    async with httpx.AsyncClient(timeout=settings.API_TIMEOUT, transport=transport) as client:
        tasks = [
            asyncio.ensure_future(fetch_countries(client)),
            asyncio.ensure_future(fetch_exchange_rates(client)),
        ]
        try:
            countries, rates = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            # Collect the cancelled fetch before the client closes
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
    logger.info("Fetched %d countries and %d exchange rates", len(countries), len(rates))
    return countries, rates
