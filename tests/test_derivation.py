import random
from datetime import datetime, timezone

import pytest

from country_currency.derivation import build_country, compute_estimated_gdp, resolve_currency

NOW = datetime(2025, 10, 22, 12, 0, tzinfo=timezone.utc)


def test_estimated_gdp_is_none_without_rate():
    rng = random.Random(0)
    assert compute_estimated_gdp(1000, None, rng) is None
    assert compute_estimated_gdp(1000, 0, rng) is None
    assert compute_estimated_gdp(1000, 0.0, rng) is None


def test_estimated_gdp_within_multiplier_bounds():
    rng = random.Random()
    for _ in range(200):
        gdp = compute_estimated_gdp(206139589, 1600.23, rng)
        assert 206139589 * 1000 / 1600.23 <= gdp <= 206139589 * 2000 / 1600.23


def test_estimated_gdp_is_reproducible_with_seed():
    expected = 31072940 * random.Random(7).uniform(1000, 2000) / 15.34
    assert compute_estimated_gdp(31072940, 15.34, random.Random(7)) == pytest.approx(expected)


def test_resolve_currency_uses_first_currency():
    entry = {"currencies": [{"code": "EUR"}, {"code": "USD"}]}
    assert resolve_currency(entry, {"EUR": 0.92, "USD": 1.0}) == ("EUR", 0.92)


def test_resolve_currency_without_currencies():
    assert resolve_currency({"currencies": []}, {"USD": 1.0}) == (None, None)
    assert resolve_currency({}, {"USD": 1.0}) == (None, None)


def test_resolve_currency_unknown_rate():
    assert resolve_currency({"currencies": [{"code": "XYZ"}]}, {"USD": 1.0}) == ("XYZ", None)


@pytest.mark.parametrize(
    "currencies, rates, has_gdp",
    [
        ([{"code": "NGN"}], {"NGN": 1600.23}, True),
        ([{"code": "NGN"}], {}, False),
        ([{"code": "NGN"}], {"NGN": 0}, False),
        ([], {"NGN": 1600.23}, False),
    ],
)
def test_gdp_present_only_with_known_nonzero_rate(currencies, rates, has_gdp):
    entry = {"name": "Nigeria", "population": 206139589, "currencies": currencies}
    record = build_country(entry, rates, NOW, random.Random(1))
    assert (record.estimated_gdp is not None) is has_gdp


def test_build_country_maps_fields():
    entry = {
        "name": "Ghana",
        "capital": "Accra",
        "region": "Africa",
        "population": 31072940,
        "flag": "https://flagcdn.com/gh.svg",
        "currencies": [{"code": "GHS"}],
    }
    record = build_country(entry, {"GHS": 15.34}, NOW, random.Random(1))

    assert record.name == "Ghana"
    assert record.capital == "Accra"
    assert record.region == "Africa"
    assert record.currency_code == "GHS"
    assert record.exchange_rate == 15.34
    assert record.flag_url == "https://flagcdn.com/gh.svg"
    assert record.last_refreshed_at == NOW


def test_build_country_blank_strings_become_none():
    entry = {"name": "Antarctica", "capital": "", "region": "Polar", "population": 1000}
    record = build_country(entry, {}, NOW, random.Random(1))
    assert record.capital is None
    assert record.currency_code is None
    assert record.estimated_gdp is None


@pytest.mark.parametrize(
    "entry",
    [
        {"population": 10},
        {"name": "", "population": 10},
        {"name": "Nowhere"},
        {"name": "Nowhere", "population": -5},
        {"name": "Nowhere", "population": "many"},
    ],
)
def test_build_country_skips_invalid_entries(entry):
    assert build_country(entry, {}, NOW, random.Random(1)) is None
