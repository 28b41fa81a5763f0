import asyncio
import os
import random
import tempfile
from pathlib import Path

import pytest

# Settings are read at import time, so point them at a scratch area first
_TMP_DIR = Path(tempfile.mkdtemp(prefix="country-currency-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR / 'api.db'}"
os.environ["IMAGE_PATH"] = str(_TMP_DIR / "cache" / "summary.png")
os.environ["LOG_LEVEL"] = "DEBUG"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from country_currency import gateway, models  # noqa: E402
from country_currency.config import settings  # noqa: E402
from country_currency.database import Base, engine  # noqa: E402
from country_currency.main import app, get_rng  # noqa: E402

SEED = 1234

SOURCE_COUNTRIES = [
    {
        "name": "Nigeria",
        "capital": "Abuja",
        "region": "Africa",
        "population": 206139589,
        "flag": "https://flagcdn.com/ng.svg",
        "currencies": [{"code": "NGN", "name": "Nigerian naira", "symbol": "₦"}],
    },
    {
        "name": "Ghana",
        "capital": "Accra",
        "region": "Africa",
        "population": 31072940,
        "flag": "https://flagcdn.com/gh.svg",
        "currencies": [{"code": "GHS", "name": "Ghanaian cedi", "symbol": "₵"}],
    },
]

SOURCE_RATES = {"NGN": 1600.23, "GHS": 15.34, "USD": 1.0}


def make_country(**overrides):
    values = {
        "name": "Testland",
        "capital": "Testville",
        "region": "Test Region",
        "population": 1000,
        "currency_code": "TST",
        "exchange_rate": 2.0,
        "estimated_gdp": 500.0,
        "flag_url": "https://example.com/flag.png",
    }
    values.update(overrides)
    return models.Country(**values)


async def _reset_database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
def client():
    """API client on a clean database, with no summary image and a seeded random source."""
    if settings.IMAGE_PATH.exists():
        settings.IMAGE_PATH.unlink()
    app.dependency_overrides[get_rng] = lambda: random.Random(SEED)
    with TestClient(app) as test_client:
        test_client.portal.call(_reset_database)
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def seed_countries(client):
    """Insert rows directly, bypassing the refresh pipeline."""
    def seed(*countries):
        async def insert():
            async with async_sessionmaker(engine, expire_on_commit=False)() as session:
                session.add_all(countries)
                await session.commit()
        client.portal.call(insert)
    return seed


@pytest.fixture
def fake_sources(monkeypatch):
    """Replace the external fetch with canned data; returns the call log."""
    calls = []

    async def fetch_sources(transport=None):
        calls.append(transport)
        return [dict(c) for c in SOURCE_COUNTRIES], dict(SOURCE_RATES)

    monkeypatch.setattr(gateway, "fetch_sources", fetch_sources)
    return calls


@pytest.fixture
def run_db(tmp_path):
    """Run an async callable against a fresh session on its own database."""
    def runner(fn):
        async def main():
            unit_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'unit.db'}")
            async with unit_engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            try:
                async with async_sessionmaker(unit_engine, expire_on_commit=False)() as session:
                    return await fn(session)
            finally:
                await unit_engine.dispose()
        return asyncio.run(main())
    return runner
