from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Dict, Iterable, Optional, List
from . import models, schemas
from .exceptions import ConflictFailed
from datetime import datetime

LAST_REFRESHED_AT_KEY = "last_refreshed_at"

# Fields rewritten on every refresh
UPSERT_FIELDS = (
    "capital",
    "region",
    "population",
    "currency_code",
    "exchange_rate",
    "estimated_gdp",
    "flag_url",
    "last_refreshed_at",
)

# --- Country CRUD ---

async def get_country_by_name(db: AsyncSession, name: str) -> Optional[models.Country]:
    """
    Fetch a single country by its name (case-insensitive).
    """
    result = await db.execute(
        select(models.Country).where(models.Country.name_key == models.name_key(name))
    )
    return result.scalars().first()

def _order_by(sort: Optional[schemas.SortOption]):
    country = models.Country
    sort = schemas.SortOption(sort) if sort else schemas.SortOption.NAME_ASC

    if sort == schemas.SortOption.GDP_DESC:
        # IS NULL sorts false (0) first, so NULLs land last on every backend
        return (country.estimated_gdp.is_(None), country.estimated_gdp.desc(), country.name.asc())
    if sort == schemas.SortOption.GDP_ASC:
        return (country.estimated_gdp.is_(None), country.estimated_gdp.asc(), country.name.asc())
    if sort == schemas.SortOption.POPULATION_DESC:
        return (country.population.desc(), country.name.asc())
    if sort == schemas.SortOption.POPULATION_ASC:
        return (country.population.asc(), country.name.asc())
    if sort == schemas.SortOption.NAME_DESC:
        return (country.name.desc(),)
    return (country.name.asc(),)

async def get_countries(
    db: AsyncSession,
    region: Optional[str] = None,
    currency: Optional[str] = None,
    sort: Optional[schemas.SortOption] = None,
) -> List[models.Country]:
    """
    Fetch a list of countries with optional filtering and sorting.
    Region is a case-insensitive substring match, currency an exact
    case-insensitive code match.
    """
    query = select(models.Country)

    if region:
        query = query.where(models.Country.region.icontains(region.strip(), autoescape=True))

    if currency:
        query = query.where(func.upper(models.Country.currency_code) == currency.strip().upper())

    query = query.order_by(*_order_by(sort))
    result = await db.execute(query)
    return list(result.scalars().all())

async def get_countries_count(db: AsyncSession) -> int:
    """
    Get the total count of countries in the database.
    """
    result = await db.execute(select(func.count(models.Country.id)))
    return result.scalar() or 0

async def upsert_countries(db: AsyncSession, records: Iterable[schemas.CountryCreate]) -> None:
    """
    Insert new countries and overwrite existing ones, matched by the
    case-folded name. Countries missing from the batch are left alone.
    The caller owns the transaction and must commit.
    """
    batch: Dict[str, schemas.CountryCreate] = {}
    for record in records:
        # A later duplicate in the same batch wins
        batch[models.name_key(record.name)] = record
    if not batch:
        return

    result = await db.execute(
        select(models.Country).where(models.Country.name_key.in_(list(batch)))
    )
    existing = {country.name_key: country for country in result.scalars()}

    for key, record in batch.items():
        values = record.model_dump(include=set(UPSERT_FIELDS))
        db_country = existing.get(key)
        if db_country is None:
            db.add(models.Country(name=record.name, **values))
        else:
            for field, value in values.items():
                setattr(db_country, field, value)

    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictFailed() from e

async def delete_country_by_name(db: AsyncSession, name: str) -> bool:
    """
    Delete a country by its name (case-insensitive).
    """
    db_country = await get_country_by_name(db, name)
    if db_country is None:
        return False
    await db.delete(db_country)
    await db.commit()
    return True

async def get_top_gdp_countries(db: AsyncSession, limit: int = 5) -> List[models.Country]:
    """
    Get the top N countries by estimated GDP, ignoring countries without one.
    """
    query = (
        select(models.Country)
        .where(models.Country.estimated_gdp.is_not(None))
        .order_by(models.Country.estimated_gdp.desc(), models.Country.name.asc())
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())

# --- Metadata CRUD ---

async def get_metadata(db: AsyncSession, key: str) -> Optional[models.Metadata]:
    result = await db.execute(select(models.Metadata).where(models.Metadata.key == key))
    return result.scalars().first()

async def set_metadata(db: AsyncSession, key: str, value: Optional[str]) -> models.Metadata:
    """
    Insert or overwrite a metadata entry. The caller must commit.
    """
    entry = await get_metadata(db, key)
    if entry:
        entry.value = value
    else:
        entry = models.Metadata(key=key, value=value)
        db.add(entry)
    await db.flush()
    return entry

async def get_last_refreshed_at(db: AsyncSession) -> Optional[datetime]:
    """
    Timestamp of the last successful refresh, or None before the first one.
    """
    entry = await get_metadata(db, LAST_REFRESHED_AT_KEY)
    if entry is None or not entry.value:
        return None
    return datetime.fromisoformat(entry.value)

async def save_refresh_state(db: AsyncSession, refreshed_at: datetime) -> None:
    await set_metadata(db, LAST_REFRESHED_AT_KEY, refreshed_at.isoformat())
