import asyncio
import logging
import random
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud, gateway, imaging, schemas
from .config import settings
from .derivation import build_country
from .exceptions import InternalFailure

logger = logging.getLogger(__name__)

# Serialises overlapping refreshes inside this process; last writer wins
_refresh_lock = asyncio.Lock()


class RefreshPhase(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DERIVING = "deriving"
    PERSISTING = "persisting"
    RENDERING = "rendering"
    DONE = "done"
    FAILED = "failed"


# --- Core Refresh Logic ---

async def refresh_countries(
    db: AsyncSession,
    rng: Optional[random.Random] = None,
    image_path: Optional[Path] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> schemas.RefreshResult:
    """
    Fetch both sources, derive every country, upsert the batch together
    with the refresh timestamp in one transaction, then regenerate the
    summary image.

    Nothing is written if either source fails. If rendering fails the
    data is already committed and the image lags behind until the next
    successful refresh.
    """
    rng = rng or random.Random()
    image_path = image_path or settings.IMAGE_PATH

    async with _refresh_lock:
        phase = RefreshPhase.IDLE
        try:
            phase = _enter(RefreshPhase.FETCHING)
            countries, rates = await gateway.fetch_sources(transport=transport)

            phase = _enter(RefreshPhase.DERIVING)
            refreshed_at = datetime.now(timezone.utc)
            records = []
            for country_data in countries:
                record = build_country(country_data, rates, refreshed_at, rng)
                if record is not None:
                    records.append(record)

            phase = _enter(RefreshPhase.PERSISTING)
            try:
                await crud.upsert_countries(db, records)
                await crud.save_refresh_state(db, refreshed_at)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
            total = await crud.get_countries_count(db)

            phase = _enter(RefreshPhase.RENDERING)
            try:
                await imaging.generate_summary_image(db, refreshed_at, image_path)
            except Exception as e:
                raise InternalFailure("Summary image generation failed") from e

            _enter(RefreshPhase.DONE)
        except Exception as e:
            logger.error("Refresh failed during %s phase: %s", phase.value, e)
            _enter(RefreshPhase.FAILED)
            raise

    logger.info("Refreshed %d countries (%d in store) at %s", len(records), total, refreshed_at.isoformat())
    return schemas.RefreshResult(total_countries=total, last_refreshed_at=refreshed_at)


def _enter(phase: RefreshPhase) -> RefreshPhase:
    logger.debug("Refresh phase: %s", phase.value)
    return phase
