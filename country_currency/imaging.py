import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from PIL import Image, ImageDraw, ImageFont
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud, models

logger = logging.getLogger(__name__)

WIDTH, HEIGHT = 800, 600

BACKGROUND = "#1a1a2e"
WHITE = "#ffffff"
MUTED = "#a0a0a0"
ACCENT = "#4ecca3"
GOLD = "#ffd700"
FOOTER = "#666666"


def format_gdp(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"${value / 1_000_000_000:,.2f}B"


def format_population(value: Optional[int]) -> str:
    if value is None:
        return "N/A"
    return f"{round(value):,}"


def _font(size: int, bold: bool = False):
    name = "DejaVuSans-Bold.ttf" if bold else "DejaVuSans.ttf"
    try:
        return ImageFont.truetype(name, size)
    except OSError:
        # Fonts are not installed everywhere (slim containers)
        return ImageFont.load_default(size=size)


def render_summary_image(
    total: int, top_countries: Sequence[models.Country], rendered_at: datetime
) -> Image.Image:
    """
    Draw the summary card: total count, top countries by estimated GDP
    and the render timestamp.
    """
    img = Image.new("RGB", (WIDTH, HEIGHT), color=BACKGROUND)
    d = ImageDraw.Draw(img)

    d.text((WIDTH / 2, 60), "Country Currency API Summary", fill=WHITE, font=_font(32, bold=True), anchor="ms")
    d.text((WIDTH / 2, 100), f"Total Countries: {total}", fill=MUTED, font=_font(20), anchor="ms")

    d.text((50, 160), "Top 5 Countries by Estimated GDP", fill=ACCENT, font=_font(24, bold=True), anchor="ls")

    rank_font = _font(28, bold=True)
    name_font = _font(20, bold=True)
    gdp_font = _font(18)
    info_font = _font(14)

    y_pos = 210
    for i, country in enumerate(top_countries[:5], start=1):
        d.text((50, y_pos), f"{i}.", fill=ACCENT, font=rank_font, anchor="ls")
        d.text((90, y_pos), country.name, fill=WHITE, font=name_font, anchor="ls")
        d.text((WIDTH - 50, y_pos), format_gdp(country.estimated_gdp), fill=GOLD, font=gdp_font, anchor="rs")

        info = f"{country.currency_code or 'N/A'} | Pop: {format_population(country.population)}"
        d.text((90, y_pos + 22), info, fill=MUTED, font=info_font, anchor="ls")
        y_pos += 70

    d.text(
        (WIDTH / 2, HEIGHT - 30),
        f"Last refreshed: {rendered_at.isoformat()}",
        fill=FOOTER,
        font=_font(14),
        anchor="ms",
    )
    return img


async def generate_summary_image(db: AsyncSession, rendered_at: datetime, image_path: Path) -> Path:
    """
    Render the summary of the current store contents and write it to
    image_path, replacing any previous image.
    """
    total = await crud.get_countries_count(db)
    top_5 = await crud.get_top_gdp_countries(db, limit=5)

    img = render_summary_image(total, top_5, rendered_at)

    image_path = Path(image_path)
    image_path.parent.mkdir(parents=True, exist_ok=True)

    # Write next to the target and swap, so readers never see a half-written file
    fd, tmp_name = tempfile.mkstemp(dir=image_path.parent, suffix=".png")
    try:
        with os.fdopen(fd, "wb") as fh:
            img.save(fh, format="PNG")
        os.replace(tmp_name, image_path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logger.info("Summary image written to %s", image_path)
    return image_path
