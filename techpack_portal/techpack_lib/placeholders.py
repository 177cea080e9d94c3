"""Placeholder image rendering for views without uploaded media."""
from __future__ import annotations

import colorsys
import io
import logging
from pathlib import Path
from typing import List, Tuple

from PIL import Image, ImageDraw, ImageFont

from .views import VIEW_CATALOG, ViewSlot, get_view, placeholder_for

PLACEHOLDER_SIZE = (640, 480)
GOLDEN_RATIO = 0.618033988749895

logger = logging.getLogger(__name__)


def placeholder_color(position: int) -> Tuple[int, int, int]:
    """Pastel background colour derived only from the view's position index."""
    hue = (position * GOLDEN_RATIO) % 1.0
    red, green, blue = colorsys.hls_to_rgb(hue, 0.86, 0.45)
    return int(red * 255), int(green * 255), int(blue * 255)


def _accent(color: Tuple[int, int, int]) -> Tuple[int, int, int]:
    return tuple(max(0, int(channel * 0.55)) for channel in color)  # type: ignore[return-value]


def render_placeholder(view_key: str, size: Tuple[int, int] = PLACEHOLDER_SIZE) -> Image.Image:
    slot: ViewSlot = get_view(view_key)
    background = placeholder_color(slot.position)
    accent = _accent(background)
    width, height = size
    img = Image.new("RGB", size, background)
    draw = ImageDraw.Draw(img)
    margin = max(4, min(width, height) // 20)
    draw.rectangle((margin, margin, width - margin - 1, height - margin - 1), outline=accent, width=3)
    font = ImageFont.load_default()
    number = f"{slot.position:02d}"
    caption = slot.label
    for text, y_ratio in ((number, 0.42), (caption, 0.58)):
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        text_width = right - left
        text_height = bottom - top
        draw.text(
            ((width - text_width) / 2, height * y_ratio - text_height / 2),
            text,
            fill=accent,
            font=font,
        )
    return img


def placeholder_png(view_key: str, size: Tuple[int, int] = PLACEHOLDER_SIZE) -> bytes:
    buffer = io.BytesIO()
    render_placeholder(view_key, size).save(buffer, format="PNG", optimize=False)
    return buffer.getvalue()


def placeholder_filename(view_key: str) -> str:
    return placeholder_for(view_key).url.rsplit("/", 1)[-1]


def view_key_for_filename(filename: str) -> str:
    """Inverse of placeholder_filename: ``07-sole.png`` -> ``sole``."""
    stem = Path(filename).stem
    _, _, key = stem.partition("-")
    return get_view(key).key


def write_placeholders(target_dir: Path, *, force: bool = False) -> List[Path]:
    target_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for slot in VIEW_CATALOG:
        target = target_dir / placeholder_filename(slot.key)
        if target.exists() and not force:
            logger.debug("Keeping existing placeholder %s", target)
            continue
        target.write_bytes(placeholder_png(slot.key))
        written.append(target)
    return written
