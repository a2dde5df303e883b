"""Paint mask rectangles so masked regions never count as differences."""

from __future__ import annotations

from PIL import Image, ImageDraw

from pixeldrift.models.config import MaskConfig

MASK_COLOR = (127, 127, 127, 255)
MASK_COLOR_CSS = "#7F7F7F"


def apply_rect_masks(image: Image.Image, masks: list[MaskConfig]) -> Image.Image:
    """Return an RGBA copy of ``image`` with every rectangle mask painted over."""
    masked = image.convert("RGBA")
    rects = [m for m in masks if m.is_rect and m.width > 0 and m.height > 0]
    if not rects:
        return masked
    draw = ImageDraw.Draw(masked)
    for m in rects:
        draw.rectangle((m.x, m.y, m.x + m.width - 1, m.y + m.height - 1), fill=MASK_COLOR)
    return masked
