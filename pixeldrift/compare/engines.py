"""Pixel diff engines.

Both engines share one shape, ``diff(image_a, image_b) -> DiffOutput``, and
are chosen by name so the comparison engine never depends on a specific
algorithm:

- ``perceptual``: YIQ colour distance after blending alpha onto white, with
  the 0.1 sensitivity pixelmatch uses by default. Small rendering noise
  (sub-perceptual colour shifts) is ignored.
- ``exact``: a pixel differs if any RGBA channel differs.

The diff image shows the first image as a faded grayscale with differing
pixels in red.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np
from PIL import Image

# Maximum possible YIQ delta between two colours
MAX_YIQ_DELTA = 35215.0
PERCEPTUAL_SENSITIVITY = 0.1
DIFF_COLOR = (255, 0, 0, 255)
FADE_ALPHA = 0.1


@dataclass
class DiffOutput:
    diff_pixel_count: int
    diff_image: Image.Image


DiffEngine = Callable[[Image.Image, Image.Image], DiffOutput]


def _rgba(image: Image.Image) -> np.ndarray:
    return np.asarray(image.convert("RGBA"), dtype=np.float64)


def _check_sizes(a: Image.Image, b: Image.Image) -> None:
    if a.size != b.size:
        raise ValueError(f"Image sizes differ: {a.size} vs {b.size}")


def _blend_on_white(rgba: np.ndarray) -> np.ndarray:
    alpha = rgba[..., 3:4] / 255.0
    return 255.0 + (rgba[..., :3] - 255.0) * alpha


def _yiq(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    y = r * 0.29889531 + g * 0.58662247 + b * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return y, i, q


def _render_diff(base_rgba: np.ndarray, diff_mask: np.ndarray) -> Image.Image:
    luma, _, _ = _yiq(_blend_on_white(base_rgba))
    faded = 255.0 + (luma - 255.0) * FADE_ALPHA
    out = np.empty(base_rgba.shape, dtype=np.uint8)
    out[..., 0] = out[..., 1] = out[..., 2] = np.clip(faded, 0, 255).astype(np.uint8)
    out[..., 3] = 255
    out[diff_mask] = DIFF_COLOR
    return Image.fromarray(out)


def perceptual_diff(
    image_a: Image.Image, image_b: Image.Image, sensitivity: float = PERCEPTUAL_SENSITIVITY,
) -> DiffOutput:
    _check_sizes(image_a, image_b)
    a, b = _rgba(image_a), _rgba(image_b)
    ya, ia, qa = _yiq(_blend_on_white(a))
    yb, ib, qb = _yiq(_blend_on_white(b))
    delta = 0.5053 * (ya - yb) ** 2 + 0.299 * (ia - ib) ** 2 + 0.1957 * (qa - qb) ** 2
    diff_mask = delta > MAX_YIQ_DELTA * sensitivity * sensitivity
    return DiffOutput(int(diff_mask.sum()), _render_diff(a, diff_mask))


def exact_diff(image_a: Image.Image, image_b: Image.Image) -> DiffOutput:
    _check_sizes(image_a, image_b)
    a, b = _rgba(image_a), _rgba(image_b)
    diff_mask = np.any(a != b, axis=-1)
    return DiffOutput(int(diff_mask.sum()), _render_diff(a, diff_mask))


ENGINES: dict[str, DiffEngine] = {
    "perceptual": perceptual_diff,
    "exact": exact_diff,
}


def get_diff_engine(name: str) -> DiffEngine:
    try:
        return ENGINES[name]
    except KeyError:
        raise ValueError(
            f"Unknown compare engine {name!r}, expected one of: {', '.join(ENGINES)}"
        ) from None
