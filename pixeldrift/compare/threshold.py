"""Threshold policy for fractional or absolute pixel tolerance."""

from __future__ import annotations

import math


def effective_limit(threshold: float, total_pixels: int) -> float:
    """Number of differing pixels a shot may have and still pass.

    Values in [0, 1) are a fraction of ``total_pixels`` (floored); values >= 1
    are an absolute pixel count.
    """
    if threshold < 1:
        return math.floor(threshold * total_pixels)
    return threshold


def exceeds_threshold(diff_pixel_count: int, threshold: float, total_pixels: int) -> bool:
    return diff_pixel_count > effective_limit(threshold, total_pixels)
