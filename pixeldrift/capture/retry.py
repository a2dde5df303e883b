"""Flakiness retry controller — re-captures shots until two attempts agree."""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from PIL import Image

from pixeldrift.compare.engines import DiffEngine
from pixeldrift.compare.masking import apply_rect_masks
from pixeldrift.compare.threshold import exceeds_threshold
from pixeldrift.models.shot import ShotTarget

logger = logging.getLogger(__name__)

StabilityCheck = Callable[[bytes, bytes, ShotTarget], Awaitable[bool]]


@dataclass
class RetryOutcome:
    image: Optional[bytes]
    attempts_used: int
    error: Optional[BaseException] = None


def _decode(data: bytes) -> Image.Image:
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return img.convert("RGBA")


def attempts_differ(previous: bytes, current: bytes, target: ShotTarget, diff: DiffEngine) -> bool:
    """Self-comparison of two attempts using the target's own threshold."""
    if previous == current:
        return False
    a, b = _decode(previous), _decode(current)
    if a.size != b.size:
        return True
    masks = target.rect_masks
    if masks:
        a, b = apply_rect_masks(a, masks), apply_rect_masks(b, masks)
    count = diff(a, b).diff_pixel_count
    return exceeds_threshold(count, target.threshold, a.width * a.height)


def stability_check(diff: DiffEngine) -> StabilityCheck:
    """Build the default instability predicate around a diff engine."""

    async def _is_unstable(previous: bytes, current: bytes, target: ShotTarget) -> bool:
        return await asyncio.to_thread(attempts_differ, previous, current, target, diff)

    return _is_unstable


class FlakinessRetryController:
    """Runs up to ``retries + 1`` attempts of one capture.

    An attempt is unstable when it raises or when its image differs from the
    previous successful attempt beyond the target threshold. With retries
    enabled, a first successful attempt is confirmed by a second one. When the
    budget runs out the last attempt's outcome is used as is.
    """

    def __init__(self, retries: int = 0, wait_ms: int = 2000, is_unstable: StabilityCheck | None = None):
        self.retries = retries
        self.wait_ms = wait_ms
        self.is_unstable = is_unstable

    async def run(self, target: ShotTarget, attempt: Callable[[], Awaitable[bytes]]) -> RetryOutcome:
        max_attempts = self.retries + 1
        previous: Optional[bytes] = None

        for attempt_no in range(1, max_attempts + 1):
            last = attempt_no == max_attempts
            try:
                image = await attempt()
            except Exception as e:
                logger.warning("Capture attempt %d/%d for %s failed: %s",
                               attempt_no, max_attempts, target.target_key, e)
                if last:
                    return RetryOutcome(None, attempt_no, e)
                previous = None
                await self._pause()
                continue

            if self.retries == 0 or last:
                return RetryOutcome(image, attempt_no)

            if previous is not None and self.is_unstable is not None:
                if not await self.is_unstable(previous, image, target):
                    logger.debug("%s stable after %d attempts", target.target_key, attempt_no)
                    return RetryOutcome(image, attempt_no)
                logger.info("%s unstable on attempt %d/%d, retrying",
                            target.target_key, attempt_no, max_attempts)
            elif previous is not None:
                return RetryOutcome(image, attempt_no)

            previous = image
            await self._pause()

        return RetryOutcome(previous, max_attempts)

    async def _pause(self) -> None:
        if self.wait_ms > 0:
            await asyncio.sleep(self.wait_ms / 1000)
