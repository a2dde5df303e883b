"""Capture worker pool — bounded-concurrency screenshotting of shot targets."""

from __future__ import annotations

import asyncio
import logging
import time

from pixeldrift.models.result import CaptureResult
from pixeldrift.models.shot import ShotTarget
from pixeldrift.storage.image_store import ImageStore

from .renderer import RenderFn
from .retry import FlakinessRetryController

logger = logging.getLogger(__name__)


class CapturePool:
    """Captures every target with at most ``concurrency`` captures in flight.

    Results are pushed onto the output queue in completion order, so
    comparison can start on a shot while others are still rendering.
    """

    def __init__(
        self,
        render: RenderFn,
        store: ImageStore,
        retry_controller: FlakinessRetryController | None = None,
        concurrency: int = 5,
    ):
        self.render = render
        self.store = store
        self.retry_controller = retry_controller or FlakinessRetryController()
        self.concurrency = concurrency

    async def run(self, targets: list[ShotTarget], output: asyncio.Queue) -> None:
        pending: asyncio.Queue = asyncio.Queue()
        for target in targets:
            pending.put_nowait(target)
        logger.info("Capturing %d shots (concurrency=%d)", len(targets), self.concurrency)

        async def _worker() -> None:
            while True:
                try:
                    target = pending.get_nowait()
                except asyncio.QueueEmpty:
                    return
                await output.put(await self.capture(target))

        await asyncio.gather(*(_worker() for _ in range(self.concurrency)))

    async def capture(self, target: ShotTarget) -> CaptureResult:
        start = time.time()
        outcome = await self.retry_controller.run(target, lambda: self.render(target))
        captured_at = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())

        if outcome.error is not None or outcome.image is None:
            reason = str(outcome.error or "no image produced") or type(outcome.error).__name__
            logger.error("Capture of %s failed after %d attempt(s): %s",
                         target.target_key, outcome.attempts_used, reason)
            return CaptureResult(
                target=target, attempts_used=outcome.attempts_used,
                captured_at=captured_at, error=reason,
            )

        try:
            path = await asyncio.to_thread(self.store.write_current, target, outcome.image)
        except OSError as e:
            logger.error("Could not store image for %s: %s", target.target_key, e)
            return CaptureResult(
                target=target, attempts_used=outcome.attempts_used,
                captured_at=captured_at, error=f"Could not store image: {e}",
            )

        logger.debug("Captured %s in %.1fs (%d attempt(s))",
                     target.target_key, time.time() - start, outcome.attempts_used)
        return CaptureResult(
            target=target, image_path=str(path),
            attempts_used=outcome.attempts_used, captured_at=captured_at,
        )
