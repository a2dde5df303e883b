"""Comparison engine — turns capture results into pass/fail verdicts against baselines."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from PIL import Image

from pixeldrift.models.result import CaptureResult, ComparisonResult, ComparisonStatus
from pixeldrift.storage.image_store import ImageStore

from .engines import DiffEngine, get_diff_engine
from .masking import apply_rect_masks
from .threshold import effective_limit

logger = logging.getLogger(__name__)


def load_image(path: Path) -> Image.Image:
    with Image.open(path) as img:
        img.load()
        return img.convert("RGBA")


class ComparisonEngine:
    """Compares each capture with its baseline, at most ``concurrency`` at a time."""

    def __init__(
        self,
        store: ImageStore,
        engine: str | DiffEngine = "perceptual",
        mode: str = "compare",
        concurrency: int = 10,
    ):
        self.store = store
        self.diff = get_diff_engine(engine) if isinstance(engine, str) else engine
        self.mode = mode
        self.concurrency = concurrency

    async def run(self, captures: asyncio.Queue, results: asyncio.Queue) -> None:
        """Consume captures as they arrive until one ``None`` per worker is received."""

        async def _worker(worker_id: int) -> None:
            while True:
                capture = await captures.get()
                if capture is None:
                    logger.debug("Compare worker %d done", worker_id)
                    return
                await results.put(await self.compare(capture))

        await asyncio.gather(*(_worker(i) for i in range(self.concurrency)))

    async def compare(self, capture: CaptureResult) -> ComparisonResult:
        return await asyncio.to_thread(self.compare_capture, capture)

    def compare_capture(self, capture: CaptureResult) -> ComparisonResult:
        target = capture.target
        result = ComparisonResult(
            target_key=target.target_key,
            target_id=target.id,
            display_name=target.display_name,
            breakpoint=target.breakpoint,
            status=ComparisonStatus.ERROR,
            current_image_path=capture.image_path,
            attempts_used=capture.attempts_used,
        )

        if capture.error or not capture.image_path:
            result.message = f"Capture failed: {capture.error or 'no image produced'}"
            logger.warning("[ERROR] %s: %s", target.target_key, result.message)
            return result

        current_path = Path(capture.image_path)
        try:
            baseline_path = self.store.find_baseline(target)
            if baseline_path is None:
                return self._missing_baseline(capture, current_path, result)
            result.baseline_image_path = str(baseline_path)
            current = load_image(current_path)
            baseline = load_image(baseline_path)
            self._diff(capture, current, baseline, result)
        except (OSError, ValueError) as e:
            result.status = ComparisonStatus.ERROR
            result.message = f"Comparison error: {e}"
            logger.error("Comparison of %s failed: %s", target.target_key, e)
            return result

        logger.info("[%s] %s: %d px differ (limit %g)",
                    result.status.value.upper(), target.target_key,
                    result.diff_pixel_count, result.effective_limit)
        return result

    def _missing_baseline(
        self, capture: CaptureResult, current_path: Path, result: ComparisonResult,
    ) -> ComparisonResult:
        target = capture.target
        if self.mode == "generate":
            path = self.store.write_baseline(target, current_path)
            result.status = ComparisonStatus.NEW_BASELINE_CREATED
            result.baseline_image_path = str(path)
            result.message = "Baseline created"
        else:
            result.status = ComparisonStatus.BASELINE_MISSING
            result.message = "No baseline found"
            logger.warning("No baseline for %s", target.target_key)
        return result

    def _diff(
        self,
        capture: CaptureResult,
        current: Image.Image,
        baseline: Image.Image,
        result: ComparisonResult,
    ) -> None:
        target = capture.target

        if current.size != baseline.size:
            total = max(current.width * current.height, baseline.width * baseline.height)
            limit = effective_limit(target.threshold, total)
            result.total_pixels = total
            result.diff_pixel_count = total
            result.diff_fraction = 1.0
            result.effective_limit = limit
            result.status = ComparisonStatus.FAILED if total > limit else ComparisonStatus.PASSED
            result.message = (
                f"Dimensions differ: current {current.width}x{current.height}, "
                f"baseline {baseline.width}x{baseline.height}"
            )
            return

        masks = target.rect_masks
        if masks:
            current = apply_rect_masks(current, masks)
            baseline = apply_rect_masks(baseline, masks)

        output = self.diff(current, baseline)
        total = current.width * current.height
        limit = effective_limit(target.threshold, total)
        result.total_pixels = total
        result.diff_pixel_count = output.diff_pixel_count
        result.diff_fraction = output.diff_pixel_count / total if total else 0.0
        result.effective_limit = limit

        if output.diff_pixel_count > limit:
            result.status = ComparisonStatus.FAILED
            result.diff_image_path = str(self.store.write_difference(target, output.diff_image))
            result.message = f"Pixel diff: {result.diff_fraction:.2%} ({output.diff_pixel_count} px)"
        else:
            result.status = ComparisonStatus.PASSED
            result.message = f"Pixel diff within threshold: {output.diff_pixel_count} px"
