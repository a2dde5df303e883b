"""Pipeline orchestrator: catalog, capture, compare, aggregate and upload stages."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

from pixeldrift.capture.pool import CapturePool
from pixeldrift.capture.renderer import RenderFn, open_renderer
from pixeldrift.capture.retry import FlakinessRetryController, stability_check
from pixeldrift.catalog.builder import build_catalog
from pixeldrift.compare.comparer import ComparisonEngine
from pixeldrift.compare.engines import get_diff_engine
from pixeldrift.models.config import RunConfig
from pixeldrift.models.result import RunSummary
from pixeldrift.models.shot import ShotHooks, ShotTarget
from pixeldrift.reporter.aggregator import ResultAggregator, exit_code
from pixeldrift.reporter.json_report import generate_json_report
from pixeldrift.storage.image_store import ImageStore
from pixeldrift.upload.platform import PlatformClient, UploadCoordinator

logger = logging.getLogger(__name__)


async def run_pipeline(
    config: RunConfig,
    hooks: ShotHooks | None = None,
    render: RenderFn | None = None,
) -> RunSummary:
    """Run one visual regression pass and return its summary.

    Configuration and discovery problems raise before any capture starts.
    Per-shot failures are recorded in the summary and never raise.

    Args:
        render: Optional render function replacing the built-in renderers.
    """
    start = time.time()
    logger.info("=== Starting visual regression run (%s mode) ===", config.mode)

    logger.info("--- Stage 1: Catalog ---")
    targets = await build_catalog(config, hooks)

    store = ImageStore.from_config(config)
    await asyncio.to_thread(store.prepare)

    if render is not None:
        summary = await _capture_and_compare(config, targets, store, render)
    else:
        async with open_renderer(config, targets, hooks) as default_render:
            summary = await _capture_and_compare(config, targets, store, default_render)

    if config.platform is not None:
        logger.info("--- Stage 3: Upload ---")
        async with PlatformClient(config.platform) as client:
            report = await UploadCoordinator(client).upload(summary, config.platform)
        summary = summary.model_copy(update={
            "report_incomplete": report.incomplete,
            "report_id": report.report_id,
        })

    generate_json_report(summary, Path(config.report_output_dir) / "summary.json")
    logger.info("=== Run complete in %.1fs: %s ===",
                time.time() - start, "PASSED" if summary.passed else "FAILED")
    return summary


async def _capture_and_compare(
    config: RunConfig, targets: list[ShotTarget], store: ImageStore, render: RenderFn,
) -> RunSummary:
    """Capture and compare as a pipeline: each shot is compared as soon as it is captured."""
    diff = get_diff_engine(config.compare_engine)
    retry = FlakinessRetryController(
        retries=config.flakyness_retries,
        wait_ms=config.wait_between_flakyness_retries,
        is_unstable=stability_check(diff),
    )
    capture_pool = CapturePool(render, store, retry, concurrency=config.shot_concurrency)
    comparer = ComparisonEngine(
        store, diff, mode=config.mode, concurrency=config.compare_concurrency,
    )
    aggregator = ResultAggregator(
        expected=len(targets),
        tolerate_missing_baselines=config.tolerates_missing_baselines,
    )

    captures: asyncio.Queue = asyncio.Queue()
    results: asyncio.Queue = asyncio.Queue()

    async def _capture_stage() -> None:
        try:
            await capture_pool.run(targets, captures)
        finally:
            for _ in range(comparer.concurrency):
                await captures.put(None)

    logger.info("--- Stage 2: Capture and compare (%d shots, %s engine) ---",
                len(targets), config.compare_engine)
    await asyncio.gather(
        _capture_stage(),
        comparer.run(captures, results),
        aggregator.collect(results),
    )
    return aggregator.build_summary()


class Orchestrator:
    """Synchronous facade over ``run_pipeline`` for the CLI."""

    def __init__(self, config: RunConfig, hooks: ShotHooks | None = None):
        self.config = config
        self.hooks = hooks

    def run(self) -> RunSummary:
        return asyncio.run(run_pipeline(self.config, self.hooks))

    def exit_code(self, summary: RunSummary) -> int:
        return exit_code(summary, fail_on_difference=self.config.fail_on_difference)
