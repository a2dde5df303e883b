"""Result aggregation — the single owner of comparison results for a run."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import Counter

from pixeldrift.models.result import ComparisonResult, ComparisonStatus, RunSummary

logger = logging.getLogger(__name__)


class ResultAggregator:
    """Drains the completion queue and builds the immutable RunSummary."""

    def __init__(self, expected: int, tolerate_missing_baselines: bool = False):
        self.expected = expected
        self.tolerate_missing_baselines = tolerate_missing_baselines
        self.run_id = f"run_{uuid.uuid4().hex[:8]}"
        self.started_at = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        self._start = time.time()
        self._results: dict[str, ComparisonResult] = {}

    def add(self, result: ComparisonResult) -> None:
        if result.target_key in self._results:
            raise ValueError(f"Duplicate result for {result.target_key}")
        self._results[result.target_key] = result

    async def collect(self, results: asyncio.Queue) -> None:
        """Block until every expected target has a result."""
        while len(self._results) < self.expected:
            self.add(await results.get())
            logger.debug("Collected %d/%d results", len(self._results), self.expected)

    def failure_statuses(self) -> set[ComparisonStatus]:
        statuses = {ComparisonStatus.FAILED, ComparisonStatus.ERROR}
        if not self.tolerate_missing_baselines:
            statuses.add(ComparisonStatus.BASELINE_MISSING)
        return statuses

    def build_summary(self) -> RunSummary:
        if len(self._results) < self.expected:
            raise RuntimeError(
                f"Only {len(self._results)} of {self.expected} results collected"
            )
        results = sorted(self._results.values(), key=lambda r: r.target_key)
        counts = Counter(r.status.value for r in results)
        failing = self.failure_statuses()
        passed = not any(r.status in failing for r in results)

        summary = RunSummary(
            run_id=self.run_id,
            started_at=self.started_at,
            completed_at=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            duration_seconds=round(time.time() - self._start, 2),
            results=results,
            counts={status.value: counts.get(status.value, 0) for status in ComparisonStatus},
            passed=passed,
            tolerate_missing_baselines=self.tolerate_missing_baselines,
        )
        logger.info(
            "Run %s: %d passed, %d failed, %d new baselines, %d missing baselines, %d errors",
            summary.run_id,
            summary.count(ComparisonStatus.PASSED),
            summary.count(ComparisonStatus.FAILED),
            summary.count(ComparisonStatus.NEW_BASELINE_CREATED),
            summary.count(ComparisonStatus.BASELINE_MISSING),
            summary.count(ComparisonStatus.ERROR),
        )
        return summary


def exit_code(summary: RunSummary, fail_on_difference: bool = True) -> int:
    """Map a run to a process exit code.

    Capture or comparison errors always fail. Differences and missing
    baselines fail unless ``fail_on_difference`` is off.
    """
    if summary.passed:
        return 0
    if summary.count(ComparisonStatus.ERROR):
        return 1
    return 1 if fail_on_difference else 0
