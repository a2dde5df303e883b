"""Capture and comparison result data structures."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from pixeldrift.models.shot import ShotTarget


class CaptureResult(BaseModel):
    target: ShotTarget
    image_path: Optional[str] = None
    attempts_used: int = 0
    captured_at: str = ""  # ISO timestamp
    error: Optional[str] = None

    @property
    def target_key(self) -> str:
        return self.target.target_key


class ComparisonStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    NEW_BASELINE_CREATED = "new_baseline_created"
    BASELINE_MISSING = "baseline_missing"
    ERROR = "error"


class ComparisonResult(BaseModel):
    target_key: str
    target_id: str
    display_name: str
    breakpoint: Optional[int] = None
    status: ComparisonStatus
    diff_pixel_count: int = 0
    diff_fraction: float = 0.0
    total_pixels: int = 0
    effective_limit: float = 0
    diff_image_path: Optional[str] = None  # only set when status == failed
    current_image_path: Optional[str] = None
    baseline_image_path: Optional[str] = None
    attempts_used: int = 0
    message: str = ""


class RunSummary(BaseModel):
    """Aggregate of one run. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    started_at: str
    completed_at: str
    duration_seconds: float = 0.0
    results: list[ComparisonResult] = Field(default_factory=list)
    counts: dict[str, int] = Field(default_factory=dict)
    passed: bool = True
    tolerate_missing_baselines: bool = False
    report_incomplete: bool = False
    report_id: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.results)

    def count(self, status: ComparisonStatus) -> int:
        return self.counts.get(status.value, 0)

    @property
    def failures(self) -> list[ComparisonResult]:
        failing = {ComparisonStatus.FAILED, ComparisonStatus.ERROR}
        if not self.tolerate_missing_baselines:
            failing.add(ComparisonStatus.BASELINE_MISSING)
        return [r for r in self.results if r.status in failing]
