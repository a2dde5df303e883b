"""JSON report output."""

from __future__ import annotations

import json
from pathlib import Path

from pixeldrift.models.result import RunSummary


def generate_json_report(summary: RunSummary, output_path: Path) -> None:
    """Write a machine-readable JSON report."""
    report = summary.model_dump(mode="json")
    report["failures"] = [
        {
            "target_key": r.target_key,
            "status": r.status.value,
            "diff_pixel_count": r.diff_pixel_count,
            "diff_image_path": r.diff_image_path,
            "message": r.message,
        }
        for r in summary.failures
    ]

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(report, f, indent=2, default=str)
