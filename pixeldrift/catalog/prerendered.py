"""Pre-rendered image folder discovery."""

from __future__ import annotations

import logging
from pathlib import Path

from pixeldrift.errors import DiscoveryError
from pixeldrift.models.config import CustomShotsConfig
from pixeldrift.models.shot import ShotSource, ShotTarget

from .defaults import ShotDefaults

logger = logging.getLogger(__name__)


def discover_prerendered(shots: CustomShotsConfig, defaults: ShotDefaults) -> list[ShotTarget]:
    folder = Path(shots.current_shots_path)
    if not folder.is_dir():
        raise DiscoveryError("custom_shots", f"folder not found: {folder}")

    targets = []
    for path in sorted(folder.rglob("*.png")):
        rel = path.relative_to(folder).with_suffix("").as_posix()
        target = defaults.make_target(
            id=rel,
            display_name=rel,
            source=ShotSource.PRERENDERED,
            file_path=str(path),
            breakpoints=[],
        )
        targets.append(target)
    logger.info("Custom shots: %d images found in %s", len(targets), folder)
    return targets
