"""Three parallel image trees: current, baseline and difference."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from PIL import Image

from pixeldrift.models.config import RunConfig
from pixeldrift.models.shot import ShotTarget

logger = logging.getLogger(__name__)


class ImageStore:
    """Addresses every image by the target's file name inside each tree."""

    def __init__(self, current_dir: Path, baseline_dir: Path, difference_dir: Path):
        self.current_dir = Path(current_dir)
        self.baseline_dir = Path(baseline_dir)
        self.difference_dir = Path(difference_dir)

    @classmethod
    def from_config(cls, config: RunConfig) -> "ImageStore":
        return cls(
            Path(config.image_path_current),
            Path(config.image_path_baseline),
            Path(config.image_path_difference),
        )

    def prepare(self) -> None:
        """Clear images from a previous run. Baselines are kept."""
        for folder in (self.current_dir, self.difference_dir):
            if folder.exists():
                logger.debug("Clearing %s", folder)
                shutil.rmtree(folder)
        for folder in (self.current_dir, self.baseline_dir, self.difference_dir):
            folder.mkdir(parents=True, exist_ok=True)

    def current_path(self, target: ShotTarget) -> Path:
        return self.current_dir / target.file_name

    def baseline_path(self, target: ShotTarget) -> Path:
        return self.baseline_dir / target.file_name

    def difference_path(self, target: ShotTarget) -> Path:
        return self.difference_dir / target.file_name

    def write_current(self, target: ShotTarget, data: bytes) -> Path:
        path = self.current_path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    def find_baseline(self, target: ShotTarget) -> Path | None:
        path = self.baseline_path(target)
        return path if path.exists() else None

    def write_baseline(self, target: ShotTarget, source: Path) -> Path:
        """Copy the current image as a new baseline. Existing baselines are never replaced."""
        dest = self.baseline_path(target)
        if dest.exists():
            raise FileExistsError(f"Baseline already exists: {dest}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, dest)
        logger.info("Stored new baseline for %s", target.target_key)
        return dest

    def write_difference(self, target: ShotTarget, image: Image.Image) -> Path:
        path = self.difference_path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        image.save(path, format="PNG")
        return path
