"""Pytest configuration and shared fixtures."""

import io
from pathlib import Path
from typing import Callable

import pytest
from PIL import Image

from pixeldrift.models.config import (
    CustomShotsConfig,
    MaskConfig,
    PageShotConfig,
    PageShotsConfig,
    RunConfig,
    ViewportConfig,
)
from pixeldrift.models.result import CaptureResult, ComparisonResult, ComparisonStatus
from pixeldrift.models.shot import ShotSource, ShotTarget
from pixeldrift.storage.image_store import ImageStore

WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)


# ============================================================================
# Image helpers
# ============================================================================


def make_image(width: int = 100, height: int = 100, changed: int = 0, color=BLACK) -> Image.Image:
    """White image with the first ``changed`` pixels (row-major) painted ``color``."""
    img = Image.new("RGBA", (width, height), WHITE)
    for n in range(changed):
        img.putpixel((n % width, n // width), color)
    return img


def to_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> Callable[..., bytes]:
    """Factory producing PNG bytes of a white image with some black pixels."""

    def _make(width: int = 100, height: int = 100, changed: int = 0) -> bytes:
        return to_png(make_image(width, height, changed))

    return _make


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def page_shots_config() -> PageShotsConfig:
    return PageShotsConfig(
        base_url="http://localhost:3000",
        pages=[
            PageShotConfig(path="/", name="home"),
            PageShotConfig(path="/login", name="login", threshold=0.2),
        ],
    )


@pytest.fixture
def run_config(tmp_path: Path, page_shots_config: PageShotsConfig) -> RunConfig:
    """A page-shot config whose image trees live under tmp_path."""
    return RunConfig(
        page_shots=page_shots_config,
        image_path_current=str(tmp_path / "current"),
        image_path_baseline=str(tmp_path / "baseline"),
        image_path_difference=str(tmp_path / "difference"),
        report_output_dir=str(tmp_path / "report"),
        wait_before_screenshot=0,
        wait_for_first_request=0,
        wait_for_last_request=0,
        wait_between_flakyness_retries=0,
    )


@pytest.fixture
def custom_shots_config(tmp_path: Path, run_config: RunConfig) -> RunConfig:
    """A pre-rendered folder config with two shots."""
    folder = tmp_path / "prerendered"
    (folder / "forms").mkdir(parents=True)
    make_image().save(folder / "home.png")
    make_image().save(folder / "forms" / "login.png")
    return run_config.model_copy(update={
        "page_shots": None,
        "custom_shots": CustomShotsConfig(current_shots_path=str(folder)),
    })


# ============================================================================
# Target / result Fixtures
# ============================================================================


@pytest.fixture
def image_store(tmp_path: Path) -> ImageStore:
    store = ImageStore(tmp_path / "current", tmp_path / "baseline", tmp_path / "difference")
    store.prepare()
    return store


@pytest.fixture
def make_target() -> Callable[..., ShotTarget]:
    def _make(
        id: str = "home",
        threshold: float = 0,
        breakpoint: int | None = None,
        masks: list[MaskConfig] | None = None,
        source: ShotSource = ShotSource.EXPLICIT_PAGE,
    ) -> ShotTarget:
        return ShotTarget(
            id=id,
            display_name=id,
            source=source,
            url=f"http://localhost:3000/{id}",
            breakpoint=breakpoint,
            viewport=ViewportConfig(),
            masks=masks or [],
            threshold=threshold,
            wait_before_capture=0,
            wait_for_first_network_activity=0,
            wait_for_last_network_activity=0,
        )

    return _make


@pytest.fixture
def make_result() -> Callable[..., ComparisonResult]:
    def _make(key: str = "home", status: ComparisonStatus = ComparisonStatus.PASSED, **kwargs) -> ComparisonResult:
        return ComparisonResult(
            target_key=key, target_id=key, display_name=key, status=status, **kwargs,
        )

    return _make


@pytest.fixture
def capture_for(image_store: ImageStore) -> Callable[..., CaptureResult]:
    """Store an image as the current shot of a target and wrap it in a CaptureResult."""

    def _capture(target: ShotTarget, img: Image.Image) -> CaptureResult:
        path = image_store.write_current(target, to_png(img))
        return CaptureResult(target=target, image_path=str(path), attempts_used=1)

    return _capture
