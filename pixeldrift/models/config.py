"""Configuration models for pixeldrift runs."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class MaskConfig(BaseModel):
    """Region to blank out before comparison.

    A ``selector`` mask is painted in the browser before the screenshot is
    taken. A rectangle mask (``x``/``y``/``width``/``height``) is painted on
    both the current and the baseline image before diffing.
    """

    selector: Optional[str] = None
    x: Optional[int] = None
    y: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @model_validator(mode="after")
    def check_selector_or_rect(self) -> "MaskConfig":
        rect = (self.x, self.y, self.width, self.height)
        if self.selector:
            return self
        if any(v is None for v in rect):
            raise ValueError("mask needs a selector or x, y, width and height")
        if self.width < 0 or self.height < 0:
            raise ValueError("mask width and height must not be negative")
        return self

    @property
    def is_rect(self) -> bool:
        return not self.selector


class ViewportConfig(BaseModel):
    width: int = 1280
    height: int = 720


class ViewportOverride(BaseModel):
    width: Optional[int] = None
    height: Optional[int] = None


class PageShotConfig(BaseModel):
    """One entry of a page list, also the schema of a remote page list item."""

    model_config = ConfigDict(populate_by_name=True)

    path: str
    name: str
    wait_before_screenshot: Optional[int] = Field(default=None, alias="waitBeforeScreenshot")
    threshold: Optional[float] = None
    breakpoints: Optional[list[int]] = None
    viewport: Optional[ViewportOverride] = None
    mask: Optional[list[MaskConfig]] = None


class StorybookShotsConfig(BaseModel):
    storybook_url: str = "storybook-static"
    mask: Optional[list[MaskConfig]] = None
    breakpoints: Optional[list[int]] = None


class LadleShotsConfig(BaseModel):
    ladle_url: str = "http://localhost:61000"
    mask: Optional[list[MaskConfig]] = None
    breakpoints: Optional[list[int]] = None


class HistoireShotsConfig(BaseModel):
    histoire_url: str = "http://localhost:61000"
    mask: Optional[list[MaskConfig]] = None
    breakpoints: Optional[list[int]] = None


class PageShotsConfig(BaseModel):
    pages: list[PageShotConfig] = Field(default_factory=list)
    pages_json_url: Optional[str] = None
    base_url: str
    mask: Optional[list[MaskConfig]] = None
    breakpoints: Optional[list[int]] = None


class CustomShotsConfig(BaseModel):
    current_shots_path: str


class TimeoutsConfig(BaseModel):
    """Timeouts in milliseconds."""

    fetch_stories: int = 30_000
    load_state: int = 30_000
    network_requests: int = 30_000


def _env_default(name: str):
    return lambda: os.environ.get(name, "")


class PlatformConfig(BaseModel):
    """Remote reporting platform settings (platform mode)."""

    api_url: str = "https://api.pixeldrift.dev"
    api_key: str
    project_id: str
    ci_build_id: str = Field(default_factory=_env_default("CI_BUILD_ID"), validate_default=True)
    ci_build_number: str = Field(default_factory=_env_default("CI_BUILD_NUMBER"))
    repository: str = Field(default_factory=_env_default("REPOSITORY"))
    commit_ref_name: str = Field(default_factory=_env_default("COMMIT_REF_NAME"))
    commit_hash: str = Field(default_factory=_env_default("COMMIT_HASH"))

    @field_validator("api_key", mode="before")
    @classmethod
    def resolve_env_api_key(cls, v: str) -> str:
        if isinstance(v, str) and v.startswith("env:"):
            env_var = v[4:]
            resolved = os.environ.get(env_var)
            if resolved is None:
                raise ValueError(f"Environment variable '{env_var}' not set")
            return resolved
        return v

    @field_validator("ci_build_id")
    @classmethod
    def require_build_id(cls, v: str) -> str:
        if not v:
            raise ValueError("CI build id is required (set ci_build_id or CI_BUILD_ID)")
        return v


class RunConfig(BaseModel):
    browser: Literal["chromium", "firefox", "webkit"] = "chromium"

    # Shot sources
    storybook_shots: Optional[StorybookShotsConfig] = None
    ladle_shots: Optional[LadleShotsConfig] = None
    histoire_shots: Optional[HistoireShotsConfig] = None
    page_shots: Optional[PageShotsConfig] = None
    custom_shots: Optional[CustomShotsConfig] = None

    # Image trees
    image_path_current: str = ".pixeldrift/current"
    image_path_baseline: str = ".pixeldrift/baseline"
    image_path_difference: str = ".pixeldrift/difference"

    # Defaults applied to every shot
    breakpoints: list[int] = Field(default_factory=list)
    mask: list[MaskConfig] = Field(default_factory=list)
    threshold: float = Field(default=0, ge=0)
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)

    # Concurrency
    shot_concurrency: int = Field(default=5, ge=1)
    compare_concurrency: int = Field(default=10, ge=1)

    # Timing (ms)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    wait_before_screenshot: int = 1000
    wait_for_first_request: int = 1000
    wait_for_last_request: int = 1000
    flakyness_retries: int = Field(default=0, ge=0)
    wait_between_flakyness_retries: int = 2000

    # Comparison
    compare_engine: Literal["perceptual", "exact"] = "perceptual"
    mode: Literal["compare", "generate"] = "compare"
    ignore_missing_baselines: bool = False
    fail_on_difference: bool = True

    # Platform mode
    platform: Optional[PlatformConfig] = None

    # Reporting
    report_output_dir: str = ".pixeldrift"

    @property
    def is_platform_mode(self) -> bool:
        return self.platform is not None

    @property
    def tolerates_missing_baselines(self) -> bool:
        return self.ignore_missing_baselines or self.mode == "generate"

    @classmethod
    def load(cls, path: str | Path) -> "RunConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(exclude_none=True), f, indent=2)
