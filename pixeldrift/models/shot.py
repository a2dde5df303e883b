"""Shot target data structures produced by the catalog builder."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, Field

from pixeldrift.models.config import MaskConfig, ViewportConfig
from pixeldrift.naming import sanitize_name


class ShotSource(str, Enum):
    STORY_CATALOG = "story_catalog"
    EXPLICIT_PAGE = "explicit_page"
    REMOTE_PAGE_LIST = "remote_page_list"
    PRERENDERED = "prerendered"


class ShotTarget(BaseModel):
    id: str
    display_name: str
    source: ShotSource
    url: Optional[str] = None  # page to render (browser sources)
    file_path: Optional[str] = None  # image on disk (prerendered source)
    breakpoint: Optional[int] = None  # set after breakpoint expansion
    breakpoints: list[int] = Field(default_factory=list)
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    masks: list[MaskConfig] = Field(default_factory=list)
    threshold: float = 0
    wait_before_capture: int = 1000
    wait_for_first_network_activity: int = 1000
    wait_for_last_network_activity: int = 1000
    parameters: dict[str, Any] = Field(default_factory=dict)

    @property
    def target_key(self) -> str:
        """Comparison key: sanitized name plus breakpoint suffix."""
        key = sanitize_name(self.display_name)
        if self.breakpoint is not None:
            key = f"{key}__w{self.breakpoint}"
        return key

    @property
    def file_name(self) -> str:
        return f"{self.target_key}.png"

    @property
    def selector_masks(self) -> list[MaskConfig]:
        return [m for m in self.masks if not m.is_rect]

    @property
    def rect_masks(self) -> list[MaskConfig]:
        return [m for m in self.masks if m.is_rect]


@dataclass
class ShotHooks:
    """Optional callbacks injected by the caller. ``None`` keeps the default."""

    filter_shot: Optional[Callable[[ShotTarget], bool]] = None
    shot_name: Optional[Callable[[ShotTarget], str]] = None
    browser_options: Optional[Callable[[ShotTarget], dict]] = None
    before_screenshot: Optional[Callable[[Any, ShotTarget], Awaitable[None]]] = None
