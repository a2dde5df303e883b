"""Per-field merging of global, source-level and target-level shot settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from pixeldrift.models.config import MaskConfig, RunConfig, ViewportConfig, ViewportOverride
from pixeldrift.models.shot import ShotSource, ShotTarget


@dataclass
class ShotDefaults:
    """Settings inherited by every target of one source.

    A target-level value replaces the inherited one field by field; a missing
    (``None``) target value keeps the inherited one.
    """

    breakpoints: list[int] = field(default_factory=list)
    masks: list[MaskConfig] = field(default_factory=list)
    threshold: float = 0
    wait_before_capture: int = 1000
    wait_for_first_network_activity: int = 1000
    wait_for_last_network_activity: int = 1000
    viewport: ViewportConfig = field(default_factory=ViewportConfig)

    @classmethod
    def for_source(
        cls,
        config: RunConfig,
        mask: Optional[list[MaskConfig]] = None,
        breakpoints: Optional[list[int]] = None,
    ) -> "ShotDefaults":
        return cls(
            breakpoints=list(breakpoints if breakpoints is not None else config.breakpoints),
            masks=list(mask if mask is not None else config.mask),
            threshold=config.threshold,
            wait_before_capture=config.wait_before_screenshot,
            wait_for_first_network_activity=config.wait_for_first_request,
            wait_for_last_network_activity=config.wait_for_last_request,
            viewport=config.viewport.model_copy(),
        )

    def make_target(
        self,
        *,
        id: str,
        display_name: str,
        source: ShotSource,
        url: Optional[str] = None,
        file_path: Optional[str] = None,
        threshold: Optional[float] = None,
        breakpoints: Optional[list[int]] = None,
        masks: Optional[list[MaskConfig]] = None,
        wait_before_capture: Optional[int] = None,
        viewport: Optional[ViewportOverride] = None,
        parameters: Optional[dict[str, Any]] = None,
    ) -> ShotTarget:
        resolved_viewport = self.viewport.model_copy()
        if viewport is not None:
            if viewport.width is not None:
                resolved_viewport.width = viewport.width
            if viewport.height is not None:
                resolved_viewport.height = viewport.height

        return ShotTarget(
            id=id,
            display_name=display_name,
            source=source,
            url=url,
            file_path=file_path,
            breakpoints=list(breakpoints if breakpoints is not None else self.breakpoints),
            viewport=resolved_viewport,
            masks=list(masks if masks is not None else self.masks),
            threshold=threshold if threshold is not None else self.threshold,
            wait_before_capture=(
                wait_before_capture if wait_before_capture is not None else self.wait_before_capture
            ),
            wait_for_first_network_activity=self.wait_for_first_network_activity,
            wait_for_last_network_activity=self.wait_for_last_network_activity,
            parameters=parameters or {},
        )
