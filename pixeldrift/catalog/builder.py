"""Shot catalog builder — normalizes all enabled sources into one ordered target list."""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from pixeldrift.errors import ConfigurationError
from pixeldrift.models.config import RunConfig
from pixeldrift.models.shot import ShotHooks, ShotTarget

from .defaults import ShotDefaults
from .pages import discover_pages
from .prerendered import discover_prerendered
from .stories import discover_histoire, discover_ladle, discover_storybook

logger = logging.getLogger(__name__)


def _enabled_families(config: RunConfig) -> list[str]:
    families = []
    if _story_sources(config):
        families.append("story_catalog")
    if config.page_shots:
        families.append("page_shots")
    if config.custom_shots:
        families.append("custom_shots")
    return families


def _story_sources(config: RunConfig) -> list[str]:
    names = ("storybook_shots", "ladle_shots", "histoire_shots")
    return [name for name in names if getattr(config, name)]


def _overlaps(a: Path, b: Path) -> bool:
    return a.is_relative_to(b) or b.is_relative_to(a)


def check_sources(config: RunConfig) -> None:
    """Reject configurations that cannot produce a shot plan."""
    families = _enabled_families(config)
    if not families:
        raise ConfigurationError(
            "No shot source enabled: configure storybook_shots, ladle_shots, "
            "histoire_shots, page_shots or custom_shots"
        )
    if len(families) > 1:
        raise ConfigurationError(
            f"Only one shot source may be enabled per run, found: {', '.join(families)}"
        )
    stories = _story_sources(config)
    if len(stories) > 1:
        raise ConfigurationError(f"{' and '.join(stories)} cannot be combined")
    if config.custom_shots:
        # current and difference trees are wiped before capture
        source = Path(config.custom_shots.current_shots_path).resolve()
        for option in ("image_path_current", "image_path_difference"):
            if _overlaps(source, Path(getattr(config, option)).resolve()):
                raise ConfigurationError(
                    f"custom_shots.current_shots_path must differ from {option} "
                    "and must not be nested with it"
                )


def expand_breakpoints(target: ShotTarget) -> list[ShotTarget]:
    """One target per breakpoint; no breakpoints keeps the default viewport."""
    if not target.breakpoints:
        return [target]
    expanded = []
    for width in target.breakpoints:
        viewport = target.viewport.model_copy(update={"width": width})
        expanded.append(target.model_copy(update={"breakpoint": width, "viewport": viewport}))
    return expanded


def finalize_targets(targets: list[ShotTarget], hooks: ShotHooks | None = None) -> list[ShotTarget]:
    """Apply hooks, dedupe by id then by target key, expand breakpoints.

    The first occurrence wins; order is preserved.
    """
    hooks = hooks or ShotHooks()
    seen_ids: set[str] = set()
    seen_keys: set[str] = set()
    result: list[ShotTarget] = []

    for target in targets:
        if hooks.filter_shot and not hooks.filter_shot(target):
            logger.debug("Shot %s filtered out", target.id)
            continue
        if hooks.shot_name:
            target = target.model_copy(update={"display_name": hooks.shot_name(target)})
        if target.id in seen_ids:
            logger.warning("Duplicate shot id %r ignored", target.id)
            continue
        seen_ids.add(target.id)

        for shot in expand_breakpoints(target):
            if shot.target_key in seen_keys:
                logger.warning("Duplicate shot name %r ignored (id=%s)", shot.target_key, shot.id)
                continue
            seen_keys.add(shot.target_key)
            result.append(shot)

    return result


async def build_catalog(
    config: RunConfig,
    hooks: ShotHooks | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[ShotTarget]:
    """Discover every shot of the enabled source.

    Raises ConfigurationError when no (or conflicting) sources are enabled and
    DiscoveryError when a source cannot be listed; both happen before any
    capture work.
    """
    check_sources(config)
    timeout_ms = config.timeouts.fetch_stories

    own_client = client is None
    if own_client:
        client = httpx.AsyncClient(follow_redirects=True)
    try:
        targets: list[ShotTarget] = []
        if config.storybook_shots:
            shots = config.storybook_shots
            defaults = ShotDefaults.for_source(config, shots.mask, shots.breakpoints)
            targets.extend(await discover_storybook(shots, defaults, client, timeout_ms))
        if config.ladle_shots:
            shots = config.ladle_shots
            defaults = ShotDefaults.for_source(config, shots.mask, shots.breakpoints)
            targets.extend(await discover_ladle(shots, defaults, client, timeout_ms))
        if config.histoire_shots:
            shots = config.histoire_shots
            defaults = ShotDefaults.for_source(config, shots.mask, shots.breakpoints)
            targets.extend(await discover_histoire(shots, defaults, client, timeout_ms))
        if config.page_shots:
            shots = config.page_shots
            defaults = ShotDefaults.for_source(config, shots.mask, shots.breakpoints)
            targets.extend(await discover_pages(shots, defaults, client, timeout_ms))
        if config.custom_shots:
            targets.extend(discover_prerendered(config.custom_shots, ShotDefaults.for_source(config)))
    finally:
        if own_client:
            await client.aclose()

    catalog = finalize_targets(targets, hooks)
    logger.info("Catalog: %d shots from %d discovered targets", len(catalog), len(targets))
    return catalog
