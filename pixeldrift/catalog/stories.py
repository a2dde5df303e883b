"""Story catalog discovery — Storybook, Ladle and Histoire story lists."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from pixeldrift.errors import DiscoveryError
from pixeldrift.models.config import (
    HistoireShotsConfig,
    LadleShotsConfig,
    MaskConfig,
    StorybookShotsConfig,
)
from pixeldrift.models.shot import ShotSource, ShotTarget
from pixeldrift.naming import story_display_name

from .defaults import ShotDefaults
from .remote import fetch_json, is_remote, read_json

logger = logging.getLogger(__name__)

# Per-story settings live under parameters[PARAMETERS_KEY]
PARAMETERS_KEY = "pixeldrift"


async def load_storybook_index(
    shots: StorybookShotsConfig, client: httpx.AsyncClient, timeout_ms: int,
) -> dict[str, Any]:
    """Load ``index.json`` (Storybook 7+) or ``stories.json`` (Storybook 6)."""
    base = shots.storybook_url.rstrip("/")
    if is_remote(base):
        try:
            return await fetch_json(client, f"{base}/index.json", timeout_ms, "storybook")
        except DiscoveryError as e:
            logger.debug("index.json unavailable (%s), trying stories.json", e)
            return await fetch_json(client, f"{base}/stories.json", timeout_ms, "storybook")

    folder = Path(base)
    for name in ("index.json", "stories.json"):
        if (folder / name).exists():
            return read_json(folder / name, "storybook")
    raise DiscoveryError("storybook", f"no index.json or stories.json in {folder}")


def storybook_iframe_url(storybook_url: str, story_id: str) -> str:
    base = storybook_url.rstrip("/")
    if not is_remote(base):
        base = Path(base).resolve().as_uri()
    return f"{base}/iframe.html?id={quote(story_id)}&viewMode=story"


def _story_entries(index: Any) -> list[dict[str, Any]]:
    if not isinstance(index, dict):
        raise DiscoveryError("storybook", f"story index must be an object, got {type(index).__name__}")
    if isinstance(index.get("entries"), dict):
        entries = list(index["entries"].values())
    elif isinstance(index.get("stories"), dict):
        entries = list(index["stories"].values())
    else:
        raise DiscoveryError("storybook", "story index has neither 'entries' nor 'stories'")
    for entry in entries:
        if not isinstance(entry, dict):
            raise DiscoveryError("storybook", f"story entry must be an object, got {entry!r}")
    return [e for e in entries if e.get("type", "story") == "story"]


def _target_from_story(
    story_id: str,
    title: str,
    name: str,
    url: str,
    parameters: dict[str, Any],
    defaults: ShotDefaults,
) -> ShotTarget | None:
    if not isinstance(parameters, dict):
        raise DiscoveryError("stories", f"parameters of story {story_id} must be an object")
    options = parameters.get(PARAMETERS_KEY) or {}
    if not isinstance(options, dict):
        raise DiscoveryError("stories", f"'{PARAMETERS_KEY}' parameters of story {story_id} must be an object")
    if options.get("disable"):
        logger.debug("Story %s disabled via parameters", story_id)
        return None

    masks = None
    if options.get("mask") is not None:
        try:
            masks = [MaskConfig(**m) for m in options["mask"]]
        except (TypeError, ValidationError) as e:
            raise DiscoveryError("stories", f"invalid mask for story {story_id}: {e}") from e

    return defaults.make_target(
        id=story_id,
        display_name=story_display_name(title, name),
        source=ShotSource.STORY_CATALOG,
        url=url,
        threshold=options.get("threshold"),
        breakpoints=options.get("breakpoints"),
        masks=masks,
        wait_before_capture=options.get("waitBeforeScreenshot", options.get("wait_before_screenshot")),
        parameters=parameters,
    )


async def discover_storybook(
    shots: StorybookShotsConfig,
    defaults: ShotDefaults,
    client: httpx.AsyncClient,
    timeout_ms: int,
) -> list[ShotTarget]:
    index = await load_storybook_index(shots, client, timeout_ms)
    targets = []
    for entry in _story_entries(index):
        story_id = entry.get("id")
        if not story_id:
            continue
        title = entry.get("title") or entry.get("kind") or story_id
        name = entry.get("name") or entry.get("story") or ""
        target = _target_from_story(
            story_id, title, name,
            storybook_iframe_url(shots.storybook_url, story_id),
            entry.get("parameters") or {},
            defaults,
        )
        if target:
            targets.append(target)
    logger.info("Storybook: %d stories discovered", len(targets))
    return targets


async def discover_ladle(
    shots: LadleShotsConfig,
    defaults: ShotDefaults,
    client: httpx.AsyncClient,
    timeout_ms: int,
) -> list[ShotTarget]:
    base = shots.ladle_url.rstrip("/")
    meta = await fetch_json(client, f"{base}/meta.json", timeout_ms, "ladle")
    stories = meta.get("stories") if isinstance(meta, dict) else None
    if not isinstance(stories, dict):
        raise DiscoveryError("ladle", "meta.json has no 'stories' map")

    targets = []
    for story_id, entry in stories.items():
        if not isinstance(entry, dict):
            raise DiscoveryError("ladle", f"story {story_id} must be an object, got {entry!r}")
        levels = entry.get("levels") or []
        title = "/".join(levels) if levels else story_id
        target = _target_from_story(
            story_id, title, entry.get("name", ""),
            f"{base}/?story={quote(story_id)}&mode=preview",
            entry.get("meta") or {},
            defaults,
        )
        if target:
            targets.append(target)
    logger.info("Ladle: %d stories discovered", len(targets))
    return targets


async def load_histoire_stories(
    shots: HistoireShotsConfig, client: httpx.AsyncClient, timeout_ms: int,
) -> list[dict[str, Any]]:
    """Load the ``histoire.json`` story list of a served or built Histoire."""
    base = shots.histoire_url.rstrip("/")
    if is_remote(base):
        data = await fetch_json(client, f"{base}/histoire.json", timeout_ms, "histoire")
    else:
        path = Path(base) / "histoire.json"
        if not path.exists():
            raise DiscoveryError("histoire", f"no histoire.json in {base}")
        data = read_json(path, "histoire")

    stories = data.get("stories") if isinstance(data, dict) else None
    if not isinstance(stories, list):
        raise DiscoveryError("histoire", "histoire.json has no 'stories' list")
    for story in stories:
        if not isinstance(story, dict) or not isinstance(story.get("variants", []), list):
            raise DiscoveryError("histoire", f"invalid story entry {story!r}")
    return stories


def histoire_sandbox_url(histoire_url: str, story_id: str, variant_id: str) -> str:
    base = histoire_url.rstrip("/")
    if not is_remote(base):
        base = Path(base).resolve().as_uri()
    return f"{base}/__sandbox.html?storyId={quote(story_id)}&variantId={quote(variant_id)}"


async def discover_histoire(
    shots: HistoireShotsConfig,
    defaults: ShotDefaults,
    client: httpx.AsyncClient,
    timeout_ms: int,
) -> list[ShotTarget]:
    """One target per story variant; variants share their story's parameters."""
    targets = []
    for story in await load_histoire_stories(shots, client, timeout_ms):
        story_id = story.get("id")
        if not story_id:
            continue
        title = story.get("title") or story_id
        parameters = story.get("meta") or {}
        for variant in story.get("variants") or []:
            if not isinstance(variant, dict) or not variant.get("id"):
                raise DiscoveryError("histoire", f"invalid variant in story {story_id}: {variant!r}")
            variant_id = variant["id"]
            target = _target_from_story(
                f"{story_id}_{variant_id}", title, variant.get("title") or variant_id,
                histoire_sandbox_url(shots.histoire_url, story_id, variant_id),
                parameters,
                defaults,
            )
            if target:
                targets.append(target)
    logger.info("Histoire: %d story variants discovered", len(targets))
    return targets
