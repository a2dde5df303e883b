"""Page list discovery: explicit pages plus an optional remote page list."""

from __future__ import annotations

import logging
from urllib.parse import urljoin

import httpx
from pydantic import TypeAdapter, ValidationError

from pixeldrift.errors import DiscoveryError
from pixeldrift.models.config import PageShotConfig, PageShotsConfig
from pixeldrift.models.shot import ShotSource, ShotTarget

from .defaults import ShotDefaults
from .remote import fetch_json

logger = logging.getLogger(__name__)

_PAGE_LIST = TypeAdapter(list[PageShotConfig])


def page_url(base_url: str, path: str) -> str:
    return urljoin(base_url.rstrip("/") + "/", path.lstrip("/"))


def _target_from_page(
    page: PageShotConfig, base_url: str, source: ShotSource, defaults: ShotDefaults,
) -> ShotTarget:
    return defaults.make_target(
        id=page.name,
        display_name=page.name,
        source=source,
        url=page_url(base_url, page.path),
        threshold=page.threshold,
        breakpoints=page.breakpoints,
        masks=page.mask,
        wait_before_capture=page.wait_before_screenshot,
        viewport=page.viewport,
    )


async def fetch_page_list(
    url: str, client: httpx.AsyncClient, timeout_ms: int,
) -> list[PageShotConfig]:
    data = await fetch_json(client, url, timeout_ms, "pages_json_url")
    try:
        return _PAGE_LIST.validate_python(data)
    except ValidationError as e:
        raise DiscoveryError("pages_json_url", f"page list from {url} does not match the page schema: {e}") from e


async def discover_pages(
    shots: PageShotsConfig,
    defaults: ShotDefaults,
    client: httpx.AsyncClient,
    timeout_ms: int,
) -> list[ShotTarget]:
    targets = [
        _target_from_page(page, shots.base_url, ShotSource.EXPLICIT_PAGE, defaults)
        for page in shots.pages
    ]

    if shots.pages_json_url:
        remote_pages = await fetch_page_list(shots.pages_json_url, client, timeout_ms)
        logger.info("Fetched %d pages from %s", len(remote_pages), shots.pages_json_url)
        targets.extend(
            _target_from_page(page, shots.base_url, ShotSource.REMOTE_PAGE_LIST, defaults)
            for page in remote_pages
        )

    logger.info("Pages: %d page shots configured", len(targets))
    return targets
