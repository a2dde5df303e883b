"""Fetch JSON documents that describe shot sources."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import httpx

from pixeldrift.errors import DiscoveryError

logger = logging.getLogger(__name__)


def is_remote(location: str) -> bool:
    return location.startswith(("http://", "https://"))


async def fetch_json(
    client: httpx.AsyncClient, url: str, timeout_ms: int, source: str,
) -> Any:
    """GET ``url`` and decode it as JSON. Any failure is a discovery error."""
    logger.debug("Fetching %s (timeout=%dms)", url, timeout_ms)
    try:
        resp = await client.get(url, timeout=timeout_ms / 1000)
        resp.raise_for_status()
        return resp.json()
    except httpx.TimeoutException as e:
        raise DiscoveryError(source, f"timed out fetching {url} after {timeout_ms}ms") from e
    except httpx.HTTPError as e:
        raise DiscoveryError(source, f"failed to fetch {url}: {e}") from e
    except ValueError as e:
        raise DiscoveryError(source, f"invalid JSON from {url}: {e}") from e


def read_json(path: Path, source: str) -> Any:
    """Read a local JSON file. Any failure is a discovery error."""
    try:
        with open(path) as f:
            return json.load(f)
    except OSError as e:
        raise DiscoveryError(source, f"cannot read {path}: {e}") from e
    except ValueError as e:
        raise DiscoveryError(source, f"invalid JSON in {path}: {e}") from e
