"""Derive stable, filesystem-safe shot names."""

from __future__ import annotations

import re

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_name(name: str) -> str:
    """Collapse anything that is not safe in a file name into ``_``."""
    cleaned = _UNSAFE_CHARS.sub("_", name.strip()).strip("_.")
    return cleaned or "shot"


def story_display_name(title: str, name: str) -> str:
    """Human-readable name for a story: ``Title/Path--Story``."""
    return f"{title}--{name}" if name else title
