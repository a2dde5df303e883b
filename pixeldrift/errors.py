"""Exceptions that abort a run before or during shot discovery."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """The run configuration cannot produce a shot plan."""


class DiscoveryError(RuntimeError):
    """A shot source could not be listed (unreachable, timed out, malformed)."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class CaptureTimeoutError(TimeoutError):
    """A capture wait phase exceeded its timeout."""
