"""Network activity tracking for the capture wait phases."""

from __future__ import annotations

import asyncio
import logging
import time

from playwright.async_api import Page

from pixeldrift.errors import CaptureTimeoutError

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.05


class NetworkActivityTracker:
    """Counts in-flight requests of a page and remembers when traffic last changed."""

    def __init__(self) -> None:
        self.in_flight = 0
        self.request_count = 0
        self.last_activity = time.monotonic()
        self._first_request = asyncio.Event()

    def attach(self, page: Page) -> None:
        page.on("request", self._on_request)
        page.on("requestfinished", self._on_request_done)
        page.on("requestfailed", self._on_request_done)

    def _on_request(self, _request) -> None:
        self.in_flight += 1
        self.request_count += 1
        self.last_activity = time.monotonic()
        self._first_request.set()

    def _on_request_done(self, _request) -> None:
        self.in_flight = max(0, self.in_flight - 1)
        self.last_activity = time.monotonic()

    async def wait_for_first_request(self, timeout_ms: int) -> bool:
        """Wait up to ``timeout_ms`` for any request. Returns False if none was seen."""
        if self._first_request.is_set():
            return True
        try:
            await asyncio.wait_for(self._first_request.wait(), timeout_ms / 1000)
            return True
        except asyncio.TimeoutError:
            logger.debug("No network request within %dms", timeout_ms)
            return False

    async def wait_for_idle(self, idle_ms: int, timeout_ms: int) -> None:
        """Wait until nothing is in flight and traffic has been quiet for ``idle_ms``.

        Raises CaptureTimeoutError when the network does not settle within
        ``timeout_ms``.
        """
        deadline = time.monotonic() + timeout_ms / 1000
        while True:
            now = time.monotonic()
            if self.in_flight == 0 and (now - self.last_activity) * 1000 >= idle_ms:
                return
            if now >= deadline:
                raise CaptureTimeoutError(
                    f"Network did not settle within {timeout_ms}ms "
                    f"({self.in_flight} request(s) still in flight)"
                )
            await asyncio.sleep(POLL_INTERVAL_SECONDS)
