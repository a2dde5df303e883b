"""Renderers produce raw PNG bytes for one shot target."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from pixeldrift.compare.masking import MASK_COLOR_CSS
from pixeldrift.errors import CaptureTimeoutError
from pixeldrift.models.config import RunConfig
from pixeldrift.models.shot import ShotHooks, ShotSource, ShotTarget

from .browser import create_capture_context, launch_browser
from .network import NetworkActivityTracker

logger = logging.getLogger(__name__)

RenderFn = Callable[[ShotTarget], Awaitable[bytes]]


async def render_prerendered(target: ShotTarget) -> bytes:
    """Pre-rendered shots are already images; read them from disk."""
    if not target.file_path:
        raise ValueError(f"Pre-rendered shot {target.id} has no file path")
    return await asyncio.to_thread(Path(target.file_path).read_bytes)


class BrowserRenderer:
    """Renders shots with one shared Playwright browser and a fresh context per attempt."""

    def __init__(self, config: RunConfig, hooks: ShotHooks | None = None):
        self.config = config
        self.hooks = hooks or ShotHooks()
        self._playwright = None
        self._browser = None

    async def start(self) -> None:
        logger.debug("Launching %s for shot capture...", self.config.browser)
        self._playwright = await async_playwright().start()
        self._browser = await launch_browser(self._playwright, self.config.browser)

    async def close(self) -> None:
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> "BrowserRenderer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def render(self, target: ShotTarget) -> bytes:
        """One capture attempt: navigate, wait, mask, screenshot."""
        if self._browser is None:
            raise RuntimeError("Browser not started. Use 'async with BrowserRenderer(...)'.")
        if not target.url:
            raise ValueError(f"Shot {target.id} has no URL to render")

        timeouts = self.config.timeouts
        extra = self.hooks.browser_options(target) if self.hooks.browser_options else None
        context = await create_capture_context(
            self._browser,
            viewport={"width": target.viewport.width, "height": target.viewport.height},
            extra_options=extra,
        )
        try:
            page = await context.new_page()
            tracker = NetworkActivityTracker()
            tracker.attach(page)

            logger.debug("Rendering %s -> %s", target.target_key, target.url)
            try:
                await page.goto(target.url, wait_until="load", timeout=timeouts.load_state)
            except PlaywrightTimeoutError as e:
                raise CaptureTimeoutError(
                    f"Page load exceeded {timeouts.load_state}ms: {target.url}"
                ) from e

            await page.wait_for_timeout(target.wait_before_capture)
            await tracker.wait_for_first_request(target.wait_for_first_network_activity)
            await tracker.wait_for_idle(
                target.wait_for_last_network_activity, timeouts.network_requests,
            )

            if self.hooks.before_screenshot:
                await self.hooks.before_screenshot(page, target)

            masks = [page.locator(m.selector) for m in target.selector_masks]
            return await page.screenshot(
                full_page=True,
                animations="disabled",
                mask=masks,
                mask_color=MASK_COLOR_CSS,
            )
        finally:
            await context.close()


@asynccontextmanager
async def open_renderer(
    config: RunConfig, targets: list[ShotTarget], hooks: ShotHooks | None = None,
) -> AsyncIterator[RenderFn]:
    """Yield a render function covering every source in ``targets``.

    The browser is only launched when at least one target needs it.
    """
    if all(t.source == ShotSource.PRERENDERED for t in targets):
        yield render_prerendered
        return

    async with BrowserRenderer(config, hooks) as browser_renderer:

        async def _render(target: ShotTarget) -> bytes:
            if target.source == ShotSource.PRERENDERED:
                return await render_prerendered(target)
            return await browser_renderer.render(target)

        yield _render
