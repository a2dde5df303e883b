"""Browser setup for shot capture."""

from __future__ import annotations

from typing import Optional

from playwright.async_api import Browser, BrowserContext, Playwright

# Rendering must not depend on the machine running the capture
_CONTEXT_DEFAULTS: dict = {
    "locale": "en-US",
    "timezone_id": "UTC",
    "device_scale_factor": 1,
    "color_scheme": "light",
    "reduced_motion": "reduce",
}

# Stops caret blinking and CSS transitions from leaking into screenshots
_STABILIZE_INIT_SCRIPT = """
window.addEventListener('DOMContentLoaded', () => {
    const style = document.createElement('style');
    style.textContent = `*, *::before, *::after {
        transition: none !important;
        caret-color: transparent !important;
    }`;
    document.head.appendChild(style);
});
"""


async def launch_browser(playwright: Playwright, browser_name: str = "chromium", headless: bool = True) -> Browser:
    """Launch the configured browser engine."""
    browser_type = getattr(playwright, browser_name)
    return await browser_type.launch(headless=headless)


async def create_capture_context(
    browser: Browser,
    viewport: dict,
    extra_options: Optional[dict] = None,
) -> BrowserContext:
    """Create a browser context for one capture attempt.

    Args:
        extra_options: Playwright context options supplied by the caller;
            they override the defaults.
    """
    context_kwargs: dict = {**_CONTEXT_DEFAULTS, "viewport": viewport}
    if extra_options:
        context_kwargs.update(extra_options)

    context = await browser.new_context(**context_kwargs)
    await context.add_init_script(_STABILIZE_INIT_SCRIPT)
    return context
