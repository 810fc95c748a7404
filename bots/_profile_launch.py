"""Launch Chromium on a persistent profile so the TradingView login survives runs.

The helpers return the Playwright controller alongside the context so callers
can release both with ``shutdown`` once the batch is over.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

from playwright.sync_api import BrowserContext, Page, Playwright, sync_playwright
from playwright.sync_api import TimeoutError as PWTimeoutError

DEFAULT_VIEWPORT = {"width": 1600, "height": 1000}
CHART_READY_SELECTOR = '[data-test-id-widget-type="watchlist"], table'


def launch_persistent(
    start_url: Optional[str],
    profile_dir: str,
    *,
    headless: bool = False,
    viewport: Optional[dict] = None,
) -> Tuple[Playwright, BrowserContext, Page]:
    """Launch a persistent Chromium context backed by ``profile_dir``.

    Parameters
    ----------
    start_url:
        Chart or screener URL to open after launch. When omitted the first tab
        is left where the profile last was.
    profile_dir:
        Directory holding the Chromium profile (TradingView session cookies,
        layout preferences). Created when missing.
    headless:
        TradingView only renders the watchlist and Strategy Tester for a real
        viewport, so visible mode is the default.
    viewport:
        Window size; the watchlist must be tall enough to render several rows.
    """

    profile_path = Path(profile_dir)
    profile_path.mkdir(parents=True, exist_ok=True)

    playwright = sync_playwright().start()
    context = playwright.chromium.launch_persistent_context(
        str(profile_path),
        headless=headless,
        viewport=viewport or DEFAULT_VIEWPORT,
    )

    if context.pages:
        page = context.pages[0]
    else:
        page = context.new_page()

    if start_url:
        try:
            page.goto(start_url, wait_until="load")
        except Exception as exc:
            # the user can still log in or navigate by hand before the batch starts
            print(f"  • Initial navigation to {start_url} failed: {exc}")

    return playwright, context, page


def wait_for_chart(page: Page, timeout_ms: int = 20000) -> bool:
    """Wait until a watchlist or screener table is on the page."""
    try:
        page.wait_for_selector(CHART_READY_SELECTOR, timeout=timeout_ms, state="attached")
        return True
    except PWTimeoutError:
        return False


def shutdown(playwright: Optional[Playwright], context: Optional[BrowserContext]) -> None:
    """Gracefully dispose of Playwright resources used by ``launch_persistent``."""

    try:
        if context:
            context.close()
    finally:
        if playwright:
            playwright.stop()
