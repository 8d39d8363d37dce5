"""Browser session for live scraping.

Uses Patchright (Playwright fork with anti-detection patches). One browser,
one context and one page serve a whole run.
"""

import logging
from contextlib import asynccontextmanager
from urllib.parse import quote

logger = logging.getLogger(__name__)

BROWSER_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-infobars",
    "--disable-extensions",
    "--disable-default-apps",
    "--no-first-run",
    "--window-size=1920,1080",
]

BROWSER_CONTEXT_OPTIONS = {
    "viewport": {"width": 1920, "height": 1080},
    "locale": "en-US",
    "accept_downloads": False,
}


class ScrapeBrowser:
    """Browser wrapper owning the playwright driver, browser and page."""

    def __init__(self, headless: bool = True, timeout: int = 60000):
        self.headless = headless
        self.timeout = timeout
        self.playwright = None
        self.browser = None
        self.context = None
        self.page = None

    async def launch(self) -> bool:
        """Launch browser. Returns True on success."""
        try:
            from patchright.async_api import async_playwright
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                headless=self.headless,
                args=BROWSER_LAUNCH_ARGS,
            )
            logger.info("Browser started.")
            return True
        except Exception as e:
            logger.error(f"Failed to launch browser: {e}")
            return False

    async def new_page(self):
        """Create the run's page. Every browser operation shares one timeout."""
        if not self.browser:
            raise RuntimeError("Browser not launched")

        self.context = await self.browser.new_context(**BROWSER_CONTEXT_OPTIONS)
        self.page = await self.context.new_page()
        self.page.set_default_timeout(self.timeout)
        self.page.set_default_navigation_timeout(self.timeout)
        return self.page

    async def close(self):
        if self.context:
            await self.context.close()
        if self.browser:
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()


@asynccontextmanager
async def get_browser(headless: bool = True, timeout: int = 60000):
    """Context manager for a scrape browser session."""
    browser = ScrapeBrowser(headless=headless, timeout=timeout)
    try:
        if not await browser.launch():
            raise RuntimeError("Failed to launch browser")
        yield browser
    finally:
        await browser.close()


def format_cookies(cookies: list[dict]) -> str:
    """Serialize browser cookies as a ``Cookie`` request header value."""
    return "; ".join(
        f"{quote(cookie['name'], safe='')}={quote(cookie['value'], safe='')}"
        for cookie in cookies
    )


async def get_page_contents(page) -> tuple[str, str]:
    """HTML and cookies of the current page; empty strings on failure."""
    logger.info("Downloading page data for extraction...")
    try:
        await page.wait_for_load_state("domcontentloaded")
        content = await page.content()
        cookies = format_cookies(await page.context.cookies())
        logger.info("Downloaded page data.")
        return content, cookies
    except Exception as e:
        logger.error(f"Failed to download page data: {e}")
        return "", ""
