"""
Browser page backend using Playwright for JavaScript-rendered content.

Each navigation gets its own browser context so cookies, storage and proxy
settings never leak between pages.
"""
import logging
import random
from typing import Optional

from playwright.async_api import Browser, Error as PlaywrightError, Playwright, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from sitecrawl.browser_config import DESKTOP_VIEWPORTS, FINGERPRINT_EVASION_SCRIPT, STEALTH_LAUNCH_ARGS
from sitecrawl.fetcher import FetchError, RawPage, RequestOptions

logger = logging.getLogger(__name__)


class BrowserPageFetcher:
    """
    Playwright-based page backend.

    Usable as an async context manager:

        async with BrowserPageFetcher() as backend:
            raw = await backend.fetch(url, options)
    """

    def __init__(self, headless: bool = True, stealth_mode: bool = True):
        """
        Initialize the browser backend.

        Args:
            headless: Run browser without a visible window
            stealth_mode: Apply launch args and the fingerprint evasion script
        """
        self.headless = headless
        self.stealth_mode = stealth_mode
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def __aenter__(self) -> "BrowserPageFetcher":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self) -> None:
        """Launch Chromium."""
        if self._browser is not None:
            return

        logger.info(f"Launching chromium browser (headless={self.headless})")
        self._playwright = await async_playwright().start()

        launch_options = {"headless": self.headless}
        if self.stealth_mode:
            launch_options["args"] = STEALTH_LAUNCH_ARGS

        self._browser = await self._playwright.chromium.launch(**launch_options)
        logger.info("Browser launched successfully")

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        if self._browser:
            logger.info("Closing browser")
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    async def fetch(self, url: str, options: RequestOptions) -> RawPage:
        """
        Navigate to a URL with full JavaScript rendering.

        Args:
            url: URL to load
            options: User agent, proxy and timeouts for this navigation

        Returns:
            RawPage with rendered HTML, headers, cookies and script sources

        Raises:
            RuntimeError: If the browser has not been started
            FetchError: If navigation fails or times out
        """
        if not self._browser:
            raise RuntimeError(
                "Browser is not running. Call start() or use BrowserPageFetcher "
                "as an async context manager."
            )

        context_options = {
            "viewport": random.choice(DESKTOP_VIEWPORTS),
            "user_agent": options.user_agent,
            "locale": "en-US",
            "java_script_enabled": True,
        }
        if options.proxy is not None:
            context_options["proxy"] = options.proxy.playwright_proxy

        context = await self._browser.new_context(**context_options)

        try:
            if self.stealth_mode:
                await context.add_init_script(FINGERPRINT_EVASION_SCRIPT)

            page = await context.new_page()

            try:
                response = await page.goto(
                    url,
                    wait_until="domcontentloaded",
                    timeout=options.timeout_ms,
                )
            except PlaywrightTimeoutError as e:
                raise FetchError(
                    f"Navigation timeout after {options.timeout_ms}ms", url=url, code="timeout"
                ) from e
            except PlaywrightError as e:
                raise FetchError(f"Navigation failed: {e}", url=url, code="navigation") from e

            if options.network_idle_timeout_ms:
                try:
                    await page.wait_for_load_state(
                        "networkidle", timeout=options.network_idle_timeout_ms
                    )
                except PlaywrightTimeoutError:
                    logger.debug(f"Network never went idle for {url}, extracting anyway")

            html = await page.content()
            cookies = await context.cookies()
            scripts = await page.eval_on_selector_all(
                "script[src]", "els => els.map(el => el.src)"
            )

            headers = dict(response.headers) if response else {}
            return RawPage(
                url=url,
                final_url=page.url,
                status_code=response.status if response else 0,
                html=html,
                headers=headers,
                cookies=[c["name"] for c in cookies],
                scripts=[s for s in scripts if s],
                content_type=headers.get("content-type"),
            )

        finally:
            # Always close context to ensure isolation
            await context.close()
