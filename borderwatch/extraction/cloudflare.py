"""Headless-browser fetch for pages behind a Cloudflare browser check.

Only used as a fallback when a plain HTTP fetch is refused. A single browser
process is shared per Python process and launched on first use.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

logger = logging.getLogger(__name__)

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
]

VIEWPORTS = [
    {"width": 1920, "height": 1080},
    {"width": 1366, "height": 768},
    {"width": 1536, "height": 864},
    {"width": 1440, "height": 900},
]

CHALLENGE_MARKERS = [
    "cf-browser-verification",
    "cf-im-under-attack",
    "cf-wrapper",
    "cloudflare",
    "Checking your browser before accessing",
]

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-features=TranslateUI",
    "--force-color-profile=srgb",
    "--metrics-recording-only",
    "--use-mock-keychain",
]

EXTRA_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Cache-Control": "max-age=0",
}

STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
const originalQuery = window.navigator.permissions.query;
window.navigator.permissions.query = (parameters) => (
  parameters.name === 'notifications'
    ? Promise.resolve({ state: 'granted' })
    : originalQuery(parameters)
);
"""

MAX_CHALLENGE_WAIT_SECONDS = 30


@dataclass(frozen=True)
class ScrapeResult:
    success: bool
    content: Optional[str] = None
    title: Optional[str] = None
    error: Optional[str] = None
    cloudflare_detected: bool = False
    challenge_passed: bool = False
    status: Optional[int] = None


def has_challenge_markers(html: str, title: str = "") -> bool:
    return any(marker in (html or "") or marker in (title or "") for marker in CHALLENGE_MARKERS)


class CloudflareScraper:
    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright = None
        self._browser = None
        self._lock = threading.Lock()

    def _ensure_browser(self):
        if self._browser is not None and not self._browser.is_connected():
            self._browser = None
        if self._browser is None:
            if self._playwright is None:
                self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
        return self._browser

    def _detect(self, page) -> bool:
        try:
            return has_challenge_markers(page.content(), page.title())
        except PlaywrightError as e:
            logger.warning(f"Error detecting Cloudflare: {e}")
            return False

    def _wait_for_challenge(self, page, timeout_ms: int) -> bool:
        max_wait = min(timeout_ms // 1000, MAX_CHALLENGE_WAIT_SECONDS)
        for _ in range(max_wait):
            page.wait_for_timeout(1000)
            if not self._detect(page):
                logger.info("Cloudflare challenge passed")
                return True
        return not self._detect(page)

    def scrape(
        self,
        url: str,
        *,
        timeout_ms: int = 30000,
        wait_for_selector: Optional[str] = None,
        user_agent: Optional[str] = None,
        viewport: Optional[Dict[str, int]] = None,
        locale: str = "en-US",
        timezone_id: str = "Asia/Bangkok",
    ) -> ScrapeResult:
        context = None
        page = None
        with self._lock:
            try:
                browser = self._ensure_browser()
                context = browser.new_context(
                    user_agent=user_agent or random.choice(USER_AGENTS),
                    viewport=viewport or random.choice(VIEWPORTS),
                    locale=locale,
                    timezone_id=timezone_id,
                    extra_http_headers=EXTRA_HEADERS,
                )
                page = context.new_page()
                page.add_init_script(STEALTH_SCRIPT)
                logger.info(f"Browser fetch: {url}")
                response = page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
                if response is None:
                    return ScrapeResult(success=False, error="no_response")

                detected = self._detect(page)
                passed = False
                if detected:
                    logger.info(f"Cloudflare challenge detected on {url}")
                    passed = self._wait_for_challenge(page, timeout_ms)
                    if not passed:
                        return ScrapeResult(
                            success=False,
                            error="Failed to pass Cloudflare challenge",
                            cloudflare_detected=True,
                            status=response.status,
                        )

                if wait_for_selector:
                    try:
                        page.wait_for_selector(wait_for_selector, timeout=10000)
                    except PlaywrightError:
                        logger.warning(f"Wait selector timeout: {wait_for_selector}")

                page.wait_for_timeout(2000)
                return ScrapeResult(
                    success=True,
                    content=page.content(),
                    title=page.title(),
                    cloudflare_detected=detected,
                    challenge_passed=passed,
                    status=response.status,
                )
            except Exception as e:
                logger.error(f"Browser fetch failed for {url}: {e}")
                return ScrapeResult(success=False, error=str(e))
            finally:
                for closable in (page, context):
                    if closable is not None:
                        try:
                            closable.close()
                        except PlaywrightError as e:
                            logger.warning(f"Failed to close browser resource: {e}")

    def close(self) -> None:
        with self._lock:
            if self._browser is not None:
                try:
                    self._browser.close()
                except PlaywrightError as e:
                    logger.warning(f"Error closing browser: {e}")
                self._browser = None
            if self._playwright is not None:
                self._playwright.stop()
                self._playwright = None


_scraper: Optional[CloudflareScraper] = None
_scraper_lock = threading.Lock()


def get_scraper() -> CloudflareScraper:
    global _scraper
    with _scraper_lock:
        if _scraper is None:
            _scraper = CloudflareScraper()
        return _scraper


def close_scraper() -> None:
    """Shut down the shared browser if one was ever started."""
    with _scraper_lock:
        scraper = _scraper
    if scraper is not None:
        scraper.close()
