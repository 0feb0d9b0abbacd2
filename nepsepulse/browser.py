"""Browser orchestration and the Page Driver used by the scrape engine.

This module provides:
- BrowserManager: Playwright/browser/context lifecycle with basic stealth
- PageDriver: the abstract capability the pagination engine depends on
- PlaywrightPageDriver: a PageDriver backed by one BrowserManager page

Design Rationale:
    The engine never touches Playwright directly. It talks to a PageDriver,
    which keeps the pagination logic testable with an in-memory fake and
    confines every Playwright exception to this module. Timeouts of bounded
    waits come back as ``False``; anything else surfaces as one of the
    NEPSE-Pulse exceptions.

    One PlaywrightPageDriver owns one browser. Sessions are never shared
    between scrapes, so concurrent scrapes cannot disturb each other's DOM.
"""

import random
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Self

from playwright.async_api import (
    Browser,
    BrowserContext,
    ElementHandle,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from config.settings import GlobalConfig, get_config
from nepsepulse.exceptions import (
    BrowserInitializationError,
    ExtractionError,
    NavigationError,
)
from nepsepulse.logger import get_logger
from nepsepulse.sources import NextControlStrategy

log = get_logger(__name__)

_EXTRACT_ROWS_JS = """
rows => rows.map(row =>
    Array.from(row.querySelectorAll('td')).map(cell => (cell.textContent || '').trim())
)
"""

_ROWS_CHANGED_JS = """
([selector, previous]) => {
    const row = document.querySelector(selector);
    if (!row) return false;
    const cells = Array.from(row.querySelectorAll('td'))
        .map(cell => (cell.textContent || '').trim());
    return cells.join('|') !== previous;
}
"""

_IS_DISABLED_JS = """
(el, checkParent) => {
    if (checkParent) {
        const li = el.closest('li');
        if (li && li.classList.contains('disabled')) return true;
    }
    return el.classList.contains('disabled')
        || el.getAttribute('aria-disabled') === 'true'
        || el.hasAttribute('disabled');
}
"""

_STEALTH_JS = """
Object.defineProperty(navigator, 'webdriver', {
    get: () => undefined,
});
Object.defineProperty(navigator, 'languages', {
    get: () => ['en-US', 'en'],
});
window.chrome = {
    runtime: {},
};
"""


def row_signature(cells: Sequence[str]) -> str:
    """Join a row's cell texts the same way the page-side change check does."""
    return "|".join(cells)


class BrowserManager:
    """Manages the Playwright browser lifecycle for one scrape.

    Attributes:
        config: GlobalConfig instance for runtime configuration.
        _playwright: Playwright instance (set by ``start``).
        _browser: Browser instance (Chromium).
        _context: BrowserContext with stealth settings applied.
    """

    def __init__(self, config: GlobalConfig) -> None:
        self.config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._current_user_agent: str = random.choice(self.config.user_agents)

    async def start(self) -> Self:
        """Launch Playwright, Chromium and a stealth context.

        Returns:
            This manager, ready for ``new_page``.

        Raises:
            BrowserInitializationError: If any initialization step fails.
        """
        log.debug("Initializing browser", headless=self.config.headless)

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                    "--disable-setuid-sandbox",
                    "--ignore-certificate-errors",
                ],
            )
            self._context = await self._browser.new_context(
                viewport={"width": 1366, "height": 900},
                user_agent=self._current_user_agent,
                locale="en-US",
                timezone_id="Asia/Kathmandu",
                ignore_https_errors=True,
            )
            await self._context.add_init_script(_STEALTH_JS)
        except Exception as exc:
            await self.close()
            raise BrowserInitializationError(
                reason=str(exc), browser_type="chromium"
            ) from exc

        log.debug("Browser initialized", user_agent=self._current_user_agent[:50] + "...")
        return self

    async def new_page(self) -> Page:
        """Create a page whose default timeouts follow the initial-load bound.

        Raises:
            BrowserInitializationError: If the context is not initialized.
        """
        if not self.is_initialized or self._context is None:
            raise BrowserInitializationError(
                reason="Browser context not initialized", browser_type="chromium"
            )

        page = await self._context.new_page()
        page.set_default_timeout(self.config.initial_load_timeout_ms)
        page.set_default_navigation_timeout(self.config.initial_load_timeout_ms)
        return page

    async def navigate(
        self,
        page: Page,
        url: str,
        wait_until: str = "domcontentloaded",
        timeout_ms: int | None = None,
    ) -> None:
        """Navigate to URL, rejecting missing responses and HTTP errors.

        Args:
            page: Playwright Page instance.
            url: Target URL to navigate to.
            wait_until: Navigation wait condition (load, domcontentloaded, networkidle).
            timeout_ms: Optional override of the initial-load bound.

        Raises:
            NavigationError: If navigation fails or times out.
        """
        timeout = timeout_ms or self.config.initial_load_timeout_ms
        log.debug("Navigating to URL", url=url, wait_until=wait_until)

        try:
            response = await page.goto(url, wait_until=wait_until, timeout=timeout)
        except PlaywrightTimeoutError as exc:
            raise NavigationError(
                url=url, reason=f"Navigation timeout after {timeout}ms"
            ) from exc
        except PlaywrightError as exc:
            raise NavigationError(url=url, reason=str(exc)) from exc

        if response is None:
            raise NavigationError(url=url, reason="No response received")

        if response.status >= 400:
            raise NavigationError(
                url=url,
                reason=f"HTTP {response.status}",
                status_code=response.status,
            )

        log.info("Navigation successful", url=url, status_code=response.status)

    async def close(self) -> None:
        """Release resources in reverse initialization order.

        Errors are logged and swallowed so they never mask the error that
        ended the scrape.
        """
        if self._context is not None:
            try:
                await self._context.close()
            except Exception as exc:
                log.warning("Error closing context", error=str(exc))
            self._context = None

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as exc:
                log.warning("Error closing browser", error=str(exc))
            self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as exc:
                log.warning("Error stopping playwright", error=str(exc))
            self._playwright = None

        log.debug("Browser resources cleaned up")

    @property
    def is_initialized(self) -> bool:
        """Check if browser is fully initialized and ready."""
        return all([
            self._playwright is not None,
            self._browser is not None,
            self._context is not None,
        ])


class PageDriver(ABC):
    """Browser session capability consumed by the pagination engine.

    A driver is opened for exactly one scrape and closed when it ends.
    """

    @abstractmethod
    async def goto(self, url: str, wait_until: str = "networkidle") -> None:
        """Navigate to ``url``. Raises NavigationError on failure."""
        ...

    @abstractmethod
    async def wait_for_selector(
        self,
        selector: str,
        timeout_ms: int,
        changed_from: str | None = None,
    ) -> bool:
        """Wait until ``selector`` matches, bounded by ``timeout_ms``.

        When ``changed_from`` is given, wait instead until the first match
        exists and its row signature differs from it (the page really
        changed). Either way the call is bounded by one ``timeout_ms``.

        Returns:
            True if the condition was met, False on timeout.

        Raises:
            NavigationError: If the page broke while waiting.
        """
        ...

    @abstractmethod
    async def extract_rows(self, row_selector: str) -> list[list[str]]:
        """Return the trimmed cell texts of every row matching ``row_selector``.

        Raises:
            ExtractionError: If the DOM query itself fails.
        """
        ...

    @abstractmethod
    async def find_next_control(self, strategy: NextControlStrategy) -> Any | None:
        """Return a handle to the "next" control, or None if absent."""
        ...

    @abstractmethod
    async def is_disabled(self, handle: Any, strategy: NextControlStrategy) -> bool:
        ...

    @abstractmethod
    async def click(self, handle: Any, strategy: NextControlStrategy) -> None:
        """Activate the control. Raises NavigationError on failure."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class PlaywrightPageDriver(PageDriver):
    """PageDriver over a single Playwright page in its own browser.

    Example:
        driver = await PlaywrightPageDriver.launch(config)
        try:
            await driver.goto("https://www.nepalstock.com/today-price")
            rows = await driver.extract_rows("table tbody tr")
        finally:
            await driver.close()
    """

    def __init__(self, manager: BrowserManager, page: Page) -> None:
        self.manager = manager
        self.page = page

    @classmethod
    async def launch(cls, config: GlobalConfig | None = None) -> "PlaywrightPageDriver":
        """Start a browser and open the page this driver will use.

        Raises:
            BrowserInitializationError: If the browser cannot be started.
        """
        manager = BrowserManager(config or get_config())
        await manager.start()
        try:
            page = await manager.new_page()
        except Exception:
            await manager.close()
            raise
        return cls(manager, page)

    async def goto(self, url: str, wait_until: str = "networkidle") -> None:
        await self.manager.navigate(self.page, url, wait_until=wait_until)

    async def wait_for_selector(
        self,
        selector: str,
        timeout_ms: int,
        changed_from: str | None = None,
    ) -> bool:
        try:
            # One wait per call so the whole check shares a single timeout.
            # The row-change script is falsy until a row exists.
            if changed_from is not None:
                await self.page.wait_for_function(
                    _ROWS_CHANGED_JS,
                    arg=[selector, changed_from],
                    timeout=timeout_ms,
                )
            else:
                await self.page.wait_for_selector(selector, timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            log.warning(
                "Timeout waiting for selector",
                selector=selector,
                timeout_ms=timeout_ms,
            )
            return False
        except PlaywrightError as exc:
            raise NavigationError(url=self.page.url, reason=str(exc)) from exc

    async def extract_rows(self, row_selector: str) -> list[list[str]]:
        try:
            return await self.page.eval_on_selector_all(row_selector, _EXTRACT_ROWS_JS)
        except PlaywrightError as exc:
            raise ExtractionError(
                selector=row_selector, url=self.page.url, reason=str(exc)
            ) from exc

    async def find_next_control(self, strategy: NextControlStrategy) -> ElementHandle | None:
        try:
            return await self.page.query_selector(strategy.selector)
        except PlaywrightError as exc:
            log.warning("Error locating next control", error=str(exc))
            return None

    async def is_disabled(self, handle: ElementHandle, strategy: NextControlStrategy) -> bool:
        try:
            return bool(
                await handle.evaluate(_IS_DISABLED_JS, strategy.check_parent)
            )
        except PlaywrightError as exc:
            log.warning("Could not read next control state", error=str(exc))
            return True

    async def click(self, handle: ElementHandle, strategy: NextControlStrategy) -> None:
        try:
            if strategy.script_click:
                await handle.evaluate("el => el.click()")
            else:
                await handle.click(timeout=self.manager.config.next_page_timeout_ms)
        except PlaywrightError as exc:
            raise NavigationError(
                url=self.page.url, reason=f"Next control click failed: {exc}"
            ) from exc

    async def close(self) -> None:
        try:
            await self.page.close()
        except Exception as exc:
            log.warning("Error closing page", error=str(exc))
        await self.manager.close()
