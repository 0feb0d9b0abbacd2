"""Tests for browser management and the Playwright-backed Page Driver.

Validates BrowserManager and PlaywrightPageDriver including:
- Playwright API integration (mocked)
- Stealth mode configuration
- Navigation error mapping
- Bounded waits returning False on timeout
- Next control state and click strategies
- Resource cleanup

Testing Philosophy:
    Browser operations are I/O heavy. All Playwright calls are mocked
    to ensure hermetic, fast tests that verify behavior, not implementation.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from pytest_mock import MockerFixture

from config.settings import GlobalConfig
from nepsepulse.browser import BrowserManager, PlaywrightPageDriver, row_signature
from nepsepulse.exceptions import (
    BrowserInitializationError,
    ExtractionError,
    NavigationError,
)
from nepsepulse.sources import NextControlStrategy


def create_playwright_mock(mocker: MockerFixture) -> tuple[MagicMock, MagicMock, MagicMock, MagicMock, MagicMock]:
    """Create a mock chain for the async_playwright().start() pattern.

    Returns:
        Tuple of (async_playwright_instance, playwright_mock, browser_mock, context_mock, page_mock)
    """
    page_mock = MagicMock()
    page_mock.url = "https://test.example.com/today-price"
    page_mock.goto = AsyncMock(return_value=MagicMock(status=200))
    page_mock.wait_for_selector = AsyncMock()
    page_mock.wait_for_function = AsyncMock()
    page_mock.eval_on_selector_all = AsyncMock(return_value=[])
    page_mock.query_selector = AsyncMock(return_value=None)
    page_mock.close = AsyncMock()

    context_mock = MagicMock()
    context_mock.add_init_script = AsyncMock()
    context_mock.new_page = AsyncMock(return_value=page_mock)
    context_mock.close = AsyncMock()

    browser_mock = MagicMock()
    browser_mock.new_context = AsyncMock(return_value=context_mock)
    browser_mock.close = AsyncMock()

    playwright_mock = MagicMock()
    playwright_mock.chromium.launch = AsyncMock(return_value=browser_mock)
    playwright_mock.stop = AsyncMock()

    async_playwright_instance = MagicMock()
    async_playwright_instance.start = AsyncMock(return_value=playwright_mock)

    return async_playwright_instance, playwright_mock, browser_mock, context_mock, page_mock


class TestBrowserManagerInitialization:
    """Test suite for browser initialization."""

    @pytest.mark.asyncio
    async def test_browser_launches_with_correct_arguments(
        self,
        mock_config: GlobalConfig,
        mocker: MockerFixture,
    ) -> None:
        """Verify browser launches with anti-detection flags."""
        async_pw, pw_mock, browser_mock, context_mock, _ = create_playwright_mock(mocker)
        mocker.patch("nepsepulse.browser.async_playwright", return_value=async_pw)

        manager = await BrowserManager(mock_config).start()

        call_args = pw_mock.chromium.launch.call_args
        assert call_args.kwargs["headless"] == mock_config.headless
        assert "--disable-blink-features=AutomationControlled" in call_args.kwargs["args"]

        context_kwargs = browser_mock.new_context.call_args.kwargs
        assert context_kwargs["timezone_id"] == "Asia/Kathmandu"
        assert context_kwargs["user_agent"] in mock_config.user_agents
        assert manager.is_initialized

        await manager.close()

    @pytest.mark.asyncio
    async def test_stealth_scripts_injected(
        self,
        mock_config: GlobalConfig,
        mocker: MockerFixture,
    ) -> None:
        """Verify stealth JavaScript is injected into browser context."""
        async_pw, _, _, context_mock, _ = create_playwright_mock(mocker)
        mocker.patch("nepsepulse.browser.async_playwright", return_value=async_pw)

        manager = await BrowserManager(mock_config).start()

        script_arg = context_mock.add_init_script.call_args[0][0]
        assert "webdriver" in script_arg

        await manager.close()

    @pytest.mark.asyncio
    async def test_initialization_failure_raises_custom_error(
        self,
        mock_config: GlobalConfig,
        mocker: MockerFixture,
    ) -> None:
        """Verify Playwright exceptions are wrapped and partial resources released."""
        async_pw, pw_mock, _, _, _ = create_playwright_mock(mocker)
        pw_mock.chromium.launch = AsyncMock(side_effect=RuntimeError("Browser binary not found"))
        mocker.patch("nepsepulse.browser.async_playwright", return_value=async_pw)

        manager = BrowserManager(mock_config)
        with pytest.raises(BrowserInitializationError) as exc_info:
            await manager.start()

        assert "not found" in str(exc_info.value).lower()
        pw_mock.stop.assert_called_once()
        assert not manager.is_initialized

    @pytest.mark.asyncio
    async def test_new_page_uses_initial_load_timeout(
        self,
        mock_config: GlobalConfig,
        mocker: MockerFixture,
    ) -> None:
        async_pw, _, _, _, page_mock = create_playwright_mock(mocker)
        mocker.patch("nepsepulse.browser.async_playwright", return_value=async_pw)

        manager = await BrowserManager(mock_config).start()
        await manager.new_page()

        page_mock.set_default_timeout.assert_called_once_with(mock_config.initial_load_timeout_ms)

        await manager.close()

    @pytest.mark.asyncio
    async def test_new_page_without_context_raises(self, mock_config: GlobalConfig) -> None:
        with pytest.raises(BrowserInitializationError):
            await BrowserManager(mock_config).new_page()

    @pytest.mark.asyncio
    async def test_new_page_after_close_raises(
        self,
        mock_config: GlobalConfig,
        mocker: MockerFixture,
    ) -> None:
        async_pw, _, _, context_mock, _ = create_playwright_mock(mocker)
        mocker.patch("nepsepulse.browser.async_playwright", return_value=async_pw)

        manager = await BrowserManager(mock_config).start()
        await manager.close()

        with pytest.raises(BrowserInitializationError):
            await manager.new_page()
        context_mock.new_page.assert_not_called()


class TestBrowserNavigation:
    """Test suite for page navigation."""

    @pytest.mark.asyncio
    async def test_navigate_success(self, mock_config: GlobalConfig) -> None:
        page = MagicMock()
        page.goto = AsyncMock(return_value=MagicMock(status=200))

        await BrowserManager(mock_config).navigate(page, "https://example.com", wait_until="networkidle")

        call_args = page.goto.call_args
        assert call_args[0][0] == "https://example.com"
        assert call_args[1]["wait_until"] == "networkidle"
        assert call_args[1]["timeout"] == mock_config.initial_load_timeout_ms

    @pytest.mark.asyncio
    async def test_navigate_http_error_raises_navigation_error(self, mock_config: GlobalConfig) -> None:
        """Verify HTTP 4xx/5xx status codes raise NavigationError."""
        page = MagicMock()
        page.goto = AsyncMock(return_value=MagicMock(status=503))

        with pytest.raises(NavigationError) as exc_info:
            await BrowserManager(mock_config).navigate(page, "https://example.com")

        assert exc_info.value.status_code == 503
        assert exc_info.value.context["status_code"] == 503

    @pytest.mark.asyncio
    async def test_navigate_timeout_raises_navigation_error(self, mock_config: GlobalConfig) -> None:
        page = MagicMock()
        page.goto = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout 5000ms exceeded"))

        with pytest.raises(NavigationError) as exc_info:
            await BrowserManager(mock_config).navigate(page, "https://example.com")

        assert "timeout" in str(exc_info.value).lower()

    @pytest.mark.asyncio
    async def test_navigate_without_response_raises(self, mock_config: GlobalConfig) -> None:
        page = MagicMock()
        page.goto = AsyncMock(return_value=None)

        with pytest.raises(NavigationError):
            await BrowserManager(mock_config).navigate(page, "https://example.com")


class TestPlaywrightPageDriver:
    """Test suite for the Playwright-backed PageDriver."""

    @pytest.fixture
    def page(self) -> MagicMock:
        return create_playwright_mock(MagicMock())[4]

    @pytest.fixture
    def driver(self, mock_config: GlobalConfig, page: MagicMock) -> PlaywrightPageDriver:
        manager = BrowserManager(mock_config)
        manager.close = AsyncMock()
        return PlaywrightPageDriver(manager, page)

    @pytest.mark.asyncio
    async def test_launch_opens_page(self, mock_config: GlobalConfig, mocker: MockerFixture) -> None:
        async_pw, _, _, context_mock, page_mock = create_playwright_mock(mocker)
        mocker.patch("nepsepulse.browser.async_playwright", return_value=async_pw)

        driver = await PlaywrightPageDriver.launch(mock_config)

        assert driver.page is page_mock
        context_mock.new_page.assert_called_once()
        await driver.close()

    @pytest.mark.asyncio
    async def test_wait_returns_false_on_timeout(
        self, driver: PlaywrightPageDriver, page: MagicMock
    ) -> None:
        page.wait_for_selector.side_effect = PlaywrightTimeoutError("Timeout 70000ms exceeded")

        assert await driver.wait_for_selector("table", 70000) is False

    @pytest.mark.asyncio
    async def test_wait_checks_row_change(
        self, driver: PlaywrightPageDriver, page: MagicMock
    ) -> None:
        previous = row_signature(["1", "NABIL", "1,250.00"])

        assert await driver.wait_for_selector("table tbody tr", 10000, changed_from=previous)

        call = page.wait_for_function.call_args
        assert call.kwargs["arg"] == ["table tbody tr", "1|NABIL|1,250.00"]
        assert call.kwargs["timeout"] == 10000

    @pytest.mark.asyncio
    async def test_row_change_wait_uses_single_timeout(
        self, driver: PlaywrightPageDriver, page: MagicMock
    ) -> None:
        """Verify the post-click wait spends one timeout, not one per step."""
        page.wait_for_function.side_effect = PlaywrightTimeoutError("Timeout 500ms exceeded")

        assert await driver.wait_for_selector("table tbody tr", 500, changed_from="x") is False

        page.wait_for_selector.assert_not_called()
        page.wait_for_function.assert_awaited_once()
        assert page.wait_for_function.call_args.kwargs["timeout"] == 500

    @pytest.mark.asyncio
    async def test_wait_without_change_check_skips_function(
        self, driver: PlaywrightPageDriver, page: MagicMock
    ) -> None:
        assert await driver.wait_for_selector("table", 5000)

        page.wait_for_function.assert_not_called()

    @pytest.mark.asyncio
    async def test_wait_maps_page_errors(
        self, driver: PlaywrightPageDriver, page: MagicMock
    ) -> None:
        page.wait_for_selector.side_effect = PlaywrightError("Target page has been closed")

        with pytest.raises(NavigationError):
            await driver.wait_for_selector("table", 5000)

    @pytest.mark.asyncio
    async def test_extract_rows(self, driver: PlaywrightPageDriver, page: MagicMock) -> None:
        page.eval_on_selector_all.return_value = [["1", "NABIL"], ["2", "NICA"]]

        rows = await driver.extract_rows("table tbody tr")

        assert rows == [["1", "NABIL"], ["2", "NICA"]]
        assert page.eval_on_selector_all.call_args[0][0] == "table tbody tr"

    @pytest.mark.asyncio
    async def test_extract_rows_maps_errors(
        self, driver: PlaywrightPageDriver, page: MagicMock
    ) -> None:
        page.eval_on_selector_all.side_effect = PlaywrightError("Execution context was destroyed")

        with pytest.raises(ExtractionError):
            await driver.extract_rows("table tbody tr")

    @pytest.mark.asyncio
    async def test_find_next_control_uses_strategy_selector(
        self, driver: PlaywrightPageDriver, page: MagicMock
    ) -> None:
        handle = MagicMock()
        page.query_selector.return_value = handle
        strategy = NextControlStrategy(selector="li.next a")

        assert await driver.find_next_control(strategy) is handle
        page.query_selector.assert_called_once_with("li.next a")

    @pytest.mark.asyncio
    async def test_is_disabled_passes_parent_flag(self, driver: PlaywrightPageDriver) -> None:
        handle = MagicMock()
        handle.evaluate = AsyncMock(return_value=True)
        strategy = NextControlStrategy(check_parent=True)

        assert await driver.is_disabled(handle, strategy) is True
        assert handle.evaluate.call_args[0][1] is True

    @pytest.mark.asyncio
    async def test_unreadable_control_treated_as_disabled(self, driver: PlaywrightPageDriver) -> None:
        handle = MagicMock()
        handle.evaluate = AsyncMock(side_effect=PlaywrightError("Element is detached"))

        assert await driver.is_disabled(handle, NextControlStrategy()) is True

    @pytest.mark.asyncio
    async def test_script_click_strategy(self, driver: PlaywrightPageDriver) -> None:
        handle = MagicMock()
        handle.evaluate = AsyncMock()
        handle.click = AsyncMock()

        await driver.click(handle, NextControlStrategy(script_click=True))

        handle.evaluate.assert_called_once()
        handle.click.assert_not_called()

    @pytest.mark.asyncio
    async def test_native_click_bounded_by_next_page_timeout(
        self, driver: PlaywrightPageDriver, mock_config: GlobalConfig
    ) -> None:
        handle = MagicMock()
        handle.click = AsyncMock()

        await driver.click(handle, NextControlStrategy())

        handle.click.assert_awaited_once_with(timeout=mock_config.next_page_timeout_ms)
        assert handle.click.call_args.kwargs["timeout"] == 1000

    @pytest.mark.asyncio
    async def test_native_click_failure_raises_navigation_error(
        self, driver: PlaywrightPageDriver
    ) -> None:
        handle = MagicMock()
        handle.click = AsyncMock(side_effect=PlaywrightError("Element is not visible"))

        with pytest.raises(NavigationError):
            await driver.click(handle, NextControlStrategy())

    @pytest.mark.asyncio
    async def test_close_releases_page_and_browser(
        self, driver: PlaywrightPageDriver, page: MagicMock
    ) -> None:
        page.close.side_effect = RuntimeError("already closed")

        await driver.close()

        driver.manager.close.assert_called_once()


class TestBrowserCleanup:
    """Test suite for resource cleanup."""

    @pytest.mark.asyncio
    async def test_cleanup_closes_all_resources(
        self,
        mock_config: GlobalConfig,
        mocker: MockerFixture,
    ) -> None:
        async_pw, pw_mock, browser_mock, context_mock, _ = create_playwright_mock(mocker)
        mocker.patch("nepsepulse.browser.async_playwright", return_value=async_pw)

        manager = await BrowserManager(mock_config).start()
        await manager.close()

        context_mock.close.assert_called_once()
        browser_mock.close.assert_called_once()
        pw_mock.stop.assert_called_once()
        assert not manager.is_initialized

    @pytest.mark.asyncio
    async def test_cleanup_handles_exceptions_gracefully(
        self,
        mock_config: GlobalConfig,
        mocker: MockerFixture,
    ) -> None:
        """Verify cleanup continues even if close() raises exceptions."""
        async_pw, pw_mock, _, context_mock, _ = create_playwright_mock(mocker)
        context_mock.close = AsyncMock(side_effect=RuntimeError("Close failed"))
        mocker.patch("nepsepulse.browser.async_playwright", return_value=async_pw)

        manager = await BrowserManager(mock_config).start()
        await manager.close()

        pw_mock.stop.assert_called_once()
