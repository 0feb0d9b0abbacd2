"""Pytest configuration and shared fixtures for the NEPSE-Pulse test suite.

This module provides hermetic test infrastructure with the following guarantees:
- No browser and no network (Playwright is mocked, the engine runs on a fake)
- Deterministic time (the cache clock is injected)
- Isolated state (no cross-test contamination of the config singleton)

Design Rationale:
    The pagination engine only depends on the PageDriver capability, so an
    in-memory FakePageDriver that serves pre-built pages exercises the real
    control flow without mocking individual calls.
"""

from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pytest

from config.settings import GlobalConfig
from nepsepulse.browser import PageDriver, row_signature
from nepsepulse.exceptions import ExtractionError, NavigationError
from nepsepulse.sources import NextControlStrategy


class FakePageDriver(PageDriver):
    """PageDriver serving a fixed list of pages from memory.

    Args:
        pages: Rows (lists of cell strings) for each page, in order.
        last_control: What the last page shows in place of an enabled
            "next" control: ``"absent"`` or ``"disabled"``.
        table_ready: Whether the initial table wait succeeds.
        goto_error: Exception raised by ``goto``.
        timeout_after_click: 1-based page numbers whose "next" click never
            produces new rows.
        click_error_on: 1-based page numbers whose "next" click raises.
        extract_error_on: 1-based page numbers whose extraction raises.
    """

    def __init__(
        self,
        pages: Sequence[Sequence[Sequence[str]]],
        last_control: str = "absent",
        table_ready: bool = True,
        goto_error: Exception | None = None,
        timeout_after_click: set[int] | None = None,
        click_error_on: set[int] | None = None,
        extract_error_on: set[int] | None = None,
    ) -> None:
        self.pages = [list(page) for page in pages]
        self.last_control = last_control
        self.table_ready = table_ready
        self.goto_error = goto_error
        self.timeout_after_click = timeout_after_click or set()
        self.click_error_on = click_error_on or set()
        self.extract_error_on = extract_error_on or set()

        self.index = 0
        self.goto_calls: list[tuple[str, str]] = []
        self.extract_calls = 0
        self.clicks = 0
        self.close_calls = 0
        self.strategies: list[NextControlStrategy] = []
        self.changed_from: list[str] = []
        self._stalled = False

    @property
    def page_number(self) -> int:
        return self.index + 1

    async def goto(self, url: str, wait_until: str = "networkidle") -> None:
        self.goto_calls.append((url, wait_until))
        if self.goto_error is not None:
            raise self.goto_error

    async def wait_for_selector(
        self,
        selector: str,
        timeout_ms: int,
        changed_from: str | None = None,
    ) -> bool:
        if changed_from is None:
            return self.table_ready

        self.changed_from.append(changed_from)
        if self._stalled:
            return False
        current = self.pages[self.index]
        return not current or row_signature(current[0]) != changed_from

    async def extract_rows(self, row_selector: str) -> list[list[str]]:
        self.extract_calls += 1
        if self.page_number in self.extract_error_on:
            raise ExtractionError(
                selector=row_selector, url="fake://page", reason="DOM detached"
            )
        return [list(row) for row in self.pages[self.index]]

    async def find_next_control(self, strategy: NextControlStrategy) -> Any | None:
        self.strategies.append(strategy)
        if self.index + 1 < len(self.pages):
            return {"page": self.page_number}
        if self.last_control == "disabled":
            return {"page": self.page_number, "disabled": True}
        return None

    async def is_disabled(self, handle: Any, strategy: NextControlStrategy) -> bool:
        return bool(handle.get("disabled"))

    async def click(self, handle: Any, strategy: NextControlStrategy) -> None:
        self.clicks += 1
        if self.page_number in self.click_error_on:
            raise NavigationError(url="fake://page", reason="click intercepted")
        if self.page_number in self.timeout_after_click:
            self._stalled = True
            return
        self.index += 1

    async def close(self) -> None:
        self.close_calls += 1


def make_rows(count: int, width: int, start: int = 1, symbol_prefix: str = "SYM") -> list[list[str]]:
    """Build ``count`` distinct rows of ``width`` cells, numbered from ``start``."""
    rows = []
    for n in range(start, start + count):
        row = [str(n), f"{symbol_prefix}{n}"]
        row.extend(f"{n}.{col}" for col in range(2, width))
        rows.append(row[:width])
    return rows


def make_pages(page_sizes: Sequence[int], width: int) -> list[list[list[str]]]:
    """Build consecutive pages whose rows are numbered across pages."""
    pages = []
    start = 1
    for size in page_sizes:
        pages.append(make_rows(size, width, start=start))
        start += size
    return pages


@pytest.fixture
def mock_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> GlobalConfig:
    """Provide isolated GlobalConfig with safe test defaults.

    Overrides the lru_cache singleton to prevent state leakage between tests.
    Uses tmp_path for all file operations to avoid polluting the filesystem.

    Example:
        def test_something(mock_config: GlobalConfig) -> None:
            assert mock_config.pagination_limit == 0
    """
    from config.settings import get_config

    get_config.cache_clear()

    log_dir = tmp_path / "logs"
    output_dir = tmp_path / "output"
    log_dir.mkdir()
    output_dir.mkdir()

    test_env = {
        "APP_NAME": "NEPSE-Pulse-Test",
        "ENVIRONMENT": "test",
        "DEBUG": "false",
        "HEADLESS": "true",
        "LOG_LEVEL": "DEBUG",
        "LOG_DIR": str(log_dir),
        "LOG_ROTATION": "1 day",
        "LOG_RETENTION": "1 day",
        "BASE_URL": "https://test.example.com/",
        "INITIAL_LOAD_TIMEOUT_MS": "5000",
        "NEXT_PAGE_TIMEOUT_MS": "1000",
        "PAGINATION_LIMIT": "0",
        "TRUNCATION_MODE": "on_stop",
        "WATCHDOG_BLANK_THRESHOLD": "0.50",
        "OUTPUT_DIR": str(output_dir),
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    config = get_config()

    yield config

    get_config.cache_clear()


@pytest.fixture
def fake_driver_factory() -> Callable[..., FakePageDriver]:
    """Factory fixture for FakePageDriver instances.

    Example:
        def test_paging(fake_driver_factory):
            driver = fake_driver_factory(make_pages([20, 20], width=10))
    """

    def _create(pages: Sequence[Sequence[Sequence[str]]], **kwargs: Any) -> FakePageDriver:
        return FakePageDriver(pages, **kwargs)

    return _create


class FakeClock:
    """Manually advanced millisecond clock for TTLCache."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers.

    Args:
        config: Pytest config object.
    """
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests requiring full stack",
    )
