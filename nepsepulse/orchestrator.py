"""Cache-aware scrape entry point and response envelopes.

The ScrapeOrchestrator is the single operation the outer API layer calls.
For one request it:

1. returns the cached records if the request's cache entry is still fresh
2. otherwise opens a fresh PageDriver session
3. loads the source page and waits (bounded) for its table
4. hands the session to the PaginationController
5. caches whatever was collected, whatever the stop reason
6. closes the session on every exit path

Only a failure in step 3 escapes, as ScrapeFailure.
"""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny

from config.settings import GlobalConfig, get_config
from nepsepulse.browser import PageDriver, PlaywrightPageDriver
from nepsepulse.cache import TTLCache
from nepsepulse.exceptions import (
    BrowserInitializationError,
    ExtractionError,
    NavigationError,
    ScrapeFailure,
)
from nepsepulse.logger import get_logger, get_scrape_logger
from nepsepulse.pagination import PaginationController, StopReason
from nepsepulse.records import MarketRecord
from nepsepulse.sources import Source, SourceSpec, get_source_spec

log = get_logger(__name__)

DriverFactory = Callable[[], Awaitable[PageDriver]]


def cache_key(source: Source | str, limit: int | None, max_pages: int | None) -> str:
    """Deterministic cache key for a scrape request."""
    return f"{Source(source).value}:limit={limit or 'all'}:pages={max_pages or 'all'}"


class ScrapeResult(BaseModel):
    """Records returned for one request plus how they were obtained.

    Attributes:
        source: Source that was scraped.
        records: Normalized records, at most ``limit`` of them.
        cached: True when served from the cache without scraping.
        pages_visited: Pages extracted (0 on a cache hit).
        stop_reason: Why pagination ended (None on a cache hit).
        quality: Blank-cell summary of the run (empty on a cache hit).
        fetched_at: When this result was produced or served.
    """

    source: Source
    records: list[SerializeAsAny[MarketRecord]]
    cached: bool = False
    pages_visited: int = 0
    stop_reason: StopReason | None = None
    quality: dict[str, Any] = {}
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SuccessEnvelope(BaseModel):
    """``{success, data, totalRecords, cached?}`` response body."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    data: list[dict[str, Any]]
    total_records: int = Field(alias="totalRecords")
    cached: bool | None = None

    @classmethod
    def from_result(cls, result: ScrapeResult) -> "SuccessEnvelope":
        return cls(
            data=[record.to_wire() for record in result.records],
            total_records=len(result.records),
            cached=True if result.cached else None,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ErrorEnvelope(BaseModel):
    """``{success: false, error}`` response body."""

    success: bool = False
    error: str

    @classmethod
    def from_exception(cls, exc: Exception) -> "ErrorEnvelope":
        return cls(error=getattr(exc, "message", None) or str(exc))

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ScrapeOrchestrator:
    """Composes cache, page driver and pagination for the four sources.

    The cache is shared by every call and must outlive the orchestrator's
    callers; the driver factory is called once per cache miss and each
    driver it returns is closed by the orchestrator.

    Attributes:
        config: GlobalConfig for URLs, timeouts and TTLs.
        cache: Shared TTLCache instance.

    Example:
        orchestrator = ScrapeOrchestrator(TTLCache(), config=config)
        result = await orchestrator.scrape("todays-price", limit=50)
        SuccessEnvelope.from_result(result).to_wire()
    """

    def __init__(
        self,
        cache: TTLCache,
        config: GlobalConfig | None = None,
        driver_factory: DriverFactory | None = None,
    ) -> None:
        self.config = config or get_config()
        self.cache = cache
        self._driver_factory = driver_factory or self._launch_playwright

    async def _launch_playwright(self) -> PageDriver:
        return await PlaywrightPageDriver.launch(self.config)

    async def scrape(
        self,
        source: Source | str,
        limit: int | None = None,
        max_pages: int | None = None,
    ) -> ScrapeResult:
        """Return records for ``source``, from the cache when fresh.

        Args:
            source: Source enum member or identifier (``"floor-sheet"``).
            limit: Optional positive cap on records returned.
            max_pages: Optional positive cap on pages visited.

        Returns:
            ScrapeResult holding at most ``limit`` records.

        Raises:
            ValueError: If ``source`` is unknown or a cap is not positive.
            ScrapeFailure: If the first page or its table never became available.
        """
        spec = get_source_spec(source)
        for name, value in (("limit", limit), ("max_pages", max_pages)):
            if value is not None and value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value}")

        key = cache_key(spec.source, limit, max_pages)
        cached = self.cache.get(key)
        if cached is not None:
            log.info("Cache hit", key=key, records=len(cached), stats=self.cache.stats)
            return ScrapeResult(source=spec.source, records=list(cached), cached=True)

        log.info("Cache miss", key=key)
        result = await self._scrape_fresh(spec, limit, max_pages)
        self.cache.put(key, result.records, spec.cache_ttl_ms(self.config))
        log.debug("Cache updated", key=key, stats=self.cache.stats)
        return result

    async def _scrape_fresh(
        self,
        spec: SourceSpec,
        limit: int | None,
        max_pages: int | None,
    ) -> ScrapeResult:
        run_log = get_scrape_logger(__name__, spec.source.value)
        url = spec.url(self.config)
        run_log.info("Scrape started", url=url, limit=limit, max_pages=max_pages)

        try:
            driver = await self._driver_factory()
        except BrowserInitializationError as exc:
            raise ScrapeFailure(spec.source.value, url, exc) from exc

        try:
            await self._load_first_page(driver, spec, url)

            controller = PaginationController(spec, self.config)
            try:
                outcome = await controller.run(
                    driver, limit=limit, max_pages=max_pages, logger=run_log
                )
            except ExtractionError as exc:
                raise ScrapeFailure(spec.source.value, url, exc) from exc
        finally:
            await driver.close()

        run_log.info(
            "Scrape complete",
            records=len(outcome.records),
            pages_visited=outcome.pages_visited,
            stop_reason=outcome.stop_reason.value,
        )
        return ScrapeResult(
            source=spec.source,
            records=outcome.records,
            pages_visited=outcome.pages_visited,
            stop_reason=outcome.stop_reason,
            quality=outcome.quality,
        )

    async def _load_first_page(self, driver: PageDriver, spec: SourceSpec, url: str) -> None:
        """Navigate and wait for the table.

        Raises:
            ScrapeFailure: On navigation failure or if the table never appears.
        """
        try:
            await driver.goto(url, wait_until=spec.wait_until)
            table_ready = await driver.wait_for_selector(
                self.config.css_selector_table,
                self.config.initial_load_timeout_ms,
            )
        except NavigationError as exc:
            raise ScrapeFailure(spec.source.value, url, exc) from exc

        if not table_ready:
            raise ScrapeFailure(spec.source.value, url)
