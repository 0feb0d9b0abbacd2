"""Page-by-page extraction controller.

One loop serves every source. It is parameterized by the source's column
schema (through its RecordNormalizer) and by its "next" control strategy;
nothing else about the control flow varies per source.

Each iteration extracts the current page, appends the normalized batch,
checks the record limit and the page cap, and only then tries to move to
the next page. A run always ends with a StopReason:

- ``no-data``: the current page had no rows
- ``limit-reached``: at least ``limit`` records were collected
- ``page-cap-reached``: the page cap was reached
- ``end-of-data``: no enabled "next" control
- ``navigation-failed``: clicking "next" or waiting for the new rows failed

None of these is an error. The only failure that escapes is an extraction
error on the very first page, which the orchestrator reports as a failed
initial load. There are no retries.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, SerializeAsAny

from config.settings import GlobalConfig, get_config
from nepsepulse.browser import PageDriver, row_signature
from nepsepulse.exceptions import ExtractionError, NavigationError
from nepsepulse.logger import get_logger
from nepsepulse.monitor import QualityMonitor
from nepsepulse.records import MarketRecord, RecordNormalizer
from nepsepulse.sources import SourceSpec

log = get_logger(__name__)


class StopReason(str, Enum):
    LIMIT_REACHED = "limit-reached"
    PAGE_CAP_REACHED = "page-cap-reached"
    NO_DATA = "no-data"
    END_OF_DATA = "end-of-data"
    NAVIGATION_FAILED = "navigation-failed"


class PaginationResult(BaseModel):
    """Outcome of one pagination run.

    Attributes:
        records: Collected records, already truncated to the limit.
        pages_visited: Number of pages extracted.
        stop_reason: Terminal condition that ended the run.
        quality: Blank-cell summary from the QualityMonitor.
    """

    records: list[SerializeAsAny[MarketRecord]]
    pages_visited: int
    stop_reason: StopReason
    quality: dict[str, Any] = {}


class PaginationController:
    """Drives a PageDriver through the pages of one source's table.

    The driver must already be on the first page with its table rendered.

    Attributes:
        spec: SourceSpec of the table being paginated.
        config: GlobalConfig for selectors, timeouts and defaults.
        normalizer: RecordNormalizer for ``spec``.

    Example:
        controller = PaginationController(get_source_spec("todays-price"), config)
        result = await controller.run(driver, limit=50, max_pages=3)
        result.stop_reason  # StopReason.PAGE_CAP_REACHED
    """

    def __init__(
        self,
        spec: SourceSpec,
        config: GlobalConfig | None = None,
        normalizer: RecordNormalizer | None = None,
    ) -> None:
        self.spec = spec
        self.config = config or get_config()
        self.normalizer = normalizer or RecordNormalizer(spec)

    def resolve_page_cap(self, max_pages: int | None) -> int | None:
        """Effective page cap; None means unbounded."""
        if self.spec.single_page:
            return 1
        if max_pages is not None:
            return max_pages
        return self.config.pagination_limit or None

    async def run(
        self,
        driver: PageDriver,
        limit: int | None = None,
        max_pages: int | None = None,
        logger: Any = None,
    ) -> PaginationResult:
        """Paginate until a stop condition holds.

        Args:
            driver: PageDriver positioned on page 1.
            limit: Optional cap on records returned.
            max_pages: Optional cap on pages extracted.
            logger: Optional bound logger for run-scoped context.

        Returns:
            PaginationResult with at most ``limit`` records.

        Raises:
            ExtractionError: If the first page cannot be read.
        """
        run_log = logger or log
        page_cap = self.resolve_page_cap(max_pages)
        monitor = QualityMonitor(self.config)
        records: list[MarketRecord] = []
        page_number = 1

        while True:
            try:
                raw_rows = await driver.extract_rows(self.config.css_selector_rows)
            except ExtractionError as exc:
                if page_number == 1:
                    raise
                run_log.warning("Row extraction failed, stopping", page=page_number, error=exc.message)
                stop_reason = StopReason.NAVIGATION_FAILED
                break

            batch = self.normalizer.normalize_batch(raw_rows)
            monitor.evaluate_page(page_number, batch, self.spec.columns)

            if not batch:
                run_log.info("No data found on page, stopping", page=page_number)
                stop_reason = StopReason.NO_DATA
                break

            if limit is not None and self.config.truncation_mode == "on_append":
                batch = batch[: max(limit - len(records), 0)]
            records.extend(batch)

            run_log.info(
                "Page extraction complete",
                page=page_number,
                rows=len(raw_rows),
                total_records=len(records),
            )

            if limit is not None and len(records) >= limit:
                stop_reason = StopReason.LIMIT_REACHED
                break

            if page_cap is not None and page_number >= page_cap:
                stop_reason = StopReason.PAGE_CAP_REACHED
                break

            navigation_stop = await self._advance(driver, raw_rows[0], run_log)
            if navigation_stop is not None:
                stop_reason = navigation_stop
                break

            page_number += 1

        if limit is not None:
            records = records[:limit]

        run_log.info(
            "Pagination stopped",
            stop_reason=stop_reason.value,
            pages_visited=page_number,
            total_records=len(records),
        )

        return PaginationResult(
            records=records,
            pages_visited=page_number,
            stop_reason=stop_reason,
            quality=monitor.get_summary(),
        )

    async def _advance(
        self,
        driver: PageDriver,
        first_row: list[str],
        run_log: Any,
    ) -> StopReason | None:
        """Move to the next page.

        Returns:
            None once the next page's rows are present, otherwise the
            StopReason that ends the run.
        """
        strategy = self.spec.next_control

        handle = await driver.find_next_control(strategy)
        if handle is None:
            run_log.info("No next control, reached last page")
            return StopReason.END_OF_DATA

        if await driver.is_disabled(handle, strategy):
            run_log.info("Next control is disabled, reached last page")
            return StopReason.END_OF_DATA

        try:
            await driver.click(handle, strategy)
            loaded = await driver.wait_for_selector(
                self.config.css_selector_rows,
                self.config.next_page_timeout_ms,
                changed_from=row_signature(first_row),
            )
        except NavigationError as exc:
            run_log.warning("Navigation issue, stopping", error=exc.message)
            return StopReason.NAVIGATION_FAILED

        if not loaded:
            run_log.warning(
                "Next page rows did not appear, stopping",
                timeout_ms=self.config.next_page_timeout_ms,
            )
            return StopReason.NAVIGATION_FAILED

        return None
