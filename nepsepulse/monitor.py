"""Blank-cell watchdog for NEPSE tables.

The normalizer fills a missing cell with an empty string instead of failing.
That keeps one odd row from sinking a scrape, but it also means a markup
change on the exchange's site would silently produce pages of empty
records. The QualityMonitor counts blank cells per page and logs a warning
when a page crosses the configured threshold. It never raises and never
touches the records.
"""

from collections.abc import Sequence
from typing import Any

from config.settings import GlobalConfig, get_config
from nepsepulse.logger import get_logger
from nepsepulse.records import MarketRecord

log = get_logger(__name__)


class QualityMonitor:
    """Tracks blank-cell ratios per page and across a whole scrape.

    Attributes:
        config: GlobalConfig with the threshold setting.
        flagged_pages: Page numbers whose blank ratio exceeded the threshold.

    Example:
        monitor = QualityMonitor(config)
        monitor.evaluate_page(1, records, columns)
        monitor.get_summary()["flagged_pages"]
    """

    def __init__(self, config: GlobalConfig | None = None) -> None:
        self.config = config or get_config()
        self.flagged_pages: list[int] = []
        self._total_cells: int = 0
        self._blank_cells: int = 0

    @staticmethod
    def count_blank(records: Sequence[MarketRecord], columns: Sequence[str]) -> tuple[int, int]:
        """Return ``(blank_cells, total_cells)`` for a batch."""
        total = len(records) * len(columns)
        blank = sum(
            1 for record in records for column in columns if getattr(record, column) == ""
        )
        return blank, total

    def evaluate_page(
        self,
        page_number: int,
        records: Sequence[MarketRecord],
        columns: Sequence[str],
    ) -> float:
        """Score one page and warn if it looks drifted.

        Returns:
            The page's blank-cell ratio (0.0 for an empty page).
        """
        blank, total = self.count_blank(records, columns)
        self._blank_cells += blank
        self._total_cells += total

        if total == 0:
            return 0.0

        ratio = blank / total
        threshold = self.config.watchdog_blank_threshold
        # Epsilon keeps a ratio exactly at the threshold from being flagged
        if ratio > threshold + 1e-9:
            self.flagged_pages.append(page_number)
            log.warning(
                "Blank-cell ratio above threshold - possible markup drift",
                page=page_number,
                blank_ratio=f"{ratio:.1%}",
                threshold=f"{threshold:.1%}",
                rows=len(records),
            )
        return ratio

    @property
    def total_blank_ratio(self) -> float:
        if self._total_cells == 0:
            return 0.0
        return self._blank_cells / self._total_cells

    def get_summary(self) -> dict[str, Any]:
        return {
            "total_cells": self._total_cells,
            "blank_cells": self._blank_cells,
            "blank_ratio": f"{self.total_blank_ratio:.1%}",
            "flagged_pages": list(self.flagged_pages),
            "threshold": f"{self.config.watchdog_blank_threshold:.1%}",
        }
