"""Record schemas and the positional row normalizer.

Each NEPSE table is mapped onto a Pydantic model whose fields are all
strings. Cells are addressed by position; a row that is shorter than its
schema simply leaves the trailing fields empty. Normalization never raises:
a drifted or truncated row becomes a partially empty record, and the
QualityMonitor decides whether that is worth a warning.

Records serialize with the camelCase names used by the public envelopes
(``percentChange``, ``previousClose``) and an ISO-8601 ``timestamp``.
"""

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from nepsepulse.sources import Source, SourceSpec, get_source_spec

RawRow = Sequence[Any]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def clean_cell(value: Any) -> str:
    """Collapse whitespace in one cell; ``None`` becomes an empty string."""
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    return " ".join(value.split())


class MarketRecord(BaseModel):
    """Base for all normalized rows.

    Attributes:
        timestamp: UTC time at which the row was normalized.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    timestamp: datetime = Field(default_factory=_utcnow)

    @field_validator("*", mode="before")
    @classmethod
    def coerce_cell(cls, value: Any, info: ValidationInfo) -> Any:
        if info.field_name == "timestamp":
            return value
        return clean_cell(value)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys and an ISO timestamp."""
        return self.model_dump(mode="json", by_alias=True)


class TodaysPriceRecord(MarketRecord):
    """One row of the today's price table."""

    sn: str = ""
    symbol: str = ""
    ltp: str = ""
    change: str = ""
    percent_change: str = ""
    open: str = ""
    high: str = ""
    low: str = ""
    volume: str = ""
    previous_close: str = ""


class LiveTradingRecord(MarketRecord):
    """One row of the live trading table."""

    symbol: str = ""
    ltp: str = ""
    change: str = ""
    percent_change: str = ""
    volume: str = ""
    high: str = ""
    low: str = ""


class TopGainerRecord(MarketRecord):
    """One row of the top gainers table."""

    symbol: str = ""
    ltp: str = ""
    change: str = ""
    percent_change: str = ""


class FloorSheetRecord(MarketRecord):
    """One contract from the floor sheet.

    ``page_sn`` is the serial number printed on the page, which restarts on
    every page of the floor sheet.
    """

    page_sn: str = ""
    contract_no: str = ""
    symbol: str = ""
    buyer_member_id: str = ""
    seller_member_id: str = ""
    quantity: str = ""
    rate: str = ""
    amount: str = ""


RECORD_MODELS: dict[Source, type[MarketRecord]] = {
    Source.TODAYS_PRICE: TodaysPriceRecord,
    Source.LIVE_TRADING: LiveTradingRecord,
    Source.TOP_GAINERS: TopGainerRecord,
    Source.FLOOR_SHEET: FloorSheetRecord,
}


class RecordNormalizer:
    """Maps raw table rows of one source onto its record model.

    Example:
        normalizer = RecordNormalizer(Source.TOP_GAINERS)
        record = normalizer.normalize(["NABIL", "1250.00", "15.00", "1.21%"])
        record.to_wire()["percentChange"]  # "1.21%"
    """

    def __init__(self, source: Source | str | SourceSpec) -> None:
        self.spec = source if isinstance(source, SourceSpec) else get_source_spec(source)
        self.model = RECORD_MODELS[self.spec.source]

    def normalize(self, row: RawRow | None) -> MarketRecord:
        """Normalize one row. Total over rows of any length, including empty."""
        cells = list(row) if row is not None else []
        values = {
            column: cells[idx] if idx < len(cells) else ""
            for idx, column in enumerate(self.spec.columns)
        }
        return self.model(**values)

    def normalize_batch(self, rows: Sequence[RawRow]) -> list[MarketRecord]:
        return [self.normalize(row) for row in rows]
