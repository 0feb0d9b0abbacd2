"""NEPSE data sources and their per-source scraping settings.

Every source is paginated by the same controller. What differs between them
is captured here: the page path, the column schema, how long a cached result
stays fresh, how the initial navigation waits, and how the "next" control
is located and clicked.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from config.settings import GlobalConfig

DEFAULT_NEXT_SELECTOR = (
    'a[rel="next"]:not(.disabled), '
    ".pagination-next:not(.disabled), "
    ".paginate_button.next:not(.disabled)"
)
FLOOR_SHEET_NEXT_SELECTOR = (
    'a[rel="next"], .pagination-next, .paginate_button.next, li.next a'
)


class Source(str, Enum):
    """The four NEPSE feeds."""

    TODAYS_PRICE = "todays-price"
    LIVE_TRADING = "live-trading"
    TOP_GAINERS = "top-gainers"
    FLOOR_SHEET = "floor-sheet"


class NextControlStrategy(BaseModel):
    """How the "next page" control is found, judged and activated.

    Attributes:
        selector: CSS selector for the control.
        check_parent: Also treat the control as disabled when its
            enclosing ``<li>`` carries the ``disabled`` class.
        script_click: Click through ``element.click()`` in the page instead
            of a synthesized mouse click (AJAX paginators).
    """

    model_config = ConfigDict(frozen=True)

    selector: str = DEFAULT_NEXT_SELECTOR
    check_parent: bool = False
    script_click: bool = False


class SourceSpec(BaseModel):
    """Static description of one source.

    Attributes:
        source: Source identifier.
        path: Page path relative to ``GlobalConfig.base_url``.
        columns: Record field names in table cell order.
        wait_until: Playwright load state for the initial navigation.
        next_control: Strategy for locating and clicking "next".
        single_page: The source is never paginated.
    """

    model_config = ConfigDict(frozen=True)

    source: Source
    path: str
    columns: tuple[str, ...]
    wait_until: str = "networkidle"
    next_control: NextControlStrategy = NextControlStrategy()
    single_page: bool = False

    def url(self, config: GlobalConfig) -> str:
        return f"{config.base_url}{self.path}"

    def cache_ttl_ms(self, config: GlobalConfig) -> int:
        return {
            Source.TODAYS_PRICE: config.cache_ttl_todays_price_ms,
            Source.LIVE_TRADING: config.cache_ttl_live_trading_ms,
            Source.TOP_GAINERS: config.cache_ttl_top_gainers_ms,
            Source.FLOOR_SHEET: config.cache_ttl_floor_sheet_ms,
        }[self.source]


SOURCES: dict[Source, SourceSpec] = {
    Source.TODAYS_PRICE: SourceSpec(
        source=Source.TODAYS_PRICE,
        path="today-price",
        columns=(
            "sn",
            "symbol",
            "ltp",
            "change",
            "percent_change",
            "open",
            "high",
            "low",
            "volume",
            "previous_close",
        ),
    ),
    Source.LIVE_TRADING: SourceSpec(
        source=Source.LIVE_TRADING,
        path="live-trading",
        columns=("symbol", "ltp", "change", "percent_change", "volume", "high", "low"),
    ),
    Source.TOP_GAINERS: SourceSpec(
        source=Source.TOP_GAINERS,
        path="top-ten/top-gainers",
        columns=("symbol", "ltp", "change", "percent_change"),
        single_page=True,
    ),
    Source.FLOOR_SHEET: SourceSpec(
        source=Source.FLOOR_SHEET,
        path="floor-sheet",
        columns=(
            "page_sn",
            "contract_no",
            "symbol",
            "buyer_member_id",
            "seller_member_id",
            "quantity",
            "rate",
            "amount",
        ),
        wait_until="domcontentloaded",
        next_control=NextControlStrategy(
            selector=FLOOR_SHEET_NEXT_SELECTOR,
            check_parent=True,
            script_click=True,
        ),
    ),
}


def get_source_spec(source: Source | str) -> SourceSpec:
    """Look up a source by enum member or identifier string.

    Raises:
        ValueError: If the identifier is not a known source.
    """
    return SOURCES[Source(source)]
