"""Global configuration management using pydantic-settings.

This module implements the 12-factor app methodology for configuration,
loading values from environment variables with strict type validation.
The Singleton pattern ensures consistent configuration state across the application.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GlobalConfig(BaseSettings):
    """Centralized configuration with environment variable binding.

    All configuration values are loaded from environment variables,
    with sensible defaults for development. Production deployments
    should override these via .env or environment injection.

    Attributes:
        app_name: Application identifier for logging.
        environment: Deployment environment (development/staging/production).
        debug: Enable verbose debugging output.
        headless: Run the browser without a visible window.
        log_level: Minimum log level for output filtering.
        log_dir: Directory path for structured JSON log files.
        log_rotation: Log file rotation interval.
        log_retention: Log file retention period.
        base_url: NEPSE front-end root, joined with each source path.
        initial_load_timeout_ms: Bound on the first navigation and table wait.
        next_page_timeout_ms: Bound on waiting for rows after a "next" click.
        pagination_limit: Page cap applied when a request sets none (0 = unlimited).
        truncation_mode: Where the final over-fetched page is cut to the limit.
        cache_ttl_todays_price_ms: Freshness window for today's price.
        cache_ttl_live_trading_ms: Freshness window for live trading.
        cache_ttl_top_gainers_ms: Freshness window for top gainers.
        cache_ttl_floor_sheet_ms: Freshness window for the floor sheet.
        watchdog_blank_threshold: Blank-cell ratio above which a page is flagged.
        output_dir: Directory for generated reports and exports.
        user_agents: User-agent strings, one picked per browser session.
        css_selector_table: Selector that signals the data table is rendered.
        css_selector_rows: Selector for the data rows of the table.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Metadata
    app_name: str = Field(default="NEPSE-Pulse", description="Application identifier")
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Browser Configuration
    headless: bool = Field(default=True, description="Run browser in headless mode")

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum log level"
    )
    log_dir: Path = Field(default=Path("logs"), description="Log output directory")
    log_rotation: str = Field(default="1 week", description="Log rotation interval")
    log_retention: str = Field(default="1 month", description="Log retention period")

    # Target Configuration
    base_url: str = Field(
        default="https://www.nepalstock.com/",
        description="NEPSE front-end base URL",
    )

    # Bounded waits
    initial_load_timeout_ms: int = Field(
        default=70000, ge=1000, le=300000, description="First page load and table wait"
    )
    next_page_timeout_ms: int = Field(
        default=10000, ge=500, le=120000, description="Wait for rows after next click"
    )

    # Pagination
    pagination_limit: int = Field(
        default=0, ge=0, description="Default max pages per scrape (0 = unlimited)"
    )
    truncation_mode: Literal["on_stop", "on_append"] = Field(
        default="on_stop", description="When records beyond the limit are dropped"
    )

    # Cache freshness windows
    cache_ttl_todays_price_ms: int = Field(default=60000, ge=0)
    cache_ttl_live_trading_ms: int = Field(default=30000, ge=0)
    cache_ttl_top_gainers_ms: int = Field(default=60000, ge=0)
    cache_ttl_floor_sheet_ms: int = Field(default=60000, ge=0)

    # Watchdog Configuration
    watchdog_blank_threshold: float = Field(
        default=0.50, ge=0.0, le=1.0, description="Blank-cell ratio that flags a page"
    )

    # Output Configuration
    output_dir: Path = Field(default=Path("output"), description="Report output directory")

    user_agents: list[str] = Field(
        default=[
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        ],
        min_length=1,
        description="User-agent pool",
    )

    # CSS Selectors (Target: nepalstock.com)
    css_selector_table: str = Field(default="table", description="Data table selector")
    css_selector_rows: str = Field(
        default="table tbody tr", description="Data row selector"
    )

    @field_validator("log_dir", "output_dir", mode="before")
    @classmethod
    def ensure_path(cls, value: str | Path) -> Path:
        """Convert string paths to Path objects."""
        return Path(value) if isinstance(value, str) else value

    @field_validator("base_url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Ensure base_url ends with trailing slash for consistent URL joining."""
        return value if value.endswith("/") else f"{value}/"


@lru_cache(maxsize=1)
def get_config() -> GlobalConfig:
    """Retrieve the singleton GlobalConfig instance.

    Uses LRU cache to ensure single instantiation across the application lifecycle.

    Returns:
        GlobalConfig: The validated configuration instance.
    """
    return GlobalConfig()
