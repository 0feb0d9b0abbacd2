"""NEPSE-Pulse Entry Point.

This module is the bootstrap layer. It contains NO business logic; all
functional code resides in /nepsepulse.

Responsibilities:
    1. Load and validate configuration
    2. Initialize logging infrastructure (fail-fast on error)
    3. Run one scrape through the ScrapeOrchestrator
    4. Print the response envelope and optionally write reports
    5. Map top-level exceptions to exit codes

Caching:
    Scrapes share one module-level TTLCache, so repeated scrapes inside the
    same process are served from memory until their TTL lapses. A one-shot
    command-line run starts with an empty cache and always scrapes fresh.

Usage:
    python main.py todays-price --limit 50 --pages 3
    python main.py floor-sheet --excel --dashboard
"""

import asyncio
import json
import sys
from typing import NoReturn

import click
from loguru import logger

from config.settings import GlobalConfig, get_config
from nepsepulse import __version__
from nepsepulse.cache import TTLCache
from nepsepulse.exceptions import (
    LoggingInitializationError,
    NepsePulseError,
    ScrapeFailure,
)
from nepsepulse.logger import configure_logging
from nepsepulse.orchestrator import (
    ErrorEnvelope,
    ScrapeOrchestrator,
    ScrapeResult,
    SuccessEnvelope,
)
from nepsepulse.reporter import ReportGenerator
from nepsepulse.sources import Source

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])

_CACHE = TTLCache()


async def _run_scrape(
    config: GlobalConfig,
    source: str,
    limit: int | None,
    max_pages: int | None,
    cache: TTLCache,
) -> ScrapeResult:
    orchestrator = ScrapeOrchestrator(cache, config=config)

    logger.info(
        "Scrape requested",
        app_name=config.app_name,
        environment=config.environment,
        source=source,
        limit=limit,
        max_pages=max_pages,
    )
    return await orchestrator.scrape(source, limit=limit, max_pages=max_pages)


def _write_reports(
    config: GlobalConfig,
    result: ScrapeResult,
    excel: bool,
    dashboard: bool,
) -> None:
    if not result.records:
        logger.warning("No records extracted - skipping report generation")
        return

    reporter = ReportGenerator(config)
    if excel:
        path = reporter.generate_excel(result)
        logger.info("Excel report written", path=str(path))
    if dashboard:
        path = reporter.generate_dashboard(result)
        logger.info("Dashboard written", path=str(path))


def _handle_fatal_error(exc: Exception) -> NoReturn:
    """Handle fatal errors with structured logging and exit."""
    if isinstance(exc, NepsePulseError):
        logger.critical(
            "Fatal application error",
            error_type=type(exc).__name__,
            message=exc.message,
            context=exc.context,
        )
        sys.exit(1)

    logger.exception("Unexpected fatal error", error=str(exc))
    sys.exit(1)


@click.command(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, "--version", "-v", message="NEPSE-Pulse, version %(version)s")
@click.argument("source", type=click.Choice([s.value for s in Source]))
@click.option(
    "--limit", "-l", "limit",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of records to return.",
)
@click.option(
    "--pages", "-p", "max_pages",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of pages to visit.",
)
@click.option("--excel", is_flag=True, help="Write an Excel workbook to the output directory.")
@click.option("--dashboard", is_flag=True, help="Write an HTML dashboard to the output directory.")
@click.option("--pretty", is_flag=True, help="Indent the JSON output.")
def cli(
    source: str,
    limit: int | None,
    max_pages: int | None,
    excel: bool,
    dashboard: bool,
    pretty: bool,
) -> None:
    """Scrape SOURCE from the NEPSE website and print the JSON envelope."""
    try:
        config = get_config()
    except Exception as exc:
        # Cannot log yet
        click.secho(f"FATAL: Configuration loading failed: {exc}", fg="red", err=True)
        sys.exit(1)

    try:
        configure_logging(config)
    except LoggingInitializationError as exc:
        click.secho(f"FATAL: {exc}", fg="red", err=True)
        sys.exit(1)

    indent = 2 if pretty else None

    try:
        result = asyncio.run(_run_scrape(config, source, limit, max_pages, _CACHE))
    except KeyboardInterrupt:
        logger.warning("Scrape interrupted by user (Ctrl+C)")
        sys.exit(130)
    except ScrapeFailure as exc:
        logger.error("Scrape failed", source=exc.source, message=exc.message)
        click.echo(json.dumps(ErrorEnvelope.from_exception(exc).to_wire(), indent=indent))
        sys.exit(1)
    except Exception as exc:
        _handle_fatal_error(exc)

    click.echo(
        json.dumps(SuccessEnvelope.from_result(result).to_wire(), indent=indent, ensure_ascii=False)
    )

    if excel or dashboard:
        try:
            _write_reports(config, result, excel, dashboard)
        except Exception as exc:
            _handle_fatal_error(exc)

    logger.info(
        "Scrape finished",
        source=source,
        records=len(result.records),
        pages_visited=result.pages_visited,
        stop_reason=result.stop_reason.value if result.stop_reason else None,
        cached=result.cached,
    )


if __name__ == "__main__":
    cli()
