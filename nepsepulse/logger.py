"""Structured JSON logging configuration using loguru.

Two sinks are installed at startup:
- a colorized console sink on stderr for humans
- a rotating JSON-lines file sink for log aggregation

Scrape-scoped loggers carry the source and a short run id, so every line
written while paginating one source can be correlated after the fact.
"""

import json
import sys
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from config.settings import GlobalConfig, get_config
from nepsepulse.exceptions import LoggingInitializationError

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan> | "
    "<level>{message}</level>"
)


def _json_serializer(record: dict[str, Any]) -> str:
    """Render a loguru record as one line of JSON.

    Args:
        record: Loguru record dictionary.

    Returns:
        Newline-terminated JSON string.
    """
    payload: dict[str, Any] = {
        "timestamp": datetime.now(UTC).isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["extra"].get("module", record["name"]),
        "function": record["function"],
        "line": record["line"],
    }

    exception = record["exception"]
    if exception is not None:
        payload["exception"] = {
            "type": exception.type.__name__ if exception.type else None,
            "value": str(exception.value) if exception.value else None,
        }

    context = {
        k: v for k, v in record["extra"].items() if k not in ("serialized", "module")
    }
    if context:
        payload["context"] = context

    return json.dumps(payload, default=str) + "\n"


def _attach_serialized(record: dict[str, Any]) -> bool:
    record["extra"]["serialized"] = _json_serializer(record)
    return True


def _validate_log_directory(log_dir: Path) -> None:
    """Fail fast if the log directory cannot be created or written.

    Raises:
        LoggingInitializationError: If directory creation or write test fails.
    """
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        probe = log_dir / ".write_test"
        probe.write_text("write_test")
        probe.unlink()
    except PermissionError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir),
            reason=f"Permission denied: {exc}",
        ) from exc
    except OSError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir),
            reason=f"OS error during directory validation: {exc}",
        ) from exc


def configure_logging(config: GlobalConfig | None = None) -> None:
    """Initialize the logging infrastructure.

    Call once during bootstrap, before any scrape runs.

    Args:
        config: Optional GlobalConfig instance. If None, uses singleton.

    Raises:
        LoggingInitializationError: If log directory validation fails.
    """
    if config is None:
        config = get_config()

    logger.remove()
    logger.configure(extra={"module": "nepsepulse"})

    _validate_log_directory(config.log_dir)

    logger.add(
        sys.stderr,
        format=_CONSOLE_FORMAT,
        level=config.log_level,
        colorize=True,
        backtrace=config.debug,
        diagnose=config.debug,
    )

    logger.add(
        str(config.log_dir / "nepsepulse_{time:YYYY-MM-DD}.json"),
        format="{extra[serialized]}",
        level=config.log_level,
        rotation=config.log_rotation,
        retention=config.log_retention,
        compression="gz",
        filter=_attach_serialized,
    )

    logger.info(
        "Logging infrastructure initialized",
        app_name=config.app_name,
        environment=config.environment,
        log_level=config.log_level,
        log_dir=str(config.log_dir),
    )


def get_logger(name: str) -> "logger":
    """Get a logger bound with the module name.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("Cache miss", key="todays-price:limit=all:pages=all")
    """
    return logger.bind(module=name)


def get_scrape_logger(name: str, source: str) -> "logger":
    """Get a logger bound to one scrape run.

    Args:
        name: Module name for attribution.
        source: Source identifier being scraped.

    Returns:
        Logger carrying ``module``, ``source`` and a fresh ``run_id``.
    """
    return logger.bind(module=name, source=source, run_id=uuid.uuid4().hex[:8])
