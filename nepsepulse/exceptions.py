"""Custom exception hierarchy for NEPSE-Pulse.

This module defines domain-specific exceptions that provide semantic clarity
and enable targeted error handling throughout the application. Each exception
includes contextual information to aid debugging and observability.

Only a failed initial page load escapes a scrape (as ScrapeFailure). Every
later problem ends pagination early and is reported as a stop reason.
"""

from datetime import UTC, datetime
from typing import Any


class NepsePulseError(Exception):
    """Base exception for all NEPSE-Pulse errors.

    Attributes:
        message: Human-readable error description.
        context: Optional dictionary with additional debugging information.
        timestamp: UTC timestamp when the exception was raised.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now(UTC)
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format exception message with context for logging."""
        base = f"[{self.timestamp.isoformat()}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base} | Context: {context_str}"
        return base


class BrowserInitializationError(NepsePulseError):
    """Raised when browser instance fails to initialize.

    Common causes include missing Playwright browsers, resource constraints,
    or conflicting browser processes.
    """

    def __init__(self, reason: str, browser_type: str = "chromium") -> None:
        super().__init__(
            message=f"Failed to initialize {browser_type} browser: {reason}",
            context={"browser_type": browser_type, "reason": reason},
        )


class NavigationError(NepsePulseError):
    """Raised when page navigation or a pagination click fails."""

    def __init__(self, url: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(
            message=f"Navigation to '{url}' failed: {reason}",
            context={"url": url, "reason": reason, "status_code": status_code},
        )
        self.status_code = status_code


class ExtractionError(NepsePulseError):
    """Raised when the row query against the current page fails."""

    def __init__(self, selector: str, url: str, reason: str) -> None:
        super().__init__(
            message=f"Extraction failed for selector '{selector}': {reason}",
            context={"selector": selector, "url": url, "reason": reason},
        )


class ScrapeFailure(NepsePulseError):
    """Raised when a source cannot be reached at all.

    The first page never loaded, or its table never appeared within
    the initial load timeout. The underlying error is kept as ``cause``.

    Attributes:
        source: Source identifier that failed.
        cause: The exception that made the first page unavailable, if any.
    """

    def __init__(self, source: str, url: str, cause: BaseException | None = None) -> None:
        if cause is None:
            reason = "table did not appear"
        else:
            reason = getattr(cause, "message", None) or str(cause)
        super().__init__(
            message=f"Failed to load '{source}' from '{url}': {reason}",
            context={"source": source, "url": url, "cause": type(cause).__name__ if cause else None},
        )
        self.source = source
        self.cause = cause


class ReportGenerationError(NepsePulseError):
    """Raised when report generation fails.

    Common causes include insufficient data or I/O errors.
    """

    def __init__(self, report_type: str, reason: str, output_path: str | None = None) -> None:
        super().__init__(
            message=f"Failed to generate {report_type} report: {reason}",
            context={"report_type": report_type, "reason": reason, "output_path": output_path},
        )


class LoggingInitializationError(NepsePulseError):
    """Raised when the logging system fails to initialize.

    This is a startup-blocking error - the application cannot proceed
    without a functioning logging infrastructure.
    """

    def __init__(self, log_dir: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to initialize logging at '{log_dir}': {reason}",
            context={"log_dir": log_dir, "reason": reason},
        )
