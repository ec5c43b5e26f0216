"""Custom exception hierarchy for the forecast scraper.

This module defines domain-specific exceptions that provide semantic clarity
and enable targeted error handling throughout the application. Each exception
includes contextual information to aid debugging and observability.

Target-scoped failures derive from TargetError. They are recovered once per
target by a reload and never abort the other targets of a run. Every other
ForecastScraperError is fatal for the run.
"""

from datetime import UTC, datetime
from typing import Any


class ForecastScraperError(Exception):
    """Base exception for all forecast scraper errors.

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


class ConfigValidationError(ForecastScraperError):
    """Raised when configuration validation fails.

    This exception indicates a critical startup failure - the application
    cannot proceed without valid configuration.
    """

    def __init__(self, field: str, value: Any, reason: str) -> None:
        super().__init__(
            message=f"Configuration validation failed for '{field}': {reason}",
            context={"field": field, "value": value, "reason": reason},
        )


class BrowserInitializationError(ForecastScraperError):
    """Raised when browser instance or browsing context fails to initialize.

    Common causes include missing Playwright browsers, resource constraints,
    or conflicting browser processes.
    """

    def __init__(self, reason: str, browser_type: str = "chromium") -> None:
        super().__init__(
            message=f"Failed to initialize {browser_type} browser: {reason}",
            context={"browser_type": browser_type, "reason": reason},
        )


class TargetError(ForecastScraperError):
    """Base for failures scoped to a single target page.

    Attributes:
        url: Page URL of the failing target.
        label: Timeframe label of the failing target.
    """

    def __init__(
        self,
        message: str,
        url: str,
        label: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            context={"url": url, "label": label, **(context or {})},
        )
        self.url = url
        self.label = label


class NavigationError(TargetError):
    """Raised when page navigation fails.

    This may indicate network issues, invalid URLs, blocked requests or a
    page that never reached its load milestone within the timeout.
    """

    def __init__(
        self,
        url: str,
        reason: str,
        label: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            message=f"Navigation to '{url}' failed: {reason}",
            url=url,
            label=label,
            context={"reason": reason, "status_code": status_code},
        )
        self.status_code = status_code


class ReadinessTimeoutError(TargetError):
    """Raised when the readiness probe never saw chart data before the deadline."""

    def __init__(self, url: str, label: str, deadline_ms: int, attempts: int) -> None:
        super().__init__(
            message=f"Chart data not ready after {deadline_ms}ms ({attempts} probes)",
            url=url,
            label=label,
            context={"deadline_ms": deadline_ms, "attempts": attempts},
        )
        self.deadline_ms = deadline_ms
        self.attempts = attempts


class SeriesNotFoundError(TargetError):
    """Raised when every locator strategy was exhausted without a result."""

    def __init__(self, url: str, label: str, strategies: list[str]) -> None:
        super().__init__(
            message=f"No chart series located by strategies: {', '.join(strategies)}",
            url=url,
            label=label,
            context={"strategies": strategies},
        )
        self.strategies = strategies


class EmptyResultError(TargetError):
    """Raised when series were found but none of their points produced a row.

    Found-but-unusable data usually means the point schema drifted, which
    is a different failure from the chart not being there at all.
    """

    def __init__(self, url: str, label: str, series_count: int, point_count: int) -> None:
        super().__init__(
            message=(
                f"{series_count} series with {point_count} points "
                f"produced zero valid rows"
            ),
            url=url,
            label=label,
            context={"series_count": series_count, "point_count": point_count},
        )
        self.series_count = series_count
        self.point_count = point_count


class StateTransitionError(ForecastScraperError):
    """Raised when a target's recovery state machine is driven illegally."""

    def __init__(self, label: str, current: str, attempted: str) -> None:
        super().__init__(
            message=f"Illegal state transition {current} -> {attempted}",
            context={"label": label, "current": current, "attempted": attempted},
        )


class DeliveryError(ForecastScraperError):
    """Raised when the delivery sink is unreachable or rejects the batch.

    Delivery is never retried within a run: the batch is either fully
    delivered or the run fails.
    """

    def __init__(self, endpoint: str, reason: str, status_code: int | None = None) -> None:
        super().__init__(
            message=f"Delivery to '{endpoint}' failed: {reason}",
            context={"endpoint": endpoint, "reason": reason, "status_code": status_code},
        )
        self.status_code = status_code


class EmptyBatchError(ForecastScraperError):
    """Raised when no target produced a single row.

    The run fails before delivery is attempted.
    """

    def __init__(self, targets_attempted: int, failed_labels: list[str]) -> None:
        super().__init__(
            message=f"No rows were scraped from {targets_attempted} target(s)",
            context={"targets_attempted": targets_attempted, "failed_labels": failed_labels},
        )
        self.targets_attempted = targets_attempted
        self.failed_labels = failed_labels


class LoggingInitializationError(ForecastScraperError):
    """Raised when the logging system fails to initialize.

    This is a startup-blocking error - the application cannot proceed
    without a functioning logging infrastructure.
    """

    def __init__(self, log_dir: str, reason: str) -> None:
        super().__init__(
            message=f"Failed to initialize logging at '{log_dir}': {reason}",
            context={"log_dir": log_dir, "reason": reason},
        )
