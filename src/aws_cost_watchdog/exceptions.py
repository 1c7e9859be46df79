"""Exception hierarchy for AWS Cost Watchdog."""

from typing import Any


class WatchdogError(Exception):
    """Base exception for all AWS Cost Watchdog errors."""

    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class ConfigurationError(WatchdogError):
    """Raised when a configuration or pricing file cannot be loaded."""


class AggregationError(WatchdogError):
    """Raised when an analysis run produced no usable detector results."""


class AggregationTimeoutError(AggregationError):
    """Raised when the whole aggregation exceeds its deadline."""
