"""structlog setup for AWS Cost Watchdog."""

import logging
import sys

import structlog

from aws_cost_watchdog.config.schema import LoggingConfig


def setup_logging(config: LoggingConfig | None = None) -> None:
    """
    Configure structlog and the standard library logging bridge.

    Args:
        config: Logging configuration. Defaults to INFO with console output.
    """
    config = config or LoggingConfig()
    min_level = getattr(logging, config.level)

    if config.json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,  # deployment_id bound per run
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # botocore logs go through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=min_level,
    )
