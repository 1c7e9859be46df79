"""Forecasting, red-flag aggregation and reporting for AWS Cost Watchdog."""

from aws_cost_watchdog.analysis.aggregator import (
    RedFlagAggregator,
    merge_red_flags,
    summarize,
)
from aws_cost_watchdog.analysis.forecast import ForecastEngine
from aws_cost_watchdog.analysis.report_builder import build_cost_report, run_analysis

__all__ = [
    "RedFlagAggregator",
    "merge_red_flags",
    "summarize",
    "ForecastEngine",
    "build_cost_report",
    "run_analysis",
]
