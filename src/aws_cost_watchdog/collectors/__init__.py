"""Cost, budget and metric collectors for AWS Cost Watchdog."""

from aws_cost_watchdog.collectors.base import (
    BudgetInfo,
    CostCollector,
    MetricDataPoint,
    MetricResult,
)
from aws_cost_watchdog.collectors.aws_cost_explorer import CostExplorerCollector
from aws_cost_watchdog.collectors.aws_budgets import BudgetsCollector, apply_budget
from aws_cost_watchdog.collectors.cloudwatch import CloudWatchMetricsCollector
from aws_cost_watchdog.collectors.demo import DemoDataGenerator

__all__ = [
    "BudgetInfo",
    "CostCollector",
    "MetricDataPoint",
    "MetricResult",
    "CostExplorerCollector",
    "BudgetsCollector",
    "apply_budget",
    "CloudWatchMetricsCollector",
    "DemoDataGenerator",
]
