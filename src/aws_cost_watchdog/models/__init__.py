"""Value objects shared by detectors, the aggregator and the forecast engine."""

from aws_cost_watchdog.models.cost import (
    WEEKS_PER_MONTH,
    AWSResource,
    CostBreakdown,
    CostSummary,
    ResourceInventory,
)
from aws_cost_watchdog.models.flags import (
    SEVERITY_ORDER,
    AggregationResult,
    Category,
    DetectionMetadata,
    DetectorInput,
    DetectorOutput,
    RedFlag,
    RedFlagSummary,
    Severity,
)
from aws_cost_watchdog.models.forecast import (
    ConfidenceInterval,
    CostForecast,
    CostPrediction,
    MonthlyCostProjection,
    TrendDirection,
)

__all__ = [
    "WEEKS_PER_MONTH",
    "AWSResource",
    "CostBreakdown",
    "CostSummary",
    "ResourceInventory",
    "SEVERITY_ORDER",
    "AggregationResult",
    "Category",
    "DetectionMetadata",
    "DetectorInput",
    "DetectorOutput",
    "RedFlag",
    "RedFlagSummary",
    "Severity",
    "ConfidenceInterval",
    "CostForecast",
    "CostPrediction",
    "MonthlyCostProjection",
    "TrendDirection",
]
