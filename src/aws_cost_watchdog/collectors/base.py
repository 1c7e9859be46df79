"""Base classes for cost and metric collectors."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime

from aws_cost_watchdog.models.cost import CostSummary


@dataclass
class BudgetInfo:
    """Budget utilization information."""

    name: str
    limit: float
    actual_spend: float
    forecasted_spend: float
    percentage_used: float
    currency: str = "USD"
    time_unit: str = "MONTHLY"

    @property
    def remaining(self) -> float:
        """Budget left this period; negative once exceeded."""
        return round(self.limit - self.actual_spend, 2)


@dataclass
class MetricDataPoint:
    """A single CloudWatch datapoint."""

    timestamp: datetime
    value: float
    unit: str = ""


@dataclass
class MetricResult:
    """
    CloudWatch statistics for one metric over a window.

    Aggregates are None when CloudWatch returned no datapoints for that
    statistic, which callers must not confuse with a measured zero.
    """

    metric_name: str
    data_points: list[MetricDataPoint] = field(default_factory=list)
    average: float | None = None
    maximum: float | None = None
    minimum: float | None = None
    sum: float | None = None

    @property
    def has_data(self) -> bool:
        return bool(self.data_points)


class CostCollector(ABC):
    """Abstract base class for weekly cost collectors."""

    @abstractmethod
    def collect(self, end_date: date | None = None) -> CostSummary:
        """
        Collect the cost summary for the week ending at end_date.

        Args:
            end_date: Exclusive end of the week. Defaults to today.

        Returns:
            CostSummary comparing that week with the one before it.
        """
        pass

    @abstractmethod
    def get_historical_costs(
        self, weeks: int, end_date: date | None = None
    ) -> list[CostSummary]:
        """
        Collect weekly summaries preceding the current week.

        Args:
            weeks: Number of historical weeks.
            end_date: Exclusive end of the current week. Defaults to today.

        Returns:
            Summaries ordered oldest to newest.
        """
        pass

    @property
    @abstractmethod
    def collector_name(self) -> str:
        """Return the name of this collector."""
        pass
