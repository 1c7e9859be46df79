"""AWS Cost Explorer collector.

Cost Explorer API charges $0.01 per request.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any

import boto3
import structlog
from botocore.exceptions import ClientError

from aws_cost_watchdog.collectors.base import CostCollector
from aws_cost_watchdog.models.cost import CostBreakdown, CostSummary

logger = structlog.get_logger()

DAYS_PER_WEEK = 7

# Costs below this are rounding noise in Cost Explorer output
MINIMUM_COST = 0.01


class CostExplorerCollector(CostCollector):
    """
    Collect weekly cost summaries from AWS Cost Explorer.

    Daily unblended cost grouped by service is fetched in a single request
    (per page) and bucketed into 7-day weeks ending at the requested date.
    """

    collector_name = "cost_explorer"

    def __init__(
        self,
        region: str = "us-east-1",
        ce_client: boto3.client | None = None,
    ):
        """
        Initialize the Cost Explorer collector.

        Args:
            region: AWS region for the Cost Explorer API.
            ce_client: Optional boto3 Cost Explorer client.
        """
        self.region = region
        self._ce_client = ce_client

    @property
    def ce_client(self) -> boto3.client:
        """Get or create Cost Explorer client."""
        if self._ce_client is None:
            self._ce_client = boto3.client("ce", region_name=self.region)
        return self._ce_client

    def collect(self, end_date: date | None = None) -> CostSummary:
        """
        Collect last week's cost summary.

        Args:
            end_date: Exclusive end of the week. Defaults to today.

        Returns:
            CostSummary comparing the week before end_date with the one before it.
        """
        end_date = end_date or date.today()
        previous, current = self._weekly_service_costs(end_date, weeks=2)
        return self._build_summary(current, previous, end_date)

    def get_historical_costs(
        self, weeks: int, end_date: date | None = None
    ) -> list[CostSummary]:
        """
        Collect weekly summaries for the weeks before the current one.

        Args:
            weeks: Number of historical weeks.
            end_date: Exclusive end of the current week. Defaults to today.

        Returns:
            Summaries ordered oldest to newest.
        """
        if weeks <= 0:
            return []

        end_date = end_date or date.today()
        history_end = end_date - timedelta(days=DAYS_PER_WEEK)

        # One extra week so the oldest summary has a previous week
        buckets = self._weekly_service_costs(history_end, weeks=weeks + 1)

        summaries = []
        for i in range(1, len(buckets)):
            week_end = history_end - timedelta(days=DAYS_PER_WEEK * (len(buckets) - 1 - i))
            summaries.append(self._build_summary(buckets[i], buckets[i - 1], week_end))
        return summaries

    def _build_summary(
        self,
        current: dict[str, float],
        previous: dict[str, float],
        end_date: date,
    ) -> CostSummary:
        breakdowns = [
            CostBreakdown.from_costs(
                service, current.get(service, 0.0), previous.get(service, 0.0)
            )
            for service in sorted(set(current) | set(previous))
        ]
        return CostSummary.from_breakdowns(
            breakdowns,
            billing_period_start=(end_date - timedelta(days=DAYS_PER_WEEK)).isoformat(),
            billing_period_end=end_date.isoformat(),
        )

    def _weekly_service_costs(self, end_date: date, weeks: int) -> list[dict[str, float]]:
        """
        Per-service cost for consecutive weeks ending at end_date.

        Returns:
            One {service: cost} dict per week, oldest first.
        """
        start_date = end_date - timedelta(days=DAYS_PER_WEEK * weeks)
        buckets: list[dict[str, float]] = [{} for _ in range(weeks)]

        for day, service, cost in self._get_daily_service_costs(start_date, end_date):
            index = (day - start_date).days // DAYS_PER_WEEK
            if 0 <= index < weeks:
                buckets[index][service] = buckets[index].get(service, 0.0) + cost

        return [
            {service: round(cost, 2) for service, cost in bucket.items() if cost >= MINIMUM_COST}
            for bucket in buckets
        ]

    def _get_daily_service_costs(
        self, start_date: date, end_date: date
    ) -> list[tuple[date, str, float]]:
        """Get (day, service, cost) rows for the period."""
        request: dict[str, Any] = {
            "TimePeriod": {
                "Start": start_date.isoformat(),
                "End": end_date.isoformat(),
            },
            "Granularity": "DAILY",
            "Metrics": ["UnblendedCost"],
            "GroupBy": [{"Type": "DIMENSION", "Key": "SERVICE"}],
        }

        rows: list[tuple[date, str, float]] = []
        try:
            while True:
                response = self.ce_client.get_cost_and_usage(**request)
                for result in response.get("ResultsByTime", []):
                    day = date.fromisoformat(result["TimePeriod"]["Start"])
                    for group in result.get("Groups", []):
                        service_name = group["Keys"][0]
                        cost = float(group["Metrics"]["UnblendedCost"]["Amount"])
                        rows.append((day, service_name, cost))

                token = response.get("NextPageToken")
                if not token:
                    break
                request["NextPageToken"] = token

        except ClientError as e:
            # Log error but don't fail - an empty week is reported instead
            logger.error(
                "cost_explorer_query_failed",
                start=start_date.isoformat(),
                end=end_date.isoformat(),
                error=str(e),
            )
            return []

        return rows
