"""Deterministic demo data for running the analysis without an AWS account."""

from __future__ import annotations

from datetime import date, timedelta

from aws_cost_watchdog.models.cost import (
    AWSResource,
    CostBreakdown,
    CostSummary,
    ResourceInventory,
)

DEPLOYMENT_TAG = "cloudable:deployment"

# service -> (current week, previous week)
_DEMO_WEEK = {
    "EC2": (80.24, 60.00),
    "RDS": (50.00, 40.00),
    "NAT Gateway": (32.00, 32.00),
    "S3": (5.00, 4.00),
    "CloudWatch": (3.50, 3.20),
}

# Share of each historical week's total by service
_HISTORY_SHARES = {
    "EC2": 0.47,
    "RDS": 0.29,
    "NAT Gateway": 0.19,
    "Other": 0.05,
}

HISTORY_BASE_COST = 120.00
HISTORY_GROWTH_RATE = 1.08


class DemoDataGenerator:
    """
    Generate a fixed demo deployment.

    The current week totals $170.74, up from $139.20 (+22.7%), driven by
    EC2 (+33.7%) and RDS (+25%). History grows 8% per week from $120.
    """

    def __init__(self, end_date: date | None = None):
        """
        Initialize the generator.

        Args:
            end_date: Exclusive end of the current week. Defaults to today.
        """
        self.end_date = end_date or date.today()

    def generate_last_week_cost(self) -> CostSummary:
        """Current week cost summary."""
        breakdowns = [
            CostBreakdown.from_costs(service, current, previous)
            for service, (current, previous) in _DEMO_WEEK.items()
        ]
        return CostSummary.from_breakdowns(
            breakdowns,
            billing_period_start=(self.end_date - timedelta(days=7)).isoformat(),
            billing_period_end=self.end_date.isoformat(),
        )

    def generate_historical_costs(self, weeks: int) -> list[CostSummary]:
        """
        Weekly summaries before the current week, oldest to newest.

        Args:
            weeks: Number of historical weeks.
        """
        history = []
        for k in range(weeks):
            week_cost = HISTORY_BASE_COST * HISTORY_GROWTH_RATE**k
            previous_cost = (
                week_cost * 0.95 if k == 0 else HISTORY_BASE_COST * HISTORY_GROWTH_RATE ** (k - 1)
            )
            week_end = self.end_date - timedelta(days=7 * (weeks - k))

            breakdowns = [
                CostBreakdown.from_costs(service, week_cost * share, previous_cost * share)
                for service, share in _HISTORY_SHARES.items()
            ]
            history.append(
                CostSummary.from_breakdowns(
                    breakdowns,
                    billing_period_start=(week_end - timedelta(days=7)).isoformat(),
                    billing_period_end=week_end.isoformat(),
                )
            )
        return history

    def generate_resource_inventory(self, deployment_id: str) -> ResourceInventory:
        """Demo inventory with every resource tagged for the deployment."""
        created_at = "2024-10-15T08:30:00Z"
        resources = [
            AWSResource(
                resource_id="i-0123456789abcdef0",
                resource_type="t3.medium",
                service="EC2",
                tags={DEPLOYMENT_TAG: deployment_id, "Name": "web-server-1"},
                state="running",
                created_at=created_at,
                monthly_cost=30.37,
                metadata={"availability_zone": "us-east-1a"},
            ),
            AWSResource(
                resource_id="i-0987654321fedcba",
                resource_type="t3.small",
                service="EC2",
                tags={DEPLOYMENT_TAG: deployment_id, "Name": "api-server-1"},
                state="running",
                created_at=created_at,
                monthly_cost=15.18,
                metadata={"availability_zone": "us-east-1b"},
            ),
            AWSResource(
                resource_id="demo-db-1",
                resource_type="db.t3.small",
                service="RDS",
                tags={DEPLOYMENT_TAG: deployment_id, "Name": "postgres-db"},
                state="available",
                created_at=created_at,
                monthly_cost=46.36,
                metadata={"engine": "postgres", "engine_version": "14.7", "multi_az": False},
            ),
            AWSResource(
                resource_id="nat-0abc123def456",
                resource_type="NAT Gateway",
                service="VPC",
                tags={DEPLOYMENT_TAG: deployment_id, "Name": "main-nat-gateway"},
                state="available",
                created_at=created_at,
                monthly_cost=32.85,
                metadata={"vpc_id": "vpc-0abc123", "subnet_id": "subnet-0abc123"},
            ),
            AWSResource(
                resource_id="demo-bucket-2024",
                resource_type="Bucket",
                service="S3",
                tags={DEPLOYMENT_TAG: deployment_id, "Purpose": "static-assets"},
                state="available",
                created_at=created_at,
                monthly_cost=5.0,
            ),
        ]
        return ResourceInventory.from_resources(deployment_id, resources)
