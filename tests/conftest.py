"""Pytest configuration and fixtures."""

from datetime import date
from unittest.mock import MagicMock

import pytest

from aws_cost_watchdog.collectors.demo import DemoDataGenerator
from aws_cost_watchdog.models.cost import CostBreakdown, CostSummary, ResourceInventory
from aws_cost_watchdog.models.flags import DetectorInput

DEMO_END_DATE = date(2024, 11, 18)


def make_summary(
    costs: dict[str, tuple[float, float]],
    end: str = "2024-11-18",
    budget_limit: float | None = None,
    budget_remaining: float | None = None,
) -> CostSummary:
    """Build a weekly summary from {service: (current, previous)}."""
    return CostSummary.from_breakdowns(
        [CostBreakdown.from_costs(s, cur, prev) for s, (cur, prev) in costs.items()],
        billing_period_start="2024-11-11",
        billing_period_end=end,
        budget_limit=budget_limit,
        budget_remaining=budget_remaining,
    )


def make_history(totals: list[float], service: str = "EC2") -> list[CostSummary]:
    """Single-service weekly summaries, oldest first."""
    history = []
    previous = totals[0]
    for total in totals:
        history.append(make_summary({service: (total, previous)}))
        previous = total
    return history


def mock_client() -> MagicMock:
    """boto3 client mock whose list calls are answered without paginators."""
    client = MagicMock()
    client.can_paginate.return_value = False
    return client


@pytest.fixture
def demo():
    """Demo data generator pinned to a fixed week."""
    return DemoDataGenerator(end_date=DEMO_END_DATE)


@pytest.fixture
def demo_cost_data(demo):
    """$170.74 week, up from $139.20."""
    return demo.generate_last_week_cost()


@pytest.fixture
def demo_history(demo):
    """Four weeks growing 8% per week."""
    return demo.generate_historical_costs(4)


@pytest.fixture
def demo_inventory(demo):
    """Five-resource demo deployment."""
    return demo.generate_resource_inventory("demo-deployment")


@pytest.fixture
def empty_inventory():
    return ResourceInventory.from_resources("test-deployment", [])


@pytest.fixture
def detector_input(demo_cost_data, demo_inventory, demo_history):
    """Demo snapshot handed to detectors."""
    return DetectorInput(
        deployment_id="demo-deployment",
        cost_data=demo_cost_data,
        aws_resources=demo_inventory,
        historical_data=demo_history,
    )


@pytest.fixture
def ec2_client():
    client = mock_client()
    client.describe_instances.return_value = {"Reservations": []}
    client.describe_addresses.return_value = {"Addresses": []}
    client.describe_snapshots.return_value = {"Snapshots": []}
    client.describe_nat_gateways.return_value = {"NatGateways": []}
    client.describe_volumes.return_value = {"Volumes": []}
    client.describe_security_groups.return_value = {"SecurityGroups": []}
    client.describe_instance_status.return_value = {"InstanceStatuses": []}
    return client


@pytest.fixture
def rds_client():
    client = mock_client()
    client.describe_db_instances.return_value = {"DBInstances": []}
    return client


@pytest.fixture
def s3_client():
    client = mock_client()
    client.list_buckets.return_value = {"Buckets": []}
    return client


@pytest.fixture
def cloudformation_client():
    client = mock_client()
    client.list_stacks.return_value = {"StackSummaries": []}
    return client


@pytest.fixture
def cloudwatch_client():
    client = MagicMock()
    client.get_metric_statistics.return_value = {"Datapoints": []}
    return client


@pytest.fixture
def sample_config_dict():
    """Sample configuration dictionary."""
    return {
        "project_name": "test-watchdog",
        "environment": "dev",
        "aws": {
            "region": "eu-west-1",
        },
        "detectors": {
            "cost_anomaly": {
                "thresholds": {
                    "week_over_week_increase_percent": 30,
                    "monthly_budget_limit": 500,
                },
                "min_historical_samples": 4,
            },
            "resource_waste": {
                "enabled": False,
            },
            "security_risk": {
                "excluded_tags": {"security:reviewed": "true"},
            },
        },
        "aggregator": {
            "demo_mode": True,
        },
        "pricing": {
            "ec2_instances": {"t3.medium": 35.0},
        },
    }


@pytest.fixture
def summary_factory():
    """Factory for weekly summaries, see make_summary."""
    return make_summary


@pytest.fixture
def history_factory():
    """Factory for single-service histories, see make_history."""
    return make_history


@pytest.fixture
def client_factory():
    """Factory for paginator-free boto3 client mocks."""
    return mock_client
