"""Tests for cost, flag and forecast models."""

import pytest
from pydantic import ValidationError

from aws_cost_watchdog.models.cost import (
    WEEKS_PER_MONTH,
    AWSResource,
    CostBreakdown,
    CostSummary,
    ResourceInventory,
)
from aws_cost_watchdog.models.flags import Category, RedFlag, Severity
from aws_cost_watchdog.models.forecast import ConfidenceInterval


class TestCostBreakdown:
    """Tests for CostBreakdown.from_costs."""

    def test_derived_fields(self):
        breakdown = CostBreakdown.from_costs("EC2", 80.24, 60.0)
        assert breakdown.change_amount == 20.24
        assert breakdown.change_percent == pytest.approx(33.73)
        assert breakdown.monthly_projection == pytest.approx(round(80.24 * WEEKS_PER_MONTH, 2))

    def test_new_service_has_zero_percent_change(self):
        """Test that a service with no previous week does not divide by zero."""
        breakdown = CostBreakdown.from_costs("Lambda", 25.0, 0.0)
        assert breakdown.change_percent == 0.0
        assert breakdown.change_amount == 25.0


class TestCostSummary:
    """Tests for CostSummary invariants."""

    def test_totals_sum_breakdowns(self, demo_cost_data):
        assert demo_cost_data.total_current_week == 170.74
        assert demo_cost_data.total_previous_week == 139.20
        assert demo_cost_data.total_change_amount == pytest.approx(31.54)
        assert demo_cost_data.total_change_percent == pytest.approx(22.66)

    def test_top_services_sorted_descending(self, summary_factory):
        summary = summary_factory({"S3": (5.0, 5.0), "EC2": (90.0, 80.0), "RDS": (40.0, 30.0)})
        assert [s.service for s in summary.top_services] == ["EC2", "RDS", "S3"]

    def test_change_amount_must_match_totals(self):
        """Test that an inconsistent change amount is rejected."""
        with pytest.raises(ValidationError):
            CostSummary(
                total_current_week=100.0,
                total_previous_week=80.0,
                total_change_percent=25.0,
                total_change_amount=5.0,
                monthly_projection=433.0,
                billing_period_start="2024-11-11",
                billing_period_end="2024-11-18",
            )

    def test_service_cost_missing_service(self, demo_cost_data):
        assert demo_cost_data.service_cost("EC2") == 80.24
        assert demo_cost_data.service_cost("Lambda") == 0.0

    def test_frozen(self, demo_cost_data):
        with pytest.raises(ValidationError):
            demo_cost_data.total_current_week = 1.0


class TestResourceInventory:
    """Tests for ResourceInventory."""

    def test_totals_derived(self, demo_inventory):
        assert demo_inventory.total_resources == 5
        assert demo_inventory.total_monthly_cost == pytest.approx(129.76)

    def test_resources_by_service(self, demo_inventory):
        grouped = demo_inventory.resources_by_service
        assert len(grouped["EC2"]) == 2
        assert len(grouped["RDS"]) == 1

    def test_resource_ids_with_tags(self):
        inventory = ResourceInventory.from_resources(
            "d1",
            [
                AWSResource(resource_id="a", resource_type="t3.micro", service="EC2",
                            tags={"env": "prod", "team": "web"}),
                AWSResource(resource_id="b", resource_type="t3.micro", service="EC2",
                            tags={"env": "prod"}),
            ],
        )
        assert inventory.resource_ids_with_tags({"env": "prod", "team": "web"}) == {"a"}
        assert inventory.resource_ids_with_tags({}) == set()

    def test_negative_resource_count_rejected(self):
        with pytest.raises(ValidationError):
            ResourceInventory(deployment_id="d1", total_resources=-1)


class TestRedFlag:
    """Tests for RedFlag."""

    def test_ids_are_unique(self):
        kwargs = dict(
            category=Category.COST_ANOMALY,
            severity=Severity.WARNING,
            title="t",
            description="d",
        )
        assert RedFlag(**kwargs).id != RedFlag(**kwargs).id

    def test_json_dump_uses_enum_values(self):
        flag = RedFlag(
            category=Category.SECURITY_RISK,
            severity=Severity.CRITICAL,
            title="t",
            description="d",
        )
        dumped = flag.model_dump(mode="json")
        assert dumped["category"] == "security_risk"
        assert dumped["severity"] == "critical"
        assert dumped["detected_at"].endswith("Z")

    def test_unknown_severity_rejected(self):
        with pytest.raises(ValidationError):
            RedFlag(category="cost_anomaly", severity="urgent", title="t", description="d")


class TestConfidenceInterval:
    def test_low_above_high_rejected(self):
        with pytest.raises(ValidationError):
            ConfidenceInterval(low=10.0, high=5.0)

    def test_width(self):
        assert ConfidenceInterval(low=90.0, high=110.0).width == 20.0
