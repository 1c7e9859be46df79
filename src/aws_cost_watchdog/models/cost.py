"""Cost summaries and resource inventory models."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Average number of weeks in a calendar month (52 / 12)
WEEKS_PER_MONTH = 4.33

# Totals are rounded to cents independently, so their difference may drift by one cent
_CHANGE_AMOUNT_TOLERANCE = 0.01 + 1e-9


def _utc_now_iso() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S") + "Z"


def _percent_change(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return (current - previous) / previous * 100


class CostBreakdown(BaseModel):
    """Weekly cost for a single AWS service."""

    model_config = ConfigDict(frozen=True)

    service: str
    current_week_cost: float
    previous_week_cost: float
    change_percent: float
    change_amount: float
    monthly_projection: float

    @classmethod
    def from_costs(cls, service: str, current: float, previous: float) -> "CostBreakdown":
        """Build a breakdown from raw weekly costs, deriving change and projection."""
        return cls(
            service=service,
            current_week_cost=round(current, 2),
            previous_week_cost=round(previous, 2),
            change_percent=round(_percent_change(current, previous), 2),
            change_amount=round(current - previous, 2),
            monthly_projection=round(current * WEEKS_PER_MONTH, 2),
        )


class CostSummary(BaseModel):
    """
    One billing week's cost totals.

    Invariants:
    - total_change_amount == total_current_week - total_previous_week (to the cent)
    - top_services is sorted by descending current week cost
    """

    model_config = ConfigDict(frozen=True)

    total_current_week: float
    total_previous_week: float
    total_change_percent: float
    total_change_amount: float
    monthly_projection: float
    budget_limit: float | None = None
    budget_remaining: float | None = None
    top_services: list[CostBreakdown] = Field(default_factory=list)
    billing_period_start: str  # YYYY-MM-DD
    billing_period_end: str  # YYYY-MM-DD

    @field_validator("top_services")
    @classmethod
    def _sort_services(cls, value: list[CostBreakdown]) -> list[CostBreakdown]:
        return sorted(value, key=lambda s: s.current_week_cost, reverse=True)

    @model_validator(mode="after")
    def _check_change_amount(self) -> "CostSummary":
        expected = self.total_current_week - self.total_previous_week
        if abs(self.total_change_amount - expected) > _CHANGE_AMOUNT_TOLERANCE:
            raise ValueError(
                f"total_change_amount {self.total_change_amount:.2f} does not match "
                f"total_current_week - total_previous_week ({expected:.2f})"
            )
        return self

    @classmethod
    def from_breakdowns(
        cls,
        breakdowns: list[CostBreakdown],
        billing_period_start: str,
        billing_period_end: str,
        budget_limit: float | None = None,
        budget_remaining: float | None = None,
    ) -> "CostSummary":
        """Build a summary whose totals are the sum of the service breakdowns."""
        current = round(sum(b.current_week_cost for b in breakdowns), 2)
        previous = round(sum(b.previous_week_cost for b in breakdowns), 2)

        return cls(
            total_current_week=current,
            total_previous_week=previous,
            total_change_percent=round(_percent_change(current, previous), 2),
            total_change_amount=round(current - previous, 2),
            monthly_projection=round(current * WEEKS_PER_MONTH, 2),
            budget_limit=budget_limit,
            budget_remaining=budget_remaining,
            top_services=breakdowns,
            billing_period_start=billing_period_start,
            billing_period_end=billing_period_end,
        )

    def service_cost(self, service: str) -> float:
        """Current week cost of a service, 0 if it did not appear this week."""
        for breakdown in self.top_services:
            if breakdown.service == service:
                return breakdown.current_week_cost
        return 0.0


class AWSResource(BaseModel):
    """A single resource in a deployment's inventory."""

    model_config = ConfigDict(frozen=True)

    resource_id: str
    resource_type: str  # t3.medium, db.t3.small, NAT Gateway, ...
    service: str  # EC2, RDS, VPC, S3, ...
    region: str = "us-east-1"
    tags: dict[str, str] = Field(default_factory=dict)
    state: str = "unknown"  # running, stopped, available, ...
    created_at: str | None = None
    monthly_cost: float = 0.0
    metadata: dict[str, Any] = Field(default_factory=dict)


class ResourceInventory(BaseModel):
    """Inventory of resources belonging to a deployment."""

    model_config = ConfigDict(frozen=True)

    deployment_id: str
    last_updated: str = Field(default_factory=_utc_now_iso)
    resources: list[AWSResource] = Field(default_factory=list)
    total_resources: int = Field(default=0, ge=0)
    total_monthly_cost: float = 0.0

    @classmethod
    def from_resources(
        cls, deployment_id: str, resources: list[AWSResource]
    ) -> "ResourceInventory":
        """Build an inventory with totals derived from the resource list."""
        return cls(
            deployment_id=deployment_id,
            resources=resources,
            total_resources=len(resources),
            total_monthly_cost=round(sum(r.monthly_cost for r in resources), 2),
        )

    @property
    def resources_by_service(self) -> dict[str, list[AWSResource]]:
        """Resources grouped by service name."""
        grouped: dict[str, list[AWSResource]] = {}
        for resource in self.resources:
            grouped.setdefault(resource.service, []).append(resource)
        return grouped

    def resource_ids_with_tags(self, tags: dict[str, str]) -> set[str]:
        """Ids of resources carrying every one of the given tags."""
        if not tags:
            return set()
        return {
            r.resource_id
            for r in self.resources
            if all(r.tags.get(key) == value for key, value in tags.items())
        }
