"""AWS Budgets collector.

Only monthly COST budgets are meaningful next to a weekly cost summary:
their limit and remaining spend feed the budget checks of the cost anomaly
detector through ``CostSummary.budget_limit`` / ``budget_remaining``.
"""

from __future__ import annotations

import boto3
import structlog
from botocore.exceptions import ClientError

from aws_cost_watchdog.collectors.base import BudgetInfo
from aws_cost_watchdog.models.cost import CostSummary

logger = structlog.get_logger()


def apply_budget(summary: CostSummary, budget: BudgetInfo | None) -> CostSummary:
    """
    Attach a budget's limit and remaining amount to a cost summary.

    Args:
        summary: Weekly cost summary.
        budget: Budget to attach. None leaves the summary unchanged.

    Returns:
        A new CostSummary with budget_limit and budget_remaining set.
    """
    if budget is None:
        return summary
    return summary.model_copy(
        update={"budget_limit": budget.limit, "budget_remaining": budget.remaining}
    )


def _amount(spend: dict, key: str) -> float:
    return float(spend.get(key, {}).get("Amount", 0))


def budget_from_response(budget: dict) -> BudgetInfo | None:
    """
    Convert a describe_budgets entry into BudgetInfo.

    Returns None for usage, RI and savings plan budgets, which are not
    expressed as USD spend, and for malformed entries.
    """
    if budget.get("BudgetType") != "COST":
        return None

    try:
        limit = _amount(budget, "BudgetLimit")
        calculated = budget.get("CalculatedSpend", {})
        actual = _amount(calculated, "ActualSpend")
        forecasted = _amount(calculated, "ForecastedSpend")
        return BudgetInfo(
            name=budget["BudgetName"],
            limit=round(limit, 2),
            actual_spend=round(actual, 2),
            forecasted_spend=round(forecasted, 2),
            percentage_used=round(actual / limit * 100, 1) if limit > 0 else 0.0,
            currency=budget.get("BudgetLimit", {}).get("Unit", "USD"),
            time_unit=budget.get("TimeUnit", "MONTHLY"),
        )
    except (KeyError, ValueError) as e:
        logger.warning("budget_parse_failed", budget=budget.get("BudgetName"), error=str(e))
        return None


class BudgetsCollector:
    """Read cost budgets for the current account from AWS Budgets."""

    collector_name = "budgets"

    def __init__(
        self,
        region: str = "us-east-1",
        budgets_client: boto3.client | None = None,
        sts_client: boto3.client | None = None,
        account_id: str | None = None,
    ):
        """
        Initialize the Budgets collector.

        Args:
            region: AWS region.
            budgets_client: Optional boto3 Budgets client.
            sts_client: Optional boto3 STS client, used to resolve the account.
            account_id: AWS account ID. Looked up through STS if not provided.
        """
        self.region = region
        self._budgets_client = budgets_client
        self._sts_client = sts_client
        self._account_id = account_id

    @property
    def budgets_client(self) -> boto3.client:
        """Get or create Budgets client."""
        if self._budgets_client is None:
            self._budgets_client = boto3.client("budgets", region_name=self.region)
        return self._budgets_client

    @property
    def sts_client(self) -> boto3.client:
        """Get or create STS client."""
        if self._sts_client is None:
            self._sts_client = boto3.client("sts", region_name=self.region)
        return self._sts_client

    @property
    def account_id(self) -> str:
        if self._account_id is None:
            self._account_id = self.sts_client.get_caller_identity()["Account"]
        return self._account_id

    def collect(self) -> list[BudgetInfo]:
        """
        Collect all cost budgets of the account.

        Returns:
            BudgetInfo per COST budget, empty when Budgets is unavailable.
        """
        try:
            pages = self.budgets_client.get_paginator("describe_budgets").paginate(
                AccountId=self.account_id
            )
            budgets = [
                info
                for page in pages
                for entry in page.get("Budgets", [])
                if (info := budget_from_response(entry)) is not None
            ]
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code == "NotFoundException":
                logger.info("no_budgets_configured")
            else:
                logger.warning("budgets_unavailable", code=code, error=str(e))
            return []

        logger.info("budgets_collected", count=len(budgets))
        return budgets

    def monthly_budget(self, name: str | None = None) -> BudgetInfo | None:
        """
        Pick the monthly cost budget to compare projections against.

        Args:
            name: Budget name. When None, the monthly budget with the
                largest limit is used.

        Returns:
            The matching budget, or None when there is none.
        """
        monthly = [b for b in self.collect() if b.time_unit == "MONTHLY"]
        if name is not None:
            monthly = [b for b in monthly if b.name == name]
        if not monthly:
            return None
        return max(monthly, key=lambda b: b.limit)

    def apply_to(self, summary: CostSummary, name: str | None = None) -> CostSummary:
        """Return summary with the selected monthly budget attached."""
        return apply_budget(summary, self.monthly_budget(name))
