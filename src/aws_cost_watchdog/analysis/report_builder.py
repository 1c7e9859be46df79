"""Combine red flags and forecasts into a JSON-ready cost report."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

from aws_cost_watchdog.analysis.aggregator import RedFlagAggregator
from aws_cost_watchdog.analysis.forecast import ForecastEngine
from aws_cost_watchdog.models.cost import CostSummary, ResourceInventory
from aws_cost_watchdog.models.flags import AggregationResult, Severity
from aws_cost_watchdog.models.forecast import CostPrediction, MonthlyCostProjection


def build_cost_report(
    deployment_id: str,
    cost_data: CostSummary,
    aggregation: AggregationResult,
    next_week: CostPrediction,
    monthly: MonthlyCostProjection,
    top_services_limit: int = 5,
) -> dict[str, Any]:
    """
    Build the report handed to formatting and delivery layers.

    Args:
        deployment_id: Deployment the report covers.
        cost_data: Current week's cost summary.
        aggregation: Ranked red flags with their summary.
        next_week: Next-week forecast.
        monthly: Monthly projection.
        top_services_limit: Number of services listed in the cost section.

    Returns:
        Dict with: costs, red_flags, summary, forecast, detections.
    """
    summary = aggregation.summary
    has_critical = summary.by_severity[Severity.CRITICAL] > 0

    return {
        "deployment_id": deployment_id,
        "generated_at": datetime.now(UTC).isoformat(),
        "billing_period": {
            "start": cost_data.billing_period_start,
            "end": cost_data.billing_period_end,
        },
        "costs": {
            "current_week": cost_data.total_current_week,
            "previous_week": cost_data.total_previous_week,
            "change_percent": cost_data.total_change_percent,
            "change_amount": cost_data.total_change_amount,
            "monthly_projection": cost_data.monthly_projection,
            "budget_limit": cost_data.budget_limit,
            "budget_remaining": cost_data.budget_remaining,
            "top_services": [
                b.model_dump(mode="json") for b in cost_data.top_services[:top_services_limit]
            ],
        },
        "red_flags": [flag.model_dump(mode="json") for flag in aggregation.red_flags],
        "summary": summary.model_dump(mode="json"),
        "requires_attention": has_critical,
        "forecast": {
            "next_week": next_week.model_dump(mode="json"),
            "monthly": monthly.model_dump(mode="json"),
        },
        "detections": [d.model_dump(mode="json") for d in aggregation.detections],
    }


async def run_analysis(
    aggregator: RedFlagAggregator,
    forecast_engine: ForecastEngine,
    deployment_id: str,
    cost_data: CostSummary,
    aws_resources: ResourceInventory,
    historical_data: list[CostSummary] | None = None,
) -> dict[str, Any]:
    """
    Run red-flag aggregation and forecasting for one deployment.

    The forecast covers the history plus the current week, so the next-week
    prediction is for the week after cost_data.

    Raises:
        AggregationError: If no detector produced results.
    """
    historical_data = historical_data or []

    aggregation = await aggregator.detect_all_red_flags(
        deployment_id, cost_data, aws_resources, historical_data
    )
    forecast = await asyncio.to_thread(
        forecast_engine.forecast,
        [*historical_data, cost_data],
        cost_data.total_current_week,
    )

    return build_cost_report(
        deployment_id,
        cost_data,
        aggregation,
        next_week=forecast.next_week,
        monthly=forecast.monthly,
    )
