"""
Weekly and monthly cost forecasting.

Method: an ordinary least squares line is fitted to the historical weekly
totals indexed 0..n-1. The next-week prediction is the fitted value at x = n.
The prediction interval is

    predicted +/- t(df=n-1) * s * sqrt(1 + 1/n)

where s is the sample standard deviation of the weekly totals and t is the
two-sided Student-t critical value for the configured confidence level. The
interval therefore widens as week-to-week variation grows and narrows as more
weeks are observed. The monthly horizon scales the same interval by the
weeks-per-month multiplier.
"""

from __future__ import annotations

import math
import statistics
from typing import Literal

import structlog
from scipy import stats

from aws_cost_watchdog.config.schema import ForecastConfig
from aws_cost_watchdog.models.cost import CostSummary
from aws_cost_watchdog.models.forecast import (
    ConfidenceInterval,
    CostForecast,
    CostPrediction,
    MonthlyCostProjection,
    TrendDirection,
)

logger = structlog.get_logger()

# Band used when there is a single week and no variance to measure
NAIVE_WEEKLY_BAND = 0.15
NAIVE_MONTHLY_BAND = 0.10


def _interval(center: float, half_width: float) -> ConfidenceInterval:
    """
    Interval of width 2 * half_width around a non-negative center.

    Costs cannot be negative, so when the lower bound would drop below zero
    the interval is shifted up instead of truncated. Its width then still
    grows with the variance behind half_width.
    """
    low = max(0.0, center - half_width)
    return ConfidenceInterval(low=round(low, 2), high=round(low + 2 * half_width, 2))


class ForecastEngine:
    """Forecast next-week and monthly costs from historical weekly summaries."""

    def __init__(self, config: ForecastConfig | None = None):
        """
        Initialize the forecast engine.

        Args:
            config: Forecast configuration.
        """
        self.config = config or ForecastConfig()

    def _half_width(self, values: list[float]) -> float:
        """Student-t prediction half-width for one new weekly observation."""
        n = len(values)
        t_critical = stats.t.ppf((1 + self.config.confidence_level) / 2, df=n - 1)
        return float(t_critical) * statistics.stdev(values) * math.sqrt(1 + 1 / n)

    def _confidence(self, values: list[float]) -> Literal["low", "medium", "high"]:
        n = len(values)
        if n < self.config.min_samples:
            return "low"
        mean = statistics.fmean(values)
        cv = statistics.stdev(values) / mean if mean > 0 else 0.0
        if n >= 2 * self.config.min_samples and cv <= 0.15:
            return "high"
        return "medium"

    def _methodology(self, n: int) -> str:
        text = (
            f"OLS linear trend over {n} weekly totals; "
            f"{self.config.confidence_level:.0%} Student-t prediction interval "
            f"(df={n - 1}) from the sample standard deviation."
        )
        if n < self.config.min_samples:
            text += (
                f" Reduced confidence: {n} weeks is below the "
                f"{self.config.min_samples}-week minimum."
            )
        return text

    def predict_next_week(self, historical: list[CostSummary]) -> CostPrediction:
        """
        Predict next week's total cost.

        Args:
            historical: Weekly summaries, ordered oldest to newest.

        Returns:
            CostPrediction. With fewer than two weeks the prediction is a
            naive carry-forward marked abstained; it never raises.
        """
        values = [s.total_current_week for s in historical]
        n = len(values)

        if n == 0:
            logger.info("forecast_abstained", horizon="next_week", sample_size=0)
            return CostPrediction(
                predicted=0.0,
                confidence_interval=ConfidenceInterval(low=0.0, high=0.0),
                methodology="No historical weeks; forecast abstained.",
                confidence="low",
                sample_size=0,
                abstained=True,
            )

        if n == 1:
            logger.info("forecast_abstained", horizon="next_week", sample_size=1)
            value = max(0.0, values[0])
            return CostPrediction(
                predicted=round(value, 2),
                confidence_interval=_interval(value, value * NAIVE_WEEKLY_BAND),
                methodology=(
                    "Single historical week; naive carry-forward with a "
                    f"+/-{NAIVE_WEEKLY_BAND:.0%} band. No trend fitted."
                ),
                confidence="low",
                sample_size=1,
                abstained=True,
            )

        fit = stats.linregress(list(range(n)), values)
        predicted = max(0.0, fit.intercept + fit.slope * n)

        return CostPrediction(
            predicted=round(predicted, 2),
            confidence_interval=_interval(predicted, self._half_width(values)),
            methodology=self._methodology(n),
            confidence=self._confidence(values),
            sample_size=n,
        )

    def project_monthly(
        self,
        historical: list[CostSummary],
        current_week_cost: float | None = None,
        apply_trend: bool = True,
    ) -> MonthlyCostProjection:
        """
        Project the monthly cost.

        The naive projection is base * weeks_per_month, where base is
        current_week_cost or the latest historical week. This matches
        CostSummary.monthly_projection. When the fitted trend is not stable
        and apply_trend is set, the projection averages the trend over the
        coming month: (base + slope * (weeks_per_month + 1) / 2) * weeks_per_month.

        Args:
            historical: Weekly summaries, ordered oldest to newest.
            current_week_cost: Base weekly cost. Defaults to the latest week.
            apply_trend: Whether to adjust the naive projection by the trend.

        Returns:
            MonthlyCostProjection; never raises.
        """
        values = [s.total_current_week for s in historical]
        n = len(values)
        weeks_per_month = self.config.weeks_per_month

        if current_week_cost is not None:
            base = current_week_cost
        else:
            base = values[-1] if values else 0.0
        base = max(0.0, base)  # Credits can push a week negative
        naive = base * weeks_per_month

        if n < 2:
            logger.info("forecast_abstained", horizon="monthly", sample_size=n)
            return MonthlyCostProjection(
                projected=round(naive, 2),
                confidence_interval=_interval(naive, naive * NAIVE_MONTHLY_BAND),
                trend_direction=TrendDirection.STABLE,
                methodology=(
                    f"Fewer than 2 historical weeks; naive base x {weeks_per_month} "
                    f"with a +/-{NAIVE_MONTHLY_BAND:.0%} band. No trend fitted."
                ),
                naive_projection=round(naive, 2),
                confidence="low",
                sample_size=n,
                abstained=True,
            )

        fit = stats.linregress(list(range(n)), values)
        slope = float(fit.slope)
        direction = self.classify_trend(slope, statistics.fmean(values))

        if apply_trend and direction != TrendDirection.STABLE:
            average_week = base + slope * (weeks_per_month + 1) / 2
            projected = max(0.0, average_week * weeks_per_month)
            basis = "trend-adjusted"
        else:
            projected = naive
            basis = "naive"

        return MonthlyCostProjection(
            projected=round(projected, 2),
            confidence_interval=_interval(
                projected, self._half_width(values) * weeks_per_month
            ),
            trend_direction=direction,
            methodology=(
                f"{self._methodology(n)} Monthly value is {basis}, "
                f"x {weeks_per_month} weeks."
            ),
            naive_projection=round(naive, 2),
            slope=round(slope, 4),
            confidence=self._confidence(values),
            sample_size=n,
        )

    def classify_trend(self, slope: float, mean: float) -> TrendDirection:
        """Classify a weekly slope relative to the mean weekly cost."""
        relative_slope = slope / mean if mean > 0 else 0.0
        if relative_slope > self.config.stable_slope_threshold:
            return TrendDirection.INCREASING
        if relative_slope < -self.config.stable_slope_threshold:
            return TrendDirection.DECREASING
        return TrendDirection.STABLE

    def forecast(
        self, historical: list[CostSummary], current_week_cost: float | None = None
    ) -> CostForecast:
        """Both horizons for one analysis run."""
        return CostForecast(
            next_week=self.predict_next_week(historical),
            monthly=self.project_monthly(historical, current_week_cost),
        )
