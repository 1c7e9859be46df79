"""Cost anomaly detection for weekly AWS spend."""

from __future__ import annotations

from aws_cost_watchdog.config.schema import CostAnomalyDetectorConfig
from aws_cost_watchdog.detectors.base import Detector, Scan, ScanAbstained
from aws_cost_watchdog.detectors.baseline import Baseline, service_baseline, total_baseline
from aws_cost_watchdog.models.cost import CostBreakdown, CostSummary
from aws_cost_watchdog.models.flags import Category, DetectorInput, RedFlag, Severity

TOTAL_RESOURCE_ID = "total"


def service_resource_id(service: str) -> str:
    """Resource id used for per-service cost findings."""
    return f"service:{service}"


def _signed_money(amount: float) -> str:
    sign = "+" if amount >= 0 else "-"
    return f"{sign}${abs(amount):.2f}"


class CostAnomalyDetector(Detector):
    """
    Detect unusual weekly cost patterns.

    Detection strategies, in emission order:
    1. Week-over-week increase - total or service grew more than X%
    2. Service anomalies - one service dominates spend, or a new costly service
    3. Budget - projection over the monthly budget, or budget nearly spent
    4. Statistical spike - current week deviates N std devs from history
    5. Steady increase - spend grew every week for several weeks
    """

    detector_id = "cost-anomaly-detector"
    category = Category.COST_ANOMALY

    def __init__(self, config: CostAnomalyDetectorConfig | None = None):
        """
        Initialize the cost anomaly detector.

        Args:
            config: Cost anomaly detector configuration.
        """
        super().__init__(config or CostAnomalyDetectorConfig())
        self.thresholds = self.config.thresholds

    def scans(self, detector_input: DetectorInput) -> list[tuple[str, Scan]]:
        cost_data = detector_input.cost_data
        history = detector_input.historical_data
        return [
            ("week_over_week", lambda: self.detect_week_over_week(cost_data)),
            ("service_anomalies", lambda: self.detect_service_anomalies(cost_data)),
            ("budget", lambda: self.detect_budget_violations(cost_data)),
            ("statistical_spike", lambda: self.detect_spikes(cost_data, history)),
            ("steady_increase", lambda: self.detect_steady_increase(cost_data, history)),
        ]

    def resources_scanned(self, detector_input: DetectorInput) -> int:
        return len(detector_input.cost_data.top_services)

    def _flag(self, severity: Severity, title: str, description: str, **kwargs) -> RedFlag:
        return RedFlag(
            category=self.category,
            severity=severity,
            title=title,
            description=description,
            auto_fixable=False,
            **kwargs,
        )

    def _increase_severity(self, change_percent: float) -> Severity:
        threshold = self.thresholds.week_over_week_increase_percent
        return Severity.CRITICAL if change_percent > threshold * 2 else Severity.WARNING

    def detect_week_over_week(self, cost_data: CostSummary) -> list[RedFlag]:
        """Flag total and per-service week-over-week increases above threshold."""
        threshold = self.thresholds.week_over_week_increase_percent
        red_flags: list[RedFlag] = []

        if cost_data.total_change_percent > threshold:
            red_flags.append(
                self._flag(
                    self._increase_severity(cost_data.total_change_percent),
                    f"Weekly cost increased by {cost_data.total_change_percent:.1f}%",
                    (
                        f"Total AWS costs increased from ${cost_data.total_previous_week:.2f} "
                        f"to ${cost_data.total_current_week:.2f} this week "
                        f"({_signed_money(cost_data.total_change_amount)}). "
                        f"This exceeds the {threshold:g}% threshold."
                    ),
                    resource_id=TOTAL_RESOURCE_ID,
                    estimated_monthly_cost=cost_data.monthly_projection,
                    metadata={
                        "previous_week": cost_data.total_previous_week,
                        "current_week": cost_data.total_current_week,
                        "change_percent": cost_data.total_change_percent,
                        "threshold": threshold,
                    },
                )
            )

        for service in cost_data.top_services:
            if service.change_percent <= threshold:
                continue
            red_flags.append(
                self._flag(
                    self._increase_severity(service.change_percent),
                    f"{service.service} costs increased by {service.change_percent:.1f}%",
                    (
                        f"{service.service} costs jumped from ${service.previous_week_cost:.2f} "
                        f"to ${service.current_week_cost:.2f} "
                        f"({_signed_money(service.change_amount)}). This may indicate "
                        f"resource scaling, configuration changes, or unexpected usage."
                    ),
                    resource_id=service_resource_id(service.service),
                    resource_type=service.service,
                    estimated_monthly_cost=service.monthly_projection,
                    metadata={
                        "service": service.service,
                        "previous_week": service.previous_week_cost,
                        "current_week": service.current_week_cost,
                        "change_percent": service.change_percent,
                        "threshold": threshold,
                    },
                )
            )

        return red_flags

    def detect_service_anomalies(self, cost_data: CostSummary) -> list[RedFlag]:
        """Flag services dominating total spend and costly new services."""
        red_flags: list[RedFlag] = []

        for service in cost_data.top_services:
            share_flag = self._check_service_share(service, cost_data.total_current_week)
            if share_flag:
                red_flags.append(share_flag)

            if (
                service.current_week_cost > self.thresholds.new_service_minimum
                and service.previous_week_cost == 0
            ):
                red_flags.append(
                    self._flag(
                        Severity.INFO,
                        f"New service detected: {service.service}",
                        (
                            f"{service.service} appeared this week with costs of "
                            f"${service.current_week_cost:.2f}. If this was intentional, "
                            f"no action is needed. Otherwise, review recent deployments."
                        ),
                        resource_id=service_resource_id(service.service),
                        resource_type=service.service,
                        estimated_monthly_cost=service.monthly_projection,
                        metadata={
                            "service": service.service,
                            "current_week": service.current_week_cost,
                            "is_new_service": True,
                        },
                    )
                )

        return red_flags

    def _check_service_share(self, service: CostBreakdown, total: float) -> RedFlag | None:
        if total <= 0:
            return None

        share = service.current_week_cost / total * 100
        if share <= self.thresholds.service_share_percent:
            return None

        return self._flag(
            self.config.severity,
            f"{service.service} represents {share:.1f}% of total costs",
            (
                f"{service.service} is consuming an unusually large portion of your AWS spend "
                f"(${service.current_week_cost:.2f} of ${total:.2f}). This may indicate "
                f"over-provisioning."
            ),
            resource_id=service_resource_id(service.service),
            resource_type=service.service,
            estimated_monthly_cost=service.monthly_projection,
            metadata={
                "service": service.service,
                "percent_of_total": round(share, 2),
                "current_week": service.current_week_cost,
            },
        )

    def detect_budget_violations(self, cost_data: CostSummary) -> list[RedFlag]:
        """Flag projected overruns of the configured budget and nearly spent budgets."""
        red_flags: list[RedFlag] = []
        monthly_budget = self.thresholds.monthly_budget_limit

        if monthly_budget and cost_data.monthly_projection > monthly_budget:
            overage = cost_data.monthly_projection - monthly_budget
            overage_percent = overage / monthly_budget * 100
            red_flags.append(
                self._flag(
                    Severity.CRITICAL if overage_percent > 20 else Severity.WARNING,
                    f"Monthly projection exceeds budget by {overage_percent:.1f}%",
                    (
                        f"At the current rate, monthly costs are projected at "
                        f"${cost_data.monthly_projection:.2f}, which is ${overage:.2f} over "
                        f"your ${monthly_budget:.2f} budget."
                    ),
                    resource_id=TOTAL_RESOURCE_ID,
                    estimated_monthly_cost=cost_data.monthly_projection,
                    metadata={
                        "monthly_budget": monthly_budget,
                        "monthly_projection": cost_data.monthly_projection,
                        "overage": round(overage, 2),
                        "overage_percent": round(overage_percent, 2),
                    },
                )
            )

        limit = cost_data.budget_limit
        remaining = cost_data.budget_remaining
        if not limit or remaining is None:
            return red_flags

        if remaining < 0:
            red_flags.append(
                self._flag(
                    Severity.CRITICAL,
                    "Budget limit exceeded",
                    (
                        f"You have exceeded your budget limit of ${limit:.2f}. Current "
                        f"spending is ${limit - remaining:.2f}."
                    ),
                    resource_id=TOTAL_RESOURCE_ID,
                    estimated_monthly_cost=cost_data.monthly_projection,
                    metadata={
                        "budget_limit": limit,
                        "budget_remaining": remaining,
                        "overage": abs(remaining),
                    },
                )
            )
        elif remaining < limit * self.thresholds.budget_remaining_warning_percent / 100:
            red_flags.append(
                self._flag(
                    Severity.WARNING,
                    f"Only ${remaining:.2f} remaining in budget",
                    (
                        f"Less than {self.thresholds.budget_remaining_warning_percent:g}% of "
                        f"your budget remains (${remaining:.2f} of ${limit:.2f})."
                    ),
                    resource_id=TOTAL_RESOURCE_ID,
                    estimated_monthly_cost=cost_data.monthly_projection,
                    metadata={
                        "budget_limit": limit,
                        "budget_remaining": remaining,
                        "percent_remaining": round(remaining / limit * 100, 2),
                    },
                )
            )

        return red_flags

    def detect_spikes(
        self, cost_data: CostSummary, history: list[CostSummary]
    ) -> list[RedFlag]:
        """
        Flag weeks whose cost deviates from the historical baseline.

        The score is a z-score against the population standard deviation of the
        historical weekly totals. Per-service scores are computed independently
        and carry a service resource id, so a runaway service is reported
        alongside, not instead of, the aggregate.

        Raises:
            ScanAbstained: If history has fewer weeks than min_historical_samples.
        """
        min_samples = self.config.min_historical_samples
        overall = total_baseline(history)
        if not overall.has_enough_data(min_samples):
            raise ScanAbstained(
                f"{overall.sample_count} historical weeks, need {min_samples}"
            )

        red_flags: list[RedFlag] = []

        total_flag = self._check_deviation(
            label="Weekly cost",
            current=cost_data.total_current_week,
            baseline=overall,
            resource_id=TOTAL_RESOURCE_ID,
            resource_type=None,
            monthly_cost=cost_data.monthly_projection,
        )
        if total_flag:
            red_flags.append(total_flag)

        if not self.config.check_services:
            return red_flags

        for service in cost_data.top_services:
            baseline = service_baseline(history, service.service)
            if not baseline.has_enough_data(min_samples):
                continue

            service_flag = self._check_deviation(
                label=f"{service.service} cost",
                current=service.current_week_cost,
                baseline=baseline,
                resource_id=service_resource_id(service.service),
                resource_type=service.service,
                monthly_cost=service.monthly_projection,
            )
            if service_flag:
                red_flags.append(service_flag)

        return red_flags

    def _check_deviation(
        self,
        label: str,
        current: float,
        baseline: Baseline,
        resource_id: str,
        resource_type: str | None,
        monthly_cost: float,
    ) -> RedFlag | None:
        """Build a spike flag when |z| crosses the warning threshold."""
        z = baseline.z_score(current)
        if z is None:
            return None  # Flat history

        if abs(z) > self.thresholds.critical_std_deviations:
            severity = Severity.CRITICAL
        elif abs(z) > self.thresholds.warning_std_deviations:
            severity = Severity.WARNING
        else:
            return None

        delta = current - baseline.mean
        delta_percent = delta / baseline.mean * 100 if baseline.mean > 0 else 0.0
        direction = "above" if z > 0 else "below"

        return self._flag(
            severity,
            f"{label} spike: {abs(z):.1f} standard deviations {direction} baseline",
            (
                f"{label} this week (${current:.2f}) is {abs(z):.1f} standard deviations "
                f"{direction} the historical average of ${baseline.mean:.2f} "
                f"({_signed_money(delta)}, {delta_percent:+.1f}%) over "
                f"{baseline.sample_count} weeks."
            ),
            resource_id=resource_id,
            resource_type=resource_type,
            estimated_monthly_cost=monthly_cost,
            metadata={
                "current_cost": current,
                "historical_average": round(baseline.mean, 2),
                "standard_deviation": round(baseline.std, 4),
                "z_score": round(z, 2),
                "absolute_change": round(delta, 2),
                "percent_change": round(delta_percent, 2),
                "sample_size": baseline.sample_count,
            },
        )

    def detect_steady_increase(
        self, cost_data: CostSummary, history: list[CostSummary]
    ) -> list[RedFlag]:
        """
        Flag spend that grew every week over the recent window.

        Raises:
            ScanAbstained: If history is shorter than steady_increase_weeks.
        """
        weeks = self.config.steady_increase_weeks
        if len(history) < weeks:
            raise ScanAbstained(f"{len(history)} historical weeks, need {weeks}")

        window = [s.total_current_week for s in history[-weeks:]]
        window.append(cost_data.total_current_week)

        if any(later <= earlier for earlier, later in zip(window, window[1:])):
            return []

        first, last = window[0], window[-1]
        if first <= 0:
            return []
        total_increase = (last - first) / first * 100

        return [
            self._flag(
                Severity.WARNING if total_increase > 50 else Severity.INFO,
                f"Costs increasing steadily for {len(window)} weeks",
                (
                    f"Costs have increased every week for the past {len(window)} weeks, "
                    f"from ${first:.2f} to ${last:.2f} ({total_increase:.1f}% total "
                    f"increase). This suggests growing resource usage."
                ),
                resource_id=TOTAL_RESOURCE_ID,
                estimated_monthly_cost=cost_data.monthly_projection,
                metadata={
                    "weeks": len(window),
                    "first_week_cost": first,
                    "last_week_cost": last,
                    "total_increase_percent": round(total_increase, 2),
                    "pattern": "steadily_increasing",
                },
            )
        ]
