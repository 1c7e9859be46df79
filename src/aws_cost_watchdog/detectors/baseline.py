"""Historical baselines for z-score spike detection."""

import statistics
from dataclasses import dataclass

from aws_cost_watchdog.models.cost import CostSummary


@dataclass(frozen=True)
class Baseline:
    """Mean and population standard deviation of past weekly costs."""

    mean: float = 0.0
    std: float = 0.0
    sample_count: int = 0

    @classmethod
    def from_costs(cls, costs: list[float]) -> "Baseline":
        # Zero weeks mean the service was not in use; they are not part of its baseline
        used = [c for c in costs if c > 0]
        if not used:
            return cls()
        return cls(
            mean=statistics.fmean(used),
            std=statistics.pstdev(used),
            sample_count=len(used),
        )

    def has_enough_data(self, min_samples: int) -> bool:
        return self.sample_count >= min_samples

    def z_score(self, value: float) -> float | None:
        """
        Number of standard deviations between value and the mean.

        Returns None when the history has no spread, since any deviation
        from a flat baseline would be infinitely many sigmas.
        """
        if self.std <= 0:
            return None
        return (value - self.mean) / self.std


def total_baseline(history: list[CostSummary]) -> Baseline:
    """Baseline of the weekly totals, history ordered oldest to newest."""
    return Baseline.from_costs([s.total_current_week for s in history])


def service_baseline(history: list[CostSummary], service: str) -> Baseline:
    """Baseline of one service's weekly cost, skipping weeks it was absent."""
    return Baseline.from_costs([s.service_cost(service) for s in history])
