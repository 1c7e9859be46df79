"""Forecast models."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, model_validator


class TrendDirection(str, Enum):
    """Direction of the fitted weekly cost trend."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class ConfidenceInterval(BaseModel):
    """Bounds around a forecast value."""

    model_config = ConfigDict(frozen=True)

    low: float
    high: float

    @model_validator(mode="after")
    def _check_order(self) -> "ConfidenceInterval":
        if self.low > self.high:
            raise ValueError(f"low ({self.low}) must not exceed high ({self.high})")
        return self

    @property
    def width(self) -> float:
        return self.high - self.low


class CostPrediction(BaseModel):
    """Next-week cost forecast."""

    model_config = ConfigDict(frozen=True)

    predicted: float
    confidence_interval: ConfidenceInterval
    methodology: str
    confidence: Literal["low", "medium", "high"] = "medium"
    sample_size: int = 0
    abstained: bool = False  # True when no trend could be fitted


class MonthlyCostProjection(BaseModel):
    """Monthly cost projection."""

    model_config = ConfigDict(frozen=True)

    projected: float
    confidence_interval: ConfidenceInterval
    trend_direction: TrendDirection
    methodology: str
    naive_projection: float  # base week * weeks per month, no trend
    slope: float = 0.0  # USD per week
    confidence: Literal["low", "medium", "high"] = "medium"
    sample_size: int = 0
    abstained: bool = False


class CostForecast(BaseModel):
    """Both forecast horizons for one analysis run."""

    model_config = ConfigDict(frozen=True)

    next_week: CostPrediction
    monthly: MonthlyCostProjection
