"""Red flag models produced by detectors and the aggregator."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from aws_cost_watchdog.models.cost import CostSummary, ResourceInventory


def _generate_uuid() -> str:
    return str(uuid4())


def _utc_now_iso() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S") + "Z"


class Severity(str, Enum):
    """Red flag severity."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class Category(str, Enum):
    """Red flag category, one per detector."""

    COST_ANOMALY = "cost_anomaly"
    RESOURCE_WASTE = "resource_waste"
    SECURITY_RISK = "security_risk"
    DEPLOYMENT_FAILURE = "deployment_failure"


# Sort key: critical first
SEVERITY_ORDER: dict[Severity, int] = {
    Severity.CRITICAL: 0,
    Severity.WARNING: 1,
    Severity.INFO: 2,
}


class RedFlag(BaseModel):
    """A single finding emitted by one detector."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_generate_uuid)
    category: Category
    severity: Severity
    title: str
    description: str
    detected_at: str = Field(default_factory=_utc_now_iso)
    resource_id: str | None = None  # i-123, sg-456, service:EC2, total, ...
    resource_type: str | None = None  # EC2, RDS, NAT Gateway, ...
    estimated_monthly_cost: float | None = None
    estimated_savings: float | None = None
    auto_fixable: bool = False
    fix_command: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class DetectionMetadata(BaseModel):
    """Execution record for one detector invocation."""

    model_config = ConfigDict(frozen=True)

    detector_id: str
    detector_version: str
    execution_time_ms: float = 0.0
    resources_scanned: int = 0
    scan_errors: dict[str, str] = Field(default_factory=dict)  # scan name -> error
    abstained: list[str] = Field(default_factory=list)  # scans that declined to run
    error: str | None = None  # Detector-level failure

    @property
    def failed(self) -> bool:
        """True when the whole detector failed rather than individual scans."""
        return self.error is not None


class DetectorInput(BaseModel):
    """Snapshot handed to every detector."""

    model_config = ConfigDict(frozen=True)

    deployment_id: str
    cost_data: CostSummary
    aws_resources: ResourceInventory
    historical_data: list[CostSummary] = Field(default_factory=list)  # oldest -> newest


class DetectorOutput(BaseModel):
    """Findings plus execution metadata from one detector."""

    model_config = ConfigDict(frozen=True)

    red_flags: list[RedFlag] = Field(default_factory=list)
    detection_metadata: DetectionMetadata


def _zero_by_severity() -> dict[Severity, int]:
    return {severity: 0 for severity in Severity}


def _zero_by_category() -> dict[Category, int]:
    return {category: 0 for category in Category}


class RedFlagSummary(BaseModel):
    """Aggregate counts and savings over a set of red flags."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    by_severity: dict[Severity, int] = Field(default_factory=_zero_by_severity)
    by_category: dict[Category, int] = Field(default_factory=_zero_by_category)
    total_potential_savings: float = 0.0


class AggregationResult(BaseModel):
    """Sorted red flags, their summary, and per-detector metadata."""

    model_config = ConfigDict(frozen=True)

    red_flags: list[RedFlag] = Field(default_factory=list)
    summary: RedFlagSummary = Field(default_factory=RedFlagSummary)
    detections: list[DetectionMetadata] = Field(default_factory=list)
