"""Pydantic configuration schema for AWS Cost Watchdog."""

from typing import Literal

from pydantic import BaseModel, Field

from aws_cost_watchdog.models.flags import Severity


class AWSConfig(BaseModel):
    """AWS account configuration."""

    region: str = "us-east-1"
    account_id: str | None = None  # Auto-detected if not provided


class DetectorConfig(BaseModel):
    """Options shared by every detector."""

    enabled: bool = True
    severity: Severity = Severity.WARNING  # Default severity policy
    excluded_resources: list[str] = Field(default_factory=list)
    excluded_tags: dict[str, str] = Field(default_factory=dict)
    scan_timeout_seconds: float = Field(default=30.0, gt=0)


class CostAnomalyThresholdsConfig(BaseModel):
    """Cost anomaly thresholds."""

    week_over_week_increase_percent: float = Field(default=20.0, ge=0)
    warning_std_deviations: float = Field(default=2.0, ge=0)
    critical_std_deviations: float = Field(default=3.0, ge=0)
    service_share_percent: float = Field(default=70.0, ge=0, le=100)
    new_service_minimum: float = Field(default=20.0, ge=0)  # USD per week
    monthly_budget_limit: float | None = Field(default=None, ge=0)
    budget_remaining_warning_percent: float = Field(default=10.0, ge=0, le=100)


class CostAnomalyDetectorConfig(DetectorConfig):
    """Cost anomaly detector configuration."""

    thresholds: CostAnomalyThresholdsConfig = Field(
        default_factory=CostAnomalyThresholdsConfig
    )
    min_historical_samples: int = Field(default=3, ge=2)
    steady_increase_weeks: int = Field(default=4, ge=2)
    check_services: bool = True  # Per-service z-scores


class ResourceWasteThresholdsConfig(BaseModel):
    """Utilization thresholds below which a resource counts as waste."""

    max_cpu_utilization_percent: float = Field(default=5.0, ge=0, le=100)
    min_network_traffic_mb_per_day: float = Field(default=10.0, ge=0)
    min_disk_io_ops_per_day: float = Field(default=100.0, ge=0)
    min_storage_utilization_percent: float = Field(default=20.0, ge=0, le=100)
    snapshot_max_age_days: int = Field(default=90, ge=1)
    # Below threshold * ratio the finding escalates from warning to critical
    critical_utilization_ratio: float = Field(default=0.2, ge=0, le=1)


class ResourceWasteDetectorConfig(DetectorConfig):
    """Resource waste detector configuration."""

    thresholds: ResourceWasteThresholdsConfig = Field(
        default_factory=ResourceWasteThresholdsConfig
    )
    scan_period_days: int = Field(default=7, ge=1, le=90)


def _default_sensitive_ports() -> dict[int, str]:
    return {
        22: "SSH",
        3389: "RDP",
        3306: "MySQL",
        5432: "PostgreSQL",
        27017: "MongoDB",
        6379: "Redis",
    }


class SecurityRiskThresholdsConfig(BaseModel):
    """Security risk thresholds."""

    max_open_ports_public: int = Field(default=0, ge=0)


class SecurityRiskDetectorConfig(DetectorConfig):
    """Security risk detector configuration."""

    severity: Severity = Severity.CRITICAL
    thresholds: SecurityRiskThresholdsConfig = Field(
        default_factory=SecurityRiskThresholdsConfig
    )
    check_encryption: bool = True
    check_public_access: bool = True
    check_security_groups: bool = True
    sensitive_ports: dict[int, str] = Field(default_factory=_default_sensitive_ports)


class DeploymentFailureDetectorConfig(DetectorConfig):
    """Deployment failure detector configuration."""

    severity: Severity = Severity.CRITICAL
    failed_rds_statuses: list[str] = Field(
        default=[
            "failed",
            "incompatible-parameters",
            "incompatible-restore",
            "inaccessible-encryption-credentials",
        ]
    )
    failed_stack_statuses: list[str] = Field(
        default=[
            "ROLLBACK_COMPLETE",
            "ROLLBACK_FAILED",
            "CREATE_FAILED",
            "DELETE_FAILED",
            "UPDATE_ROLLBACK_COMPLETE",
            "UPDATE_ROLLBACK_FAILED",
        ]
    )
    known_fixes: dict[str, str] = Field(
        default_factory=lambda: {
            "InsufficientInstanceCapacity": (
                "Retry in a different availability zone or with another instance type."
            ),
        }
    )


class DetectorsConfig(BaseModel):
    """Configuration for all detectors."""

    cost_anomaly: CostAnomalyDetectorConfig = Field(
        default_factory=CostAnomalyDetectorConfig
    )
    resource_waste: ResourceWasteDetectorConfig = Field(
        default_factory=ResourceWasteDetectorConfig
    )
    security_risk: SecurityRiskDetectorConfig = Field(
        default_factory=SecurityRiskDetectorConfig
    )
    deployment_failure: DeploymentFailureDetectorConfig = Field(
        default_factory=DeploymentFailureDetectorConfig
    )


class ForecastConfig(BaseModel):
    """Forecast engine configuration."""

    min_samples: int = Field(default=4, ge=2)
    confidence_level: float = Field(default=0.95, gt=0.5, lt=1)
    # Relative weekly slope (slope / mean) treated as flat
    stable_slope_threshold: float = Field(default=0.02, ge=0)
    weeks_per_month: float = Field(default=4.33, gt=0)


class AggregatorConfig(BaseModel):
    """Red-flag aggregation configuration."""

    demo_mode: bool = False  # Run only the cost anomaly detector
    detector_timeout_seconds: float = Field(default=120.0, gt=0)
    aggregation_timeout_seconds: float = Field(default=300.0, gt=0)


class PricingConfig(BaseModel):
    """Static monthly price tables (USD, us-east-1 on-demand)."""

    ec2_instances: dict[str, float] = Field(
        default_factory=lambda: {
            "t2.micro": 8.47,
            "t2.small": 16.79,
            "t2.medium": 33.58,
            "t3.micro": 7.59,
            "t3.small": 15.18,
            "t3.medium": 30.37,
            "t3.large": 60.74,
            "t3.xlarge": 121.47,
            "m5.large": 70.08,
            "m5.xlarge": 140.16,
            "m5.2xlarge": 280.32,
        }
    )
    rds_instances: dict[str, float] = Field(
        default_factory=lambda: {
            "db.t3.micro": 11.59,
            "db.t3.small": 23.18,
            "db.t3.medium": 46.36,
            "db.t3.large": 92.72,
            "db.m5.large": 122.85,
            "db.m5.xlarge": 245.70,
        }
    )
    ec2_default: float = Field(default=50.0, ge=0)
    rds_default: float = Field(default=50.0, ge=0)
    rds_storage_gb: float = Field(default=0.115, ge=0)
    ebs_volume_gb: float = Field(default=0.10, ge=0)  # gp2
    snapshot_gb: float = Field(default=0.05, ge=0)
    elastic_ip: float = Field(default=3.65, ge=0)  # $0.005/hour * 730 hours
    nat_gateway: float = Field(default=32.85, ge=0)

    def ec2_monthly_cost(self, instance_type: str) -> float:
        """Monthly on-demand cost for an EC2 instance type."""
        return self.ec2_instances.get(instance_type, self.ec2_default)

    def rds_monthly_cost(self, instance_class: str, storage_gb: float = 0) -> float:
        """Monthly cost for an RDS instance class plus allocated storage."""
        instance_cost = self.rds_instances.get(instance_class, self.rds_default)
        return instance_cost + storage_gb * self.rds_storage_gb


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_output: bool = False


class Config(BaseModel):
    """Root configuration for AWS Cost Watchdog."""

    project_name: str = "aws-cost-watchdog"
    environment: Literal["dev", "staging", "prod"] = "dev"

    aws: AWSConfig = Field(default_factory=AWSConfig)
    detectors: DetectorsConfig = Field(default_factory=DetectorsConfig)
    forecast: ForecastConfig = Field(default_factory=ForecastConfig)
    aggregator: AggregatorConfig = Field(default_factory=AggregatorConfig)
    pricing: PricingConfig = Field(default_factory=PricingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
