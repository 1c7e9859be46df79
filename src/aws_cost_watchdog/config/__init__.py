"""Configuration management for AWS Cost Watchdog."""

from aws_cost_watchdog.config.schema import (
    AggregatorConfig,
    AWSConfig,
    Config,
    CostAnomalyDetectorConfig,
    DeploymentFailureDetectorConfig,
    DetectorConfig,
    DetectorsConfig,
    ForecastConfig,
    LoggingConfig,
    PricingConfig,
    ResourceWasteDetectorConfig,
    SecurityRiskDetectorConfig,
)
from aws_cost_watchdog.config.loader import get_cached_config, load_config, load_pricing

__all__ = [
    "Config",
    "AWSConfig",
    "DetectorConfig",
    "DetectorsConfig",
    "CostAnomalyDetectorConfig",
    "ResourceWasteDetectorConfig",
    "SecurityRiskDetectorConfig",
    "DeploymentFailureDetectorConfig",
    "ForecastConfig",
    "AggregatorConfig",
    "PricingConfig",
    "LoggingConfig",
    "load_config",
    "load_pricing",
    "get_cached_config",
]
