"""Red-flag detectors."""

from aws_cost_watchdog.detectors.base import (
    Detector,
    ScanAbstained,
    ScanOutcome,
    run_and_degrade,
)
from aws_cost_watchdog.detectors.baseline import Baseline, service_baseline, total_baseline
from aws_cost_watchdog.detectors.cost_anomaly import CostAnomalyDetector
from aws_cost_watchdog.detectors.deployment_failure import DeploymentFailureDetector
from aws_cost_watchdog.detectors.resource_waste import ResourceWasteDetector
from aws_cost_watchdog.detectors.security_risk import SecurityRiskDetector

__all__ = [
    "Detector",
    "ScanAbstained",
    "ScanOutcome",
    "run_and_degrade",
    "Baseline",
    "service_baseline",
    "total_baseline",
    "CostAnomalyDetector",
    "DeploymentFailureDetector",
    "ResourceWasteDetector",
    "SecurityRiskDetector",
]
