"""Run every detector and merge their findings into one ranked result."""

from __future__ import annotations

import asyncio
import time
from decimal import ROUND_HALF_UP, Decimal

import boto3
import structlog

from aws_cost_watchdog.collectors.cloudwatch import CloudWatchMetricsCollector
from aws_cost_watchdog.config.schema import AggregatorConfig, Config
from aws_cost_watchdog.detectors.base import Detector
from aws_cost_watchdog.detectors.cost_anomaly import CostAnomalyDetector
from aws_cost_watchdog.detectors.deployment_failure import DeploymentFailureDetector
from aws_cost_watchdog.detectors.resource_waste import ResourceWasteDetector
from aws_cost_watchdog.detectors.security_risk import SecurityRiskDetector
from aws_cost_watchdog.exceptions import AggregationError, AggregationTimeoutError
from aws_cost_watchdog.models.cost import CostSummary, ResourceInventory
from aws_cost_watchdog.models.flags import (
    SEVERITY_ORDER,
    AggregationResult,
    Category,
    DetectorInput,
    DetectorOutput,
    RedFlag,
    RedFlagSummary,
    Severity,
)

logger = structlog.get_logger()

CENT = Decimal("0.01")


def merge_red_flags(outputs: list[DetectorOutput]) -> list[RedFlag]:
    """
    Concatenate detector findings, drop duplicates and rank by severity.

    Duplicates share category, resource id and title; the first one emitted
    wins. The sort is stable, so flags of equal severity keep emission order.
    """
    seen: set[tuple[Category, str | None, str]] = set()
    merged: list[RedFlag] = []
    for output in outputs:
        for flag in output.red_flags:
            key = (flag.category, flag.resource_id, flag.title)
            if key in seen:
                continue
            seen.add(key)
            merged.append(flag)

    return sorted(merged, key=lambda flag: SEVERITY_ORDER[flag.severity])


def summarize(red_flags: list[RedFlag]) -> RedFlagSummary:
    """
    Count flags by severity and category and total their savings.

    Savings are accumulated as exact decimals and rounded half-up to cents
    once at the end, so the total does not depend on flag order.
    """
    by_severity = {severity: 0 for severity in Severity}
    by_category = {category: 0 for category in Category}
    savings = Decimal("0")

    for flag in red_flags:
        by_severity[flag.severity] += 1
        by_category[flag.category] += 1
        if flag.estimated_savings is not None:
            savings += Decimal(str(flag.estimated_savings))

    return RedFlagSummary(
        total=len(red_flags),
        by_severity=by_severity,
        by_category=by_category,
        total_potential_savings=float(savings.quantize(CENT, rounding=ROUND_HALF_UP)),
    )


class RedFlagAggregator:
    """
    Fan out to all detectors concurrently and merge their findings.

    A detector that raises or exceeds its timeout contributes an empty output
    whose metadata carries the error; sibling detectors are unaffected. The
    run only fails when no detector produced results or the overall deadline
    passes.
    """

    def __init__(self, detectors: list[Detector], config: AggregatorConfig | None = None):
        """
        Initialize the aggregator.

        Args:
            detectors: Detectors in emission order.
            config: Aggregation configuration.
        """
        self.detectors = detectors
        self.config = config or AggregatorConfig()

    @classmethod
    def from_config(
        cls,
        config: Config,
        region: str | None = None,
        ec2_client: boto3.client | None = None,
        rds_client: boto3.client | None = None,
        s3_client: boto3.client | None = None,
        cloudformation_client: boto3.client | None = None,
        cloudwatch_client: boto3.client | None = None,
    ) -> RedFlagAggregator:
        """
        Build an aggregator with the four standard detectors.

        Args:
            config: Root configuration.
            region: AWS region. Defaults to config.aws.region.
            ec2_client: Optional boto3 EC2 client shared by the detectors.
            rds_client: Optional boto3 RDS client.
            s3_client: Optional boto3 S3 client.
            cloudformation_client: Optional boto3 CloudFormation client.
            cloudwatch_client: Optional boto3 CloudWatch client.
        """
        region = region or config.aws.region
        detectors_config = config.detectors
        metrics = CloudWatchMetricsCollector(region=region, cloudwatch_client=cloudwatch_client)

        detectors: list[Detector] = [
            CostAnomalyDetector(detectors_config.cost_anomaly),
            ResourceWasteDetector(
                detectors_config.resource_waste,
                pricing=config.pricing,
                region=region,
                ec2_client=ec2_client,
                rds_client=rds_client,
                metrics=metrics,
            ),
            SecurityRiskDetector(
                detectors_config.security_risk,
                region=region,
                ec2_client=ec2_client,
                rds_client=rds_client,
                s3_client=s3_client,
            ),
            DeploymentFailureDetector(
                detectors_config.deployment_failure,
                region=region,
                ec2_client=ec2_client,
                rds_client=rds_client,
                cloudformation_client=cloudformation_client,
            ),
        ]
        return cls(detectors, config.aggregator)

    def _is_active(self, detector: Detector) -> bool:
        """Demo mode only runs the cost anomaly detector."""
        return not self.config.demo_mode or detector.category == Category.COST_ANOMALY

    async def _run_detector(
        self, detector: Detector, detector_input: DetectorInput
    ) -> DetectorOutput:
        """Run one detector, converting any failure into an annotated empty output."""
        timeout = self.config.detector_timeout_seconds
        try:
            return await asyncio.wait_for(detector.detect(detector_input), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("detector_timeout", detector=detector.detector_id, timeout=timeout)
            return detector.empty_output(error=f"timed out after {timeout}s")
        except Exception as e:
            logger.error("detector_failed", detector=detector.detector_id, error=str(e))
            return detector.empty_output(error=str(e))

    async def _run_if_active(
        self, detector: Detector, detector_input: DetectorInput
    ) -> DetectorOutput:
        if not self._is_active(detector):
            return detector.empty_output()
        return await self._run_detector(detector, detector_input)

    async def detect_all_red_flags(
        self,
        deployment_id: str,
        cost_data: CostSummary,
        aws_resources: ResourceInventory,
        historical_data: list[CostSummary] | None = None,
    ) -> AggregationResult:
        """
        Run all detectors and return their ranked, summarized findings.

        Args:
            deployment_id: Deployment being analyzed.
            cost_data: Current week's cost summary.
            aws_resources: Resource inventory for the deployment.
            historical_data: Previous weekly summaries, oldest to newest.

        Returns:
            AggregationResult with flags sorted critical first.

        Raises:
            AggregationTimeoutError: If the whole run exceeds its deadline.
            AggregationError: If every active detector failed.
        """
        detector_input = DetectorInput(
            deployment_id=deployment_id,
            cost_data=cost_data,
            aws_resources=aws_resources,
            historical_data=historical_data or [],
        )
        deadline = self.config.aggregation_timeout_seconds
        start = time.perf_counter()

        with structlog.contextvars.bound_contextvars(deployment_id=deployment_id):
            try:
                outputs = await asyncio.wait_for(
                    asyncio.gather(
                        *(self._run_if_active(d, detector_input) for d in self.detectors)
                    ),
                    timeout=deadline,
                )
            except asyncio.TimeoutError as e:
                logger.error("aggregation_timeout", timeout=deadline)
                raise AggregationTimeoutError(
                    f"Aggregation exceeded {deadline}s",
                    code="aggregation_timeout",
                    details={"deployment_id": deployment_id, "timeout": deadline},
                ) from e

            active = [
                output
                for detector, output in zip(self.detectors, outputs)
                if self._is_active(detector) and detector.config.enabled
            ]
            if active and all(output.detection_metadata.failed for output in active):
                errors = {
                    o.detection_metadata.detector_id: o.detection_metadata.error
                    for o in active
                }
                logger.error("aggregation_failed", errors=errors)
                raise AggregationError(
                    "No detector produced results",
                    code="all_detectors_failed",
                    details={"deployment_id": deployment_id, "errors": errors},
                )

            red_flags = merge_red_flags(outputs)
            summary = summarize(red_flags)

            logger.info(
                "aggregation_complete",
                total=summary.total,
                critical=summary.by_severity[Severity.CRITICAL],
                savings=summary.total_potential_savings,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )

        return AggregationResult(
            red_flags=red_flags,
            summary=summary,
            detections=[output.detection_metadata for output in outputs],
        )

    def _detector_for(self, category: Category) -> Detector:
        for detector in self.detectors:
            if detector.category == category:
                return detector
        raise AggregationError(
            f"No {category.value} detector registered", code="detector_not_registered"
        )

    async def _detect_single(
        self,
        category: Category,
        deployment_id: str,
        cost_data: CostSummary,
        aws_resources: ResourceInventory,
        historical_data: list[CostSummary] | None,
    ) -> DetectorOutput:
        detector_input = DetectorInput(
            deployment_id=deployment_id,
            cost_data=cost_data,
            aws_resources=aws_resources,
            historical_data=historical_data or [],
        )
        return await self._run_detector(self._detector_for(category), detector_input)

    async def detect_cost_anomalies(
        self,
        deployment_id: str,
        cost_data: CostSummary,
        aws_resources: ResourceInventory,
        historical_data: list[CostSummary] | None = None,
    ) -> DetectorOutput:
        """Run only the cost anomaly detector."""
        return await self._detect_single(
            Category.COST_ANOMALY, deployment_id, cost_data, aws_resources, historical_data
        )

    async def detect_resource_waste(
        self,
        deployment_id: str,
        cost_data: CostSummary,
        aws_resources: ResourceInventory,
        historical_data: list[CostSummary] | None = None,
    ) -> DetectorOutput:
        """Run only the resource waste detector."""
        return await self._detect_single(
            Category.RESOURCE_WASTE, deployment_id, cost_data, aws_resources, historical_data
        )

    async def detect_security_risks(
        self,
        deployment_id: str,
        cost_data: CostSummary,
        aws_resources: ResourceInventory,
        historical_data: list[CostSummary] | None = None,
    ) -> DetectorOutput:
        """Run only the security risk detector."""
        return await self._detect_single(
            Category.SECURITY_RISK, deployment_id, cost_data, aws_resources, historical_data
        )

    async def detect_deployment_failures(
        self,
        deployment_id: str,
        cost_data: CostSummary,
        aws_resources: ResourceInventory,
        historical_data: list[CostSummary] | None = None,
    ) -> DetectorOutput:
        """Run only the deployment failure detector."""
        return await self._detect_single(
            Category.DEPLOYMENT_FAILURE, deployment_id, cost_data, aws_resources, historical_data
        )
