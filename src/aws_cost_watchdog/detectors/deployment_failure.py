"""Deployment failure detection."""

from __future__ import annotations

import boto3

from aws_cost_watchdog.config.schema import DeploymentFailureDetectorConfig
from aws_cost_watchdog.detectors.base import Detector, Scan, paginate
from aws_cost_watchdog.models.flags import Category, DetectorInput, RedFlag, Severity

CAPACITY_ERROR = "InsufficientInstanceCapacity"


class DeploymentFailureDetector(Detector):
    """
    Detect failed or unhealthy deployments.

    Signals: instances terminated for lack of capacity, running instances
    failing status checks, RDS instances in a failed status, and
    CloudFormation stacks that rolled back or failed. Every finding is
    critical and needs a human to fix it.
    """

    detector_id = "deployment-failure-detector"
    category = Category.DEPLOYMENT_FAILURE
    client_attributes = ("ec2_client", "rds_client", "cloudformation_client")

    def __init__(
        self,
        config: DeploymentFailureDetectorConfig | None = None,
        region: str = "us-east-1",
        ec2_client: boto3.client | None = None,
        rds_client: boto3.client | None = None,
        cloudformation_client: boto3.client | None = None,
    ):
        """
        Initialize the deployment failure detector.

        Args:
            config: Deployment failure detector configuration.
            region: AWS region to scan.
            ec2_client: Optional boto3 EC2 client.
            rds_client: Optional boto3 RDS client.
            cloudformation_client: Optional boto3 CloudFormation client.
        """
        super().__init__(config or DeploymentFailureDetectorConfig())
        self.region = region
        self._ec2_client = ec2_client
        self._rds_client = rds_client
        self._cloudformation_client = cloudformation_client

    @property
    def ec2_client(self) -> boto3.client:
        """Get or create EC2 client."""
        if self._ec2_client is None:
            self._ec2_client = boto3.client("ec2", region_name=self.region)
        return self._ec2_client

    @property
    def rds_client(self) -> boto3.client:
        """Get or create RDS client."""
        if self._rds_client is None:
            self._rds_client = boto3.client("rds", region_name=self.region)
        return self._rds_client

    @property
    def cloudformation_client(self) -> boto3.client:
        """Get or create CloudFormation client."""
        if self._cloudformation_client is None:
            self._cloudformation_client = boto3.client(
                "cloudformation", region_name=self.region
            )
        return self._cloudformation_client

    def scans(self, detector_input: DetectorInput) -> list[tuple[str, Scan]]:
        return [
            ("capacity_failures", self.detect_capacity_failures),
            ("impaired_instances", self.detect_impaired_instances),
            ("failed_rds_instances", self.detect_failed_rds_instances),
            ("failed_stacks", self.detect_failed_stacks),
        ]

    def known_fix(self, error_code: str) -> str:
        """Remediation text for an error code, with a generic fallback."""
        return self.config.known_fixes.get(
            error_code, "This is usually a temporary AWS issue; retry the deployment."
        )

    def _flag(self, **kwargs) -> RedFlag:
        return RedFlag(
            category=self.category,
            severity=Severity.CRITICAL,
            auto_fixable=False,
            **kwargs,
        )

    def detect_capacity_failures(self) -> list[RedFlag]:
        """Flag instances terminated because AWS had no capacity for them."""
        red_flags: list[RedFlag] = []

        reservations = paginate(
            self.ec2_client,
            "describe_instances",
            "Reservations",
            Filters=[{"Name": "instance-state-name", "Values": ["terminated"]}],
        )
        for reservation in reservations:
            for instance in reservation.get("Instances", []):
                instance_id = instance.get("InstanceId")
                reasons = (
                    instance.get("StateReason", {}).get("Code", ""),
                    instance.get("StateTransitionReason", ""),
                )
                if not instance_id or not any(
                    f"Server.{CAPACITY_ERROR}" in reason for reason in reasons
                ):
                    continue

                zone = instance.get("Placement", {}).get("AvailabilityZone", "unknown")
                fix = self.known_fix(CAPACITY_ERROR)
                red_flags.append(
                    self._flag(
                        title=f"EC2 instance {instance_id} failed to launch",
                        description=(
                            f"Instance launch failed due to {CAPACITY_ERROR} in {zone}. {fix}"
                        ),
                        resource_id=instance_id,
                        resource_type="EC2",
                        metadata={
                            "error_code": CAPACITY_ERROR,
                            "availability_zone": zone,
                            "instance_type": instance.get("InstanceType"),
                            "suggested_fix": fix,
                        },
                    )
                )

        return red_flags

    def detect_impaired_instances(self) -> list[RedFlag]:
        """Flag running instances failing instance or system status checks."""
        red_flags: list[RedFlag] = []

        for status in paginate(self.ec2_client, "describe_instance_status", "InstanceStatuses"):
            instance_status = status.get("InstanceStatus", {}).get("Status")
            system_status = status.get("SystemStatus", {}).get("Status")
            if "impaired" not in (instance_status, system_status):
                continue

            instance_id = status.get("InstanceId", "unknown")
            red_flags.append(
                self._flag(
                    title=f"EC2 instance {instance_id} has impaired status",
                    description=(
                        f"Instance {instance_id} is running but failing status checks "
                        f"(instance: {instance_status}, system: {system_status})."
                    ),
                    resource_id=instance_id,
                    resource_type="EC2",
                    metadata={
                        "instance_status": instance_status,
                        "system_status": system_status,
                        "availability_zone": status.get("AvailabilityZone"),
                    },
                )
            )

        return red_flags

    def detect_failed_rds_instances(self) -> list[RedFlag]:
        """Flag RDS instances in a configured failed status."""
        failed_statuses = set(self.config.failed_rds_statuses)
        red_flags: list[RedFlag] = []

        for db_instance in paginate(self.rds_client, "describe_db_instances", "DBInstances"):
            db_instance_id = db_instance.get("DBInstanceIdentifier")
            status = db_instance.get("DBInstanceStatus")
            if not db_instance_id or status not in failed_statuses:
                continue

            red_flags.append(
                self._flag(
                    title=f"RDS instance {db_instance_id} creation failed",
                    description=(
                        f"RDS instance {db_instance_id} is in {status} status. Check its "
                        f"parameter group, restore source and KMS key access."
                    ),
                    resource_id=db_instance_id,
                    resource_type="RDS",
                    metadata={
                        "status": status,
                        "engine": db_instance.get("Engine"),
                        "engine_version": db_instance.get("EngineVersion"),
                    },
                )
            )

        return red_flags

    def detect_failed_stacks(self) -> list[RedFlag]:
        """Flag CloudFormation stacks in a configured rollback or failed status."""
        red_flags: list[RedFlag] = []

        stacks = paginate(
            self.cloudformation_client,
            "list_stacks",
            "StackSummaries",
            StackStatusFilter=list(self.config.failed_stack_statuses),
        )
        for stack in stacks:
            stack_name = stack.get("StackName")
            status = stack.get("StackStatus")
            if not stack_name or status not in self.config.failed_stack_statuses:
                continue

            reason = stack.get("StackStatusReason") or "No reason provided"
            creation_time = stack.get("CreationTime")
            red_flags.append(
                self._flag(
                    title=f"CloudFormation stack {stack_name} failed",
                    description=f"Stack {stack_name} is in {status} status. Reason: {reason}",
                    resource_id=stack.get("StackId") or stack_name,
                    resource_type="CloudFormation Stack",
                    metadata={
                        "status": status,
                        "status_reason": reason,
                        "creation_time": creation_time.isoformat() if creation_time else None,
                    },
                )
            )

        return red_flags
