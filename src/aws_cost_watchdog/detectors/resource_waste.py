"""Resource waste detection: idle and unused resources that still cost money."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import boto3

from aws_cost_watchdog.collectors.cloudwatch import CloudWatchMetricsCollector
from aws_cost_watchdog.config.schema import PricingConfig, ResourceWasteDetectorConfig
from aws_cost_watchdog.detectors.base import Detector, Scan, paginate
from aws_cost_watchdog.models.flags import Category, DetectorInput, RedFlag, Severity


class ResourceWasteDetector(Detector):
    """
    Detect resources whose utilization is below configured thresholds.

    Scans:
    - Idle EC2 instances (average CPU)
    - Unassociated Elastic IPs
    - Snapshots older than the retention threshold
    - NAT gateways with almost no outbound traffic
    - EBS volumes that are unattached or see almost no I/O
    - RDS instances using a small share of their allocated storage

    Costs and savings come from the injected price table.
    """

    detector_id = "resource-waste-detector"
    category = Category.RESOURCE_WASTE
    client_attributes = ("ec2_client", "rds_client", "metrics.cloudwatch_client")

    def __init__(
        self,
        config: ResourceWasteDetectorConfig | None = None,
        pricing: PricingConfig | None = None,
        region: str = "us-east-1",
        ec2_client: boto3.client | None = None,
        rds_client: boto3.client | None = None,
        metrics: CloudWatchMetricsCollector | None = None,
    ):
        """
        Initialize the resource waste detector.

        Args:
            config: Resource waste detector configuration.
            pricing: Monthly price tables.
            region: AWS region to scan.
            ec2_client: Optional boto3 EC2 client.
            rds_client: Optional boto3 RDS client.
            metrics: Optional CloudWatch metrics collector.
        """
        super().__init__(config or ResourceWasteDetectorConfig())
        self.thresholds = self.config.thresholds
        self.pricing = pricing or PricingConfig()
        self.region = region
        self._ec2_client = ec2_client
        self._rds_client = rds_client
        self._metrics = metrics

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
    def metrics(self) -> CloudWatchMetricsCollector:
        """Get or create the CloudWatch metrics collector."""
        if self._metrics is None:
            self._metrics = CloudWatchMetricsCollector(region=self.region)
        return self._metrics

    @property
    def days(self) -> int:
        return self.config.scan_period_days

    def scans(self, detector_input: DetectorInput) -> list[tuple[str, Scan]]:
        return [
            ("idle_ec2_instances", self.detect_idle_ec2_instances),
            ("unused_elastic_ips", self.detect_unused_elastic_ips),
            ("old_snapshots", self.detect_old_snapshots),
            ("unused_nat_gateways", self.detect_unused_nat_gateways),
            ("idle_ebs_volumes", self.detect_idle_ebs_volumes),
            ("oversized_rds", self.detect_oversized_rds),
        ]

    def _utilization_severity(self, value: float, threshold: float) -> Severity:
        """Critical once utilization falls below a fraction of the threshold."""
        if value < threshold * self.thresholds.critical_utilization_ratio:
            return Severity.CRITICAL
        return self.config.severity

    def _flag(self, **kwargs) -> RedFlag:
        return RedFlag(category=self.category, **kwargs)

    def detect_idle_ec2_instances(self) -> list[RedFlag]:
        """Flag running instances with average CPU below the threshold."""
        threshold = self.thresholds.max_cpu_utilization_percent
        red_flags: list[RedFlag] = []

        reservations = paginate(
            self.ec2_client,
            "describe_instances",
            "Reservations",
            Filters=[{"Name": "instance-state-name", "Values": ["running"]}],
        )
        for reservation in reservations:
            for instance in reservation.get("Instances", []):
                instance_id = instance.get("InstanceId")
                if not instance_id:
                    continue

                cpu = self.metrics.get_ec2_cpu_utilization(instance_id, self.days)
                if cpu.average is None or cpu.average >= threshold:
                    continue  # No datapoints is not evidence of idleness

                instance_type = instance.get("InstanceType", "unknown")
                monthly_cost = self.pricing.ec2_monthly_cost(instance_type)
                network_mb = self.metrics.get_ec2_network_mb_per_day(instance_id, self.days)

                red_flags.append(
                    self._flag(
                        severity=self._utilization_severity(cpu.average, threshold),
                        title=f"EC2 instance {instance_id} is idle",
                        description=(
                            f"CPU utilization averaged {cpu.average:.1f}% over the last "
                            f"{self.days} days with {network_mb:.1f} MB/day of network "
                            f"traffic. Consider stopping or downsizing this instance."
                        ),
                        resource_id=instance_id,
                        resource_type="EC2",
                        estimated_monthly_cost=monthly_cost,
                        estimated_savings=monthly_cost,
                        auto_fixable=True,
                        fix_command=(
                            f"aws ec2 stop-instances --instance-ids {instance_id} "
                            f"--region {self.region}"
                        ),
                        metadata={
                            "avg_cpu": round(cpu.average, 2),
                            "max_cpu": cpu.maximum,
                            "network_mb_per_day": round(network_mb, 2),
                            "period_days": self.days,
                            "instance_type": instance_type,
                        },
                    )
                )

        return red_flags

    def detect_unused_elastic_ips(self) -> list[RedFlag]:
        """Flag Elastic IPs not associated with anything."""
        red_flags: list[RedFlag] = []
        cost = self.pricing.elastic_ip

        for address in self.ec2_client.describe_addresses().get("Addresses", []):
            if address.get("AssociationId"):
                continue

            public_ip = address.get("PublicIp", "unknown")
            allocation_id = address.get("AllocationId") or public_ip
            red_flags.append(
                self._flag(
                    severity=self.config.severity,
                    title=f"Unused Elastic IP {public_ip}",
                    description=(
                        f"Elastic IP {public_ip} is not associated with any instance or "
                        f"network interface. Unattached addresses are billed hourly."
                    ),
                    resource_id=allocation_id,
                    resource_type="Elastic IP",
                    estimated_monthly_cost=cost,
                    estimated_savings=cost,
                    auto_fixable=True,
                    fix_command=(
                        f"aws ec2 release-address --allocation-id {allocation_id} "
                        f"--region {self.region}"
                    ),
                    metadata={"public_ip": public_ip, "allocation_id": allocation_id},
                )
            )

        return red_flags

    def detect_old_snapshots(self) -> list[RedFlag]:
        """Flag self-owned snapshots older than snapshot_max_age_days."""
        max_age = self.thresholds.snapshot_max_age_days
        cutoff = datetime.now(UTC) - timedelta(days=max_age)
        red_flags: list[RedFlag] = []

        for snapshot in paginate(
            self.ec2_client, "describe_snapshots", "Snapshots", OwnerIds=["self"]
        ):
            start_time = snapshot.get("StartTime")
            if start_time is None or start_time >= cutoff:
                continue

            snapshot_id = snapshot.get("SnapshotId", "unknown")
            size_gb = snapshot.get("VolumeSize", 0)
            cost = round(size_gb * self.pricing.snapshot_gb, 2)
            age_days = (datetime.now(UTC) - start_time).days

            red_flags.append(
                self._flag(
                    severity=Severity.INFO,
                    title=f"Old snapshot {snapshot_id}",
                    description=(
                        f"Snapshot {snapshot_id} ({size_gb} GB) is {age_days} days old, "
                        f"over the {max_age}-day threshold. Consider deleting it if it "
                        f"is no longer needed."
                    ),
                    resource_id=snapshot_id,
                    resource_type="EBS Snapshot",
                    estimated_monthly_cost=cost,
                    estimated_savings=cost,
                    auto_fixable=False,
                    fix_command=(
                        f"aws ec2 delete-snapshot --snapshot-id {snapshot_id} "
                        f"--region {self.region}"
                    ),
                    metadata={
                        "created_at": start_time.isoformat(),
                        "age_days": age_days,
                        "size_gb": size_gb,
                        "description": snapshot.get("Description", ""),
                    },
                )
            )

        return red_flags

    def detect_unused_nat_gateways(self) -> list[RedFlag]:
        """Flag available NAT gateways moving less than the traffic threshold."""
        threshold = self.thresholds.min_network_traffic_mb_per_day
        cost = self.pricing.nat_gateway
        red_flags: list[RedFlag] = []

        for nat_gateway in paginate(self.ec2_client, "describe_nat_gateways", "NatGateways"):
            nat_gateway_id = nat_gateway.get("NatGatewayId")
            if not nat_gateway_id or nat_gateway.get("State") != "available":
                continue

            mb_per_day = self.metrics.get_nat_gateway_mb_per_day(nat_gateway_id, self.days)
            if mb_per_day >= threshold:
                continue

            red_flags.append(
                self._flag(
                    severity=self._utilization_severity(mb_per_day, threshold),
                    title=f"Unused NAT Gateway {nat_gateway_id}",
                    description=(
                        f"NAT Gateway {nat_gateway_id} averaged {mb_per_day:.1f} MB/day "
                        f"over the last {self.days} days. Consider removing it if it is "
                        f"not needed."
                    ),
                    resource_id=nat_gateway_id,
                    resource_type="NAT Gateway",
                    estimated_monthly_cost=cost,
                    estimated_savings=cost,
                    auto_fixable=True,
                    fix_command=(
                        f"aws ec2 delete-nat-gateway --nat-gateway-id {nat_gateway_id} "
                        f"--region {self.region}"
                    ),
                    metadata={
                        "mb_per_day": round(mb_per_day, 2),
                        "period_days": self.days,
                        "vpc_id": nat_gateway.get("VpcId"),
                    },
                )
            )

        return red_flags

    def detect_idle_ebs_volumes(self) -> list[RedFlag]:
        """Flag unattached volumes and attached volumes with almost no I/O."""
        threshold = self.thresholds.min_disk_io_ops_per_day
        red_flags: list[RedFlag] = []

        for volume in paginate(self.ec2_client, "describe_volumes", "Volumes"):
            volume_id = volume.get("VolumeId")
            if not volume_id:
                continue

            state = volume.get("State")
            size_gb = volume.get("Size", 0)
            cost = round(size_gb * self.pricing.ebs_volume_gb, 2)

            if state == "available":
                severity = self.config.severity
                title = f"EBS volume {volume_id} is unattached"
                detail = "is not attached to any instance"
                ops_per_day = 0.0
            elif state == "in-use":
                ops_per_day = self.metrics.get_ebs_ops_per_day(volume_id, self.days)
                if ops_per_day >= threshold:
                    continue
                severity = self._utilization_severity(ops_per_day, threshold)
                title = f"EBS volume {volume_id} is idle"
                detail = (
                    f"averaged {ops_per_day:.0f} read/write operations per day over the "
                    f"last {self.days} days"
                )
            else:
                continue

            red_flags.append(
                self._flag(
                    severity=severity,
                    title=title,
                    description=(
                        f"EBS volume {volume_id} ({size_gb} GB) {detail}. Snapshot and "
                        f"delete it if the data is no longer needed."
                    ),
                    resource_id=volume_id,
                    resource_type="EBS Volume",
                    estimated_monthly_cost=cost,
                    estimated_savings=cost,
                    auto_fixable=False,
                    fix_command=(
                        f"aws ec2 delete-volume --volume-id {volume_id} --region {self.region}"
                    ),
                    metadata={
                        "state": state,
                        "size_gb": size_gb,
                        "volume_type": volume.get("VolumeType"),
                        "ops_per_day": round(ops_per_day, 2),
                    },
                )
            )

        return red_flags

    def detect_oversized_rds(self) -> list[RedFlag]:
        """Flag RDS instances using little of their allocated storage."""
        threshold = self.thresholds.min_storage_utilization_percent
        red_flags: list[RedFlag] = []

        for db_instance in paginate(self.rds_client, "describe_db_instances", "DBInstances"):
            db_instance_id = db_instance.get("DBInstanceIdentifier")
            allocated_gb = db_instance.get("AllocatedStorage", 0)
            if not db_instance_id or allocated_gb <= 0:
                continue

            free_gb = self.metrics.get_rds_free_storage_gb(db_instance_id, self.days)
            if free_gb is None:
                continue

            utilization = max(0.0, (allocated_gb - free_gb) / allocated_gb * 100)
            if utilization >= threshold:
                continue

            instance_class = db_instance.get("DBInstanceClass", "unknown")
            monthly_cost = round(
                self.pricing.rds_monthly_cost(instance_class, allocated_gb), 2
            )
            # Halving the allocation is the suggested resize
            savings = round(allocated_gb * 0.5 * self.pricing.rds_storage_gb, 2)

            red_flags.append(
                self._flag(
                    severity=Severity.INFO,
                    title=f"RDS instance {db_instance_id} is oversized",
                    description=(
                        f"RDS instance {db_instance_id} is using only {utilization:.1f}% "
                        f"of its {allocated_gb} GB allocated storage. Consider reducing "
                        f"the allocation."
                    ),
                    resource_id=db_instance_id,
                    resource_type="RDS",
                    estimated_monthly_cost=monthly_cost,
                    estimated_savings=savings,
                    auto_fixable=False,
                    metadata={
                        "utilization_percent": round(utilization, 2),
                        "allocated_storage_gb": allocated_gb,
                        "avg_free_space_gb": round(free_gb, 2),
                        "instance_class": instance_class,
                        "engine": db_instance.get("Engine"),
                    },
                )
            )

        return red_flags
