"""CloudWatch utilization metrics collector."""

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta

import boto3

from aws_cost_watchdog.collectors.base import MetricDataPoint, MetricResult

# GetMetricStatistics returns at most this many datapoints per call
_MAX_DATAPOINTS = 1440

BYTES_PER_MB = 1024 * 1024
BYTES_PER_GB = 1024 * 1024 * 1024


def _period_for(days: int) -> int:
    """Smallest whole-hour period that keeps the window under the datapoint limit."""
    hours = days * 24
    return 3600 * max(1, math.ceil(hours / _MAX_DATAPOINTS))


class CloudWatchMetricsCollector:
    """
    Read utilization statistics from CloudWatch.

    Only GetMetricStatistics is called; nothing is written.
    """

    collector_name = "cloudwatch"

    def __init__(
        self,
        region: str = "us-east-1",
        cloudwatch_client: boto3.client | None = None,
    ):
        """
        Initialize the CloudWatch collector.

        Args:
            region: AWS region of the monitored resources.
            cloudwatch_client: Optional boto3 CloudWatch client.
        """
        self.region = region
        self._cloudwatch_client = cloudwatch_client

    @property
    def cloudwatch_client(self) -> boto3.client:
        """Get or create CloudWatch client."""
        if self._cloudwatch_client is None:
            self._cloudwatch_client = boto3.client("cloudwatch", region_name=self.region)
        return self._cloudwatch_client

    def get_metric(
        self,
        namespace: str,
        metric_name: str,
        dimensions: dict[str, str],
        statistics: list[str],
        days: int = 7,
        end_time: datetime | None = None,
    ) -> MetricResult:
        """
        Get statistics for one metric over the last `days` days.

        Args:
            namespace: CloudWatch namespace, e.g. "AWS/EC2".
            metric_name: Metric name, e.g. "CPUUtilization".
            dimensions: Dimension name to value.
            statistics: Any of Average, Maximum, Minimum, Sum.
            days: Window length.
            end_time: Window end. Defaults to now.

        Returns:
            MetricResult with datapoints sorted by time. Errors propagate.
        """
        end_time = end_time or datetime.now(UTC)
        start_time = end_time - timedelta(days=days)

        response = self.cloudwatch_client.get_metric_statistics(
            Namespace=namespace,
            MetricName=metric_name,
            Dimensions=[{"Name": k, "Value": v} for k, v in dimensions.items()],
            StartTime=start_time,
            EndTime=end_time,
            Period=_period_for(days),
            Statistics=statistics,
        )

        datapoints = response.get("Datapoints", [])
        result = MetricResult(metric_name=metric_name)

        for dp in sorted(datapoints, key=lambda d: d.get("Timestamp") or end_time):
            value = next(
                (dp[s] for s in ("Average", "Sum", "Maximum", "Minimum") if s in dp), 0.0
            )
            result.data_points.append(
                MetricDataPoint(
                    timestamp=dp.get("Timestamp") or end_time,
                    value=float(value),
                    unit=dp.get("Unit", ""),
                )
            )

        averages = [dp["Average"] for dp in datapoints if "Average" in dp]
        if averages:
            result.average = sum(averages) / len(averages)

        maximums = [dp["Maximum"] for dp in datapoints if "Maximum" in dp]
        if maximums:
            result.maximum = max(maximums)

        minimums = [dp["Minimum"] for dp in datapoints if "Minimum" in dp]
        if minimums:
            result.minimum = min(minimums)

        sums = [dp["Sum"] for dp in datapoints if "Sum" in dp]
        if sums:
            result.sum = sum(sums)

        return result

    def get_ec2_cpu_utilization(self, instance_id: str, days: int = 7) -> MetricResult:
        """CPU utilization percent for an EC2 instance."""
        return self.get_metric(
            "AWS/EC2",
            "CPUUtilization",
            {"InstanceId": instance_id},
            ["Average", "Maximum", "Minimum"],
            days,
        )

    def get_ec2_network_mb_per_day(self, instance_id: str, days: int = 7) -> float:
        """Average network in plus out, in MB per day, for an EC2 instance."""
        total_bytes = 0.0
        for metric_name in ("NetworkIn", "NetworkOut"):
            result = self.get_metric(
                "AWS/EC2", metric_name, {"InstanceId": instance_id}, ["Sum"], days
            )
            total_bytes += result.sum or 0.0
        return total_bytes / BYTES_PER_MB / days

    def get_ebs_ops_per_day(self, volume_id: str, days: int = 7) -> float:
        """Average read plus write operations per day for an EBS volume."""
        total_ops = 0.0
        for metric_name in ("VolumeReadOps", "VolumeWriteOps"):
            result = self.get_metric(
                "AWS/EBS", metric_name, {"VolumeId": volume_id}, ["Sum"], days
            )
            total_ops += result.sum or 0.0
        return total_ops / days

    def get_nat_gateway_mb_per_day(self, nat_gateway_id: str, days: int = 7) -> float:
        """Average bytes sent to destinations, in MB per day, for a NAT gateway."""
        result = self.get_metric(
            "AWS/NATGateway",
            "BytesOutToDestination",
            {"NatGatewayId": nat_gateway_id},
            ["Sum"],
            days,
        )
        return (result.sum or 0.0) / BYTES_PER_MB / days

    def get_rds_free_storage_gb(self, db_instance_id: str, days: int = 7) -> float | None:
        """Average free storage in GB for an RDS instance, None without datapoints."""
        result = self.get_metric(
            "AWS/RDS",
            "FreeStorageSpace",
            {"DBInstanceIdentifier": db_instance_id},
            ["Average"],
            days,
        )
        if result.average is None:
            return None
        return result.average / BYTES_PER_GB
