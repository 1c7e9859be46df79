"""Tests for resource waste detection."""

from datetime import UTC, datetime, timedelta

import pytest

from aws_cost_watchdog.collectors.cloudwatch import (
    BYTES_PER_GB,
    BYTES_PER_MB,
    CloudWatchMetricsCollector,
)
from aws_cost_watchdog.config.schema import PricingConfig, ResourceWasteDetectorConfig
from aws_cost_watchdog.detectors.resource_waste import ResourceWasteDetector
from aws_cost_watchdog.models.flags import Category, Severity

NOW = datetime.now(UTC)


def metric_responses(metrics: dict[tuple[str, str], dict]):
    """side_effect for get_metric_statistics keyed by (metric name, dimension value)."""

    def get_metric_statistics(**kwargs):
        key = (kwargs["MetricName"], kwargs["Dimensions"][0]["Value"])
        datapoint = metrics.get(key)
        if datapoint is None:
            return {"Datapoints": []}
        return {"Datapoints": [{"Timestamp": NOW, **datapoint}]}

    return get_metric_statistics


@pytest.fixture
def make_detector(ec2_client, rds_client, cloudwatch_client):
    """Build a detector wired to the mocked clients."""

    def _make(config: ResourceWasteDetectorConfig | None = None, pricing=None):
        return ResourceWasteDetector(
            config,
            pricing=pricing,
            region="us-east-1",
            ec2_client=ec2_client,
            rds_client=rds_client,
            metrics=CloudWatchMetricsCollector(cloudwatch_client=cloudwatch_client),
        )

    return _make


def running_instance(instance_id: str, instance_type: str = "t3.medium") -> dict:
    return {"Instances": [{"InstanceId": instance_id, "InstanceType": instance_type}]}


class TestIdleEC2:
    """Tests for idle EC2 detection."""

    def test_idle_instance_is_critical(self, make_detector, ec2_client, cloudwatch_client):
        """Test that 0.5% CPU on a known type is critical with price-table savings."""
        ec2_client.describe_instances.return_value = {
            "Reservations": [running_instance("i-idle")]
        }
        cloudwatch_client.get_metric_statistics.side_effect = metric_responses(
            {("CPUUtilization", "i-idle"): {"Average": 0.5, "Maximum": 2.0, "Minimum": 0.1}}
        )

        flags = make_detector().detect_idle_ec2_instances()

        assert len(flags) == 1
        flag = flags[0]
        assert flag.category == Category.RESOURCE_WASTE
        assert flag.severity == Severity.CRITICAL
        assert flag.resource_id == "i-idle"
        assert flag.estimated_savings == 30.37
        assert flag.estimated_monthly_cost == 30.37
        assert flag.auto_fixable
        assert flag.fix_command == (
            "aws ec2 stop-instances --instance-ids i-idle --region us-east-1"
        )
        assert flag.metadata["avg_cpu"] == 0.5

    def test_low_cpu_uses_configured_severity(
        self, make_detector, ec2_client, cloudwatch_client
    ):
        ec2_client.describe_instances.return_value = {
            "Reservations": [running_instance("i-quiet")]
        }
        cloudwatch_client.get_metric_statistics.side_effect = metric_responses(
            {("CPUUtilization", "i-quiet"): {"Average": 3.0}}
        )

        flags = make_detector().detect_idle_ec2_instances()
        assert flags[0].severity == Severity.WARNING

    def test_busy_instance_not_flagged(self, make_detector, ec2_client, cloudwatch_client):
        ec2_client.describe_instances.return_value = {
            "Reservations": [running_instance("i-busy")]
        }
        cloudwatch_client.get_metric_statistics.side_effect = metric_responses(
            {("CPUUtilization", "i-busy"): {"Average": 45.0}}
        )
        assert make_detector().detect_idle_ec2_instances() == []

    def test_missing_metrics_not_flagged(self, make_detector, ec2_client):
        """Test that an instance without datapoints is not assumed idle."""
        ec2_client.describe_instances.return_value = {
            "Reservations": [running_instance("i-new")]
        }
        assert make_detector().detect_idle_ec2_instances() == []

    def test_unknown_type_uses_default_price(
        self, make_detector, ec2_client, cloudwatch_client
    ):
        ec2_client.describe_instances.return_value = {
            "Reservations": [running_instance("i-odd", "x9.huge")]
        }
        cloudwatch_client.get_metric_statistics.side_effect = metric_responses(
            {("CPUUtilization", "i-odd"): {"Average": 0.2}}
        )
        detector = make_detector(pricing=PricingConfig(ec2_default=77.0))
        flags = detector.detect_idle_ec2_instances()
        assert flags[0].estimated_savings == 77.0

    def test_only_running_instances_requested(self, make_detector, ec2_client):
        make_detector().detect_idle_ec2_instances()
        ec2_client.describe_instances.assert_called_once_with(
            Filters=[{"Name": "instance-state-name", "Values": ["running"]}]
        )


class TestElasticIPs:
    def test_unassociated_address(self, make_detector, ec2_client):
        ec2_client.describe_addresses.return_value = {
            "Addresses": [
                {"PublicIp": "203.0.113.10", "AllocationId": "eipalloc-1"},
                {
                    "PublicIp": "203.0.113.11",
                    "AllocationId": "eipalloc-2",
                    "AssociationId": "eipassoc-2",
                },
            ]
        }
        flags = make_detector().detect_unused_elastic_ips()

        assert [f.resource_id for f in flags] == ["eipalloc-1"]
        assert flags[0].estimated_savings == 3.65
        assert "release-address --allocation-id eipalloc-1" in flags[0].fix_command


class TestSnapshots:
    def test_old_snapshot(self, make_detector, ec2_client):
        ec2_client.describe_snapshots.return_value = {
            "Snapshots": [
                {
                    "SnapshotId": "snap-old",
                    "VolumeSize": 100,
                    "StartTime": NOW - timedelta(days=200),
                },
                {
                    "SnapshotId": "snap-new",
                    "VolumeSize": 100,
                    "StartTime": NOW - timedelta(days=5),
                },
            ]
        }
        flags = make_detector().detect_old_snapshots()

        assert [f.resource_id for f in flags] == ["snap-old"]
        assert flags[0].severity == Severity.INFO
        assert flags[0].estimated_savings == 5.0
        assert not flags[0].auto_fixable
        assert flags[0].metadata["age_days"] >= 199

    def test_retention_is_configurable(self, make_detector, ec2_client):
        ec2_client.describe_snapshots.return_value = {
            "Snapshots": [
                {
                    "SnapshotId": "snap-1",
                    "VolumeSize": 10,
                    "StartTime": NOW - timedelta(days=40),
                },
            ]
        }
        config = ResourceWasteDetectorConfig(thresholds={"snapshot_max_age_days": 30})
        assert len(make_detector(config).detect_old_snapshots()) == 1


class TestNatGateways:
    def test_unused_nat_gateway(self, make_detector, ec2_client, cloudwatch_client):
        ec2_client.describe_nat_gateways.return_value = {
            "NatGateways": [
                {"NatGatewayId": "nat-quiet", "State": "available", "VpcId": "vpc-1"},
                {"NatGatewayId": "nat-busy", "State": "available", "VpcId": "vpc-1"},
                {"NatGatewayId": "nat-gone", "State": "deleted", "VpcId": "vpc-1"},
            ]
        }
        cloudwatch_client.get_metric_statistics.side_effect = metric_responses(
            {
                ("BytesOutToDestination", "nat-quiet"): {"Sum": 7 * 5 * BYTES_PER_MB},
                ("BytesOutToDestination", "nat-busy"): {"Sum": 7 * 5000 * BYTES_PER_MB},
            }
        )
        flags = make_detector().detect_unused_nat_gateways()

        assert [f.resource_id for f in flags] == ["nat-quiet"]
        assert flags[0].metadata["mb_per_day"] == pytest.approx(5.0)
        assert flags[0].severity == Severity.WARNING
        assert flags[0].estimated_savings == 32.85

    def test_silent_nat_gateway_is_critical(self, make_detector, ec2_client):
        ec2_client.describe_nat_gateways.return_value = {
            "NatGateways": [{"NatGatewayId": "nat-silent", "State": "available"}]
        }
        flags = make_detector().detect_unused_nat_gateways()
        assert flags[0].severity == Severity.CRITICAL


class TestEBSVolumes:
    def test_unattached_volume(self, make_detector, ec2_client):
        ec2_client.describe_volumes.return_value = {
            "Volumes": [{"VolumeId": "vol-loose", "State": "available", "Size": 50}]
        }
        flags = make_detector().detect_idle_ebs_volumes()

        assert len(flags) == 1
        assert flags[0].title == "EBS volume vol-loose is unattached"
        assert flags[0].estimated_savings == 5.0

    def test_idle_attached_volume(self, make_detector, ec2_client, cloudwatch_client):
        ec2_client.describe_volumes.return_value = {
            "Volumes": [
                {"VolumeId": "vol-idle", "State": "in-use", "Size": 20},
                {"VolumeId": "vol-busy", "State": "in-use", "Size": 20},
            ]
        }
        cloudwatch_client.get_metric_statistics.side_effect = metric_responses(
            {
                ("VolumeReadOps", "vol-idle"): {"Sum": 70},
                ("VolumeReadOps", "vol-busy"): {"Sum": 70_000},
            }
        )
        flags = make_detector().detect_idle_ebs_volumes()

        assert [f.resource_id for f in flags] == ["vol-idle"]
        assert flags[0].metadata["ops_per_day"] == 10.0
        assert flags[0].severity == Severity.CRITICAL


class TestOversizedRDS:
    def test_mostly_empty_database(self, make_detector, rds_client, cloudwatch_client):
        rds_client.describe_db_instances.return_value = {
            "DBInstances": [
                {
                    "DBInstanceIdentifier": "db-big",
                    "DBInstanceClass": "db.t3.small",
                    "AllocatedStorage": 100,
                    "Engine": "postgres",
                }
            ]
        }
        cloudwatch_client.get_metric_statistics.side_effect = metric_responses(
            {("FreeStorageSpace", "db-big"): {"Average": 95 * BYTES_PER_GB}}
        )
        flags = make_detector().detect_oversized_rds()

        assert len(flags) == 1
        assert flags[0].severity == Severity.INFO
        assert flags[0].metadata["utilization_percent"] == pytest.approx(5.0)
        assert flags[0].estimated_savings == pytest.approx(5.75)
        assert flags[0].estimated_monthly_cost == pytest.approx(34.68)

    def test_no_storage_metrics(self, make_detector, rds_client):
        rds_client.describe_db_instances.return_value = {
            "DBInstances": [{"DBInstanceIdentifier": "db-new", "AllocatedStorage": 100}]
        }
        assert make_detector().detect_oversized_rds() == []


class TestDetect:
    @pytest.mark.asyncio
    async def test_failed_scan_is_isolated(
        self, make_detector, ec2_client, rds_client, detector_input
    ):
        """Test that an API error in one scan leaves the others' findings intact."""
        ec2_client.describe_addresses.return_value = {
            "Addresses": [{"PublicIp": "203.0.113.10", "AllocationId": "eipalloc-1"}]
        }
        rds_client.describe_db_instances.side_effect = RuntimeError("AccessDenied")

        output = await make_detector().detect(detector_input)

        assert [f.resource_id for f in output.red_flags] == ["eipalloc-1"]
        assert output.detection_metadata.scan_errors == {"oversized_rds": "AccessDenied"}
        assert output.detection_metadata.detector_id == "resource-waste-detector"
