"""Tests for the detector base class and the run-and-degrade helper."""

import asyncio
import threading
import time
from collections import Counter
from unittest.mock import MagicMock, patch

import pytest

from aws_cost_watchdog.config.schema import DetectorConfig
from aws_cost_watchdog.detectors.base import (
    Detector,
    ScanAbstained,
    paginate,
    run_and_degrade,
)
from aws_cost_watchdog.detectors.deployment_failure import DeploymentFailureDetector
from aws_cost_watchdog.detectors.resource_waste import ResourceWasteDetector
from aws_cost_watchdog.detectors.security_risk import SecurityRiskDetector
from aws_cost_watchdog.models.flags import Category, RedFlag, Severity


def make_flag(resource_id: str, severity: Severity = Severity.WARNING) -> RedFlag:
    return RedFlag(
        category=Category.RESOURCE_WASTE,
        severity=severity,
        title=f"Finding for {resource_id}",
        description="test finding",
        resource_id=resource_id,
    )


class StubDetector(Detector):
    """Detector whose scans are supplied by the test."""

    detector_id = "stub-detector"
    category = Category.RESOURCE_WASTE

    def __init__(self, scans, config: DetectorConfig | None = None):
        super().__init__(config or DetectorConfig())
        self._scans = scans

    def scans(self, detector_input):
        return self._scans


class TestRunAndDegrade:
    """Tests for run_and_degrade."""

    @pytest.mark.asyncio
    async def test_sync_scan(self):
        outcome = await run_and_degrade("sync", lambda: [make_flag("i-1")], timeout=5)
        assert outcome.error is None
        assert [f.resource_id for f in outcome.red_flags] == ["i-1"]

    @pytest.mark.asyncio
    async def test_async_scan(self):
        async def scan():
            return [make_flag("i-2")]

        outcome = await run_and_degrade("async", scan, timeout=5)
        assert [f.resource_id for f in outcome.red_flags] == ["i-2"]

    @pytest.mark.asyncio
    async def test_exception_becomes_error(self):
        """Test that a raising scan yields no flags and a recorded error."""

        def scan():
            raise RuntimeError("AccessDenied")

        outcome = await run_and_degrade("broken", scan, timeout=5)
        assert outcome.red_flags == []
        assert outcome.error == "AccessDenied"
        assert not outcome.abstained

    @pytest.mark.asyncio
    async def test_timeout_becomes_error(self):
        async def scan():
            await asyncio.sleep(10)
            return []

        outcome = await run_and_degrade("slow", scan, timeout=0.01)
        assert outcome.red_flags == []
        assert "timed out" in outcome.error

    @pytest.mark.asyncio
    async def test_abstain_is_not_an_error(self):
        def scan():
            raise ScanAbstained("2 historical weeks, need 3")

        outcome = await run_and_degrade("spike", scan, timeout=5)
        assert outcome.abstained
        assert outcome.error is None
        assert outcome.abstain_reason == "2 historical weeks, need 3"


class TestDetector:
    """Tests for Detector.detect."""

    @pytest.mark.asyncio
    async def test_flags_keep_scan_order(self, detector_input):
        """Test that flags are emitted in scan order regardless of completion order."""

        def slow():
            time.sleep(0.05)
            return [make_flag("first")]

        detector = StubDetector([("slow", slow), ("fast", lambda: [make_flag("second")])])
        output = await detector.detect(detector_input)
        assert [f.resource_id for f in output.red_flags] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_failing_scan_is_isolated(self, detector_input):
        """Test that one failing scan does not hide the others' findings."""

        def broken():
            raise ValueError("throttled")

        detector = StubDetector(
            [("ok", lambda: [make_flag("vol-1")]), ("broken", broken)]
        )
        output = await detector.detect(detector_input)

        assert [f.resource_id for f in output.red_flags] == ["vol-1"]
        metadata = output.detection_metadata
        assert metadata.scan_errors == {"broken": "throttled"}
        assert metadata.error is None
        assert not metadata.failed

    @pytest.mark.asyncio
    async def test_metadata(self, detector_input):
        detector = StubDetector([("ok", lambda: [])])
        metadata = (await detector.detect(detector_input)).detection_metadata

        assert metadata.detector_id == "stub-detector"
        assert metadata.detector_version == "1.0.0"
        assert metadata.resources_scanned == detector_input.aws_resources.total_resources
        assert metadata.execution_time_ms >= 0

    @pytest.mark.asyncio
    async def test_abstained_scans_listed(self, detector_input):
        def abstain():
            raise ScanAbstained("no history")

        detector = StubDetector([("abstain", abstain)])
        metadata = (await detector.detect(detector_input)).detection_metadata
        assert metadata.abstained == ["abstain"]
        assert metadata.scan_errors == {}

    @pytest.mark.asyncio
    async def test_disabled_detector_returns_empty(self, detector_input):
        def never():
            raise AssertionError("scan should not run")

        detector = StubDetector([("never", never)], DetectorConfig(enabled=False))
        output = await detector.detect(detector_input)
        assert output.red_flags == []
        assert output.detection_metadata.scan_errors == {}

    @pytest.mark.asyncio
    async def test_excluded_resources_dropped(self, detector_input):
        config = DetectorConfig(excluded_resources=["i-excluded"])
        detector = StubDetector(
            [("scan", lambda: [make_flag("i-excluded"), make_flag("i-kept")])], config
        )
        output = await detector.detect(detector_input)
        assert [f.resource_id for f in output.red_flags] == ["i-kept"]

    @pytest.mark.asyncio
    async def test_excluded_tags_dropped(self, detector_input):
        """Test that resources carrying an excluded tag are dropped."""
        config = DetectorConfig(excluded_tags={"Name": "web-server-1"})
        detector = StubDetector(
            [
                (
                    "scan",
                    lambda: [make_flag("i-0123456789abcdef0"), make_flag("i-0987654321fedcba")],
                )
            ],
            config,
        )
        output = await detector.detect(detector_input)
        assert [f.resource_id for f in output.red_flags] == ["i-0987654321fedcba"]

    def test_empty_output_carries_error(self):
        output = StubDetector([]).empty_output(error="boom")
        assert output.red_flags == []
        assert output.detection_metadata.failed


class TestClientCreation:
    """Tests for creating boto3 clients before scans run in worker threads."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("detector_class", "services"),
        [
            (ResourceWasteDetector, {"ec2", "rds", "cloudwatch"}),
            (SecurityRiskDetector, {"ec2", "rds", "s3"}),
            (DeploymentFailureDetector, {"ec2", "rds", "cloudformation"}),
        ],
    )
    async def test_each_client_created_once_on_calling_thread(
        self, detector_input, detector_class, services
    ):
        created = []

        def slow_client(service_name, **kwargs):
            created.append((service_name, threading.get_ident()))
            time.sleep(0.02)
            return MagicMock()

        with patch("boto3.client", side_effect=slow_client):
            await detector_class().detect(detector_input)

        assert Counter(name for name, _ in created) == Counter(services)
        assert {thread for _, thread in created} == {threading.get_ident()}

    def test_open_clients_keeps_injected_clients(self, ec2_client, rds_client, s3_client):
        detector = SecurityRiskDetector(
            ec2_client=ec2_client, rds_client=rds_client, s3_client=s3_client
        )
        with patch("boto3.client") as factory:
            detector.open_clients()
        factory.assert_not_called()
        assert detector.ec2_client is ec2_client


class TestPaginate:
    """Tests for paginate."""

    def test_without_paginator(self, client_factory):
        client = client_factory()
        client.describe_volumes.return_value = {"Volumes": [{"VolumeId": "vol-1"}]}
        assert list(paginate(client, "describe_volumes", "Volumes")) == [{"VolumeId": "vol-1"}]

    def test_with_paginator(self, client_factory):
        client = client_factory()
        client.can_paginate.return_value = True
        client.get_paginator.return_value.paginate.return_value = [
            {"Volumes": [{"VolumeId": "vol-1"}]},
            {"Volumes": [{"VolumeId": "vol-2"}]},
            {},
        ]
        volumes = list(paginate(client, "describe_volumes", "Volumes", MaxResults=5))
        assert [v["VolumeId"] for v in volumes] == ["vol-1", "vol-2"]
        client.get_paginator.return_value.paginate.assert_called_once_with(MaxResults=5)
