"""Detector contract and the shared run-and-degrade scan helper."""

from __future__ import annotations

import asyncio
import inspect
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from operator import attrgetter
from typing import Any

import structlog

from aws_cost_watchdog.config.schema import DetectorConfig
from aws_cost_watchdog.models.flags import (
    Category,
    DetectionMetadata,
    DetectorInput,
    DetectorOutput,
    RedFlag,
)

logger = structlog.get_logger()

# A scan is a zero-argument callable returning red flags. Plain functions
# (usually blocking boto3 calls) run in a worker thread.
Scan = Callable[[], list[RedFlag]] | Callable[[], Awaitable[list[RedFlag]]]


class ScanAbstained(Exception):
    """Raised by a scan that declines to run, e.g. for lack of history."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass
class ScanOutcome:
    """Result of one scan after degradation."""

    name: str
    red_flags: list[RedFlag] = field(default_factory=list)
    error: str | None = None
    abstain_reason: str | None = None

    @property
    def abstained(self) -> bool:
        return self.abstain_reason is not None


async def run_and_degrade(
    name: str,
    scan: Scan,
    timeout: float,
    detector_id: str = "unknown",
) -> ScanOutcome:
    """
    Run a single scan, converting any failure into an empty outcome.

    Args:
        name: Scan name, used as the key in DetectionMetadata.scan_errors.
        scan: Sync or async zero-argument callable returning red flags.
        timeout: Seconds before the scan is abandoned.
        detector_id: Owning detector, for log context.

    Returns:
        ScanOutcome carrying either the flags, an error string or an abstain reason.
    """
    try:
        if inspect.iscoroutinefunction(scan):
            pending = scan()
        else:
            pending = asyncio.to_thread(scan)
        red_flags = await asyncio.wait_for(pending, timeout=timeout)
        return ScanOutcome(name=name, red_flags=list(red_flags))

    except ScanAbstained as e:
        logger.info("scan_abstained", detector=detector_id, scan=name, reason=e.reason)
        return ScanOutcome(name=name, abstain_reason=e.reason)
    except asyncio.TimeoutError:
        logger.error("scan_timeout", detector=detector_id, scan=name, timeout=timeout)
        return ScanOutcome(name=name, error=f"timed out after {timeout}s")
    except Exception as e:
        logger.error("scan_failed", detector=detector_id, scan=name, error=str(e))
        return ScanOutcome(name=name, error=str(e))


def paginate(client: Any, operation: str, result_key: str, **kwargs: Any) -> Iterator[Any]:
    """
    Iterate over every item of a paginated describe/list call.

    Args:
        client: boto3 client.
        operation: Client method name, e.g. "describe_volumes".
        result_key: Key of the item list in each page.
        **kwargs: Request parameters.
    """
    if client.can_paginate(operation):
        for page in client.get_paginator(operation).paginate(**kwargs):
            yield from page.get(result_key, [])
    else:
        yield from getattr(client, operation)(**kwargs).get(result_key, [])


class Detector(ABC):
    """
    Base class for red-flag detectors.

    Subclasses declare their scans; this class runs them concurrently, isolates
    their failures and drops findings for excluded resources.
    """

    detector_id: str = "detector"
    version: str = "1.0.0"
    category: Category
    # Dotted attribute paths that resolve to boto3 clients
    client_attributes: tuple[str, ...] = ()

    def __init__(self, config: DetectorConfig):
        self.config = config

    @abstractmethod
    def scans(self, detector_input: DetectorInput) -> list[tuple[str, Scan]]:
        """Return (name, scan) pairs in emission order."""

    def open_clients(self) -> None:
        """
        Create every lazily built AWS client on the calling thread.

        Scans run in worker threads and the default boto3 session is not
        thread-safe, so clients must exist before the first scan starts.
        """
        for path in self.client_attributes:
            attrgetter(path)(self)

    def resources_scanned(self, detector_input: DetectorInput) -> int:
        """Number of resources the detector looked at."""
        return detector_input.aws_resources.total_resources

    def empty_output(self, error: str | None = None) -> DetectorOutput:
        """Output for a detector that did not run, or failed as a whole."""
        return DetectorOutput(
            red_flags=[],
            detection_metadata=DetectionMetadata(
                detector_id=self.detector_id,
                detector_version=self.version,
                error=error,
            ),
        )

    async def detect(self, detector_input: DetectorInput) -> DetectorOutput:
        """
        Run every scan and collect their findings.

        Args:
            detector_input: Cost data, inventory and history for one deployment.

        Returns:
            DetectorOutput with flags in scan order and execution metadata.
        """
        if not self.config.enabled:
            return self.empty_output()

        start = time.perf_counter()
        self.open_clients()

        outcomes = await asyncio.gather(
            *(
                run_and_degrade(
                    name, scan, self.config.scan_timeout_seconds, self.detector_id
                )
                for name, scan in self.scans(detector_input)
            )
        )

        red_flags: list[RedFlag] = []
        scan_errors: dict[str, str] = {}
        abstained: list[str] = []
        for outcome in outcomes:
            red_flags.extend(outcome.red_flags)
            if outcome.error is not None:
                scan_errors[outcome.name] = outcome.error
            if outcome.abstained:
                abstained.append(outcome.name)

        red_flags = self._drop_excluded(red_flags, detector_input)

        return DetectorOutput(
            red_flags=red_flags,
            detection_metadata=DetectionMetadata(
                detector_id=self.detector_id,
                detector_version=self.version,
                execution_time_ms=round((time.perf_counter() - start) * 1000, 2),
                resources_scanned=self.resources_scanned(detector_input),
                scan_errors=scan_errors,
                abstained=abstained,
            ),
        )

    def _drop_excluded(
        self, red_flags: list[RedFlag], detector_input: DetectorInput
    ) -> list[RedFlag]:
        """Remove flags for excluded resource ids or resources with excluded tags."""
        excluded = set(self.config.excluded_resources)
        excluded |= detector_input.aws_resources.resource_ids_with_tags(
            self.config.excluded_tags
        )
        if not excluded:
            return red_flags
        return [flag for flag in red_flags if flag.resource_id not in excluded]
