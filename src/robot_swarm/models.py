"""Run state and result models for robot-swarm.

Dataclasses describe results passed between components during a run; the
pydantic models are what gets serialized to the output directory.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel

# Robot Framework exit codes: 1-249 failed tests, 250 means 250 or more.
ENGINE_MAX_FAILED_RC = 250


class UnitState(str, Enum):
    """Lifecycle state of an execution unit.

    Attributes:
        STARTING: Process launched, not yet known to be usable.
        READY: Settled (and healthy, when checked); suites may target it.
        RUNNING: The suite sequence is using the unit.
        TERMINATED: Stopped, or failed to start.
    """

    STARTING = "starting"
    READY = "ready"
    RUNNING = "running"
    TERMINATED = "terminated"


class RunStatus(str, Enum):
    """Outcome of one device running one suite.

    Attributes:
        PASSED: All tests passed.
        FAILED: The engine ran and reported failing tests.
        ERROR: The engine could not run, crashed or timed out.
    """

    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"

    @classmethod
    def from_returncode(cls, returncode: int) -> RunStatus:
        """Map a Robot Framework exit code to a status."""
        if returncode == 0:
            return cls.PASSED
        if 0 < returncode <= ENGINE_MAX_FAILED_RC:
            return cls.FAILED
        return cls.ERROR


@dataclass(frozen=True)
class Suite:
    """One test suite file.

    Attributes:
        path: Path to the suite file.
        name: Deterministic key used to name staged artifacts.
        display_name: Name shown in progress output.
    """

    path: Path
    name: str
    display_name: str


@dataclass(frozen=True)
class DeviceRunResult:
    """Result of one device running one suite.

    Attributes:
        tag: Device tag.
        status: Run outcome.
        returncode: Engine exit code, or None if it never exited normally.
        artifact: Staged artifact path, or None if nothing was produced.
        message: Human-readable detail.
    """

    tag: str
    status: RunStatus
    returncode: int | None = None
    artifact: Path | None = None
    message: str = ""


@dataclass(frozen=True)
class SuiteRunResult:
    """Results of every device for one suite, in device order."""

    suite: Suite
    devices: tuple[DeviceRunResult, ...]

    @property
    def staged(self) -> tuple[Path, ...]:
        """Return staged artifact paths in device order."""
        return tuple(r.artifact for r in self.devices if r.artifact is not None)

    @property
    def missing(self) -> tuple[tuple[str, str], ...]:
        """Return (device tag, suite name) pairs that produced no artifact."""
        return tuple((r.tag, self.suite.name) for r in self.devices if r.artifact is None)


@dataclass(frozen=True)
class ProgressRecord:
    """Progress emitted after each completed suite."""

    display_name: str
    index: int
    total: int

    def __str__(self) -> str:
        return f"{self.index}/{self.total}"


@dataclass
class SequenceResult:
    """Outcome of running the whole suite sequence.

    Attributes:
        total: Number of suites that were scheduled.
        results: Results of the suites that completed, in order.
        progress: Progress records, one per completed suite.
        error: Description of the error that aborted the sequence, if any.
    """

    total: int
    results: list[SuiteRunResult] = field(default_factory=list)
    progress: list[ProgressRecord] = field(default_factory=list)
    error: str | None = None

    @property
    def executed(self) -> list[Suite]:
        """Return the suites that completed."""
        return [r.suite for r in self.results]

    @property
    def aborted(self) -> bool:
        """Return True if the sequence stopped before the last suite."""
        return self.error is not None

    @property
    def missing(self) -> set[tuple[str, str]]:
        """Return every (device tag, suite name) pair recorded without artifact."""
        return {pair for r in self.results for pair in r.missing}


class ManifestEntry(BaseModel):
    """One artifact handed to the report engine."""

    suite: str
    device: str
    artifact: str


class AggregateManifest(BaseModel):
    """Deterministic description of one aggregation.

    Holds no timestamps so that identical inputs produce identical files.
    """

    test_name: str
    ci_mode: bool
    entries: list[ManifestEntry]
    missing: list[ManifestEntry] = []


class DeviceSummary(BaseModel):
    """Serialized DeviceRunResult."""

    device: str
    status: RunStatus
    returncode: int | None = None
    message: str = ""


class SuiteSummary(BaseModel):
    """Serialized SuiteRunResult."""

    suite: str
    path: str
    devices: list[DeviceSummary]


class RunSummary(BaseModel):
    """Summary of a whole run written next to the report.

    Attributes:
        test_name: Display name of the run.
        devices: Tags of the devices whose unit became ready.
        unavailable: Tags of the devices whose unit failed to start.
        suites: Per-suite results, in execution order.
        total_suites: Number of suites that were scheduled.
        error: Error that aborted the sequence, if any.
        report_dir: Directory holding the merged report, if one was produced.
    """

    test_name: str
    devices: list[str]
    unavailable: list[str] = []
    suites: list[SuiteSummary] = []
    total_suites: int = 0
    error: str | None = None
    report_dir: str | None = None

    @classmethod
    def from_sequence(
        cls,
        test_name: str,
        devices: list[str],
        unavailable: list[str],
        sequence: SequenceResult,
        report_dir: Path | None = None,
    ) -> RunSummary:
        """Build a summary from a sequence result."""
        return cls(
            test_name=test_name,
            devices=devices,
            unavailable=unavailable,
            suites=[
                SuiteSummary(
                    suite=r.suite.name,
                    path=str(r.suite.path),
                    devices=[
                        DeviceSummary(
                            device=d.tag,
                            status=d.status,
                            returncode=d.returncode,
                            message=d.message,
                        )
                        for d in r.devices
                    ],
                )
                for r in sequence.results
            ],
            total_suites=sequence.total,
            error=sequence.error,
            report_dir=str(report_dir) if report_dir is not None else None,
        )
