"""Parallel Robot Framework runner for Appium-driven mobile devices.

This package runs each Robot Framework suite on every configured device at
the same time, one suite after another, then merges all device results into
a single report with rebot.

Example:
    robot-swarm -d tests/mobile -t "Nightly regression" --jenkins
"""

from robot_swarm.aggregator import AggregateResult, Aggregator
from robot_swarm.config import (
    EngineConfig,
    ReportConfig,
    RunnerConfig,
    UnitConfig,
    load_runner_config,
)
from robot_swarm.devices import Device, load_devices
from robot_swarm.discovery import discover_suites
from robot_swarm.models import (
    AggregateManifest,
    DeviceRunResult,
    ProgressRecord,
    RunStatus,
    RunSummary,
    SequenceResult,
    Suite,
    SuiteRunResult,
    UnitState,
)
from robot_swarm.sequencer import SuiteSequencer
from robot_swarm.suite_runner import ParallelSuiteRunner
from robot_swarm.supervisor import ExecutionUnit, UnitSupervisor
from robot_swarm.workspace import Workspace

__all__ = [
    # Config
    "EngineConfig",
    "ReportConfig",
    "RunnerConfig",
    "UnitConfig",
    "load_runner_config",
    # Devices and suites
    "Device",
    "Suite",
    "discover_suites",
    "load_devices",
    # Execution
    "ExecutionUnit",
    "ParallelSuiteRunner",
    "SuiteSequencer",
    "UnitSupervisor",
    "Workspace",
    # Aggregation
    "AggregateResult",
    "Aggregator",
    # Models
    "AggregateManifest",
    "DeviceRunResult",
    "ProgressRecord",
    "RunStatus",
    "RunSummary",
    "SequenceResult",
    "SuiteRunResult",
    "UnitState",
]
