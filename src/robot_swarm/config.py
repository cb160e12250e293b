"""Runner configuration for robot-swarm.

The runner configuration is built once at startup, from an optional YAML
file plus command-line flags, and passed to every component. It is never
mutated afterwards.

Example YAML:
    workspace: "runner"
    test_name: "Nightly regression"

    engine:
      command: ["robot"]
      extra_args: ["--loglevel", "DEBUG"]
      timeout: 1800
      repository: "https://git.example.com/qa/robot-libs.git"

    units:
      command: ["appium"]
      kill_command: ["pkill", "-f", "appium"]
      settle_delay: 5
      health_check: true
      ready_timeout: 30
      poll_interval: 1

    report:
      command: ["rebot"]
"""

from __future__ import annotations

import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_TEST_NAME = "Default-Test"
DEFAULT_WORKSPACE = "runner"


def _as_command(value: Any, field_name: str) -> tuple[str, ...]:
    """Normalize a command given as a string or a list."""
    if isinstance(value, str):
        parts = shlex.split(value)
    elif isinstance(value, (list, tuple)):
        parts = [str(v) for v in value]
    else:
        raise ValueError(f"{field_name} must be a string or a list")
    if not parts:
        raise ValueError(f"{field_name} must not be empty")
    return tuple(parts)


def _as_float(value: Any, field_name: str) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be a number") from exc
    if result < 0:
        raise ValueError(f"{field_name} must not be negative")
    return result


@dataclass(frozen=True)
class EngineConfig:
    """Test engine (Robot Framework) invocation settings.

    Attributes:
        command: Command that runs one suite.
        extra_args: Extra arguments appended before the suite path.
        timeout: Per-device timeout for one suite, in seconds. None waits forever.
        repository: Git URL of the engine library checkout, if any.
        checkout: Checkout directory, relative to the workspace.
    """

    command: tuple[str, ...] = (sys.executable, "-m", "robot")
    extra_args: tuple[str, ...] = ()
    timeout: float | None = None
    repository: str | None = None
    checkout: str = "engine"


@dataclass(frozen=True)
class UnitConfig:
    """Execution unit (Appium server) settings.

    Attributes:
        command: Command that starts one Appium server.
        kill_command: Command that terminates stale servers, or None to skip.
        settle_delay: Fixed delay after starting all units, in seconds.
        health_check: Poll each unit's status endpoint after settling.
        ready_timeout: Upper bound for readiness polling, in seconds.
        poll_interval: Delay between readiness polls, in seconds.
    """

    command: tuple[str, ...] = ("appium",)
    kill_command: tuple[str, ...] | None = ("pkill", "-f", "appium")
    settle_delay: float = 5.0
    health_check: bool = True
    ready_timeout: float = 30.0
    poll_interval: float = 1.0


@dataclass(frozen=True)
class ReportConfig:
    """Report engine (rebot) settings.

    Attributes:
        command: Command that merges outputs into the final report.
    """

    command: tuple[str, ...] = (sys.executable, "-m", "robot.rebot")


@dataclass(frozen=True)
class RunnerConfig:
    """Complete configuration for one run.

    Attributes:
        workspace: Runner workspace root (devices_conf, work, output, logs).
        target: Suite directory or single suite file.
        test_name: Display name of the final report.
        verbose: Show process output and debug logging.
        ci_mode: Format the report for a CI consumer.
        force_update: Delete and re-clone the engine checkout.
        engine: Test engine settings.
        units: Execution unit settings.
        report: Report engine settings.
    """

    workspace: Path = field(default_factory=lambda: Path(DEFAULT_WORKSPACE))
    target: Path | None = None
    test_name: str = DEFAULT_TEST_NAME
    verbose: bool = False
    ci_mode: bool = False
    force_update: bool = False
    engine: EngineConfig = field(default_factory=EngineConfig)
    units: UnitConfig = field(default_factory=UnitConfig)
    report: ReportConfig = field(default_factory=ReportConfig)


def _parse_engine(data: dict[str, Any]) -> EngineConfig:
    defaults = EngineConfig()
    timeout = data.get("timeout")
    return EngineConfig(
        command=_as_command(data["command"], "engine.command")
        if "command" in data
        else defaults.command,
        extra_args=tuple(str(a) for a in data.get("extra_args", []) or []),
        timeout=_as_float(timeout, "engine.timeout") if timeout is not None else None,
        repository=data.get("repository") or None,
        checkout=str(data.get("checkout", defaults.checkout)),
    )


def _parse_units(data: dict[str, Any]) -> UnitConfig:
    defaults = UnitConfig()
    kill_command = defaults.kill_command
    if "kill_command" in data:
        raw = data["kill_command"]
        kill_command = _as_command(raw, "units.kill_command") if raw else None
    return UnitConfig(
        command=_as_command(data["command"], "units.command")
        if "command" in data
        else defaults.command,
        kill_command=kill_command,
        settle_delay=_as_float(data.get("settle_delay", defaults.settle_delay), "units.settle_delay"),
        health_check=bool(data.get("health_check", defaults.health_check)),
        ready_timeout=_as_float(
            data.get("ready_timeout", defaults.ready_timeout), "units.ready_timeout"
        ),
        poll_interval=_as_float(
            data.get("poll_interval", defaults.poll_interval), "units.poll_interval"
        ),
    )


def _parse_report(data: dict[str, Any]) -> ReportConfig:
    if "command" in data:
        return ReportConfig(command=_as_command(data["command"], "report.command"))
    return ReportConfig()


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {}) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{name} must be a mapping")
    return section


def load_runner_config(path: str | Path) -> RunnerConfig:
    """Load runner configuration from a YAML file.

    Relative workspace paths are resolved against the file's directory.

    Args:
        path: Path to the runner configuration YAML file.

    Returns:
        Parsed RunnerConfig. Run flags keep their defaults; the CLI applies them.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValueError: If a field is malformed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Runner config not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError("Runner config must be a YAML mapping")

    workspace = Path(data.get("workspace", DEFAULT_WORKSPACE))
    if not workspace.is_absolute():
        workspace = path.parent / workspace

    return RunnerConfig(
        workspace=workspace,
        test_name=str(data.get("test_name", DEFAULT_TEST_NAME)),
        engine=_parse_engine(_section(data, "engine")),
        units=_parse_units(_section(data, "units")),
        report=_parse_report(_section(data, "report")),
    )
