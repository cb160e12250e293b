"""Tests for the parallel suite runner."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from robot_swarm.config import EngineConfig, RunnerConfig
from robot_swarm.devices import Device
from robot_swarm.models import RunStatus, Suite
from robot_swarm.suite_runner import ParallelSuiteRunner, engine_command
from robot_swarm.workspace import Workspace


def _device(tag: str, port: int, **variables: str) -> Device:
    return Device(tag=tag, name=f"Device {tag}", port=port, variables=variables)


class TestEngineCommand:
    """Tests for engine_command."""

    def test_targets_only_its_device(self, tmp_path: Path) -> None:
        device = Device(
            tag="a", name="Pixel 7", port=4723, udid="emulator-5554", variables={"APP": "x"}
        )
        suite = Suite(path=tmp_path / "login.robot", name="login", display_name="login")
        engine = EngineConfig(command=("robot",), extra_args=("--loglevel", "DEBUG"))

        command = engine_command(engine, device, suite, tmp_path / "out")

        assert command[0] == "robot"
        assert command[-1] == str(tmp_path / "login.robot")
        assert command[-3:-1] == ["--loglevel", "DEBUG"]
        assert "REMOTE_URL:http://127.0.0.1:4723/wd/hub" in command
        assert "DEVICE_TAG:a" in command
        assert "UDID:emulator-5554" in command
        assert "APP:x" in command
        assert command[command.index("--outputdir") + 1] == str(tmp_path / "out")
        assert command[command.index("--name") + 1] == "login (Pixel 7)"


class TestParallelSuiteRunner:
    """Tests for ParallelSuiteRunner."""

    async def test_stages_one_artifact_per_device(
        self, config: RunnerConfig, workspace: Workspace, devices: list[Device], suites: list[Suite]
    ) -> None:
        runner = ParallelSuiteRunner(config, workspace)

        result = await runner.run(devices, suites[0])

        assert [r.tag for r in result.devices] == ["a", "b"]
        assert all(r.status == RunStatus.PASSED for r in result.devices)
        assert result.staged == (
            workspace.staged_artifact("login", "a"),
            workspace.staged_artifact("login", "b"),
        )
        assert "device='a'" in workspace.staged_artifact("login", "a").read_text()
        assert "device='b'" in workspace.staged_artifact("login", "b").read_text()
        # Raw output was moved, not copied
        assert not (workspace.device_results("a") / "output.xml").exists()

    async def test_runs_devices_concurrently(
        self,
        config: RunnerConfig,
        workspace: Workspace,
        suites: list[Suite],
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        log = tmp_path / "engine.log"
        monkeypatch.setenv("FAKE_ENGINE_LOG", str(log))
        devices = [_device("a", 4723, FAKE_SLEEP="0.5"), _device("b", 4725, FAKE_SLEEP="0.5")]
        runner = ParallelSuiteRunner(config, workspace)

        await runner.run(devices, suites[0])

        events = [line.split()[0] for line in log.read_text().splitlines()]
        # Both processes start before either finishes
        assert events[:2] == ["start", "start"]

    async def test_failing_device_does_not_stop_siblings(
        self, config: RunnerConfig, workspace: Workspace, suites: list[Suite]
    ) -> None:
        devices = [_device("a", 4723, FAKE_RC="2"), _device("b", 4725)]
        runner = ParallelSuiteRunner(config, workspace)

        result = await runner.run(devices, suites[0])

        failed, passed = result.devices
        assert failed.status == RunStatus.FAILED
        assert failed.returncode == 2
        assert failed.message == "2 failed test(s)"
        assert failed.artifact == workspace.staged_artifact("login", "a")
        assert passed.status == RunStatus.PASSED
        assert len(result.staged) == 2

    async def test_device_without_output_is_recorded(
        self, config: RunnerConfig, workspace: Workspace, suites: list[Suite]
    ) -> None:
        devices = [_device("a", 4723, FAKE_NO_OUTPUT="1", FAKE_RC="252"), _device("b", 4725)]
        runner = ParallelSuiteRunner(config, workspace)

        result = await runner.run(devices, suites[0])

        assert result.devices[0].status == RunStatus.ERROR
        assert result.devices[0].artifact is None
        assert result.missing == (("a", "login"),)
        assert result.devices[1].artifact is not None

    async def test_stale_output_is_not_staged(
        self, config: RunnerConfig, workspace: Workspace, suites: list[Suite]
    ) -> None:
        stale = workspace.device_results("a") / "output.xml"
        stale.parent.mkdir(parents=True, exist_ok=True)
        stale.write_text("<robot suite='previous'/>")
        runner = ParallelSuiteRunner(config, workspace)

        result = await runner.run([_device("a", 4723, FAKE_NO_OUTPUT="1")], suites[1])

        assert result.devices[0].artifact is None
        assert not workspace.staged_artifact("search", "a").exists()

    async def test_engine_that_cannot_launch(
        self, config: RunnerConfig, workspace: Workspace, devices: list[Device], suites: list[Suite], tmp_path: Path
    ) -> None:
        config = dataclasses.replace(
            config, engine=EngineConfig(command=(str(tmp_path / "no-such-robot"),))
        )
        runner = ParallelSuiteRunner(config, workspace)

        result = await runner.run(devices, suites[0])

        assert all(r.status == RunStatus.ERROR for r in result.devices)
        assert all("cannot launch engine" in r.message for r in result.devices)
        assert result.staged == ()

    async def test_timeout_kills_only_the_slow_device(
        self, config: RunnerConfig, workspace: Workspace, suites: list[Suite]
    ) -> None:
        config = dataclasses.replace(
            config, engine=dataclasses.replace(config.engine, timeout=1.0)
        )
        devices = [_device("a", 4723, FAKE_SLEEP="10"), _device("b", 4725)]
        runner = ParallelSuiteRunner(config, workspace)

        result = await runner.run(devices, suites[0])

        assert result.devices[0].status == RunStatus.ERROR
        assert "timed out" in result.devices[0].message
        assert result.devices[1].status == RunStatus.PASSED

    async def test_counts_invocations(
        self, config: RunnerConfig, workspace: Workspace, devices: list[Device], suites: list[Suite]
    ) -> None:
        runner = ParallelSuiteRunner(config, workspace)

        for suite in suites:
            await runner.run(devices, suite)

        assert runner.invocations == 3
        assert len(list(workspace.staging.glob("*.xml"))) == 6
