"""Parallel execution of one suite across all devices.

For a single suite the runner starts one engine process per device, waits
for every process to terminate, then moves each device's raw output into the
staging directory under a name derived from (suite, device). A failing
device never stops its siblings, and whatever output it left is staged.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from robot_swarm.config import EngineConfig, RunnerConfig
from robot_swarm.devices import Device
from robot_swarm.models import DeviceRunResult, RunStatus, Suite, SuiteRunResult
from robot_swarm.process import build_env, run_command
from robot_swarm.workspace import Workspace

logger = logging.getLogger(__name__)

RAW_OUTPUT_NAME = "output.xml"

# (returncode, message); returncode is None when the process never completed
_Outcome = tuple[int | None, str]


def engine_command(engine: EngineConfig, device: Device, suite: Suite, output_dir: Path) -> list[str]:
    """Build the engine command running ``suite`` against ``device``."""
    command = [
        *engine.command,
        "--outputdir",
        str(output_dir),
        "--output",
        RAW_OUTPUT_NAME,
        "--log",
        "NONE",
        "--report",
        "NONE",
        "--name",
        f"{suite.display_name} ({device.name})",
        "--metadata",
        f"Device:{device.name}",
        "--variable",
        f"REMOTE_URL:{device.server_url}",
        "--variable",
        f"DEVICE_NAME:{device.name}",
        "--variable",
        f"DEVICE_TAG:{device.tag}",
    ]
    if device.udid:
        command += ["--variable", f"UDID:{device.udid}"]
    for key, value in sorted(device.variables.items()):
        command += ["--variable", f"{key}:{value}"]
    command += [*engine.extra_args, str(suite.path)]
    return command


class ParallelSuiteRunner:
    """Runs one suite on every device concurrently.

    Args:
        config: Runner configuration.
        workspace: Runner workspace (result, staging and log paths).
        engine_path: Engine library checkout added to PYTHONPATH, if any.
    """

    def __init__(
        self,
        config: RunnerConfig,
        workspace: Workspace,
        engine_path: Path | None = None,
    ) -> None:
        self._config = config
        self._engine = config.engine
        self._workspace = workspace
        self._env = build_env(engine_path)
        self.invocations = 0

    async def run(self, devices: list[Device], suite: Suite) -> SuiteRunResult:
        """Run ``suite`` on all devices and stage their output.

        Returns only after every device's process has terminated.

        Args:
            devices: Devices with a ready execution unit.
            suite: The suite to run.

        Returns:
            Per-device results in device order.
        """
        self.invocations += 1
        semaphore = asyncio.Semaphore(max(1, len(devices)))

        async def run_one(device: Device) -> _Outcome:
            async with semaphore:
                return await self._run_device(device, suite)

        logger.info("Running suite %s on %d device(s)", suite.name, len(devices))
        outcomes = await asyncio.gather(*(run_one(d) for d in devices), return_exceptions=True)

        results: list[DeviceRunResult] = []
        try:
            for device, outcome in zip(devices, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    logger.error("Device %s crashed on %s: %s", device.tag, suite.name, outcome)
                    outcome = (None, f"runner error: {outcome}")
                results.append(self._stage(device, suite, outcome))
        except BaseException:
            # A suite is staged for all devices or for none.
            self._unstage(suite, results)
            raise

        return SuiteRunResult(suite=suite, devices=tuple(results))

    def _unstage(self, suite: Suite, results: list[DeviceRunResult]) -> None:
        for result in results:
            if result.artifact is not None:
                logger.warning("Discarding staged %s for aborted suite %s", result.artifact.name, suite.name)
                result.artifact.unlink(missing_ok=True)

    async def _run_device(self, device: Device, suite: Suite) -> _Outcome:
        output_dir = self._workspace.device_results(device.tag)
        output_dir.mkdir(parents=True, exist_ok=True)
        # A crashed run must not stage the previous suite's output.
        (output_dir / RAW_OUTPUT_NAME).unlink(missing_ok=True)

        command = engine_command(self._engine, device, suite, output_dir)
        try:
            returncode = await run_command(
                command,
                log_path=self._workspace.engine_log(device.tag),
                verbose=self._config.verbose,
                env=self._env,
                timeout=self._engine.timeout,
            )
        except OSError as exc:
            logger.error("Cannot launch engine for %s: %s", device.tag, exc)
            return None, f"cannot launch engine: {exc}"
        except asyncio.TimeoutError:
            logger.error("Suite %s timed out on %s", suite.name, device.tag)
            return None, f"timed out after {self._engine.timeout}s"

        logger.debug("Suite %s on %s exited with %d", suite.name, device.tag, returncode)
        return returncode, ""

    def _stage(self, device: Device, suite: Suite, outcome: _Outcome) -> DeviceRunResult:
        returncode, message = outcome
        status = RunStatus.ERROR if returncode is None else RunStatus.from_returncode(returncode)

        raw = self._workspace.device_results(device.tag) / RAW_OUTPUT_NAME
        artifact: Path | None = None
        if raw.is_file():
            artifact = self._workspace.staged_artifact(suite.name, device.tag)
            artifact.parent.mkdir(parents=True, exist_ok=True)
            raw.replace(artifact)
        else:
            status = RunStatus.ERROR
            message = message or f"no output produced (exit {returncode})"
            logger.warning("No output from %s for suite %s", device.tag, suite.name)

        if not message and status == RunStatus.FAILED:
            message = f"{returncode} failed test(s)"
        if not message and status == RunStatus.ERROR:
            message = f"engine error (exit {returncode})"

        return DeviceRunResult(
            tag=device.tag,
            status=status,
            returncode=returncode,
            artifact=artifact,
            message=message,
        )
