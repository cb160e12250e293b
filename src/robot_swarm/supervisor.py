"""Execution unit supervision.

One execution unit (an Appium server) runs per device for the whole run.
The supervisor clears servers left by a crashed run, starts all units
concurrently, waits for them to become ready and terminates them at the end.

Readiness is a fixed settling delay followed, when enabled, by polling each
server's ``/status`` endpoint with a bounded timeout. A unit that fails to
start or never becomes ready is logged and left out of the run; it never
aborts the other devices.
"""

from __future__ import annotations

import asyncio
import json
import logging

import httpx

from robot_swarm.config import RunnerConfig, UnitConfig
from robot_swarm.devices import Device
from robot_swarm.errors import UnitStartError
from robot_swarm.models import UnitState
from robot_swarm.process import launch, run_command
from robot_swarm.workspace import Workspace

logger = logging.getLogger(__name__)


def unit_command(units: UnitConfig, device: Device) -> list[str]:
    """Build the command that starts a device's Appium server."""
    command = [
        *units.command,
        "--address",
        device.host,
        "--port",
        str(device.port),
        "--base-path",
        device.base_path,
    ]
    caps = device.desired_capabilities()
    if caps:
        command += ["--default-capabilities", json.dumps(caps, sort_keys=True)]
    return command


class ExecutionUnit:
    """A background Appium server bound to one device.

    Args:
        device: The device this unit serves.
    """

    def __init__(self, device: Device) -> None:
        self.device = device
        self.state = UnitState.STARTING
        self.error: str | None = None
        self._process: asyncio.subprocess.Process | None = None

    @property
    def available(self) -> bool:
        """Return True if suites may target this unit."""
        return self.state in (UnitState.READY, UnitState.RUNNING)

    @property
    def exited(self) -> bool:
        """Return True if the server process has already exited."""
        return self._process is not None and self._process.returncode is not None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    async def start(self, units: UnitConfig, workspace: Workspace, verbose: bool = False) -> None:
        """Launch the server process.

        Raises:
            UnitStartError: If the process cannot be executed.
        """
        command = unit_command(units, self.device)
        try:
            self._process = await launch(
                command,
                log_path=workspace.unit_log(self.device.tag),
                verbose=verbose,
            )
        except OSError as exc:
            raise UnitStartError(f"Cannot start unit for {self.device.tag}: {exc}") from exc

    def fail(self, reason: str) -> None:
        """Mark the unit unavailable and stop its process if it runs."""
        logger.error("Device %s unavailable: %s", self.device.tag, reason)
        self.error = reason
        self.terminate()

    def terminate(self) -> None:
        """Send a terminate signal without waiting for the process to exit."""
        if self._process is not None and self._process.returncode is None:
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
        self.state = UnitState.TERMINATED

    async def wait(self) -> int | None:
        """Wait for the server process to exit and return its exit code."""
        if self._process is None:
            return None
        return await self._process.wait()

    def __repr__(self) -> str:
        return f"ExecutionUnit(tag={self.device.tag!r}, state={self.state.value}, pid={self.pid})"


class UnitSupervisor:
    """Owns the execution units of a run.

    Args:
        config: Runner configuration.
        workspace: Runner workspace (unit log files).
        transport: httpx transport used for readiness polling. Tests inject
            a mock transport here.
    """

    def __init__(
        self,
        config: RunnerConfig,
        workspace: Workspace,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._units_config = config.units
        self._workspace = workspace
        self._transport = transport
        self._units: list[ExecutionUnit] = []

    @property
    def units(self) -> list[ExecutionUnit]:
        return list(self._units)

    @property
    def ready_devices(self) -> list[Device]:
        """Return devices whose unit is available, in configuration order."""
        return [u.device for u in self._units if u.available]

    @property
    def unavailable_devices(self) -> list[Device]:
        """Return devices whose unit failed to start or become ready."""
        return [u.device for u in self._units if u.error is not None]

    async def kill_stale(self) -> None:
        """Terminate servers left over by a previous run.

        Never fails: a missing kill command or a non-zero exit status (no
        matching process) is only logged.
        """
        command = self._units_config.kill_command
        if not command:
            return
        try:
            returncode = await run_command(command)
        except OSError as exc:
            logger.debug("Stale unit cleanup skipped: %s", exc)
            return
        logger.debug("Stale unit cleanup exited with %d", returncode)

    async def start(self, devices: list[Device]) -> list[ExecutionUnit]:
        """Start one unit per device and wait until they are ready.

        Args:
            devices: Devices to serve.

        Returns:
            Units that became ready, in device order.
        """
        self._units = [ExecutionUnit(device) for device in devices]
        await asyncio.gather(*(self._start_unit(unit) for unit in self._units))

        if self._units_config.settle_delay > 0:
            logger.info(
                "Waiting %.1fs for %d unit(s) to settle",
                self._units_config.settle_delay,
                len(self._units),
            )
            await asyncio.sleep(self._units_config.settle_delay)

        pending = [u for u in self._units if u.state == UnitState.STARTING]
        for unit in pending:
            if unit.exited:
                unit.fail(f"server exited during startup (see {self._workspace.unit_log(unit.device.tag)})")

        pending = [u for u in pending if u.state == UnitState.STARTING]
        if self._units_config.health_check and pending:
            await self._wait_healthy(pending)
        else:
            for unit in pending:
                unit.state = UnitState.READY

        ready = [u for u in self._units if u.available]
        logger.info("%d/%d unit(s) ready", len(ready), len(self._units))
        return ready

    def mark_running(self) -> None:
        """Move every ready unit to RUNNING."""
        for unit in self._units:
            if unit.state == UnitState.READY:
                unit.state = UnitState.RUNNING

    def stop(self) -> None:
        """Terminate every unit. Does not wait for the processes to exit."""
        for unit in self._units:
            if unit.state != UnitState.TERMINATED:
                logger.debug("Terminating unit %s", unit.device.tag)
            unit.terminate()

    async def _start_unit(self, unit: ExecutionUnit) -> None:
        try:
            await unit.start(self._units_config, self._workspace, verbose=self._config.verbose)
        except UnitStartError as exc:
            unit.fail(str(exc))
            return
        logger.info(
            "Started unit for %s on %s (pid %s)", unit.device.tag, unit.device.server_url, unit.pid
        )

    async def _wait_healthy(self, units: list[ExecutionUnit]) -> None:
        async with httpx.AsyncClient(
            transport=self._transport, timeout=self._units_config.poll_interval or 1.0
        ) as client:
            healthy = await asyncio.gather(*(self._poll_unit(client, u) for u in units))

        for unit, ok in zip(units, healthy):
            if ok:
                unit.state = UnitState.READY
            else:
                unit.fail(
                    f"no healthy status from {unit.device.status_url} "
                    f"within {self._units_config.ready_timeout}s"
                )

    async def _poll_unit(self, client: httpx.AsyncClient, unit: ExecutionUnit) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._units_config.ready_timeout
        while True:
            if unit.exited:
                return False
            try:
                response = await client.get(unit.device.status_url)
                if response.status_code == 200:
                    return True
                logger.debug("%s returned %d", unit.device.status_url, response.status_code)
            except httpx.InvalidURL as exc:
                logger.error("Invalid status URL for %s: %s", unit.device.tag, exc)
                return False
            except httpx.HTTPError as exc:
                logger.debug("%s not reachable yet: %s", unit.device.status_url, exc)
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self._units_config.poll_interval)
