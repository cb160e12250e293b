"""Suite sequencing."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from robot_swarm.devices import Device
from robot_swarm.models import ProgressRecord, SequenceResult, Suite
from robot_swarm.suite_runner import ParallelSuiteRunner
from robot_swarm.workspace import append_log

logger = logging.getLogger(__name__)


# Type for progress callback
ProgressCallback = Callable[[ProgressRecord], None]


class SuiteSequencer:
    """Runs suites one after another on all devices.

    A suite starts only after every device finished the previous one. If a
    suite run raises, the remaining suites are skipped and the error is
    recorded on the result (and in the launcher log) instead of being
    raised, so the caller can still report the suites that completed.

    Example:
        sequencer = SuiteSequencer(runner, log_file, on_progress=print)
        result = await sequencer.run_all(devices, suites)

        print(f"Executed {len(result.executed)}/{result.total}")
    """

    def __init__(
        self,
        runner: ParallelSuiteRunner,
        log_file: Path,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Initialize the sequencer.

        Args:
            runner: Runs one suite across devices.
            log_file: Launcher log receiving the abort record.
            on_progress: Optional callback called after each suite completes.
        """
        self._runner = runner
        self._log_file = log_file
        self._on_progress = on_progress

    async def run_all(self, devices: list[Device], suites: list[Suite]) -> SequenceResult:
        """Run every suite in order.

        Args:
            devices: Devices with a ready execution unit.
            suites: Suites in execution order.

        Returns:
            SequenceResult with the completed suites and any abort error.
        """
        result = SequenceResult(total=len(suites))

        for index, suite in enumerate(suites, start=1):
            try:
                suite_result = await self._runner.run(devices, suite)
            except Exception as exc:
                logger.exception("Suite %s aborted the run", suite.name)
                result.error = f"{type(exc).__name__}: {exc}"
                append_log(self._log_file, "Error on test execution :", result.error)
                break

            result.results.append(suite_result)
            record = ProgressRecord(display_name=suite.display_name, index=index, total=len(suites))
            result.progress.append(record)
            if self._on_progress is not None:
                self._on_progress(record)

        return result
