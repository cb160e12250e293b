"""Result aggregation.

After the last suite, the aggregator checks that every expected
(suite, device) artifact is staged or explicitly recorded as missing, then
hands the staged artifacts, in suite-then-device order, to the report
engine in a single merge pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Collection

from robot_swarm.config import RunnerConfig
from robot_swarm.devices import Device
from robot_swarm.errors import AggregationError, MissingArtifactError
from robot_swarm.models import ENGINE_MAX_FAILED_RC, AggregateManifest, ManifestEntry, Suite
from robot_swarm.process import run_command
from robot_swarm.workspace import Workspace

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
REPORT_OUTPUT_NAME = "output.xml"


@dataclass(frozen=True)
class AggregateResult:
    """Outcome of an aggregation.

    Attributes:
        output_dir: Directory holding the merged output and rendered report.
        manifest: The artifacts that were merged.
        manifest_path: Where the manifest was written.
        returncode: Report engine exit code.
    """

    output_dir: Path
    manifest: AggregateManifest
    manifest_path: Path
    returncode: int


class Aggregator:
    """Merges staged artifacts into one report.

    Args:
        config: Runner configuration.
        workspace: Runner workspace (staging and output paths).
    """

    def __init__(self, config: RunnerConfig, workspace: Workspace) -> None:
        self._config = config
        self._workspace = workspace

    def build_manifest(
        self,
        devices: list[Device],
        suites: list[Suite],
        ci_mode: bool,
        missing: Collection[tuple[str, str]] = (),
    ) -> AggregateManifest:
        """Collect staged artifacts in suite-then-device order.

        Args:
            devices: Devices that took part in the run.
            suites: Suites that were executed.
            ci_mode: Report formatting flag, recorded in the manifest.
            missing: (device tag, suite name) pairs known to have no artifact.

        Returns:
            The manifest of artifacts to merge.

        Raises:
            MissingArtifactError: If an expected artifact is absent and not
                listed in ``missing``.
        """
        entries: list[ManifestEntry] = []
        accounted: list[ManifestEntry] = []
        absent: list[tuple[str, str]] = []

        for suite in suites:
            for device in devices:
                path = self._workspace.staged_artifact(suite.name, device.tag)
                entry = ManifestEntry(suite=suite.name, device=device.tag, artifact=path.name)
                if path.is_file():
                    entries.append(entry)
                elif (device.tag, suite.name) in missing:
                    accounted.append(entry)
                else:
                    absent.append((device.tag, suite.name))

        if absent:
            raise MissingArtifactError(absent)

        return AggregateManifest(
            test_name=self._config.test_name,
            ci_mode=ci_mode,
            entries=entries,
            missing=accounted,
        )

    def report_command(self, manifest: AggregateManifest) -> list[str]:
        """Build the report engine command for a manifest."""
        output_dir = self._workspace.output
        command = [
            *self._config.report.command,
            "--name",
            manifest.test_name,
            "--outputdir",
            str(output_dir),
            "--output",
            REPORT_OUTPUT_NAME,
            "--log",
            "log.html",
            "--report",
            "report.html",
        ]
        if manifest.ci_mode:
            command += ["--xunit", "xunit.xml", "--nostatusrc", "--consolecolors", "off"]
        else:
            command += ["--consolecolors", "auto"]
        command += [str(self._workspace.staging / e.artifact) for e in manifest.entries]
        return command

    async def aggregate(
        self,
        devices: list[Device],
        suites: list[Suite],
        ci_mode: bool,
        missing: Collection[tuple[str, str]] = (),
    ) -> AggregateResult:
        """Merge all staged artifacts and render the report.

        Args:
            devices: Devices that took part in the run.
            suites: Suites that were executed, in order.
            ci_mode: Format the report for a CI consumer.
            missing: (device tag, suite name) pairs known to have no artifact.

        Returns:
            AggregateResult describing the merged report.

        Raises:
            MissingArtifactError: If an expected artifact is not staged.
            AggregationError: If there is nothing to merge or the report
                engine fails.
        """
        manifest = self.build_manifest(devices, suites, ci_mode, missing)
        if not manifest.entries:
            raise AggregationError("No staged artifacts to aggregate")

        output_dir = self._workspace.output
        output_dir.mkdir(parents=True, exist_ok=True)
        manifest_path = output_dir / MANIFEST_NAME
        manifest_path.write_text(manifest.model_dump_json(indent=2) + "\n", encoding="utf-8")

        logger.info(
            "Merging %d artifact(s) from %d suite(s) into %s",
            len(manifest.entries),
            len(suites),
            output_dir,
        )
        try:
            returncode = await run_command(
                self.report_command(manifest),
                log_path=self._workspace.logs / "report.log",
                verbose=self._config.verbose,
            )
        except OSError as exc:
            raise AggregationError(f"Cannot launch report engine: {exc}") from exc

        if returncode > ENGINE_MAX_FAILED_RC or returncode < 0:
            raise AggregationError(f"Report engine failed with exit code {returncode}")

        return AggregateResult(
            output_dir=output_dir,
            manifest=manifest,
            manifest_path=manifest_path,
            returncode=returncode,
        )
