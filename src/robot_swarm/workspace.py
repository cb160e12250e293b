"""Runner workspace layout and housekeeping.

Layout under the workspace root:
    devices_conf/          one YAML file per device
    work/results/<tag>/    raw engine output of the suite being run
    work/staging/          staged artifacts, <quoted suite>@<tag>.xml
    output/                merged report, manifest and summary
    logs/launcher.log      append-only fatal error log
    logs/units/<tag>.log   Appium server output
    engine/                optional engine library checkout
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from urllib.parse import quote

from robot_swarm.config import EngineConfig
from robot_swarm.process import run_command

logger = logging.getLogger(__name__)

STAGED_SUFFIX = ".xml"
STAGED_SEPARATOR = "@"


@dataclass(frozen=True)
class Workspace:
    """Paths of a runner workspace.

    Attributes:
        root: Workspace root directory.
    """

    root: Path

    @property
    def devices_conf(self) -> Path:
        return self.root / "devices_conf"

    @property
    def work(self) -> Path:
        return self.root / "work"

    @property
    def results(self) -> Path:
        return self.work / "results"

    @property
    def staging(self) -> Path:
        return self.work / "staging"

    @property
    def output(self) -> Path:
        return self.root / "output"

    @property
    def logs(self) -> Path:
        return self.root / "logs"

    @property
    def log_file(self) -> Path:
        return self.logs / "launcher.log"

    def unit_log(self, tag: str) -> Path:
        """Return the Appium server log file for a device."""
        return self.logs / "units" / f"{tag}.log"

    def engine_log(self, tag: str) -> Path:
        """Return the test engine log file for a device."""
        return self.logs / "engine" / f"{tag}.log"

    def device_results(self, tag: str) -> Path:
        """Return the directory the engine writes a device's raw output to."""
        return self.results / tag

    def staged_artifact(self, suite_name: str, tag: str) -> Path:
        """Return the staged artifact path for a (suite, device) pair.

        The suite name is percent-encoded, so it holds neither path
        separators nor the separator before the tag. Device tags never
        contain that separator either.
        """
        suite_part = quote(suite_name, safe="")
        return self.staging / f"{suite_part}{STAGED_SEPARATOR}{tag}{STAGED_SUFFIX}"

    def engine_checkout(self, engine: EngineConfig) -> Path:
        """Return the engine library checkout directory."""
        return self.root / engine.checkout

    def prepare(self) -> None:
        """Create the layout and clear results left by a previous run."""
        for stale in (self.results, self.staging, self.output):
            if stale.exists():
                logger.debug("Clearing %s", stale)
                shutil.rmtree(stale)
        for directory in (self.devices_conf, self.results, self.staging, self.output, self.logs):
            directory.mkdir(parents=True, exist_ok=True)


def append_log(log_file: Path, *parts: str) -> None:
    """Append one timestamped line to the launcher log.

    Args:
        log_file: Log file path. Parent directories are created.
        *parts: Message parts, joined by spaces.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().isoformat(sep=" ", timespec="seconds")
    with open(log_file, "a", encoding="utf-8") as f:
        f.write(f"{stamp} {' '.join(parts)}\n")


async def refresh_engine_checkout(
    workspace: Workspace,
    engine: EngineConfig,
    force: bool = False,
    verbose: bool = False,
) -> Path | None:
    """Clone or update the engine library checkout.

    Nothing happens when no repository is configured. With ``force`` the
    existing checkout is deleted and cloned again. Git failures are logged
    and never abort the run; an existing checkout is used as is.

    Args:
        workspace: Runner workspace.
        engine: Engine settings holding the repository URL.
        force: Delete the checkout before cloning.
        verbose: Show git output on the console.

    Returns:
        The checkout directory, or None if there is none.
    """
    if not engine.repository:
        return None

    checkout = workspace.engine_checkout(engine)
    git_log = workspace.logs / "git.log"

    if force and checkout.exists():
        logger.info("Removing engine checkout %s", checkout)
        shutil.rmtree(checkout)

    if checkout.exists():
        command = ["git", "-C", str(checkout), "pull", "--ff-only"]
    else:
        command = ["git", "clone", "--depth", "1", engine.repository, str(checkout)]

    try:
        returncode = await run_command(command, log_path=git_log, verbose=verbose)
    except OSError as exc:
        logger.warning("Cannot run git: %s", exc)
        returncode = -1

    if returncode != 0:
        logger.warning("Engine checkout refresh failed (exit %d), see %s", returncode, git_log)

    return checkout if checkout.is_dir() else None
