"""Shared fixtures for robot-swarm tests.

The Appium server, the test engine and the report engine are replaced by
small Python scripts so that the runner drives real processes.
"""

from __future__ import annotations

import sys
import textwrap
from pathlib import Path

import pytest

from robot_swarm.config import EngineConfig, ReportConfig, RunnerConfig, UnitConfig
from robot_swarm.devices import Device
from robot_swarm.discovery import discover_suites
from robot_swarm.models import Suite
from robot_swarm.workspace import Workspace

FAKE_ENGINE = textwrap.dedent("""\
    import os
    import sys
    import time

    args = sys.argv[1:]
    variables = {}
    outputdir = None
    i = 0
    while i < len(args) - 1:
        if args[i] == "--variable":
            key, _, value = args[i + 1].partition(":")
            variables[key] = value
            i += 2
        elif args[i] == "--outputdir":
            outputdir = args[i + 1]
            i += 2
        else:
            i += 1
    suite = os.path.basename(args[-1])
    tag = variables.get("DEVICE_TAG")
    log = os.environ.get("FAKE_ENGINE_LOG")

    def record(event):
        if log:
            with open(log, "a") as f:
                f.write(f"{event} {suite} {tag}\\n")

    record("start")
    time.sleep(float(variables.get("FAKE_SLEEP", "0")))
    if variables.get("FAKE_NO_OUTPUT") != "1":
        with open(os.path.join(outputdir, "output.xml"), "w") as f:
            f.write(f"<robot suite='{suite}' device='{tag}'/>\\n")
    record("end")
    sys.exit(int(variables.get("FAKE_RC", "0")))
""")

FAKE_REPORT = textwrap.dedent("""\
    import os
    import sys

    args = sys.argv[1:]
    outputdir = args[args.index("--outputdir") + 1]
    inputs = [a for a in args if os.path.isabs(a) and a.endswith(".xml")]
    with open(os.path.join(outputdir, "output.xml"), "w") as out:
        for path in inputs:
            with open(path) as f:
                out.write(f.read())
    with open(os.path.join(outputdir, "args.txt"), "w") as f:
        f.write("\\n".join(args) + "\\n")
    sys.exit(int(os.environ.get("FAKE_REPORT_RC", "0")))
""")

FAKE_UNIT = textwrap.dedent("""\
    import os
    import sys
    import time

    args = sys.argv[1:]
    port = args[args.index("--port") + 1]
    if port in os.environ.get("FAKE_UNIT_FAIL_PORTS", "").split(","):
        sys.exit(1)
    time.sleep(30)
""")


def _write_script(directory: Path, name: str, source: str) -> Path:
    path = directory / name
    path.write_text(source)
    return path


@pytest.fixture
def fake_engine(tmp_path: Path) -> Path:
    """Write a fake Robot Framework executable."""
    return _write_script(tmp_path, "fake_robot.py", FAKE_ENGINE)


@pytest.fixture
def fake_report(tmp_path: Path) -> Path:
    """Write a fake rebot executable."""
    return _write_script(tmp_path, "fake_rebot.py", FAKE_REPORT)


@pytest.fixture
def fake_unit(tmp_path: Path) -> Path:
    """Write a fake Appium server executable."""
    return _write_script(tmp_path, "fake_appium.py", FAKE_UNIT)


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """Create a prepared runner workspace."""
    ws = Workspace(tmp_path / "runner")
    ws.prepare()
    return ws


@pytest.fixture
def config(
    workspace: Workspace, fake_engine: Path, fake_report: Path, fake_unit: Path
) -> RunnerConfig:
    """Create a runner configuration driving the fake executables."""
    return RunnerConfig(
        workspace=workspace.root,
        test_name="Regression",
        engine=EngineConfig(command=(sys.executable, str(fake_engine))),
        units=UnitConfig(
            command=(sys.executable, str(fake_unit)),
            kill_command=None,
            settle_delay=0.0,
            health_check=False,
        ),
        report=ReportConfig(command=(sys.executable, str(fake_report))),
    )


@pytest.fixture
def devices() -> list[Device]:
    """Create two devices."""
    return [
        Device(tag="a", name="Pixel 7", port=4723, udid="emulator-5554"),
        Device(tag="b", name="Galaxy S23", port=4725, udid="emulator-5556"),
    ]


@pytest.fixture
def suite_dir(tmp_path: Path) -> Path:
    """Create a directory with three suite files."""
    root = tmp_path / "suites"
    (root / "settings").mkdir(parents=True)
    (root / "login.robot").write_text("*** Test Cases ***\nLogin\n    No Operation\n")
    (root / "search.robot").write_text("*** Test Cases ***\nSearch\n    No Operation\n")
    (root / "settings" / "wifi.robot").write_text("*** Test Cases ***\nWifi\n    No Operation\n")
    (root / "README.txt").write_text("not a suite\n")
    return root


@pytest.fixture
def suites(suite_dir: Path) -> list[Suite]:
    """Discover the three suites."""
    return discover_suites(suite_dir)
