"""Tests for workspace layout and housekeeping."""

from __future__ import annotations

from pathlib import Path

import pytest

from robot_swarm.config import EngineConfig
from robot_swarm.workspace import Workspace, append_log, refresh_engine_checkout


class TestWorkspace:
    """Tests for Workspace."""

    def test_layout(self, tmp_path: Path) -> None:
        ws = Workspace(tmp_path)

        assert ws.devices_conf == tmp_path / "devices_conf"
        assert ws.staging == tmp_path / "work" / "staging"
        assert ws.device_results("a") == tmp_path / "work" / "results" / "a"
        assert ws.staged_artifact("settings/wifi", "a") == ws.staging / "settings%2Fwifi@a.xml"
        assert ws.log_file == tmp_path / "logs" / "launcher.log"
        assert ws.engine_checkout(EngineConfig(checkout="libs")) == tmp_path / "libs"

    def test_staged_names_do_not_collide(self, tmp_path: Path) -> None:
        ws = Workspace(tmp_path)
        pairs = [
            ("login/smoke", "a"),
            ("login.smoke", "a"),
            ("x--a", "b"),
            ("x", "a--b"),
            ("x@a", "b"),
            ("x", "a@b"),
            ("login%2Fsmoke", "a"),
        ]

        paths = [ws.staged_artifact(suite, tag) for suite, tag in pairs]

        assert len(set(paths)) == len(pairs)
        assert all(p.parent == ws.staging for p in paths)

    def test_prepare_creates_directories(self, tmp_path: Path) -> None:
        ws = Workspace(tmp_path / "runner")
        ws.prepare()

        for directory in (ws.devices_conf, ws.results, ws.staging, ws.output, ws.logs):
            assert directory.is_dir()

    def test_prepare_clears_previous_results_only(self, tmp_path: Path) -> None:
        ws = Workspace(tmp_path)
        ws.prepare()
        (ws.staging / "old--a.xml").write_text("x")
        (ws.output / "report.html").write_text("x")
        (ws.devices_conf / "a.yaml").write_text("port: 1\n")
        append_log(ws.log_file, "kept")

        ws.prepare()

        assert list(ws.staging.iterdir()) == []
        assert list(ws.output.iterdir()) == []
        assert (ws.devices_conf / "a.yaml").exists()
        assert "kept" in ws.log_file.read_text()


def test_append_log_is_append_only(tmp_path: Path) -> None:
    log = tmp_path / "logs" / "launcher.log"

    append_log(log, "first")
    append_log(log, "Error on test execution :", "boom")

    lines = log.read_text().splitlines()
    assert len(lines) == 2
    assert lines[0].endswith(" first")
    assert lines[1].endswith(" Error on test execution : boom")


class TestRefreshEngineCheckout:
    """Tests for refresh_engine_checkout."""

    async def test_without_repository(self, tmp_path: Path) -> None:
        assert await refresh_engine_checkout(Workspace(tmp_path), EngineConfig()) is None

    async def test_failed_clone_is_not_fatal(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PATH", str(tmp_path / "empty-bin"))
        engine = EngineConfig(repository="https://git.invalid/libs.git")

        assert await refresh_engine_checkout(Workspace(tmp_path), engine) is None

    async def test_force_removes_checkout(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PATH", str(tmp_path / "empty-bin"))
        ws = Workspace(tmp_path)
        engine = EngineConfig(repository="https://git.invalid/libs.git")
        checkout = ws.engine_checkout(engine)
        checkout.mkdir()
        (checkout / "Library.py").write_text("")

        result = await refresh_engine_checkout(ws, engine, force=True)

        assert result is None
        assert not checkout.exists()

    async def test_existing_checkout_is_kept_when_update_fails(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("PATH", str(tmp_path / "empty-bin"))
        ws = Workspace(tmp_path)
        engine = EngineConfig(repository="https://git.invalid/libs.git")
        ws.engine_checkout(engine).mkdir()

        assert await refresh_engine_checkout(ws, engine) == ws.engine_checkout(engine)
