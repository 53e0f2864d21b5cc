"""Tests for the store-only CLI commands and the scheduler command line."""

import subprocess
from datetime import datetime
from pathlib import Path

from click.testing import CliRunner

from blockwarden.cli import interval_end_command, main
from blockwarden.config import Config
from blockwarden.session import SystemdActivityScheduler, ports
from blockwarden.storage import SharedStateStore


def invoke(state: Path, *args: str):
    return CliRunner().invoke(main, ["--state", str(state), *args])


class TestStatsCommand:
    def test_empty(self, tmp_state_path: Path) -> None:
        result = invoke(tmp_state_path, "stats")
        assert result.exit_code == 0
        assert "Nothing blocked yet" in result.output

    def test_reset(self, tmp_state_path: Path) -> None:
        store = SharedStateStore(tmp_state_path)
        store.update_statistics(lambda stats: setattr(stats, "blocked_requests_count", 2))

        result = invoke(tmp_state_path, "stats", "--reset")

        assert result.exit_code == 0
        assert store.load_statistics().blocked_requests_count == 0


class TestSessionStatus:
    def test_no_session(self, tmp_state_path: Path) -> None:
        result = invoke(tmp_state_path, "session", "status")
        assert result.exit_code == 0
        assert "No active session" in result.output

    def test_active_session(self, tmp_state_path: Path) -> None:
        SharedStateStore(tmp_state_path).start_session(3600, list_id="l1", started_at=datetime.now())

        result = invoke(tmp_state_path, "session", "status")

        assert "Session active" in result.output
        assert "l1" in result.output


class TestResetState:
    def test_clears_session_keys(self, tmp_state_path: Path) -> None:
        store = SharedStateStore(tmp_state_path)
        store.start_session(600, list_id="l1")

        result = invoke(tmp_state_path, "reset-state", "--yes")

        assert result.exit_code == 0
        assert store.last_active_list_id is None
        assert store.is_blocking_enabled is False


class TestIntervalEndCommand:
    def test_paths_made_absolute(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        cfg = Config(api_base_url="http://api", state_path=Path("s.duckdb"), hosts_path=Path("h"))

        command = interval_end_command(cfg, Path("blockwarden.toml"))

        assert command == [
            "blockwarden",
            "--config", str(Path.cwd() / "blockwarden.toml"),
            "--api-url", "http://api",
            "--state", str(Path.cwd() / "s.duckdb"),
            "--hosts", str(Path.cwd() / "h"),
            "interval-end",
        ]

    def test_without_config_file(self) -> None:
        command = interval_end_command(Config(hosts_path=Path("/tmp/hosts")))
        assert "--config" not in command
        assert command[command.index("--hosts") + 1] == "/tmp/hosts"

    def test_systemd_timer_carries_paths(self, tmp_path: Path, monkeypatch) -> None:
        """The timer must end the session in the same store and hosts file."""
        calls: list[list[str]] = []
        monkeypatch.setattr(ports.shutil, "which", lambda name: f"/usr/bin/{name}")
        monkeypatch.setattr(
            ports.subprocess, "run", lambda args, **kwargs: calls.append(args) or subprocess.CompletedProcess(args, 0)
        )
        hosts = tmp_path / "hosts"
        hosts.write_text("127.0.0.1 localhost\n")
        state = tmp_path / "state.duckdb"

        SystemdActivityScheduler(interval_end_command(Config(state_path=state, hosts_path=hosts))).start_monitoring(
            "blockwarden.focusSession", datetime(2024, 1, 1, 9), datetime(2024, 1, 1, 9, 5)
        )

        (run,) = [c for c in calls if c[0] == "systemd-run"]
        assert "--on-active=300" in run
        assert run[run.index("--state") + 1] == str(state)
        assert run[run.index("--hosts") + 1] == str(hosts)
        assert run[-2] == "interval-end"
