"""Tests for the command line interface."""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from click.testing import CliRunner

from tracknotify.cli import cli
from tracknotify.models import (
    Checkpoint,
    CycleResult,
    DeliveryOutcome,
    DispatchReport,
    Notification,
)
from tracknotify.runner import NotifierRunner

CONFIG_TEMPLATE = """
tracker:
  base_url: https://yt.test
  token: perm
telegram:
  default_token: "123:abc"
projects:
  - name: PRJ
    chat_id: "-1001"
  - name: OPS
    chat_id: "-1002"
checkpoints:
  path: {path}
"""


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the CLI from replacing the root logging handlers."""
    monkeypatch.setattr("tracknotify.logging.setup_logging", lambda *args, **kwargs: None)


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    """Write a two-project configuration file."""
    path = tmp_path / ".tracknotify.yaml"
    path.write_text(CONFIG_TEMPLATE.format(path=tmp_path / "last"))
    return path


@pytest.fixture
def fake_runner(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    """Replace the runner built from config with a mock."""
    runner = AsyncMock()
    monkeypatch.setattr(NotifierRunner, "from_config", AsyncMock(return_value=runner))
    return runner


def cycle_result(project: str, sent: int, failed: int = 0) -> CycleResult:
    """Build a cycle result with the given delivery counts."""
    outcomes = [
        DeliveryOutcome(
            notification=Notification(issue_id=f"{project}-{n}", operation="updated", text="x"),
            success=n < sent,
            error=None if n < sent else "chat not found",
        )
        for n in range(sent + failed)
    ]
    return CycleResult(
        project=project,
        issues=sent + failed,
        messages=sent + failed,
        report=DispatchReport(
            outcomes=outcomes,
            checkpoint=Checkpoint(timestamp_ms=1_700_000_000_000, human="14.11.2023 22:13:20"),
        ),
    )


class TestRunCommand:
    """Tests for `tracknotify run`."""

    def test_run_reports_each_project(self, config_path: Path, fake_runner: AsyncMock) -> None:
        """Test per-project summary lines."""
        fake_runner.run_once.return_value = {
            "PRJ": cycle_result("PRJ", sent=3),
            "OPS": cycle_result("OPS", sent=1, failed=1),
        }

        result = CliRunner().invoke(cli, ["--config", str(config_path), "run"])

        assert result.exit_code == 0
        assert "PRJ: 3 issue(s), 3 sent, 0 failed" in result.output
        assert "OPS: 2 issue(s), 1 sent, 1 failed" in result.output
        fake_runner.run_once.assert_awaited_once_with(None, concurrent=False)
        fake_runner.close.assert_awaited_once()

    def test_run_exits_nonzero_on_failed_cycle(
        self, config_path: Path, fake_runner: AsyncMock
    ) -> None:
        """Test a failed cycle sets the exit status."""
        fake_runner.run_once.return_value = {"PRJ": cycle_result("PRJ", sent=1), "OPS": None}

        result = CliRunner().invoke(
            cli, ["--config", str(config_path), "run", "-p", "PRJ", "-p", "OPS", "--concurrent"]
        )

        assert result.exit_code == 1
        assert "OPS: cycle failed" in result.output
        fake_runner.run_once.assert_awaited_once_with(["PRJ", "OPS"], concurrent=True)

    def test_missing_config(self, tmp_path: Path) -> None:
        """Test a missing configuration file."""
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "nope.yaml"), "run"])

        assert result.exit_code == 1
        assert "No .tracknotify.yaml found" in result.output


class TestStatusCommand:
    """Tests for `tracknotify status`."""

    def test_status_lists_checkpoints(self, config_path: Path, tmp_path: Path) -> None:
        """Test stored and missing checkpoints."""
        last = tmp_path / "last"
        last.mkdir()
        (last / "PRJ_last_request.json").write_text(
            json.dumps({"ts": "1700000000000", "s": "14.11.2023 22:13:20"})
        )

        result = CliRunner().invoke(cli, ["--config", str(config_path), "status"])

        assert result.exit_code == 0
        assert "14.11.2023 22:13:20" in result.output
        assert "(none, first run)" in result.output

    def test_status_shows_unreadable_checkpoint(self, config_path: Path, tmp_path: Path) -> None:
        """Test a corrupt checkpoint file is reported, not fatal."""
        last = tmp_path / "last"
        last.mkdir()
        (last / "OPS_last_request.json").write_text("garbage")

        result = CliRunner().invoke(cli, ["--config", str(config_path), "status"])

        assert result.exit_code == 0
        assert "unreadable" in result.output


class TestCheckCommand:
    """Tests for `tracknotify check`."""

    def test_check_all_healthy(self, config_path: Path, fake_runner: AsyncMock) -> None:
        """Test a healthy setup."""
        fake_runner.health_check.return_value = {"youtrack": True, "telegram:PRJ": True}

        result = CliRunner().invoke(cli, ["--config", str(config_path), "check"])

        assert result.exit_code == 0
        assert "youtrack" in result.output

    def test_check_failure_exits_nonzero(self, config_path: Path, fake_runner: AsyncMock) -> None:
        """Test an unhealthy bot token."""
        fake_runner.health_check.return_value = {"youtrack": True, "telegram:PRJ": False}

        result = CliRunner().invoke(cli, ["--config", str(config_path), "check"])

        assert result.exit_code == 1
        assert "telegram:PRJ (check credentials)" in result.output
