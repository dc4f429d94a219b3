"""Tests for the stackctl command line interface."""
from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner, Result

from stackctl import __version__
from stackctl.cli import app

if TYPE_CHECKING:
    from conftest import FakeShell

runner = CliRunner()

PG_READY = ("docker", "compose", "exec", "-T", "postgres", "pg_isready")
WEBPACK_LOGS = ("docker", "compose", "logs", "--no-color", "webpack")


def _invoke(*args: str) -> Result:
    return runner.invoke(app, list(args))


def _last_line(result: Result) -> str:
    return result.output.strip().splitlines()[-1]


def _records(tmp_path: Path) -> list[dict[str, object]]:
    path = tmp_path / "logs" / "operations.jsonl"
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_version_flag() -> None:
    """``--version`` prints the package version."""
    result = _invoke("--version")

    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_lists_modes() -> None:
    """Help output documents every mode flag."""
    result = _invoke("--help")

    assert result.exit_code == 0
    for flag in ("--start", "--update", "--rebuild", "--dry-run"):
        assert flag in result.output


@pytest.mark.parametrize("args", [["--bogus"], ["extra"], ["--start", "now"]])
def test_unrecognised_arguments_exit_before_any_command(
    shell: FakeShell,
    project: Path,
    args: list[str],
) -> None:
    """Unknown flags or positionals are usage errors and run nothing."""
    result = _invoke(*args)

    assert result.exit_code == 2
    assert shell.calls == []
    assert _last_line(result).startswith("[ERROR] arguments: ")
    assert "Accepted modes: (no argument) full setup" in _last_line(result)


def test_two_modes_rejected(shell: FakeShell, project: Path) -> None:
    """Selecting two modes at once is a usage error."""
    result = _invoke("--start", "--update")

    assert result.exit_code == 2
    assert shell.calls == []
    assert _last_line(result).startswith("[ERROR] arguments: Only one mode")


def test_full_setup_succeeds_and_logs(shell: FakeShell, project: Path, tmp_path: Path) -> None:
    """A healthy fresh environment completes the full setup."""
    result = _invoke()

    assert result.exit_code == 0, result.output
    assert "Environment is running!" in result.output
    assert "http://localhost:3001" in result.output
    assert _last_line(result) == "[OK] full: finished"

    record = _records(tmp_path)[-1]
    assert record["command"] == "run full"
    result_entry = record["result"]
    assert isinstance(result_entry, dict)
    assert result_entry["status"] == "success"
    steps = record["steps"]
    assert isinstance(steps, list)
    assert steps[-1]["name"] == "report"


def test_missing_configs_exit_with_environment_code(
    shell: FakeShell,
    project: Path,
    tmp_path: Path,
) -> None:
    """Two missing artifacts are both listed and nothing is started."""
    (project / "config" / "database.yml").unlink()
    (project / "docker-compose.override.yml").unlink()

    result = _invoke()

    assert result.exit_code == 3
    missing_lines = [line for line in result.output.splitlines() if "is missing" in line]
    assert missing_lines == [
        "[WARN] config/database.yml is missing",
        "[WARN] docker-compose.override.yml is missing",
    ]
    assert "See INSTALL.md Section 3" in result.output
    assert _last_line(result).startswith("[ERROR] check-config: 2 configuration artifact(s)")
    assert shell.mutating_calls() == []

    result_entry = _records(tmp_path)[-1]["result"]
    assert isinstance(result_entry, dict)
    assert result_entry["rc"] == 3
    assert result_entry["errors"] == ["config/database.yml", "docker-compose.override.yml"]


def test_wrong_directory(shell: FakeShell, project: Path) -> None:
    """Running outside the project root exits with the environment code."""
    (project / "README.md").write_text("# Not it\n", encoding="utf-8")

    result = _invoke("--start")

    assert result.exit_code == 3
    assert "Run this command from the project root directory." in result.output
    assert _last_line(result).startswith("[ERROR] check-environment:")
    assert shell.calls == []


def test_dry_run_makes_no_changes(shell: FakeShell, project: Path) -> None:
    """Dry-run performs the checks and never mutates the environment."""
    result = _invoke("--rebuild", "--dry-run")

    assert result.exit_code == 0, result.output
    assert shell.mutating_calls() == []
    assert shell.called("docker", "info")


def test_asset_timeout_still_succeeds(shell: FakeShell, project: Path) -> None:
    """A slow asset compiler is reported but does not fail the run."""
    shell.when(*WEBPACK_LOGS, stdout="webpack: Compiling...\n")

    result = _invoke("--start")

    assert result.exit_code == 0, result.output
    assert "Monitor with: docker compose logs -f webpack" in result.output
    assert _last_line(result) == "[WARN] start: finished with warnings"


def test_database_timeout_exits_with_provider_code(shell: FakeShell, project: Path) -> None:
    """A database that never becomes ready fails the run."""
    shell.when(*PG_READY, returncode=2)

    result = _invoke()

    assert result.exit_code == 4
    assert _last_line(result).startswith("[ERROR] wait-database: PostgreSQL did not become ready")
    assert not shell.called("docker", "compose", "run")


def test_interrupt_while_waiting_exits_130(
    shell: FakeShell,
    project: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Ctrl-C during a readiness wait cancels the run promptly."""
    shell.when(*PG_READY, returncode=2)

    def interrupt(_seconds: float) -> None:
        raise KeyboardInterrupt

    monkeypatch.setattr("time.sleep", interrupt)

    result = _invoke()

    assert result.exit_code == 130
    assert shell.count(*PG_READY) == 1
    assert "wait-database" in _last_line(result)


def test_invalid_config_file(shell: FakeShell, project: Path) -> None:
    """A malformed config file is a validation error."""
    (project / "stackctl.yml").write_text("readiness:\n  database:\n    attempts: 0\n")

    result = _invoke()

    assert result.exit_code == 2
    assert "greater than zero" in result.output
    assert shell.calls == []


def test_unparsable_minimum_compose_version(
    shell: FakeShell,
    project: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A minimum compose version that is not a version is a validation error."""
    monkeypatch.setenv("STACKCTL_COMPOSE__MIN_VERSION", "latest")

    result = _invoke("--start")

    assert result.exit_code == 2
    assert "compose.min_version must be a version" in result.output
    assert "Traceback" not in result.output
    assert shell.calls == []
