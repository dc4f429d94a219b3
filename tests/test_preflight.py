"""Tests for the read-only precondition checks."""
from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from stackctl.errors import EnvironmentNotReadyError, MissingConfigError, WrongDirectoryError
from stackctl.exit_codes import ExitCode

if TYPE_CHECKING:
    from conftest import FakeShell
    from stackctl.cli import RuntimeContext


def test_runtime_check_returns_compose_version(shell: FakeShell, runtime: RuntimeContext) -> None:
    """A running daemon with compose v2 passes and reports the version."""
    assert runtime.checker.check_runtime() == "2.24.6"
    assert shell.calls == [
        ["docker", "info"],
        ["docker", "compose", "version", "--short"],
    ]


def test_desktop_version_suffix_accepted(shell: FakeShell, runtime: RuntimeContext) -> None:
    """Vendor suffixes such as ``-desktop.1`` are ignored for comparison."""
    shell.when("docker", "compose", "version", stdout="v2.24.6-desktop.1\n")

    assert runtime.checker.check_runtime() == "2.24.6"


def test_daemon_not_running(shell: FakeShell, runtime: RuntimeContext) -> None:
    """An unreachable daemon is an environment error with a start hint."""
    shell.when("docker", "info", returncode=1, stderr="Cannot connect to the Docker daemon")

    with pytest.raises(EnvironmentNotReadyError, match="Docker is not running") as excinfo:
        runtime.checker.check_runtime()
    assert excinfo.value.exit_code is ExitCode.ENVIRONMENT
    assert excinfo.value.remediation == "Start it with: sudo systemctl start docker"
    assert not shell.called("docker", "compose")


@pytest.mark.parametrize(
    ("rule", "message"),
    [
        ({"returncode": 1, "stderr": "'compose' is not a docker command."}, "not found"),
        ({"stdout": "1.29.2\n"}, "older than the required 2.0.0"),
        ({"stdout": "dev-build\n"}, "Unrecognised Docker Compose version"),
    ],
)
def test_compose_version_rejected(
    shell: FakeShell,
    runtime: RuntimeContext,
    rule: dict[str, object],
    message: str,
) -> None:
    """Missing, outdated or unparsable compose versions fail with an install hint."""
    shell.when("docker", "compose", "version", **rule)  # type: ignore[arg-type]

    with pytest.raises(EnvironmentNotReadyError, match=message) as excinfo:
        runtime.checker.check_runtime()
    assert excinfo.value.remediation == "Install: sudo apt install docker-compose-plugin"


def test_project_root_detected(runtime: RuntimeContext, project: Path) -> None:
    """The marker file and compose file identify the project root."""
    assert runtime.checker.check_project_root() == project


def test_wrong_directory_without_marker_text(runtime: RuntimeContext, project: Path) -> None:
    """A README that does not mention the project is rejected."""
    (project / "README.md").write_text("# Some other app\n", encoding="utf-8")

    with pytest.raises(WrongDirectoryError, match="does not mention 'Canvas LMS'") as excinfo:
        runtime.checker.check_project_root()
    assert excinfo.value.remediation == "Run this command from the project root directory."


def test_wrong_directory_without_compose_file(runtime: RuntimeContext, project: Path) -> None:
    """A missing compose file is rejected before the marker is read."""
    (project / "docker-compose.yml").unlink()
    (project / "README.md").unlink()

    with pytest.raises(WrongDirectoryError, match="docker-compose.yml not found"):
        runtime.checker.check_project_root()


def test_all_missing_artifacts_reported_at_once(runtime: RuntimeContext, project: Path) -> None:
    """Every missing configuration artifact is listed in a single failure."""
    (project / "config" / "redis.yml").unlink()
    (project / "docker-compose.override.yml").unlink()

    statuses = runtime.checker.inspect_artifacts()
    assert [status.label for status in statuses if not status.present] == [
        "config/redis.yml",
        "docker-compose.override.yml",
    ]

    with pytest.raises(MissingConfigError) as excinfo:
        runtime.checker.check_config_artifacts()
    error = excinfo.value
    assert error.missing == ("config/redis.yml", "docker-compose.override.yml")
    assert error.message.startswith("2 configuration artifact(s) missing")
    assert error.remediation == "See INSTALL.md Section 3 for setup instructions."
    assert error.exit_code is ExitCode.ENVIRONMENT


def test_complete_artifacts_pass(runtime: RuntimeContext) -> None:
    """All artifacts present yields one status per artifact."""
    statuses = runtime.checker.check_config_artifacts()

    assert len(statuses) == 5
    assert all(status.present for status in statuses)


def test_git_ownership_warning(
    runtime: RuntimeContext,
    project: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A ``.git`` directory owned by another user produces a warning only."""
    assert runtime.checker.inspect_git_ownership() is None

    (project / ".git").mkdir()
    assert runtime.checker.inspect_git_ownership() is None

    monkeypatch.setattr(os, "getuid", lambda: 4242424)
    warning = runtime.checker.inspect_git_ownership()
    assert warning is not None
    assert "sudo chown -R 4242424:4242424 .git" in warning
