"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path

import pytest

from stackctl.cli import RuntimeContext, build_runtime
from stackctl.config import AppConfig, load_config

REQUIRED_CONFIGS = (
    "config/domain.yml",
    "config/database.yml",
    "config/redis.yml",
    "config/security.yml",
    "docker-compose.override.yml",
)

RUNNING_SERVICES = "web\njobs\nwebpack\npostgres\nredis\n"

MUTATING_VERBS = ("build", "up", "down", "stop", "rm", "restart", "run", "pull")


class FakeShell:
    """Scripted stand-in for ``subprocess.run`` that records every argv."""

    def __init__(self) -> None:
        """Start with no rules; unmatched commands succeed with empty output."""
        self.calls: list[list[str]] = []
        self._rules: list[tuple[tuple[str, ...], list[tuple[int, str, str]]]] = []

    def when(
        self,
        *prefix: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        """Answer every command starting with *prefix* with the given result."""
        self._rules.append((prefix, [(returncode, stdout, stderr)]))

    def sequence(self, *prefix: str, responses: Sequence[tuple[int, str]]) -> None:
        """Answer successive matching commands in order, repeating the last response."""
        self._rules.append((prefix, [(rc, out, "") for rc, out in responses]))

    def raise_missing(self, *prefix: str) -> None:
        """Simulate a missing executable for commands starting with *prefix*."""
        self._rules.append((prefix, []))

    def __call__(self, args: Sequence[str], **kwargs: object) -> subprocess.CompletedProcess[str]:
        argv = [str(arg) for arg in args]
        self.calls.append(argv)
        # Later rules override earlier ones.
        for prefix, responses in reversed(self._rules):
            if tuple(argv[: len(prefix)]) != prefix:
                continue
            if not responses:
                raise FileNotFoundError(2, "No such file or directory", argv[0])
            returncode, stdout, stderr = responses.pop(0) if len(responses) > 1 else responses[0]
            return subprocess.CompletedProcess(argv, returncode, stdout, stderr)
        return subprocess.CompletedProcess(argv, 0, "", "")

    def count(self, *prefix: str) -> int:
        """Return how many recorded commands start with *prefix*."""
        return sum(1 for argv in self.calls if tuple(argv[: len(prefix)]) == prefix)

    def called(self, *prefix: str) -> bool:
        """Return ``True`` when any recorded command starts with *prefix*."""
        return self.count(*prefix) > 0

    def index(self, *prefix: str) -> int:
        """Return the position of the first command starting with *prefix*."""
        for position, argv in enumerate(self.calls):
            if tuple(argv[: len(prefix)]) == prefix:
                return position
        raise AssertionError(f"{' '.join(prefix)} was never invoked")

    def contains(self, token: str) -> bool:
        """Return ``True`` when any recorded argv contains *token*."""
        return any(token in argv for argv in self.calls)

    def mutating_calls(self) -> list[list[str]]:
        """Return the recorded commands that change containers, images or code."""
        found: list[list[str]] = []
        for argv in self.calls:
            if argv[:2] == ["docker", "compose"] and argv[2] in MUTATING_VERBS:
                found.append(argv)
            elif argv[:2] == ["git", "pull"]:
                found.append(argv)
        return found


@pytest.fixture
def shell(monkeypatch: pytest.MonkeyPatch) -> FakeShell:
    """Patch ``subprocess.run`` with a healthy docker/git environment."""
    fake = FakeShell()
    fake.when("docker", "info", stdout="Server Version: 24.0.7\n")
    fake.when("docker", "compose", "version", "--short", stdout="2.24.6\n")
    fake.when("docker", "images", "--format", stdout="postgres\nredis\n")
    fake.when("docker", "compose", "ps", stdout="NAME  SERVICE  STATUS\nweb-1  web  running\n")
    fake.when(
        "docker", "compose", "ps", "--services", "--filter", "status=running",
        stdout=RUNNING_SERVICES,
    )
    fake.when("docker", "compose", "exec", "-T", "postgres", "pg_isready")
    fake.when(
        "docker", "compose", "logs", "--no-color", "webpack",
        stdout="webpack 5.88.2 compiled successfully in 5123 ms\n",
    )
    fake.when("docker", "compose", "run", "--rm", "web", "bundle", "exec", "rails", returncode=1)
    fake.when("git", "remote", "get-url", "personal", stdout="git@github.com:dev/canvas-lms.git\n")
    monkeypatch.setattr(subprocess, "run", fake)
    monkeypatch.setattr("time.sleep", lambda _seconds: None)
    return fake


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a project root with every configuration artifact in place."""
    root = tmp_path / "canvas-lms"
    root.mkdir()
    (root / "docker-compose.yml").write_text("services: {}\n", encoding="utf-8")
    (root / "README.md").write_text("# Canvas LMS\n", encoding="utf-8")
    for relative in REQUIRED_CONFIGS:
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("development: {}\n", encoding="utf-8")
    monkeypatch.chdir(root)
    monkeypatch.delenv("STACKCTL_CONFIG_FILE", raising=False)
    monkeypatch.setenv("STACKCTL_LOGS_DIR", str(tmp_path / "logs"))
    return root


@pytest.fixture
def config(project: Path, tmp_path: Path) -> AppConfig:
    """Return configuration resolved against the temporary project root."""
    return load_config(env={"STACKCTL_LOGS_DIR": str(tmp_path / "logs")}, cwd=project)


@pytest.fixture
def runtime(config: AppConfig) -> RuntimeContext:
    """Return the fully wired runtime for the temporary project."""
    return build_runtime(config)
