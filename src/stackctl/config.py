"""Configuration loader for stackctl.

This module centralises the logic for reading configuration values from
multiple sources:

1. Built-in defaults (matching the reference Canvas LMS compose project).
2. ``stackctl.yml`` in the working directory (or an override path).
3. Environment variables prefixed with ``STACKCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export STACKCTL_READINESS__DATABASE__ATTEMPTS=60
    export STACKCTL_COMPOSE__IMAGE_MARKER=myapp-web

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses``.
"""
from __future__ import annotations

import os
import shlex
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

from packaging.version import InvalidVersion, Version

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - PyYAML missing from the environment
    raise RuntimeError(
        "PyYAML is required to load stackctl configuration. Install with "
        "`pip install stackctl` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "STACKCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class ComposeConfig:
    """Container runtime settings."""

    docker_bin: str = "docker"
    compose_file: str = "docker-compose.yml"
    min_version: str = "2.0.0"
    image_marker: str = "canvas-lms-web"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "docker_bin": self.docker_bin,
            "compose_file": self.compose_file,
            "min_version": self.min_version,
            "image_marker": self.image_marker,
        }


@dataclass(frozen=True)
class ProjectConfig:
    """Project root detection and required configuration artifacts."""

    marker_file: str = "README.md"
    marker_text: str = "Canvas LMS"
    setup_docs: str = "INSTALL.md Section 3"
    required_configs: tuple[tuple[str, str], ...] = ()

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "marker_file": self.marker_file,
            "marker_text": self.marker_text,
            "setup_docs": self.setup_docs,
            "required_configs": dict(self.required_configs),
        }


@dataclass(frozen=True)
class ServicesConfig:
    """Logical service name to compose service identity mapping."""

    web: str = "web"
    jobs: str = "jobs"
    assets: str = "webpack"
    database: str = "postgres"
    cache: str = "redis"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "web": self.web,
            "jobs": self.jobs,
            "assets": self.assets,
            "database": self.database,
            "cache": self.cache,
        }


@dataclass(frozen=True)
class DatabaseProbeConfig:
    """Polling budget for the database readiness probe."""

    attempts: int = 30
    interval: float = 2.0
    user: str = "postgres"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"attempts": self.attempts, "interval": self.interval, "user": self.user}


@dataclass(frozen=True)
class AssetsProbeConfig:
    """Polling budget for the asset compiler readiness probe."""

    attempts: int = 60
    interval: float = 5.0
    marker: str = "compiled successfully"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"attempts": self.attempts, "interval": self.interval, "marker": self.marker}


@dataclass(frozen=True)
class ReadinessConfig:
    """Aggregated readiness probe settings."""

    database: DatabaseProbeConfig = DatabaseProbeConfig()
    assets: AssetsProbeConfig = AssetsProbeConfig()

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"database": self.database.to_dict(), "assets": self.assets.to_dict()}


@dataclass(frozen=True)
class DatabaseConfig:
    """Commands executed inside the application service for the database."""

    detect_command: tuple[str, ...]
    detect_marker: str
    create_command: tuple[str, ...]
    migrate_command: tuple[str, ...]

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "detect_command": list(self.detect_command),
            "detect_marker": self.detect_marker,
            "create_command": list(self.create_command),
            "migrate_command": list(self.migrate_command),
        }


@dataclass(frozen=True)
class DependenciesConfig:
    """Package-manager commands executed inside the application service."""

    backend_command: tuple[str, ...]
    frontend_command: tuple[str, ...]

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "backend_command": list(self.backend_command),
            "frontend_command": list(self.frontend_command),
        }


@dataclass(frozen=True)
class GitConfig:
    """Source remote used by update mode."""

    git_bin: str = "git"
    remote: str = "personal"
    branch: str = "master"
    remote_url: str = "git@github.com:<user>/canvas-lms.git"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "git_bin": self.git_bin,
            "remote": self.remote,
            "branch": self.branch,
            "remote_url": self.remote_url,
        }


@dataclass(frozen=True)
class ReportConfig:
    """Values shown in the final status report."""

    urls: tuple[tuple[str, str], ...] = ()

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"urls": dict(self.urls)}


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for stackctl."""

    config_file: Path
    project_root: Path
    logs_dir: Path
    compose: ComposeConfig
    project: ProjectConfig
    services: ServicesConfig
    readiness: ReadinessConfig
    database: DatabaseConfig
    dependencies: DependenciesConfig
    git: GitConfig
    report: ReportConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "project_root": str(self.project_root),
            "logs_dir": str(self.logs_dir),
            "compose": self.compose.to_dict(),
            "project": self.project.to_dict(),
            "services": self.services.to_dict(),
            "readiness": self.readiness.to_dict(),
            "database": self.database.to_dict(),
            "dependencies": self.dependencies.to_dict(),
            "git": self.git.to_dict(),
            "report": self.report.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "stackctl.yml",
    "project_root": ".",
    "logs_dir": "~/.local/state/stackctl/logs",
    "compose": {
        "docker_bin": "docker",
        "compose_file": "docker-compose.yml",
        "min_version": "2.0.0",
        "image_marker": "canvas-lms-web",
    },
    "project": {
        "marker_file": "README.md",
        "marker_text": "Canvas LMS",
        "setup_docs": "INSTALL.md Section 3",
        "required_configs": {
            "domain": "config/domain.yml",
            "database": "config/database.yml",
            "cache": "config/redis.yml",
            "security": "config/security.yml",
            "override": "docker-compose.override.yml",
        },
    },
    "services": {
        "web": "web",
        "jobs": "jobs",
        "assets": "webpack",
        "database": "postgres",
        "cache": "redis",
    },
    "readiness": {
        "database": {"attempts": 30, "interval": 2.0, "user": "postgres"},
        "assets": {"attempts": 60, "interval": 5.0, "marker": "compiled successfully"},
    },
    "database": {
        "detect_command": [
            "bundle",
            "exec",
            "rails",
            "runner",
            'ActiveRecord::Base.connection; puts "exists"',
        ],
        "detect_marker": "exists",
        "create_command": ["bundle", "exec", "rake", "db:create", "db:initial_setup"],
        "migrate_command": ["bundle", "exec", "rake", "db:migrate"],
    },
    "dependencies": {
        "backend_command": ["bundle", "install"],
        "frontend_command": ["yarn", "install"],
    },
    "git": {
        "git_bin": "git",
        "remote": "personal",
        "branch": "master",
        "remote_url": "git@github.com:<user>/canvas-lms.git",
    },
    "report": {
        "urls": {"Local": "http://localhost:3001"},
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_SECTION_KEYS: dict[str, set[str]] = {
    "compose": {"docker_bin", "compose_file", "min_version", "image_marker"},
    "project": {"marker_file", "marker_text", "setup_docs", "required_configs"},
    "services": {"web", "jobs", "assets", "database", "cache"},
    "readiness": {"database", "assets"},
    "database": {"detect_command", "detect_marker", "create_command", "migrate_command"},
    "dependencies": {"backend_command", "frontend_command"},
    "git": {"git_bin", "remote", "branch", "remote_url"},
    "report": {"urls"},
}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
    cwd: Path | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)
    base_dir = cwd if cwd is not None else Path.cwd()

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env, base_dir)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged, base_dir)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
    base_dir: Path,
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return base_dir / default_path


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    for section, allowed in ALLOWED_SECTION_KEYS.items():
        section_map = _as_dict(raw.get(section), section)
        unknown = set(section_map.keys()) - allowed
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown {section} configuration keys: {joined}.")

    readiness_map = _as_dict(raw.get("readiness"), "readiness")
    for target, extra in (("database", "user"), ("assets", "marker")):
        target_map = _as_dict(readiness_map.get(target), f"readiness.{target}")
        unknown = set(target_map.keys()) - {"attempts", "interval", extra}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ConfigError(f"Unknown readiness.{target} keys: {joined}.")

    compose_map = _as_dict(raw.get("compose"), "compose")
    min_version = compose_map.get("min_version")
    if min_version is not None:
        if not str(min_version).strip():
            raise ConfigError("compose.min_version must not be blank.")
        try:
            Version(str(min_version))
        except InvalidVersion as exc:
            raise ConfigError(
                f"compose.min_version must be a version such as 2.0.0. Got {min_version!r}."
            ) from exc


def _build_app_config(raw: Mapping[str, object], base_dir: Path) -> AppConfig:
    config_file = _to_path(raw.get("config_file"))
    project_root = _to_path(raw.get("project_root"))
    if not project_root.is_absolute():
        project_root = base_dir / project_root
    logs_dir = _to_path(raw.get("logs_dir"))

    compose_mapping = _as_dict(raw.get("compose"), "compose")
    compose = ComposeConfig(
        docker_bin=str(compose_mapping.get("docker_bin", "docker")),
        compose_file=str(compose_mapping.get("compose_file", "docker-compose.yml")),
        min_version=str(compose_mapping.get("min_version", "2.0.0")),
        image_marker=str(compose_mapping.get("image_marker", "canvas-lms-web")),
    )

    project_mapping = _as_dict(raw.get("project"), "project")
    required_raw = _as_dict(project_mapping.get("required_configs"), "project.required_configs")
    required_configs: list[tuple[str, str]] = []
    for name, value in required_raw.items():
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(
                f"project.required_configs.{name} must be a non-empty path string."
            )
        required_configs.append((name, value.strip()))
    project = ProjectConfig(
        marker_file=str(project_mapping.get("marker_file", "README.md")),
        marker_text=str(project_mapping.get("marker_text", "Canvas LMS")),
        setup_docs=str(project_mapping.get("setup_docs", "INSTALL.md Section 3")),
        required_configs=tuple(required_configs),
    )

    services_mapping = _as_dict(raw.get("services"), "services")
    defaults = ServicesConfig()
    services = ServicesConfig(
        web=_expect_identity(services_mapping.get("web"), "services.web", defaults.web),
        jobs=_expect_identity(services_mapping.get("jobs"), "services.jobs", defaults.jobs),
        assets=_expect_identity(
            services_mapping.get("assets"), "services.assets", defaults.assets
        ),
        database=_expect_identity(
            services_mapping.get("database"), "services.database", defaults.database
        ),
        cache=_expect_identity(services_mapping.get("cache"), "services.cache", defaults.cache),
    )

    readiness_mapping = _as_dict(raw.get("readiness"), "readiness")
    database_probe_mapping = _as_dict(readiness_mapping.get("database"), "readiness.database")
    assets_probe_mapping = _as_dict(readiness_mapping.get("assets"), "readiness.assets")
    readiness = ReadinessConfig(
        database=DatabaseProbeConfig(
            attempts=_expect_positive_int(
                database_probe_mapping.get("attempts"), "readiness.database.attempts", default=30
            ),
            interval=_expect_non_negative_float(
                database_probe_mapping.get("interval"), "readiness.database.interval", default=2.0
            ),
            user=str(database_probe_mapping.get("user", "postgres")),
        ),
        assets=AssetsProbeConfig(
            attempts=_expect_positive_int(
                assets_probe_mapping.get("attempts"), "readiness.assets.attempts", default=60
            ),
            interval=_expect_non_negative_float(
                assets_probe_mapping.get("interval"), "readiness.assets.interval", default=5.0
            ),
            marker=str(assets_probe_mapping.get("marker", "compiled successfully")),
        ),
    )

    database_mapping = _as_dict(raw.get("database"), "database")
    database = DatabaseConfig(
        detect_command=_as_command(database_mapping.get("detect_command"), "database.detect_command"),
        detect_marker=str(database_mapping.get("detect_marker", "exists")),
        create_command=_as_command(database_mapping.get("create_command"), "database.create_command"),
        migrate_command=_as_command(
            database_mapping.get("migrate_command"), "database.migrate_command"
        ),
    )

    dependencies_mapping = _as_dict(raw.get("dependencies"), "dependencies")
    dependencies = DependenciesConfig(
        backend_command=_as_command(
            dependencies_mapping.get("backend_command"), "dependencies.backend_command"
        ),
        frontend_command=_as_command(
            dependencies_mapping.get("frontend_command"), "dependencies.frontend_command"
        ),
    )

    git_mapping = _as_dict(raw.get("git"), "git")
    git = GitConfig(
        git_bin=str(git_mapping.get("git_bin", "git")),
        remote=str(git_mapping.get("remote", "personal")),
        branch=str(git_mapping.get("branch", "master")),
        remote_url=str(git_mapping.get("remote_url", GitConfig.remote_url)),
    )

    report_mapping = _as_dict(raw.get("report"), "report")
    urls_mapping = _as_dict(report_mapping.get("urls"), "report.urls")
    report = ReportConfig(urls=tuple((label, str(url)) for label, url in urls_mapping.items()))

    return AppConfig(
        config_file=config_file,
        project_root=project_root,
        logs_dir=logs_dir,
        compose=compose,
        project=project,
        services=services,
        readiness=readiness,
        database=database,
        dependencies=dependencies,
        git=git,
        report=report,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _as_command(value: object, label: str) -> tuple[str, ...]:
    """Accept either an argv list or a shell-style string."""
    if value is None:
        raise ConfigError(f"{label} must be specified.")
    if isinstance(value, str):
        try:
            parts = shlex.split(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid command for {label}: {exc}.") from exc
    else:
        parts = [str(item) for item in _as_sequence(value, label)]
    if not parts:
        raise ConfigError(f"{label} must not be empty.")
    return tuple(parts)


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_identity(value: object | None, label: str, default: str) -> str:
    if value is None:
        return default
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{label} must be a non-empty service name.")
    return value.strip()


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_positive_int(value: object | None, label: str, *, default: int) -> int:
    number = _expect_int(value, label, default=default)
    if number <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {number}.")
    return number


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_non_negative_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric < 0:
        raise ConfigError(f"{label} must not be negative. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "AssetsProbeConfig",
    "ComposeConfig",
    "ConfigError",
    "DatabaseConfig",
    "DatabaseProbeConfig",
    "DependenciesConfig",
    "GitConfig",
    "ProjectConfig",
    "ReadinessConfig",
    "ReportConfig",
    "ServicesConfig",
    "load_config",
]
