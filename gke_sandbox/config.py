"""TOML-based defaults for gke-sandbox.

Loads ~/.gke-sandbox/defaults.toml (global) and gke-sandbox.toml (project),
merges them, applies environment overrides and resolves the result into one
immutable ``SandboxConfig`` that is passed explicitly to every component.

Example ``defaults.toml``::

    project = "acme-platform"
    zone = "us-west1-c"
    vm_size = "e2-standard-4"
    ssh_key_path = "~/.ssh/id_ed25519_github"
    git_user_name = "Jane Doe"
    git_user_email = "jane@example.com"

    [metadata]
    FALCON_CID = "..."
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from types import MappingProxyType
from typing import Any

from gke_sandbox.constants import (
    DEFAULT_IMAGE_FAMILY,
    DEFAULT_IMAGE_PROJECT,
    DEFAULT_REQUIRED_ROLES,
    DEFAULT_VM_SIZE,
    DEFAULT_ZONE,
    IAM_SETTLE_SECONDS,
    READINESS_POLL_ATTEMPTS,
    READINESS_POLL_INTERVAL,
    RUNNING_POLL_INTERVAL,
    RUNNING_POLL_TIMEOUT,
)
from gke_sandbox.errors import ConfigError

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".gke-sandbox" / "defaults.toml"
PROJECT_CONFIG_NAME = "gke-sandbox.toml"

ENV_OVERRIDES: dict[str, str] = {
    "GKE_SANDBOX_PROJECT": "project",
    "GKE_SANDBOX_ZONE": "zone",
    "GKE_SANDBOX_VM_SIZE": "vm_size",
    "GKE_SANDBOX_SSH_KEY": "ssh_key_path",
}


@dataclass(frozen=True, slots=True)
class SandboxConfig:
    """Resolved defaults for every command.

    Args:
        project: GCP project ID. Required before any cloud call.
        zone: Compute zone for new sandboxes. The region is derived from it.
        vm_size: Machine type for new sandboxes.
        image_family: Boot image family.
        image_project: Project that publishes ``image_family``.
        required_roles: Project roles granted to a newly created identity.
        ssh_key_path: Private key pushed into the VM for git access. Optional.
        git_user_name: Global git user.name set on the VM. Optional.
        git_user_email: Global git user.email set on the VM. Optional.
        startup_script: Guest init script. Defaults to the bundled one.
        metadata: Extra instance metadata items.
        iam_settle_seconds: Wait after creating a new identity.
        running_poll_interval: Seconds between RUNNING checks.
        running_poll_timeout: Total seconds to wait for RUNNING.
        readiness_poll_interval: Seconds between readiness marker checks.
        readiness_poll_attempts: Readiness marker checks before giving up.
    """

    project: str | None = None
    zone: str = DEFAULT_ZONE
    vm_size: str = DEFAULT_VM_SIZE
    image_family: str = DEFAULT_IMAGE_FAMILY
    image_project: str = DEFAULT_IMAGE_PROJECT
    required_roles: tuple[str, ...] = DEFAULT_REQUIRED_ROLES
    ssh_key_path: str | None = None
    git_user_name: str | None = None
    git_user_email: str | None = None
    startup_script: str | None = None
    metadata: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    iam_settle_seconds: float = IAM_SETTLE_SECONDS
    running_poll_interval: float = RUNNING_POLL_INTERVAL
    running_poll_timeout: float = RUNNING_POLL_TIMEOUT
    readiness_poll_interval: float = READINESS_POLL_INTERVAL
    readiness_poll_attempts: int = READINESS_POLL_ATTEMPTS

    @property
    def region(self) -> str:
        return zone_to_region(self.zone)

    def require_project(self) -> str:
        if not self.project:
            raise ConfigError(
                "No GCP project configured. Pass --project, set GKE_SANDBOX_PROJECT, "
                f"or add 'project' to {GLOBAL_CONFIG_PATH}."
            )
        return self.project

    def resolved_ssh_key(self) -> Path | None:
        if not self.ssh_key_path:
            return None
        return Path(self.ssh_key_path).expanduser()


def zone_to_region(zone: str) -> str:
    """Extract region from zone (e.g., 'us-west1-c' -> 'us-west1')."""
    return zone.rsplit("-", 1)[0]


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e


def _env_overrides(environ: Mapping[str, str]) -> RawConfig:
    return {key: environ[var] for var, key in ENV_OVERRIDES.items() if environ.get(var)}


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    return _deep_merge(merged, _env_overrides(os.environ if environ is None else environ))


_FIELD_NAMES = frozenset(f.name for f in fields(SandboxConfig))


_NUMERIC_FIELDS: tuple[tuple[str, type, bool], ...] = (
    # (key, type, must be strictly positive)
    ("readiness_poll_attempts", int, True),
    ("iam_settle_seconds", float, False),
    ("running_poll_interval", float, True),
    ("running_poll_timeout", float, False),
    ("readiness_poll_interval", float, True),
)


def _coerce(name: str, value: Any, kind: type, positive: bool) -> Any:
    try:
        number = kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{name}' must be a number, got {value!r}") from e
    if number < 0 or (positive and number == 0):
        bound = "positive" if positive else "non-negative"
        raise ConfigError(f"'{name}' must be {bound}, got {value!r}")
    return number


def resolve_config(raw: RawConfig) -> SandboxConfig:
    """Validate a merged raw mapping and build the immutable config."""
    unknown = sorted(set(raw) - _FIELD_NAMES)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

    values = dict(raw)

    if "required_roles" in values:
        roles = values["required_roles"]
        if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
            raise ConfigError("'required_roles' must be a list of role names")
        values["required_roles"] = tuple(roles)

    if "metadata" in values:
        metadata = values["metadata"]
        if not isinstance(metadata, dict):
            raise ConfigError("'metadata' must be a table of string values")
        values["metadata"] = MappingProxyType({str(k): str(v) for k, v in metadata.items()})

    for name, kind, positive in _NUMERIC_FIELDS:
        if name in values:
            values[name] = _coerce(name, values[name], kind, positive)

    return SandboxConfig(**values)


def get_config(project_dir: Path | None = None) -> SandboxConfig:
    return resolve_config(load_config(project_dir=project_dir))
