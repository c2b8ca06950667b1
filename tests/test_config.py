from pathlib import Path

import pytest

from gke_sandbox.config import (
    SandboxConfig,
    _deep_merge,
    load_config,
    resolve_config,
    zone_to_region,
)
from gke_sandbox.constants import DEFAULT_REQUIRED_ROLES, DEFAULT_VM_SIZE
from gke_sandbox.errors import ConfigError

pytestmark = [pytest.mark.unit]


class TestDeepMerge:
    def test_shallow_override(self):
        assert _deep_merge({"a": 1, "b": 2}, {"b": 3}) == {"a": 1, "b": 3}

    def test_nested_merge(self):
        base = {"metadata": {"A": "1", "B": "2"}}
        override = {"metadata": {"B": "3"}}
        assert _deep_merge(base, override) == {"metadata": {"A": "1", "B": "3"}}

    def test_empty_base(self):
        assert _deep_merge({}, {"a": 1}) == {"a": 1}

    def test_empty_override(self):
        assert _deep_merge({"a": 1}, {}) == {"a": 1}


class TestLoadConfig:
    def test_project_only(self, tmp_path: Path):
        (tmp_path / "gke-sandbox.toml").write_text('project = "acme"\n')
        result = load_config(
            project_dir=tmp_path, global_path=tmp_path / "nonexistent.toml", environ={},
        )
        assert result == {"project": "acme"}

    def test_global_only(self, tmp_path: Path):
        global_toml = tmp_path / "defaults.toml"
        global_toml.write_text('zone = "us-west1-c"\n')
        result = load_config(
            project_dir=tmp_path / "noproject", global_path=global_toml, environ={},
        )
        assert result["zone"] == "us-west1-c"

    def test_project_overrides_global(self, tmp_path: Path):
        global_toml = tmp_path / "defaults.toml"
        global_toml.write_text('project = "global"\nvm_size = "e2-small"\n')
        project_dir = tmp_path / "project"
        project_dir.mkdir()
        (project_dir / "gke-sandbox.toml").write_text('project = "local"\n')
        result = load_config(project_dir=project_dir, global_path=global_toml, environ={})
        assert result == {"project": "local", "vm_size": "e2-small"}

    def test_environment_overrides_files(self, tmp_path: Path):
        (tmp_path / "gke-sandbox.toml").write_text('project = "from-file"\nzone = "us-east1-b"\n')
        result = load_config(
            project_dir=tmp_path,
            global_path=tmp_path / "nope.toml",
            environ={"GKE_SANDBOX_PROJECT": "from-env", "GKE_SANDBOX_VM_SIZE": ""},
        )
        assert result == {"project": "from-env", "zone": "us-east1-b"}

    def test_no_files_returns_empty(self, tmp_path: Path):
        result = load_config(
            project_dir=tmp_path / "nope", global_path=tmp_path / "nope.toml", environ={},
        )
        assert result == {}

    def test_invalid_toml_raises(self, tmp_path: Path):
        (tmp_path / "gke-sandbox.toml").write_text("project = \n")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(project_dir=tmp_path, global_path=tmp_path / "nope.toml", environ={})


class TestResolveConfig:
    def test_defaults(self):
        config = resolve_config({})
        assert config.project is None
        assert config.vm_size == DEFAULT_VM_SIZE
        assert config.required_roles == DEFAULT_REQUIRED_ROLES
        assert dict(config.metadata) == {}

    def test_full(self):
        config = resolve_config({
            "project": "acme",
            "zone": "europe-west4-b",
            "required_roles": ["roles/container.viewer"],
            "metadata": {"FALCON_CID": "abc", "TIER": 2},
            "readiness_poll_attempts": "3",
            "iam_settle_seconds": 5,
        })
        assert config.project == "acme"
        assert config.region == "europe-west4"
        assert config.required_roles == ("roles/container.viewer",)
        assert dict(config.metadata) == {"FALCON_CID": "abc", "TIER": "2"}
        assert config.readiness_poll_attempts == 3
        assert config.iam_settle_seconds == 5.0

    def test_unknown_keys_raise(self):
        with pytest.raises(ConfigError, match="Unknown configuration keys: colour"):
            resolve_config({"colour": "blue"})

    def test_roles_must_be_list_of_strings(self):
        with pytest.raises(ConfigError, match="required_roles"):
            resolve_config({"required_roles": "roles/owner"})

    def test_metadata_must_be_table(self):
        with pytest.raises(ConfigError, match="metadata"):
            resolve_config({"metadata": ["a"]})

    def test_metadata_is_read_only(self):
        config = resolve_config({"metadata": {"A": "1"}})
        with pytest.raises(TypeError):
            config.metadata["B"] = "2"  # type: ignore[index]

    @pytest.mark.parametrize(
        "key,value",
        [("readiness_poll_attempts", "many"), ("running_poll_timeout", "3m"), ("iam_settle_seconds", [30])],
    )
    def test_non_numeric_poll_settings_raise(self, key: str, value: object):
        with pytest.raises(ConfigError, match=f"'{key}' must be a number"):
            resolve_config({key: value})

    @pytest.mark.parametrize(
        "key,value",
        [("running_poll_interval", 0), ("readiness_poll_interval", -5), ("readiness_poll_attempts", 0)],
    )
    def test_poll_settings_must_be_positive(self, key: str, value: object):
        with pytest.raises(ConfigError, match=f"'{key}' must be positive"):
            resolve_config({key: value})

    def test_negative_settle_time_raises(self):
        with pytest.raises(ConfigError, match="non-negative"):
            resolve_config({"iam_settle_seconds": -1})

    def test_zero_settle_time_allowed(self):
        assert resolve_config({"iam_settle_seconds": 0}).iam_settle_seconds == 0.0


class TestSandboxConfig:
    def test_require_project_raises_when_missing(self):
        with pytest.raises(ConfigError, match="No GCP project configured"):
            SandboxConfig().require_project()

    def test_require_project_returns_value(self):
        assert SandboxConfig(project="acme").require_project() == "acme"

    def test_ssh_key_expands_user(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv("HOME", str(tmp_path))
        config = SandboxConfig(ssh_key_path="~/.ssh/id_ed25519")
        assert config.resolved_ssh_key() == tmp_path / ".ssh" / "id_ed25519"

    def test_no_ssh_key(self):
        assert SandboxConfig().resolved_ssh_key() is None

    @pytest.mark.parametrize(
        "zone,region",
        [("us-west1-c", "us-west1"), ("europe-west4-b", "europe-west4"), ("asia-south2-a", "asia-south2")],
    )
    def test_zone_to_region(self, zone: str, region: str):
        assert zone_to_region(zone) == region
