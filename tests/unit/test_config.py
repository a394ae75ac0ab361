"""
Unit tests for configuration loading.

Tests cover:
- Defaults when no file exists
- Full YAML parsing
- ${VAR} substitution and missing variables
- Validation errors
- Tool manifests
"""

from pathlib import Path

import pytest

from shepgate.config import (
    CONFIG_ENV_VAR,
    GateConfig,
    load_config,
    load_config_from_dict,
    load_tool_specs,
    substitute_env_vars,
)
from shepgate.errors import ConfigError


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_without_file(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """No shepgate.yaml in cwd yields defaults."""
        monkeypatch.chdir(temp_dir)
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        config = load_config()
        assert config == GateConfig()
        assert config.database.path == "shepgate.db"
        assert config.approvals.batch_workers == 4

    def test_full_file(self, temp_dir: Path, sample_config_yaml: str) -> None:
        path = temp_dir / "shepgate.yaml"
        path.write_text(sample_config_yaml)
        config = load_config(path)
        assert config.database.path == "gate.db"
        assert config.approvals.batch_workers == 8
        assert config.execution.http_timeout_seconds == 5
        assert config.execution.secret_prefix == "SHEPGATE_SECRET_"
        assert config.logging.level == "DEBUG"

    def test_env_var_selects_file(
        self,
        temp_dir: Path,
        sample_config_yaml: str,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        path = temp_dir / "custom.yaml"
        path.write_text(sample_config_yaml)
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert load_config().approvals.batch_workers == 8

    def test_explicit_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(temp_dir / "missing.yaml")

    def test_empty_file(self, temp_dir: Path) -> None:
        path = temp_dir / "shepgate.yaml"
        path.write_text("")
        assert load_config(path) == GateConfig()

    def test_malformed_yaml(self, temp_dir: Path) -> None:
        path = temp_dir / "shepgate.yaml"
        path.write_text("database: [unclosed")
        with pytest.raises(ConfigError, match="Malformed"):
            load_config(path)


class TestValidation:
    """Tests for config validation."""

    def test_unknown_section_rejected(self) -> None:
        with pytest.raises(ConfigError):
            load_config_from_dict({"telemetry": {}})

    def test_worker_count_bounds(self) -> None:
        with pytest.raises(ConfigError):
            load_config_from_dict({"approvals": {"batch_workers": 0}})

    def test_bad_log_level(self) -> None:
        with pytest.raises(ConfigError):
            load_config_from_dict({"logging": {"level": "LOUD"}})

    def test_non_mapping(self) -> None:
        with pytest.raises(ConfigError):
            load_config_from_dict(["a", "b"])  # type: ignore[arg-type]


class TestEnvSubstitution:
    """Tests for ${VAR} substitution."""

    def test_substitutes_nested(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GATE_HOME", "/srv/gate")
        data = {"database": {"path": "${GATE_HOME}/gate.db"}, "list": ["${GATE_HOME}"]}
        assert substitute_env_vars(data) == {
            "database": {"path": "/srv/gate/gate.db"},
            "list": ["/srv/gate"],
        }

    def test_non_strings_untouched(self) -> None:
        assert substitute_env_vars({"n": 3, "b": True}) == {"n": 3, "b": True}

    def test_missing_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SHEPGATE_TEST_UNSET", raising=False)
        with pytest.raises(ConfigError, match="SHEPGATE_TEST_UNSET"):
            load_config_from_dict({"database": {"path": "${SHEPGATE_TEST_UNSET}"}})


class TestToolManifest:
    """Tests for tool manifest loading."""

    def test_load_specs(self, temp_dir: Path, sample_manifest_yaml: str) -> None:
        path = temp_dir / "tools.yaml"
        path.write_text(sample_manifest_yaml)
        specs = load_tool_specs(path)
        assert [s.name for s in specs] == ["github_list_repos", "github_delete_repo"]
        assert specs[1].input_schema["type"] == "object"

    def test_missing_manifest(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigError):
            load_tool_specs(temp_dir / "none.yaml")

    def test_invalid_manifest(self, temp_dir: Path) -> None:
        path = temp_dir / "tools.yaml"
        path.write_text("tools:\n  - description: no name\n")
        with pytest.raises(ConfigError):
            load_tool_specs(path)
