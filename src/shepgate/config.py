"""
Configuration loading for ShepGate.

Configuration lives in a YAML file (``shepgate.yaml`` by default, or the path
in ``SHEPGATE_CONFIG``). ``${VAR}`` references in string values are replaced
from the environment before validation.

Example shepgate.yaml:
    database:
      path: ${HOME}/.shepgate/gate.db
    approvals:
      batch_workers: 8
    execution:
      http_timeout_seconds: 15
      pool_idle_timeout_seconds: 300
      secret_prefix: SHEPGATE_SECRET_
    logging:
      level: INFO

Tool discovery files used by ``shepgate server sync`` share the same loader:
    tools:
      - name: github_list_repos
        description: List repositories
      - name: github_delete_repo
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from shepgate.errors import ConfigError
from shepgate.schema import ToolSpec

DEFAULT_CONFIG_FILE = "shepgate.yaml"
CONFIG_ENV_VAR = "SHEPGATE_CONFIG"
DEFAULT_DB_PATH = "shepgate.db"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# =============================================================================
# Environment Substitution
# =============================================================================

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")


def _replacer(match: re.Match) -> str:
    var = match.group(1)
    val = os.environ.get(var)
    if val is None:
        raise ConfigError(
            message=f"Environment variable {var} is not set",
            suggestion=f"Export {var} or remove the reference from the config file",
        )
    return val


def substitute_env_vars(obj: Any) -> Any:
    """Recursively substitute ${VAR} in all string values."""
    if isinstance(obj, str):
        return _ENV_VAR_RE.sub(_replacer, obj)
    if isinstance(obj, dict):
        return {k: substitute_env_vars(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [substitute_env_vars(item) for item in obj]
    return obj


# =============================================================================
# Config Models
# =============================================================================


class DatabaseConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = DEFAULT_DB_PATH


class ApprovalsConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    batch_workers: int = Field(default=4, ge=1, le=64)


class ExecutionConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    http_timeout_seconds: float = Field(default=30.0, gt=0)
    pool_idle_timeout_seconds: float = Field(default=300.0, gt=0)
    secret_prefix: str = ""


class LoggingConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: str = "WARNING"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Accept standard logging level names in any case."""
        level = v.upper()
        if level not in _LOG_LEVELS:
            msg = f"Invalid log level '{v}'. Must be one of: {', '.join(_LOG_LEVELS)}"
            raise ValueError(msg)
        return level


class GateConfig(BaseModel):
    """
    Top-level ShepGate configuration.

    Every section is optional; an empty file yields the defaults.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    approvals: ApprovalsConfig = Field(default_factory=ApprovalsConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ToolManifest(BaseModel):
    """A list of tools advertised by a server."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tools: list[ToolSpec] = Field(default_factory=list)


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def resolve_config_path(path: Path | str | None = None) -> Path:
    """Explicit path, then $SHEPGATE_CONFIG, then ./shepgate.yaml."""
    if path is not None:
        return Path(path)
    return Path(os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE)


def _read_yaml(path: Path) -> Any:
    try:
        with path.open() as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(message=f"Malformed YAML in {path}: {e}", path=str(path)) from e


def load_config_from_dict(data: dict[str, Any] | None, path: str = "") -> GateConfig:
    """Validate a raw mapping into a GateConfig."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(message="Configuration must be a mapping", path=path)
    try:
        return GateConfig.model_validate(substitute_env_vars(data))
    except ValidationError as e:
        raise ConfigError(message=f"Invalid configuration: {e}", path=path) from e


def load_config(path: Path | str | None = None) -> GateConfig:
    """
    Load configuration from YAML.

    Args:
        path: Config file; defaults to $SHEPGATE_CONFIG or ./shepgate.yaml

    Returns:
        Validated GateConfig. A missing default file yields the defaults.

    Raises:
        ConfigError: If an explicitly named file is missing, the YAML is
            malformed, a ${VAR} is undefined, or validation fails
    """
    explicit = path is not None or bool(os.environ.get(CONFIG_ENV_VAR))
    config_path = resolve_config_path(path)
    if not config_path.exists():
        if explicit:
            raise ConfigError(
                message=f"Config file not found: {config_path}",
                path=str(config_path),
            )
        return GateConfig()
    return load_config_from_dict(_read_yaml(config_path), path=str(config_path))


def load_tool_specs(path: Path | str) -> list[ToolSpec]:
    """
    Load a tool manifest (``tools: [...]``) from YAML.

    Raises:
        ConfigError: If the file is missing or does not match the schema
    """
    manifest_path = Path(path)
    if not manifest_path.exists():
        raise ConfigError(message=f"Tool manifest not found: {manifest_path}", path=str(path))
    data = _read_yaml(manifest_path) or {}
    try:
        return ToolManifest.model_validate(data).tools
    except ValidationError as e:
        raise ConfigError(message=f"Invalid tool manifest: {e}", path=str(path)) from e
