"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./willregistry.yaml (working directory)
3. ~/.willregistry/config.yaml (user home)

Environment variables override YAML: WILLREG_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "WILLREG_"

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class DatabaseConfig(BaseModel):
    """Database location. DATABASE_URL and WILLREG_DB_PATH still win."""

    url: str | None = None


class JobsConfig(BaseModel):
    """Background job runner settings."""

    batch_delay_seconds: float = Field(default=0.1, ge=0)
    retention_days: int = Field(default=7, ge=0)


class LoggingConfig(BaseModel):
    """Log output for the CLI and API."""

    level: str = "info"
    format: Literal["text", "json"] = "text"

    @field_validator("level")
    @classmethod
    def known_level(cls, value: str) -> str:
        if value.lower() not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class WillRegistryConfig(BaseModel):
    """Top-level configuration for the will registry tools."""

    database: DatabaseConfig = DatabaseConfig()
    jobs: JobsConfig = JobsConfig()
    logging: LoggingConfig = LoggingConfig()


def _find_config_file() -> Path | None:
    """Search for config file in standard locations."""
    candidates = [
        Path.cwd() / "willregistry.yaml",
        Path.cwd() / "willregistry.yml",
        Path.home() / ".willregistry" / "config.yaml",
        Path.home() / ".willregistry" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply WILLREG_<SECTION>_<KEY> env var overrides to config data.

    For example, ``WILLREG_JOBS_RETENTION_DAYS=14`` maps to section
    ``jobs``, field ``retention_days``. Variables naming no known section
    (such as WILLREG_DB_PATH) are left alone.
    """
    known_sections = sorted(WillRegistryConfig.model_fields.keys(), key=len, reverse=True)
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if not isinstance(data.get(matched_section), dict):
            data[matched_section] = {}
        # Coerce to int or bool, else leave for pydantic
        try:
            data[matched_section][matched_field] = int(value)
        except ValueError:
            if value.lower() in ("true", "false"):
                data[matched_section][matched_field] = value.lower() == "true"
            else:
                data[matched_section][matched_field] = value
    return data


def load_config(config_path: str | None = None) -> WillRegistryConfig | None:
    """Load configuration from a YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.willregistry/).

    Returns:
        Parsed and validated WillRegistryConfig, or None if no config found.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
        pydantic.ValidationError: If the file content is invalid.
    """
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()
        if path is None:
            return None

    logger.info("Loading config from %s", path)

    with open(path) as f:
        raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return WillRegistryConfig(**data)


def resolve_config(config_path: str | None = None) -> WillRegistryConfig:
    """Like load_config, but fall back to defaults plus env overrides."""
    config = load_config(config_path)
    if config is None:
        config = WillRegistryConfig(**_apply_env_overrides({}))
    return config


class JsonLogFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(config: LoggingConfig) -> None:
    """Configure root logging once for a CLI or API process."""
    handler = logging.StreamHandler()
    if config.format == "json":
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logging.basicConfig(level=config.level.upper(), handlers=[handler])
