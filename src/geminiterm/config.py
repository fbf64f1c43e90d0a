"""Configuration loading and validation for the Gemini chat TUI."""

from __future__ import annotations

from copy import deepcopy
import logging
import os
from pathlib import Path
import re
import tomllib
from typing import Any

from platformdirs import user_config_path, user_state_path
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ConfigValidationError

LOGGER = logging.getLogger(__name__)

APP_NAME = "geminiterm"
CONFIG_DIR = user_config_path(APP_NAME)
CONFIG_PATH = CONFIG_DIR / "config.toml"
STATE_DIR = user_state_path(APP_NAME)

HEX_COLOR_PATTERN = re.compile(r"^#(?:[0-9a-fA-F]{3}){1,2}$")
CLIENT_FACTORY_PATTERN = re.compile(r"^[A-Za-z_][\w.]*:[A-Za-z_]\w*$")
VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}

DEFAULT_GRADIENT = [
    "#4285f4",
    "#5b6ef5",
    "#7c5cf0",
    "#9b51e0",
    "#c043c8",
    "#d9468f",
    "#e8596b",
    "#f07a4a",
]


def _require_string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


class AppConfig(BaseModel):
    """Application metadata."""

    title: str = "Gemini Chat"

    @field_validator("title", mode="before")
    @classmethod
    def _validate_title(cls, value: Any) -> str:
        return _require_string(value)


class GeminiConfig(BaseModel):
    """Remote client wiring and chat session defaults."""

    client_factory: str = ""
    model: str = "gemini-2.5-flash"
    default_gem: str = ""
    download_dir: str = ""
    auto_approve_tools: bool = False
    max_tool_depth: int = Field(default=8, ge=1, le=100)

    @field_validator("client_factory", mode="before")
    @classmethod
    def _validate_factory(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("client_factory must be a string.")
        normalized = value.strip()
        if normalized and not CLIENT_FACTORY_PATTERN.match(normalized):
            raise ValueError("client_factory must look like 'package.module:callable'.")
        return normalized

    @field_validator("model", mode="before")
    @classmethod
    def _validate_model(cls, value: Any) -> str:
        return _require_string(value)

    @field_validator("default_gem", "download_dir", mode="before")
    @classmethod
    def _normalize_optional(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        return value.strip()


class UIConfig(BaseModel):
    """Rendering preferences."""

    gradient: list[str] = Field(default_factory=lambda: list(DEFAULT_GRADIENT))
    show_thoughts: bool = True

    @field_validator("gradient", mode="before")
    @classmethod
    def _validate_gradient(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            raise ValueError("gradient must be a list of colors.")
        colors: list[str] = []
        for item in value:
            if not isinstance(item, str) or not HEX_COLOR_PATTERN.match(item.strip()):
                raise ValueError("Color must use #RGB or #RRGGBB format.")
            colors.append(item.strip())
        if len(colors) < 2:
            raise ValueError("gradient needs at least two colors.")
        return colors


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = str(STATE_DIR / "app.log")

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        return _require_string(value)


class HistoryConfig(BaseModel):
    """Conversation history store settings."""

    enabled: bool = True
    directory: str = str(STATE_DIR / "history")

    @field_validator("directory", mode="before")
    @classmethod
    def _validate_directory(cls, value: Any) -> str:
        return _require_string(value)


class ToolsConfig(BaseModel):
    """Runtime policy for the built-in local tools."""

    enabled: bool = True
    workspace_root: str = "."
    command_timeout_seconds: int = Field(default=30, ge=1, le=600)
    max_output_lines: int = Field(default=200, ge=1, le=10_000)
    max_output_bytes: int = Field(default=50_000, ge=256, le=5_000_000)

    @field_validator("workspace_root", mode="before")
    @classmethod
    def _validate_workspace_root(cls, value: Any) -> str:
        return _require_string(value)


class PersonaEntry(BaseModel):
    description: str = ""
    system_prompt: str = ""
    model: str = ""


class PersonasConfig(BaseModel):
    """Locally defined personas and the one applied at startup."""

    model_config = ConfigDict(populate_by_name=True)
    active: str = ""
    entries: dict[str, PersonaEntry] = Field(default_factory=dict, alias="persona")

    @model_validator(mode="after")
    def _validate_active(self) -> PersonasConfig:
        self.active = self.active.strip()
        if self.active and self.active not in self.entries:
            raise ValueError(f"personas.active {self.active!r} is not defined.")
        return self


class Config(BaseModel):
    """Root configuration model for all sections."""

    app: AppConfig = AppConfig()
    gemini: GeminiConfig = GeminiConfig()
    ui: UIConfig = UIConfig()
    logging: LoggingConfig = LoggingConfig()
    history: HistoryConfig = HistoryConfig()
    tools: ToolsConfig = ToolsConfig()
    personas: PersonasConfig = PersonasConfig()


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump(by_alias=True)


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _enforce_private_permissions(path: Path) -> None:
    """Best-effort enforcement of private file permissions on POSIX systems."""
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)


def _safe_default_config() -> dict[str, dict[str, Any]]:
    """Return a deep copy of validated default config data."""
    return deepcopy(DEFAULT_CONFIG)


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config and fallback to safe defaults when possible."""
    try:
        config = Config.model_validate(raw)
        return config.model_dump(by_alias=True)
    except ValidationError as exc:
        LOGGER.warning("Configuration validation failed, using safe defaults: %s", exc)
        return _safe_default_config()
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults, and validate.

    The optional ``config_path`` argument is intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH
    ensure_config_dir(target_path.parent)

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = _deep_merge(DEFAULT_CONFIG, raw_data)
    return _validate_config(merged)
