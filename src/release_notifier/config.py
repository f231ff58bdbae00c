"""Settings for the release notifier.

Settings are resolved once at startup and injected into the components
that need them; nothing reads the process environment at request time.

Resolution order (later wins):
1. Model defaults
2. YAML file (explicit path, or the RELEASE_NOTIFIER_CONFIG env var)
3. Environment variables (CIRCLECI_TOKEN, ENVIRONMENT, LOG_LEVEL)

Example YAML:

    default_color: "#36a64f"
    allowed_actions: [published, released]
    message_stages: [author_fallback, build_link]
    resolver:
      max_attempts: 4
      backoff_base: 0.5
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from release_notifier.errors import ConfigError

CONFIG_PATH_ENV = "RELEASE_NOTIFIER_CONFIG"

_HEX_COLOR = re.compile(r"^#?([0-9a-fA-F]{6}|[0-9a-fA-F]{3})$")

# env var -> settings key
_ENV_OVERRIDES = {
    "CIRCLECI_TOKEN": "circleci_token",
    "ENVIRONMENT": "environment",
    "LOG_LEVEL": "log_level",
}

MessageStage = Literal["author_fallback", "link_references", "build_link"]


def normalize_color(value: str) -> str | None:
    """Return ``value`` as ``#rrggbb``-style hex, or None if it isn't hex."""
    match = _HEX_COLOR.match(value.strip())
    if not match:
        return None
    return f"#{match.group(1).lower()}"


class ResolverSettings(BaseModel):
    """Polling policy and endpoints for CircleCI build resolution.

    Attributes:
        max_attempts: Number of list requests before giving up
        backoff_base: Seconds; attempt i is followed by a wait of i * base
        request_timeout: Per-request timeout in seconds
        api_base: CircleCI v1.1 API root
        app_base: CircleCI web app root used for workflow links
    """

    max_attempts: int = Field(3, ge=1, le=10)
    backoff_base: float = Field(1.0, ge=0.0)
    request_timeout: float = Field(30.0, gt=0.0)
    api_base: str = "https://circleci.com/api/v1.1"
    app_base: str = "https://circleci.com"


class Settings(BaseModel):
    """Top-level notifier configuration."""

    circleci_token: str = Field("", description="Empty disables CI lookup")
    environment: str = "development"
    log_level: str = "INFO"
    default_color: str = "#4286f4"
    bot_username: str = "Release Bot"
    allowed_actions: list[str] = Field(default_factory=lambda: ["published"])
    message_stages: list[MessageStage] = Field(
        default_factory=lambda: ["author_fallback", "link_references", "build_link"]
    )
    slack_timeout: float = Field(30.0, gt=0.0)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)

    @field_validator("default_color")
    @classmethod
    def check_color(cls, value: str) -> str:
        color = normalize_color(value)
        if color is None:
            raise ValueError(f"default_color must be a hex color, got {value!r}")
        return color

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level {value!r}")
        return level


def load_settings(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Build Settings from defaults, an optional YAML file and the environment.

    Args:
        path: YAML settings file. Falls back to RELEASE_NOTIFIER_CONFIG.
              A path that does not exist is treated as "no file".
        env: Environment mapping, defaults to os.environ

    Returns:
        Validated Settings

    Raises:
        ConfigError: If the YAML is malformed or a value fails validation
    """
    environ = os.environ if env is None else env
    raw: dict[str, Any] = {}

    config_path = path or environ.get(CONFIG_PATH_ENV)
    if config_path and Path(config_path).exists():
        try:
            loaded = yaml.safe_load(Path(config_path).read_text()) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError(f"Settings file {config_path} must contain a mapping")
        raw.update(loaded)

    for var, key in _ENV_OVERRIDES.items():
        if var in environ:
            raw[key] = environ[var]

    try:
        return Settings.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc
