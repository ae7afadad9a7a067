"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, Any, Literal, Union

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from focusflow.utils.platform import get_config_dir, get_models_dir


# ---------------------------------------------------------------------------
# Provider configuration (tagged by provider kind)
# ---------------------------------------------------------------------------

_REDACTED = "***"


class OpenAIConfig(BaseModel):
    provider: Literal["openai"] = "openai"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    organization: str | None = None

    def sanitize(self) -> OpenAIConfig:
        return self.model_copy(update={"api_key": _REDACTED})


class AnthropicConfig(BaseModel):
    provider: Literal["anthropic"] = "anthropic"
    api_key: str = ""
    model: str = "claude-3-5-haiku-20241022"

    def sanitize(self) -> AnthropicConfig:
        return self.model_copy(update={"api_key": _REDACTED})


class GoogleConfig(BaseModel):
    provider: Literal["google"] = "google"
    api_key: str = ""
    model: str = "gemini-1.5-flash"

    def sanitize(self) -> GoogleConfig:
        return self.model_copy(update={"api_key": _REDACTED})


class OpenRouterConfig(BaseModel):
    provider: Literal["openrouter"] = "openrouter"
    api_key: str = ""
    model: str = "anthropic/claude-3.5-sonnet"
    site_url: str | None = None
    app_name: str | None = None

    def sanitize(self) -> OpenRouterConfig:
        return self.model_copy(update={"api_key": _REDACTED})


class LocalConfig(BaseModel):
    provider: Literal["local"] = "local"
    # A catalog id ("phi-3.5-mini", "tinyllama") or a path to a GGUF file
    model_path: str = "phi-3.5-mini"

    def sanitize(self) -> LocalConfig:
        return self.model_copy()


ProviderConfig = Annotated[
    Union[OpenAIConfig, AnthropicConfig, GoogleConfig, OpenRouterConfig, LocalConfig],
    Field(discriminator="provider"),
]


# ---------------------------------------------------------------------------
# Agent / transport settings
# ---------------------------------------------------------------------------

class AgentConfig(BaseModel):
    max_iterations: int = Field(default=5, ge=1)
    # Rejected or invalid tool calls tolerated per turn, independent of max_iterations
    max_rejections: int = Field(default=2, ge=0)
    retry_backoff: float = 1.0
    tool_timeout: float = 30.0


class HttpConfig(BaseModel):
    completion_timeout: float = 60.0
    connect_timeout: float = 10.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FOCUSFLOW_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    provider: ProviderConfig = Field(default_factory=LocalConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    models_dir: str = ""
    log_level: str = "INFO"
    log_json: bool = False

    def get_models_dir(self) -> Path:
        if self.models_dir:
            return Path(self.models_dir)
        return get_models_dir()


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(
    config_path: str | Path | None = None, overrides: dict[str, Any] | None = None
) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config."""
    yaml_data: dict[str, Any] = {}

    # Determine config file path
    if config_path is None:
        config_path = os.environ.get("FOCUSFLOW_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    # Load YAML if found
    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    if overrides:
        yaml_data = _deep_merge(yaml_data, overrides)

    # Build settings: YAML values as init kwargs (env vars apply to unset fields)
    return Settings(**yaml_data)
