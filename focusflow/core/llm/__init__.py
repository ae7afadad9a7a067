"""LLM provider abstraction and factory."""

from __future__ import annotations

import importlib.util
from pathlib import Path
from typing import Callable

from focusflow.config import (
    AnthropicConfig,
    GoogleConfig,
    HttpConfig,
    LocalConfig,
    OpenAIConfig,
    OpenRouterConfig,
    ProviderConfig,
)
from focusflow.core.llm.base import LLMProvider
from focusflow.core.llm.engine import MODEL_CATALOG, InferenceEngine, ModelSpec, resolve_local_model
from focusflow.core.llm.types import ProviderInfo
from focusflow.errors import ConfigError
from focusflow.utils.logging import get_logger
from focusflow.utils.platform import get_models_dir

log = get_logger(__name__)

EngineFactory = Callable[[ModelSpec, Path], InferenceEngine]


def local_inference_available() -> bool:
    return importlib.util.find_spec("llama_cpp") is not None


def _llama_engine(spec: ModelSpec, models_dir: Path) -> InferenceEngine:
    if not local_inference_available():
        raise ConfigError(
            "Local AI is not available: install the 'local' extra (llama-cpp-python)"
        )
    from focusflow.core.llm.llama_engine import LlamaCppEngine

    return LlamaCppEngine(spec, models_dir)


def create_provider(
    config: ProviderConfig,
    *,
    http: HttpConfig | None = None,
    models_dir: Path | None = None,
    engine_factory: EngineFactory | None = None,
) -> LLMProvider:
    """Build the provider selected by ``config.provider``."""
    log.info("provider_create", config=config.sanitize().model_dump())

    if isinstance(config, OpenAIConfig):
        from focusflow.core.llm.openai_compat import OPENAI_BASE_URL, OpenAICompatibleProvider

        return OpenAICompatibleProvider(
            config.api_key,
            config.model,
            base_url=config.base_url or OPENAI_BASE_URL,
            organization=config.organization,
            http=http,
        )

    if isinstance(config, AnthropicConfig):
        from focusflow.core.llm.anthropic import AnthropicProvider

        return AnthropicProvider(config.api_key, config.model, http=http)

    if isinstance(config, GoogleConfig):
        from focusflow.core.llm.google import GoogleProvider

        return GoogleProvider(config.api_key, config.model, http=http)

    if isinstance(config, OpenRouterConfig):
        from focusflow.core.llm.openrouter import OpenRouterProvider

        return OpenRouterProvider(
            config.api_key,
            config.model,
            site_url=config.site_url,
            app_name=config.app_name,
            http=http,
        )

    if isinstance(config, LocalConfig):
        from focusflow.core.llm.local import LocalProvider

        spec, directory = resolve_local_model(config.model_path, models_dir or get_models_dir())
        engine = (engine_factory or _llama_engine)(spec, directory)
        return LocalProvider(engine)

    raise ConfigError(f"Unknown provider config: {config!r}")


def list_available_providers() -> list[ProviderInfo]:
    local_ok = local_inference_available()
    return [
        ProviderInfo(
            id="openai",
            name="OpenAI",
            description="GPT-4 and GPT-3.5 models from OpenAI",
            requires_api_key=True,
            default_models=["gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"],
        ),
        ProviderInfo(
            id="anthropic",
            name="Anthropic",
            description="Claude models from Anthropic",
            requires_api_key=True,
            default_models=[
                "claude-3-5-sonnet-20241022",
                "claude-3-5-haiku-20241022",
                "claude-3-opus-20240229",
            ],
        ),
        ProviderInfo(
            id="google",
            name="Google",
            description="Gemini models from Google",
            requires_api_key=True,
            default_models=["gemini-2.0-flash", "gemini-1.5-pro", "gemini-1.5-flash"],
        ),
        ProviderInfo(
            id="openrouter",
            name="OpenRouter",
            description="Access to multiple LLM providers through OpenRouter",
            requires_api_key=True,
            default_models=[
                "anthropic/claude-3.5-sonnet",
                "openai/gpt-4o",
                "google/gemini-pro",
            ],
        ),
        ProviderInfo(
            id="local",
            name="Local (llama.cpp)",
            description="Privacy-first local LLM inference, runs entirely on your device",
            requires_api_key=False,
            default_models=list(MODEL_CATALOG),
            available=local_ok,
            unavailable_reason=(
                None if local_ok else "Install the 'local' extra to enable llama.cpp inference"
            ),
        ),
    ]


__all__ = [
    "LLMProvider",
    "create_provider",
    "list_available_providers",
    "local_inference_available",
]
