"""Google Gemini through its OpenAI-compatible endpoint."""

from __future__ import annotations

import httpx

from focusflow.config import HttpConfig
from focusflow.core.llm.base import LLMProvider
from focusflow.core.llm.openai_compat import OpenAICompatibleProvider
from focusflow.core.llm.streaming import ChunkStream
from focusflow.core.llm.types import (
    CompletionOptions,
    CompletionResponse,
    Message,
    ModelInfo,
    ModelPricing,
)

GOOGLE_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai"

GOOGLE_MODELS = [
    ModelInfo(
        id="gemini-1.5-flash",
        name="Gemini 1.5 Flash",
        description="Fast and versatile multimodal model",
        context_length=1_000_000,
        pricing=ModelPricing(input_per_1k=0.000075, output_per_1k=0.0003),
    ),
    ModelInfo(
        id="gemini-1.5-pro",
        name="Gemini 1.5 Pro",
        description="Complex reasoning tasks requiring more intelligence",
        context_length=2_000_000,
        pricing=ModelPricing(input_per_1k=0.00125, output_per_1k=0.005),
    ),
    ModelInfo(
        id="gemini-2.0-flash",
        name="Gemini 2.0 Flash",
        description="Next generation features, speed and multimodal generation",
        context_length=1_000_000,
    ),
]


class GoogleProvider(LLMProvider):
    """Delegates every call to an inner OpenAI-wire provider."""

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        http: HttpConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._inner = OpenAICompatibleProvider(
            api_key,
            model,
            base_url=GOOGLE_BASE_URL,
            provider_name="google",
            http=http,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "google"

    @property
    def model(self) -> str:
        return self._inner.model

    async def health_check(self) -> None:
        await self._inner.health_check()

    async def list_models(self) -> list[ModelInfo]:
        # The compatibility layer has no stable listing, so serve a fixed catalog
        return list(GOOGLE_MODELS)

    async def complete(
        self, messages: list[Message], options: CompletionOptions | None = None
    ) -> CompletionResponse:
        return await self._inner.complete(messages, options)

    async def complete_stream(
        self, messages: list[Message], options: CompletionOptions | None = None
    ) -> ChunkStream:
        return await self._inner.complete_stream(messages, options)

    async def close(self) -> None:
        await self._inner.close()
