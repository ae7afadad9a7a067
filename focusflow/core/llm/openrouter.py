"""OpenRouter: many vendors' models behind one OpenAI-wire endpoint."""

from __future__ import annotations

import httpx

from focusflow.config import HttpConfig
from focusflow.core.llm.base import LLMProvider
from focusflow.core.llm.openai_compat import OpenAICompatibleProvider
from focusflow.core.llm.streaming import ChunkStream
from focusflow.core.llm.types import CompletionOptions, CompletionResponse, Message, ModelInfo

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_APP_NAME = "FocusFlow"


class OpenRouterProvider(LLMProvider):
    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        site_url: str | None = None,
        app_name: str | None = None,
        http: HttpConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        # OpenRouter attributes traffic by these two headers
        headers = {"X-Title": app_name or DEFAULT_APP_NAME}
        if site_url:
            headers["HTTP-Referer"] = site_url
        self._inner = OpenAICompatibleProvider(
            api_key,
            model,
            base_url=OPENROUTER_BASE_URL,
            headers=headers,
            provider_name="openrouter",
            http=http,
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "openrouter"

    @property
    def model(self) -> str:
        return self._inner.model

    async def health_check(self) -> None:
        await self._inner.health_check()

    async def list_models(self) -> list[ModelInfo]:
        return await self._inner.list_models()

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
