"""Anthropic Messages API provider."""

from __future__ import annotations

from functools import partial
from typing import Any

import httpx
from anthropic import (
    APIConnectionError,
    APIError,
    APIResponseValidationError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
)

from focusflow.config import HttpConfig
from focusflow.core.llm.base import LLMProvider, require_messages
from focusflow.core.llm.openai_compat import build_timeout
from focusflow.core.llm.streaming import ChunkSender, ChunkStream
from focusflow.core.llm.types import (
    CompletionOptions,
    CompletionResponse,
    FinishReason,
    Message,
    MessageRole,
    ModelInfo,
    StreamChunk,
    TokenUsage,
    finish_reason_from_anthropic,
)
from focusflow.errors import ConfigError, NetworkError, SerializationError
from focusflow.utils.logging import get_logger

log = get_logger(__name__)

# Anthropic requires max_tokens on every request
ANTHROPIC_DEFAULT_MAX_TOKENS = 4096

ANTHROPIC_MODELS = [
    ModelInfo(
        id="claude-3-5-sonnet-20241022",
        name="Claude 3.5 Sonnet",
        description="Most intelligent model",
        context_length=200_000,
    ),
    ModelInfo(
        id="claude-3-5-haiku-20241022",
        name="Claude 3.5 Haiku",
        description="Fast and efficient",
        context_length=200_000,
    ),
    ModelInfo(
        id="claude-3-opus-20240229",
        name="Claude 3 Opus",
        description="Top-level performance",
        context_length=200_000,
    ),
]


class AnthropicProvider(LLMProvider):
    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        http: HttpConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ConfigError("Anthropic API key is required")
        if not api_key.isascii() or not api_key.isprintable():
            raise ConfigError("Invalid Anthropic API key: contains non-printable characters")
        self._model = model
        # Retries are the agent loop's decision, not the SDK's
        self._client = AsyncAnthropic(
            api_key=api_key,
            timeout=build_timeout(http),
            max_retries=0,
            http_client=http_client,
        )

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def model(self) -> str:
        return self._model

    async def health_check(self) -> None:
        log.debug("health_check", provider="anthropic")
        options = CompletionOptions(max_tokens=10, temperature=None)
        await self._create(self._build_kwargs([Message.user("Hello")], options))
        log.info("health_check_passed", provider="anthropic")

    async def list_models(self) -> list[ModelInfo]:
        # No listing endpoint is used; serve the known models
        return list(ANTHROPIC_MODELS)

    async def complete(
        self, messages: list[Message], options: CompletionOptions | None = None
    ) -> CompletionResponse:
        require_messages(messages)
        options = options or CompletionOptions()
        log.debug("provider_complete", provider="anthropic", messages=len(messages))
        response = await self._create(self._build_kwargs(messages, options))
        return self._parse_response(response)

    async def complete_stream(
        self, messages: list[Message], options: CompletionOptions | None = None
    ) -> ChunkStream:
        require_messages(messages)
        options = options or CompletionOptions()
        log.debug("provider_stream", provider="anthropic", messages=len(messages))
        kwargs = self._build_kwargs(messages, options)
        kwargs["stream"] = True
        stream = await self._create(kwargs)
        return ChunkStream(partial(self._pump, stream), name="anthropic")

    async def close(self) -> None:
        await self._client.close()

    # -- internals ----------------------------------------------------------

    def _build_kwargs(
        self, messages: list[Message], options: CompletionOptions
    ) -> dict[str, Any]:
        # System messages go in the top-level field, never in the message array
        system_parts = [m.content for m in messages if m.role is MessageRole.SYSTEM]
        api_messages = [
            {"role": m.role.value, "content": m.content}
            for m in messages
            if m.role is not MessageRole.SYSTEM
        ]

        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": api_messages,
            "max_tokens": options.max_tokens or ANTHROPIC_DEFAULT_MAX_TOKENS,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.top_p is not None:
            kwargs["top_p"] = options.top_p
        if options.stop:
            kwargs["stop_sequences"] = list(options.stop)
        return kwargs

    async def _create(self, kwargs: dict[str, Any]) -> Any:
        try:
            return await self._client.messages.create(**kwargs)
        except APIStatusError as e:
            raise NetworkError(
                "Anthropic API error", status_code=e.status_code, body=e.response.text
            ) from e
        except APITimeoutError as e:
            raise NetworkError("Anthropic request timed out") from e
        except APIConnectionError as e:
            raise NetworkError(f"Anthropic request failed: {e}") from e
        except APIResponseValidationError as e:
            raise SerializationError(f"Unexpected Anthropic response: {e}") from e
        except ValueError as e:
            raise SerializationError(f"Anthropic returned an unreadable body: {e}") from e

    def _parse_response(self, response: Any) -> CompletionResponse:
        try:
            content = "".join(
                block.text for block in response.content if block.type == "text"
            )
            usage = TokenUsage.of(response.usage.input_tokens, response.usage.output_tokens)
            model = response.model or self._model
            stop_reason = response.stop_reason
        except (AttributeError, TypeError) as e:
            raise SerializationError(f"Unexpected Anthropic response shape: {e}") from e

        return CompletionResponse(
            content=content,
            model=model,
            finish_reason=finish_reason_from_anthropic(stop_reason),
            usage=usage,
        )

    async def _pump(self, stream: Any, sender: ChunkSender) -> None:
        input_tokens = 0
        output_tokens = 0
        finish = FinishReason.STOP
        try:
            async for event in stream:
                if event.type == "message_start":
                    usage = getattr(event.message, "usage", None)
                    if usage is not None:
                        input_tokens = usage.input_tokens or 0
                elif event.type == "content_block_delta":
                    text = getattr(event.delta, "text", None)
                    if text and not await sender.send(StreamChunk(delta=text)):
                        log.debug("stream_consumer_gone", provider="anthropic")
                        return
                elif event.type == "message_delta":
                    finish = finish_reason_from_anthropic(
                        getattr(event.delta, "stop_reason", None)
                    )
                    if getattr(event, "usage", None) is not None:
                        output_tokens = event.usage.output_tokens or 0
                elif event.type == "message_stop":
                    break
        except APIStatusError as e:
            raise NetworkError(
                "Anthropic stream error", status_code=e.status_code, body=str(e.body or "")
            ) from e
        except (APIError, httpx.HTTPError) as e:
            raise NetworkError(f"Anthropic stream interrupted: {e}") from e
        except ValueError as e:
            raise SerializationError(f"Malformed Anthropic stream event: {e}") from e
        finally:
            await stream.close()

        await sender.send(
            StreamChunk(finish_reason=finish, usage=TokenUsage.of(input_tokens, output_tokens))
        )
