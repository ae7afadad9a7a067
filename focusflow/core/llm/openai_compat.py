"""OpenAI-compatible chat completions provider (httpx)."""

from __future__ import annotations

import json
from functools import partial
from typing import Any

import httpx

from focusflow.config import HttpConfig
from focusflow.core.llm.base import LLMProvider, require_messages
from focusflow.core.llm.streaming import ChunkSender, ChunkStream
from focusflow.core.llm.types import (
    CompletionOptions,
    CompletionResponse,
    FinishReason,
    Message,
    ModelInfo,
    StreamChunk,
    TokenUsage,
    finish_reason_from_openai,
)
from focusflow.errors import ConfigError, NetworkError, SerializationError
from focusflow.utils.logging import get_logger

log = get_logger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"


def build_timeout(http: HttpConfig | None) -> httpx.Timeout:
    http = http or HttpConfig()
    return httpx.Timeout(http.completion_timeout, connect=http.connect_timeout)


async def raise_for_status(provider: str, response: httpx.Response) -> None:
    """Turn a non-2xx response into a NetworkError carrying the body."""
    if not response.is_error:
        return
    await response.aread()
    raise NetworkError(
        f"{provider} API error",
        status_code=response.status_code,
        body=response.text,
    )


def _usage_from(data: dict[str, Any] | None) -> TokenUsage:
    if not data:
        return TokenUsage()
    prompt = int(data.get("prompt_tokens") or 0)
    completion = int(data.get("completion_tokens") or 0)
    total = int(data.get("total_tokens") or prompt + completion)
    return TokenUsage(prompt, completion, total)


class OpenAICompatibleProvider(LLMProvider):
    """Speaks the OpenAI ``/chat/completions`` wire format.

    Used as-is for OpenAI, and wrapped (different base URL and default
    headers) for Google Gemini and OpenRouter.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str = OPENAI_BASE_URL,
        organization: str | None = None,
        headers: dict[str, str] | None = None,
        provider_name: str = "openai",
        http: HttpConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ConfigError(f"{provider_name} API key is required")
        self._name = provider_name
        self._model = model
        default_headers = {"Authorization": f"Bearer {api_key}"}
        if organization:
            default_headers["OpenAI-Organization"] = organization
        default_headers.update(headers or {})
        try:
            self._client = httpx.AsyncClient(
                base_url=base_url.rstrip("/"),
                headers=default_headers,
                timeout=build_timeout(http),
                transport=transport,
            )
        except (UnicodeEncodeError, ValueError) as e:
            raise ConfigError(f"Invalid {provider_name} client settings: {e}") from e

    @property
    def name(self) -> str:
        return self._name

    @property
    def model(self) -> str:
        return self._model

    async def health_check(self) -> None:
        log.debug("health_check", provider=self._name)
        await self._get("/models")
        log.info("health_check_passed", provider=self._name)

    async def list_models(self) -> list[ModelInfo]:
        data = await self._get("/models")
        try:
            entries = data["data"]
            return [ModelInfo(id=m["id"], name=m.get("name") or m["id"]) for m in entries]
        except (KeyError, TypeError) as e:
            raise SerializationError(f"Unexpected {self._name} model list: {e}") from e

    async def complete(
        self, messages: list[Message], options: CompletionOptions | None = None
    ) -> CompletionResponse:
        require_messages(messages)
        options = options or CompletionOptions()
        log.debug("provider_complete", provider=self._name, messages=len(messages))

        body = self._build_body(messages, options, stream=False)
        try:
            resp = await self._client.post("/chat/completions", json=body)
        except httpx.TimeoutException as e:
            raise NetworkError(f"{self._name} request timed out") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{self._name} request failed: {e}") from e
        await raise_for_status(self._name, resp)

        data = self._decode(resp)
        try:
            choice = data["choices"][0]
            content = choice["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise SerializationError(f"Unexpected {self._name} response shape: {e!r}") from e

        return CompletionResponse(
            content=content,
            model=data.get("model") or self._model,
            finish_reason=finish_reason_from_openai(choice.get("finish_reason")),
            usage=_usage_from(data.get("usage")),
        )

    async def complete_stream(
        self, messages: list[Message], options: CompletionOptions | None = None
    ) -> ChunkStream:
        require_messages(messages)
        options = options or CompletionOptions()
        log.debug("provider_stream", provider=self._name, messages=len(messages))

        body = self._build_body(messages, options, stream=True)
        request = self._client.build_request("POST", "/chat/completions", json=body)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise NetworkError(f"{self._name} streaming request timed out") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{self._name} streaming request failed: {e}") from e
        try:
            await raise_for_status(self._name, response)
        except NetworkError:
            await response.aclose()
            raise

        return ChunkStream(partial(self._pump, response), name=self._name)

    async def close(self) -> None:
        await self._client.aclose()

    # -- internals ----------------------------------------------------------

    def _build_body(
        self, messages: list[Message], options: CompletionOptions, stream: bool
    ) -> dict[str, Any]:
        api_messages: list[dict[str, Any]] = []
        for msg in messages:
            entry: dict[str, Any] = {"role": msg.role.value, "content": msg.content}
            if msg.name:
                entry["name"] = msg.name
            api_messages.append(entry)

        body: dict[str, Any] = {"model": self._model, "messages": api_messages}
        if options.max_tokens is not None:
            body["max_tokens"] = options.max_tokens
        if options.temperature is not None:
            body["temperature"] = options.temperature
        if options.top_p is not None:
            body["top_p"] = options.top_p
        if options.stop:
            body["stop"] = list(options.stop)
        if stream:
            body["stream"] = True
            body["stream_options"] = {"include_usage": True}
        return body

    async def _get(self, path: str) -> dict[str, Any]:
        try:
            resp = await self._client.get(path)
        except httpx.TimeoutException as e:
            raise NetworkError(f"{self._name} request timed out") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{self._name} request failed: {e}") from e
        await raise_for_status(self._name, resp)
        return self._decode(resp)

    def _decode(self, resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as e:
            raise SerializationError(
                f"{self._name} returned a non-JSON body: {resp.text[:200]}"
            ) from e
        if not isinstance(data, dict):
            raise SerializationError(f"{self._name} returned unexpected JSON: {data!r}")
        return data

    async def _pump(self, response: httpx.Response, sender: ChunkSender) -> None:
        finish: FinishReason | None = None
        usage: TokenUsage | None = None
        try:
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                payload = line[5:].strip()
                if payload == "[DONE]":
                    break
                try:
                    event = json.loads(payload)
                except json.JSONDecodeError as e:
                    raise SerializationError(f"Malformed stream event: {payload[:200]}") from e
                if event.get("error"):
                    raise NetworkError(
                        f"{self._name} stream error", body=json.dumps(event["error"])
                    )
                if event.get("usage"):
                    usage = _usage_from(event["usage"])
                choices = event.get("choices") or []
                if not choices:
                    continue
                choice = choices[0]
                delta = (choice.get("delta") or {}).get("content") or ""
                if delta and not await sender.send(StreamChunk(delta=delta)):
                    log.debug("stream_consumer_gone", provider=self._name)
                    return
                if choice.get("finish_reason"):
                    # usage arrives in a trailing chunk, so hold the finish until then
                    finish = finish_reason_from_openai(choice["finish_reason"])
        except httpx.HTTPError as e:
            raise NetworkError(f"{self._name} stream interrupted: {e}") from e
        finally:
            await response.aclose()

        await sender.send(StreamChunk(finish_reason=finish or FinishReason.STOP, usage=usage))
