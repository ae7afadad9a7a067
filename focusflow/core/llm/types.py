"""LLM data types shared by every provider."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    role: MessageRole
    content: str
    name: str | None = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def user(cls, content: str, name: str | None = None) -> Message:
        return cls(MessageRole.USER, content, name)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(MessageRole.ASSISTANT, content)


DEFAULT_MAX_TOKENS = 1024
DEFAULT_TEMPERATURE = 0.7


@dataclass
class CompletionOptions:
    """Per-request sampling options. ``None`` means "backend default"."""

    max_tokens: int | None = DEFAULT_MAX_TOKENS
    temperature: float | None = DEFAULT_TEMPERATURE
    top_p: float | None = None
    stop: list[str] | None = None
    stream: bool = False

    def with_stream(self, stream: bool = True) -> CompletionOptions:
        return replace(self, stream=stream)


class FinishReason(str, Enum):
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    TOOL_CALLS = "tool_calls"
    ERROR = "error"


_OPENAI_FINISH = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
}

_ANTHROPIC_FINISH = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "max_tokens": FinishReason.LENGTH,
    "tool_use": FinishReason.TOOL_CALLS,
    "refusal": FinishReason.CONTENT_FILTER,
}


def finish_reason_from_openai(value: str | None) -> FinishReason:
    return _OPENAI_FINISH.get(value or "", FinishReason.STOP)


def finish_reason_from_anthropic(value: str | None) -> FinishReason:
    return _ANTHROPIC_FINISH.get(value or "", FinishReason.STOP)


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def of(cls, prompt_tokens: int, completion_tokens: int) -> TokenUsage:
        return cls(prompt_tokens, completion_tokens, prompt_tokens + completion_tokens)


@dataclass
class CompletionResponse:
    content: str
    model: str
    finish_reason: FinishReason = FinishReason.STOP
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass
class StreamChunk:
    delta: str = ""
    finish_reason: FinishReason | None = None
    usage: TokenUsage | None = None

    @property
    def is_final(self) -> bool:
        return self.finish_reason is not None


@dataclass
class ModelPricing:
    input_per_1k: float
    output_per_1k: float


@dataclass
class ModelInfo:
    id: str
    name: str
    description: str | None = None
    context_length: int | None = None
    pricing: ModelPricing | None = None


@dataclass
class ProviderInfo:
    id: str
    name: str
    description: str
    requires_api_key: bool
    default_models: list[str] = field(default_factory=list)
    available: bool = True
    unavailable_reason: str | None = None
