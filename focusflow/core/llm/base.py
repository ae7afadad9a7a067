"""LLM provider abstract base class."""

from __future__ import annotations

from abc import ABC, abstractmethod

from focusflow.core.llm.streaming import ChunkStream
from focusflow.core.llm.types import CompletionOptions, CompletionResponse, Message, ModelInfo


class LLMProvider(ABC):
    """One backend capable of turning a conversation into a completion.

    Instances are stateless per call and safe to share between concurrent
    agent loops.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def model(self) -> str: ...

    @abstractmethod
    async def health_check(self) -> None:
        """Raise a domain error if the backend is unreachable or misconfigured."""

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]: ...

    @abstractmethod
    async def complete(
        self, messages: list[Message], options: CompletionOptions | None = None
    ) -> CompletionResponse: ...

    @abstractmethod
    async def complete_stream(
        self, messages: list[Message], options: CompletionOptions | None = None
    ) -> ChunkStream: ...

    async def close(self) -> None:
        """Clean up resources. Override if needed."""


def require_messages(messages: list[Message]) -> None:
    if not messages:
        raise ValueError("At least one message is required")
