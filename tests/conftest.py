"""Shared fakes for provider, engine and tool tests."""

from __future__ import annotations

import re
from typing import Any, Iterator

import pytest

from focusflow.core.llm.base import LLMProvider
from focusflow.core.llm.engine import Generation, ModelSpec
from focusflow.core.llm.streaming import ChunkSender, ChunkStream
from focusflow.core.llm.types import (
    CompletionOptions,
    CompletionResponse,
    FinishReason,
    Message,
    ModelInfo,
    StreamChunk,
    TokenUsage,
)
from focusflow.errors import NetworkError
from focusflow.tools.base import ParameterType, Tool, ToolCategory, ToolParameter, ToolResult
from focusflow.tools.registry import ToolRegistry
from focusflow.tools.state import InMemoryAppState


def split_pieces(text: str) -> list[str]:
    """Split after each space so the pieces join back to ``text`` exactly."""
    return [p for p in re.split(r"(?<= )", text) if p]


class ScriptedProvider(LLMProvider):
    """Replays a script of replies; an exception in the script is raised instead."""

    def __init__(self, script: list[Any], *, repeat_last: bool = False) -> None:
        self.script = list(script)
        self.repeat_last = repeat_last
        self.requests: list[list[Message]] = []
        self.health_calls = 0
        self.healthy = True

    @property
    def name(self) -> str:
        return "scripted"

    @property
    def model(self) -> str:
        return "scripted-1"

    def _next(self, messages: list[Message]) -> str:
        self.requests.append(list(messages))
        if len(self.script) > 1 or not self.repeat_last:
            item = self.script.pop(0)
        else:
            item = self.script[0]
        if isinstance(item, BaseException):
            raise item
        return item

    async def health_check(self) -> None:
        self.health_calls += 1
        if not self.healthy:
            raise NetworkError("backend down", status_code=503)

    async def list_models(self) -> list[ModelInfo]:
        return [ModelInfo(id=self.model, name=self.model)]

    async def complete(
        self, messages: list[Message], options: CompletionOptions | None = None
    ) -> CompletionResponse:
        text = self._next(messages)
        return CompletionResponse(content=text, model=self.model, usage=TokenUsage.of(10, 5))

    async def complete_stream(
        self, messages: list[Message], options: CompletionOptions | None = None
    ) -> ChunkStream:
        text = self._next(messages)

        async def produce(sender: ChunkSender) -> None:
            for piece in split_pieces(text):
                await sender.send(StreamChunk(delta=piece))
            await sender.send(
                StreamChunk(finish_reason=FinishReason.STOP, usage=TokenUsage.of(10, 5))
            )

        return ChunkStream(produce, name="scripted")


class FakeEngine:
    """In-process stand-in for the llama.cpp engine."""

    def __init__(
        self,
        spec: ModelSpec,
        text: str = "Hello there.",
        truncated: bool = False,
        pieces: list[str] | None = None,
    ):
        self._spec = spec
        self.pieces = pieces if pieces is not None else split_pieces(text)
        self.text = "".join(self.pieces)
        self.truncated = truncated
        self.prompts: list[str] = []
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    @property
    def spec(self) -> ModelSpec:
        return self._spec

    def generate(self, prompt: str, **sampling: Any) -> Generation:
        self.prompts.append(prompt)
        self.calls.append(sampling)
        return Generation(self.text, prompt_tokens=7, completion_tokens=3, truncated=self.truncated)

    def generate_stream(self, prompt: str, **sampling: Any) -> Iterator[str]:
        self.prompts.append(prompt)
        self.calls.append(sampling)
        try:
            yield from self.pieces
        finally:
            self.closed = True

    def count_tokens(self, text: str) -> int:
        return len(text.split())

    def health_check(self) -> None:
        pass


async def _echo(args: dict[str, Any], state: Any) -> ToolResult:
    return ToolResult.ok(f"echo: {args.get('text', '')}", {"text": args.get("text")})


def make_echo_tool(name: str = "echo", category: ToolCategory = ToolCategory.SESSION) -> Tool:
    return Tool(
        name=name,
        description="Echoes its text",
        category=category,
        handler=_echo,
        parameters=[ToolParameter("text", ParameterType.STRING, "Text to echo", required=True)],
    )


@pytest.fixture
def app_state():
    return InMemoryAppState()


@pytest.fixture
def echo_registry():
    registry = ToolRegistry()
    registry.register(make_echo_tool())
    return registry
