"""Bounded generate -> parse -> execute loop for one user turn."""

from __future__ import annotations

import asyncio
import inspect
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Union

from focusflow.config import AgentConfig
from focusflow.core.llm.base import LLMProvider
from focusflow.core.llm.types import CompletionOptions, Message, MessageRole, TokenUsage
from focusflow.core.tool_executor import ExecutionResult, ToolExecutor, rejection_text
from focusflow.core.tool_parser import ParseOutcome, ToolParser
from focusflow.errors import RejectReason, ToolValidationError
from focusflow.tools.base import ToolResult
from focusflow.tools.registry import ToolRegistry
from focusflow.utils.logging import get_logger

log = get_logger(__name__)

# Name attached to the user-role messages that carry tool results back
TOOL_RESULT_NAME = "tool_result"

DeltaCallback = Callable[[str], Union[None, Awaitable[None]]]


class TerminationReason(str, Enum):
    ANSWERED = "answered"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    ERROR = "error"


@dataclass
class ToolExecutionRecord:
    tool_name: str
    arguments: dict[str, Any]
    success: bool
    user_text: str
    elapsed_ms: float = 0.0
    iteration: int = 0

    @classmethod
    def from_result(cls, result: ExecutionResult, iteration: int) -> ToolExecutionRecord:
        return cls(
            tool_name=result.tool_name,
            arguments=dict(result.arguments),
            success=result.success,
            user_text=result.user_text,
            elapsed_ms=result.elapsed_ms,
            iteration=iteration,
        )


@dataclass
class AgentState:
    messages: list[Message]
    max_iterations: int
    iteration: int = 0
    rejections: int = 0
    records: list[ToolExecutionRecord] = field(default_factory=list)
    termination: TerminationReason | None = None
    # Latest user-facing text, surfaced whatever the termination reason
    final_text: str = ""
    error: str | None = None
    usage: TokenUsage = field(default_factory=TokenUsage)

    @property
    def finished(self) -> bool:
        return self.termination is not None

    def append(self, message: Message) -> None:
        if self.messages and self.messages[-1].role is message.role:
            raise ValueError(f"two consecutive {message.role.value} messages")
        self.messages.append(message)


class AgentLoop:
    """Drives the tool-calling cycle for a single user turn.

    The provider and registry may be shared by concurrent loops; each call to
    :meth:`run` owns its own :class:`AgentState`.
    """

    def __init__(
        self,
        provider: LLMProvider,
        registry: ToolRegistry,
        executor: ToolExecutor,
        *,
        system_prompt: str = "",
        config: AgentConfig | None = None,
        options: CompletionOptions | None = None,
    ) -> None:
        self._provider = provider
        self._registry = registry
        self._executor = executor
        self._parser = ToolParser(registry)
        self._config = config or AgentConfig()
        self._options = options or CompletionOptions()
        self._system_prompt = system_prompt

    def system_message(self, system_prompt: str | None = None) -> Message | None:
        prompt = self._system_prompt if system_prompt is None else system_prompt
        parts = [prompt.strip()]
        if len(self._registry):
            parts.append(self._registry.generate_documentation())
        text = "\n\n".join(p for p in parts if p)
        return Message.system(text) if text else None

    async def run(
        self,
        conversation: list[Message],
        *,
        on_delta: DeltaCallback | None = None,
        system_prompt: str | None = None,
    ) -> AgentState:
        """Run until the model answers, the budget is spent or a fault occurs.

        ``conversation`` should end with the user's message; it is copied, not
        mutated. ``system_prompt`` replaces the loop's prompt for this turn; a
        system message inside ``conversation`` is used when it is not given.
        The tool reference is appended either way. With ``on_delta`` the
        provider is streamed and every text delta is passed to the callback as
        it arrives.
        """
        if not conversation:
            raise ValueError("conversation must contain at least one message")
        if conversation[-1].role is not MessageRole.USER:
            raise ValueError("conversation must end with a user message")
        if system_prompt is None:
            given = [m.content for m in conversation if m.role is MessageRole.SYSTEM]
            if given:
                system_prompt = "\n\n".join(given)
        system = self.system_message(system_prompt)
        state = AgentState(
            messages=[m for m in conversation if m.role is not MessageRole.SYSTEM],
            max_iterations=self._config.max_iterations,
        )
        log.info(
            "agent_started",
            provider=self._provider.name,
            messages=len(state.messages),
            max_iterations=state.max_iterations,
        )

        while True:
            try:
                text = await self._generate(state, system, on_delta)
            except Exception as e:
                return self._finish(state, TerminationReason.ERROR, error=str(e))

            parsed = self._parser.parse(text)
            state.append(Message.assistant(text))
            if parsed.narrative:
                state.final_text = parsed.narrative

            if parsed.kind is ParseOutcome.NO_CALL:
                return self._finish(state, TerminationReason.ANSWERED)

            if parsed.kind is ParseOutcome.REJECTED:
                if not self._reject(state, parsed.reason, parsed.detail):
                    return self._finish(
                        state, TerminationReason.ERROR, error="too many invalid tool calls"
                    )
                continue

            try:
                result = await self._executor.execute(parsed.call)
            except ToolValidationError as e:
                if not self._reject(state, e.reason, str(e)):
                    return self._finish(
                        state, TerminationReason.ERROR, error="too many invalid tool calls"
                    )
                continue
            except Exception as e:
                # A crashing handler is reported to the model like any failed tool
                log.exception("tool_handler_crashed", tool=parsed.call.name)
                result = ExecutionResult.from_tool_result(
                    ToolResult.fail(f"{parsed.call.name} failed unexpectedly", str(e)),
                    parsed.call.name,
                    dict(parsed.call.arguments),
                )

            state.iteration += 1
            state.records.append(ToolExecutionRecord.from_result(result, state.iteration))
            state.append(Message.user(result.model_text, name=TOOL_RESULT_NAME))
            if not state.final_text:
                state.final_text = result.user_text

            if state.iteration >= state.max_iterations:
                return self._finish(state, TerminationReason.MAX_ITERATIONS_REACHED)

    # -- steps ----------------------------------------------------------------

    async def _generate(
        self, state: AgentState, system: Message | None, on_delta: DeltaCallback | None
    ) -> str:
        request = ([system] if system else []) + state.messages

        # One retry after a jittered backoff, then the failure is terminal
        try:
            return await self._attempt(state, request, on_delta)
        except Exception as e:
            delay = self._config.retry_backoff * (1 + random.uniform(0, 0.25))
            log.warning(
                "provider_retry",
                provider=self._provider.name,
                error=str(e),
                delay=round(delay, 2),
            )
        await asyncio.sleep(delay)
        try:
            return await self._attempt(state, request, on_delta)
        except Exception as e:
            log.error("provider_failed", provider=self._provider.name, error=str(e))
            raise

    async def _attempt(
        self, state: AgentState, request: list[Message], on_delta: DeltaCallback | None
    ) -> str:
        if on_delta is None:
            response = await self._provider.complete(request, self._options)
            self._add_usage(state, response.usage)
            return response.content
        return await self._stream(state, request, on_delta)

    async def _stream(
        self, state: AgentState, request: list[Message], on_delta: DeltaCallback
    ) -> str:
        parts: list[str] = []
        stream = await self._provider.complete_stream(request, self._options.with_stream())
        async with stream:
            async for chunk in stream:
                if chunk.delta:
                    parts.append(chunk.delta)
                    ret = on_delta(chunk.delta)
                    if inspect.isawaitable(ret):
                        await ret
                if chunk.usage is not None:
                    self._add_usage(state, chunk.usage)
        return "".join(parts)

    def _reject(self, state: AgentState, reason: RejectReason | None, detail: str) -> bool:
        """Feed a rejection back to the model; False once the budget is spent."""
        reason = reason or RejectReason.MALFORMED
        state.rejections += 1
        log.warning(
            "tool_call_rejected",
            reason=reason.value,
            rejections=state.rejections,
            detail=detail,
        )
        if state.rejections > self._config.max_rejections:
            return False
        state.append(Message.user(rejection_text(reason, detail), name=TOOL_RESULT_NAME))
        return True

    def _add_usage(self, state: AgentState, usage: TokenUsage) -> None:
        state.usage = TokenUsage.of(
            state.usage.prompt_tokens + usage.prompt_tokens,
            state.usage.completion_tokens + usage.completion_tokens,
        )

    def _finish(
        self, state: AgentState, reason: TerminationReason, error: str | None = None
    ) -> AgentState:
        state.termination = reason
        state.error = error
        log.info(
            "agent_terminated",
            reason=reason.value,
            iterations=state.iteration,
            rejections=state.rejections,
            tools=[r.tool_name for r in state.records],
            error=error,
        )
        return state
