"""Validates parsed tool calls and runs their handlers against app state."""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass, field
from typing import Any

from focusflow.core.tool_parser import ParsedToolCall
from focusflow.errors import RejectReason, ToolExecutionError, ToolValidationError
from focusflow.tools.base import ParameterType, Tool, ToolParameter, ToolResult
from focusflow.tools.registry import ToolRegistry
from focusflow.tools.state import AppState
from focusflow.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_TOOL_TIMEOUT = 30.0

_TRUE = {"true", "yes", "1", "on"}
_FALSE = {"false", "no", "0", "off"}


@dataclass
class ExecutionResult:
    success: bool
    user_text: str
    model_text: str
    tool_name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    elapsed_ms: float = 0.0
    data: Any = None

    @classmethod
    def from_tool_result(
        cls,
        result: ToolResult,
        tool_name: str,
        arguments: dict[str, Any],
        elapsed_ms: float = 0.0,
    ) -> ExecutionResult:
        user_text = result.message if result.success else f"{result.message}: {result.error}"
        return cls(
            success=result.success,
            user_text=user_text,
            model_text=result.to_model_text(),
            tool_name=tool_name,
            arguments=arguments,
            elapsed_ms=elapsed_ms,
            data=result.data,
        )


def rejection_text(reason: RejectReason, detail: str) -> str:
    """Synthetic tool-result text fed back to the model for a rejected call."""
    return ToolResult.fail("Tool call rejected", f"{detail} ({reason.value})").to_model_text()


def coerce_argument(param: ToolParameter, value: Any) -> Any:
    """Convert a raw attribute value to the parameter's declared type."""
    if param.type is ParameterType.STRING:
        return value if isinstance(value, str) else str(value)

    if param.type is ParameterType.BOOLEAN:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ToolValidationError(
            RejectReason.INVALID_PARAMETER,
            f"Parameter '{param.name}' must be true or false, got {value!r}.",
        )

    if param.type is ParameterType.NUMBER:
        if isinstance(value, bool):
            raise ToolValidationError(
                RejectReason.INVALID_PARAMETER, f"Parameter '{param.name}' must be a number."
            )
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ToolValidationError(
                RejectReason.INVALID_PARAMETER,
                f"Parameter '{param.name}' must be a number, got {value!r}.",
            ) from None
        if not math.isfinite(number):
            raise ToolValidationError(
                RejectReason.INVALID_PARAMETER, f"Parameter '{param.name}' must be finite."
            )
        return int(number) if number.is_integer() else number

    # ENUM
    text = str(value).strip()
    for choice in param.choices:
        if choice.lower() == text.lower():
            return choice
    raise ToolValidationError(
        RejectReason.INVALID_PARAMETER,
        f"Parameter '{param.name}' must be one of {', '.join(param.choices)}, got {value!r}.",
    )


class ToolExecutor:
    """Runs one validated tool call at a time.

    Domain failures (a returned ``ToolResult.fail``, a raised
    :class:`ToolExecutionError`, a timeout) come back as unsuccessful
    :class:`ExecutionResult` objects. Validation problems raise
    :class:`ToolValidationError`. Anything else a handler raises propagates.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        state: AppState,
        *,
        timeout: float = DEFAULT_TOOL_TIMEOUT,
    ) -> None:
        self._registry = registry
        self._state = state
        self._timeout = timeout

    def has_tool(self, name: str) -> bool:
        return name in self._registry

    def available_tools(self) -> list[str]:
        return self._registry.names()

    def validate(self, call: ParsedToolCall) -> tuple[Tool, dict[str, Any]]:
        tool = self._registry.get(call.name)
        if tool is None:
            raise ToolValidationError(
                RejectReason.UNKNOWN_TOOL,
                f"Unknown tool '{call.name}'. Available tools: "
                f"{', '.join(self._registry.names()) or 'none'}.",
            )

        supplied = {k.lower(): v for k, v in call.arguments.items()}
        args: dict[str, Any] = {}
        missing: list[str] = []
        for param in tool.parameters:
            if param.name in supplied:
                args[param.name] = coerce_argument(param, supplied[param.name])
            elif param.required:
                missing.append(param.name)
            elif param.default is not None:
                args[param.name] = param.default
        if missing:
            raise ToolValidationError(
                RejectReason.MISSING_PARAMETER,
                f"Tool '{tool.name}' is missing required parameter(s): {', '.join(missing)}.",
            )

        ignored = sorted(set(supplied) - {p.name for p in tool.parameters})
        if ignored:
            log.debug("tool_unknown_arguments_ignored", tool=tool.name, arguments=ignored)
        return tool, args

    async def execute(self, call: ParsedToolCall) -> ExecutionResult:
        tool, args = self.validate(call)
        log.info("tool_executing", tool=tool.name, arguments=list(args))

        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(tool.handler(args, self._state), self._timeout)
        except ToolExecutionError as e:
            result = ToolResult.fail(f"{tool.name} could not be completed", str(e))
        except asyncio.TimeoutError:
            result = ToolResult.fail(
                f"{tool.name} did not finish",
                f"Tool execution timed out after {self._timeout:g} seconds.",
            )
        elapsed_ms = (time.perf_counter() - start) * 1000

        if not isinstance(result, ToolResult):
            raise TypeError(f"Handler for {tool.name} returned {type(result).__name__}")

        log.info(
            "tool_executed",
            tool=tool.name,
            success=result.success,
            elapsed_ms=round(elapsed_ms, 1),
        )
        return ExecutionResult.from_tool_result(result, tool.name, args, elapsed_ms)

    async def execute_by_name(self, name: str, arguments: dict[str, Any] | None = None) -> ExecutionResult:
        """Run a tool directly, bypassing the parser (typed values are accepted)."""
        return await self.execute(ParsedToolCall(name=name, arguments=dict(arguments or {})))
