"""FocusFlow tools."""

from focusflow.tools.base import (
    ParameterType,
    Tool,
    ToolCategory,
    ToolExample,
    ToolParameter,
    ToolResult,
    render_call,
)
from focusflow.tools.focus import default_registry, register_default_tools
from focusflow.tools.registry import ToolRegistry
from focusflow.tools.state import AppState, InMemoryAppState

__all__ = [
    "AppState",
    "InMemoryAppState",
    "ParameterType",
    "Tool",
    "ToolCategory",
    "ToolExample",
    "ToolParameter",
    "ToolRegistry",
    "ToolResult",
    "default_registry",
    "register_default_tools",
    "render_call",
]
