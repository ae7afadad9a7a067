"""Tool definitions: parameters, examples, results and call rendering."""

from __future__ import annotations

import html
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

if TYPE_CHECKING:
    from focusflow.tools.state import AppState


TOOL_TAG = "tool"


class ParameterType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"


class ToolCategory(str, Enum):
    SESSION = "session"
    ANALYTICS = "analytics"
    JOURNAL = "journal"
    BLOCKING = "blocking"
    GOALS = "goals"

    @property
    def title(self) -> str:
        return _CATEGORY_TITLES[self]


_CATEGORY_TITLES = {
    ToolCategory.SESSION: "Session Management",
    ToolCategory.ANALYTICS: "Analytics & Statistics",
    ToolCategory.JOURNAL: "Journal & Triggers",
    ToolCategory.BLOCKING: "Blocking Management",
    ToolCategory.GOALS: "Goals & Streaks",
}


# ---------------------------------------------------------------------------
# Call syntax
# ---------------------------------------------------------------------------

def escape_value(value: Any) -> str:
    """Escape an attribute value so it survives inside double quotes."""
    if isinstance(value, bool):
        value = "true" if value else "false"
    return html.escape(str(value), quote=True)


def unescape_value(value: str) -> str:
    return html.unescape(value)


def render_call(name: str, arguments: dict[str, Any] | None = None) -> str:
    """Render ``<tool name="NAME" key="value"/>`` exactly as the parser reads it."""
    attrs = [f'name="{escape_value(name)}"']
    for key, value in (arguments or {}).items():
        attrs.append(f'{key}="{escape_value(value)}"')
    return f"<{TOOL_TAG} {' '.join(attrs)}/>"


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class ToolResult:
    """What a handler hands back.

    ``message`` is prose for the user; :meth:`to_model_text` is the denser
    rendering fed back into the conversation.
    """

    success: bool
    message: str
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> ToolResult:
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, error: str) -> ToolResult:
        return cls(success=False, message=message, error=error)

    def to_model_text(self) -> str:
        if not self.success:
            return (
                "Tool execution failed.\n"
                f"Message: {self.message}\n"
                f"Error: {self.error or 'Unknown error'}"
            )
        text = f"Tool executed successfully.\nResult: {self.message}"
        if self.data is not None:
            text += f"\nData: {json.dumps(self.data, indent=2, default=str)}"
        return text


ToolHandler = Callable[[dict[str, Any], "AppState"], Awaitable[ToolResult]]


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------

@dataclass
class ToolParameter:
    name: str
    type: ParameterType = ParameterType.STRING
    description: str = ""
    required: bool = False
    default: Any = None
    choices: list[str] = field(default_factory=list)
    examples: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.name = self.name.lower()
        if self.type is ParameterType.ENUM and not self.choices:
            raise ValueError(f"enum parameter {self.name!r} needs choices")

    @property
    def type_name(self) -> str:
        if self.type is ParameterType.ENUM:
            return "|".join(self.choices)
        return self.type.value


@dataclass
class ToolExample:
    description: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def call(self, tool_name: str) -> str:
        return render_call(tool_name, self.arguments)


@dataclass
class Tool:
    name: str
    description: str
    category: ToolCategory
    handler: ToolHandler
    parameters: list[ToolParameter] = field(default_factory=list)
    examples: list[ToolExample] = field(default_factory=list)

    def parameter(self, name: str) -> ToolParameter | None:
        name = name.lower()
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    @property
    def required_parameters(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]

    def to_documentation(self) -> str:
        lines = [
            f"### {self.name}",
            f"**Description:** {self.description}",
        ]
        if self.parameters:
            lines.append("**Parameters:**")
            for param in self.parameters:
                need = "required" if param.required else "optional"
                lines.append(f"  - `{param.name}` ({param.type_name}, {need}): {param.description}")
                if param.default is not None:
                    lines.append(f"    Default: {escape_value(param.default)}")
                if param.examples:
                    lines.append(f"    Examples: {', '.join(param.examples)}")
        if self.examples:
            lines.append("**Examples:**")
            for example in self.examples:
                lines.append(f"  - {example.description}")
                lines.append(f"    Call: `{example.call(self.name)}`")
        return "\n".join(lines) + "\n"
