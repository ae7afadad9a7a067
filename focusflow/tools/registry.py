"""Catalog of invocable tools and the documentation injected into prompts."""

from __future__ import annotations

from typing import Iterator

from focusflow.tools.base import Tool, ToolCategory, render_call
from focusflow.utils.logging import get_logger

log = get_logger(__name__)

DOC_HEADER = "# Tool Reference"

DOC_FORMAT = (
    f"Format: {render_call('NAME', {'param': 'value'})}\n"
    "Quote every value with double quotes. Inside a value write &quot; for \", "
    "&lt; for <, &gt; for > and &amp; for &."
)

DOC_RULES = "RULES: One tool max per response. No code blocks. No repeating."


class ToolRegistry:
    """Tools keyed by name, kept in registration order.

    Written during startup only; concurrent agent loops read it without locking.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        # Replacing keeps the original slot, so documentation order is stable
        if tool.name in self._tools:
            log.warning("tool_replaced", tool=tool.name)
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> Tool | None:
        return self._tools.pop(name, None)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def tools_in_category(self, category: ToolCategory) -> list[Tool]:
        return [t for t in self._tools.values() if t.category is category]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def generate_documentation(self) -> str:
        """Render every tool, grouped by category in a fixed order."""
        sections = [DOC_HEADER, DOC_FORMAT, DOC_RULES]
        for category in ToolCategory:
            tools = self.tools_in_category(category)
            if not tools:
                continue
            body = "\n".join(tool.to_documentation() for tool in tools)
            sections.append(f"## {category.title}\n\n{body}")
        return "\n\n".join(sections)
