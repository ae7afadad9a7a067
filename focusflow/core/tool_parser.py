"""Extracts at most one tool call from free-form model output.

Accepted syntax (the same shape the registry documents)::

    <tool name="start_session" duration="25"/>
    <tool name="start_session" duration="25"></tool>

Tag and attribute names are case-insensitive. Values may be double-quoted,
single-quoted or bare tokens; HTML entities inside values (``&quot;``,
``&lt;``, ``&#39;``...) are decoded. Attribute values are returned as strings;
typing is the executor's job.

A ``<tool`` that is followed by something attribute-shaped but does not form a
complete tag is an attempted call and rejects the response as malformed. Any
other ``<tool`` is treated as prose.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from focusflow.errors import RejectReason
from focusflow.tools.base import unescape_value
from focusflow.tools.registry import ToolRegistry

_NAME = r"[A-Za-z_][\w.-]*"
_VALUE = r"""(?:"[^"]*"|'[^']*'|[^\s"'<>/=`]+)"""
_ATTR = rf"{_NAME}\s*=\s*{_VALUE}"

_CANDIDATE_RE = re.compile(r"<tool\b", re.IGNORECASE)
_ATTEMPT_RE = re.compile(rf"<tool\s+{_NAME}\s*=", re.IGNORECASE)
_CALL_RE = re.compile(
    rf"<tool((?:\s+{_ATTR})*)\s*(?:/>|>\s*</tool\s*>)",
    re.IGNORECASE,
)
_ATTR_RE = re.compile(
    rf"""({_NAME})\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'<>/=`]+))"""
)


class ParseOutcome(str, Enum):
    NO_CALL = "no_call"
    ONE_CALL = "one_call"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ParsedToolCall:
    name: str
    arguments: dict[str, str] = field(default_factory=dict)
    raw: str = ""


@dataclass(frozen=True)
class ParseResult:
    kind: ParseOutcome
    call: ParsedToolCall | None = None
    reason: RejectReason | None = None
    detail: str = ""
    # Text outside any call tag, for direct display
    narrative: str = ""

    @classmethod
    def no_call(cls, narrative: str) -> ParseResult:
        return cls(ParseOutcome.NO_CALL, narrative=narrative)

    @classmethod
    def one_call(cls, call: ParsedToolCall, narrative: str) -> ParseResult:
        return cls(ParseOutcome.ONE_CALL, call=call, narrative=narrative)

    @classmethod
    def rejected(
        cls,
        reason: RejectReason,
        detail: str,
        narrative: str = "",
        call: ParsedToolCall | None = None,
    ) -> ParseResult:
        return cls(ParseOutcome.REJECTED, call=call, reason=reason, detail=detail, narrative=narrative)

    @property
    def has_call(self) -> bool:
        return self.kind is ParseOutcome.ONE_CALL


@dataclass
class _Scan:
    calls: list[re.Match[str]]
    malformed: list[int]


def _scan(text: str) -> _Scan:
    calls: list[re.Match[str]] = []
    malformed: list[int] = []
    pos = 0
    while True:
        candidate = _CANDIDATE_RE.search(text, pos)
        if candidate is None:
            break
        start = candidate.start()
        full = _CALL_RE.match(text, start)
        if full is not None:
            calls.append(full)
            pos = full.end()
            continue
        if _ATTEMPT_RE.match(text, start):
            malformed.append(start)
        pos = candidate.end()
    return _Scan(calls, malformed)


def _attributes(attr_text: str) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for m in _ATTR_RE.finditer(attr_text):
        key = m.group(1).lower()
        if key in attrs:
            continue  # first occurrence wins
        raw = next(g for g in m.group(2, 3, 4) if g is not None)
        attrs[key] = unescape_value(raw)
    return attrs


def _to_call(match: re.Match[str]) -> ParsedToolCall | None:
    attrs = _attributes(match.group(1))
    name = attrs.pop("name", "").strip()
    if not name:
        return None
    return ParsedToolCall(name=name, arguments=attrs, raw=match.group(0))


def _narrative(text: str, spans: list[tuple[int, int]]) -> str:
    pieces = []
    pos = 0
    for start, end in spans:
        pieces.append(text[pos:start].strip())
        pos = end
    pieces.append(text[pos:].strip())
    return " ".join(p for p in pieces if p)


def contains_tool_call(text: str) -> bool:
    """Cheap check: is there at least one complete call tag in ``text``?"""
    return _CALL_RE.search(text) is not None


def extract_single_call(text: str) -> ParsedToolCall | None:
    """Return the first complete, named call in ``text`` without any policy checks."""
    for match in _CALL_RE.finditer(text):
        call = _to_call(match)
        if call is not None:
            return call
    return None


class ToolParser:
    """Applies the one-call-per-response policy and, given a registry,
    validates the tool name and required parameters."""

    def __init__(self, registry: ToolRegistry | None = None) -> None:
        self._registry = registry

    def parse(self, text: str) -> ParseResult:
        scan = _scan(text)
        narrative = _narrative(text, [m.span() for m in scan.calls])

        if not scan.calls and not scan.malformed:
            return ParseResult.no_call(narrative)

        if len(scan.calls) > 1:
            return ParseResult.rejected(
                RejectReason.TOO_MANY,
                f"Found {len(scan.calls)} tool calls; only one action per turn is allowed.",
                narrative,
            )

        if scan.malformed:
            return ParseResult.rejected(
                RejectReason.MALFORMED,
                "A tool call could not be parsed. Use exactly: "
                '<tool name="NAME" param="value"/>',
                narrative,
            )

        match = scan.calls[0]
        call = _to_call(match)
        if call is None:
            return ParseResult.rejected(
                RejectReason.MALFORMED, 'The tool call is missing its name="..." attribute.', narrative
            )

        if self._registry is not None:
            tool = self._registry.get(call.name)
            if tool is None:
                available = ", ".join(self._registry.names()) or "none"
                return ParseResult.rejected(
                    RejectReason.UNKNOWN_TOOL,
                    f"Unknown tool '{call.name}'. Available tools: {available}.",
                    narrative,
                    call,
                )
            missing = [p for p in tool.required_parameters if p not in call.arguments]
            if missing:
                return ParseResult.rejected(
                    RejectReason.MISSING_PARAMETER,
                    f"Tool '{call.name}' is missing required parameter(s): {', '.join(missing)}.",
                    narrative,
                    call,
                )

        return ParseResult.one_call(call, narrative)
