"""Domain error taxonomy shared by providers, tools and the agent loop."""

from __future__ import annotations

from enum import Enum


class FocusFlowError(Exception):
    """Base class for all domain errors."""


class NetworkError(FocusFlowError):
    """Transport or HTTP failure talking to a backend."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            base = f"{base} (status {self.status_code})"
        if self.body:
            base = f"{base}: {self.body}"
        return base


class SerializationError(FocusFlowError):
    """A response body did not match the expected shape."""


class ConfigError(FocusFlowError):
    """Missing or invalid credentials, unknown model identifier, etc."""


class RejectReason(str, Enum):
    MALFORMED = "malformed"
    TOO_MANY = "too_many"
    UNKNOWN_TOOL = "unknown_tool"
    MISSING_PARAMETER = "missing_parameter"
    INVALID_PARAMETER = "invalid_parameter"


class ToolValidationError(FocusFlowError):
    """A tool call was rejected before reaching its handler."""

    def __init__(self, reason: RejectReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class ToolExecutionError(FocusFlowError):
    """Raised by a handler for a recoverable domain failure."""


class InferenceError(FocusFlowError):
    """The on-device inference engine failed to load or generate."""
