"""Error types raised by page tools.

Every tool failure is reported back to the model as a structured payload rather
than ending the chat turn, so these exceptions carry their own serialization.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for error codes used in tool responses."""

    UNKNOWN_TOOL = "unknown_tool"
    INVALID_PARAMETER = "invalid_parameter"
    MISSING_PARAMETER = "missing_parameter"
    NO_ACTIVE_TAB = "no_active_tab"
    TOOL_UNAVAILABLE = "tool_unavailable"
    WRITE_FAILED = "write_failed"
    INTERNAL_ERROR = "internal_error"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class ToolError(Exception):
    """Base exception class for all tool errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description shown to the model.
        details: Additional structured error information.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ``functionResponse`` content sent back to the model."""
        result: dict[str, Any] = {
            "error": self.message,
            "status": "failed",
            "code": self.error_code,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# -----------------------------------------------------------------------------
# Specific Errors
# -----------------------------------------------------------------------------

@dataclass
class UnknownToolError(ToolError):
    """The model asked for a tool that is not declared."""

    error_code: str = field(default=ErrorCode.UNKNOWN_TOOL)
    message: str = field(default="Unknown tool")
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_name(cls, name: str) -> "UnknownToolError":
        return cls(message=f"Unknown tool: {name}", details={"name": name})


@dataclass
class InvalidToolArgumentsError(ToolError):
    error_code: str = field(default=ErrorCode.INVALID_PARAMETER)
    message: str = field(default="Invalid tool arguments")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class NoActiveTabError(ToolError):
    error_code: str = field(default=ErrorCode.NO_ACTIVE_TAB)
    message: str = field(default="No active tab found to read content from.")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolUnavailableError(ToolError):
    """The tool exists but cannot run in the current mode or configuration."""

    error_code: str = field(default=ErrorCode.TOOL_UNAVAILABLE)
    message: str = field(default="Tool is not available")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PageWriteError(ToolError):
    error_code: str = field(default=ErrorCode.WRITE_FAILED)
    message: str = field(default="Write failed")
    details: dict[str, Any] = field(default_factory=dict)


__all__ = [
    "ErrorCode",
    "ToolError",
    "UnknownToolError",
    "InvalidToolArgumentsError",
    "NoActiveTabError",
    "ToolUnavailableError",
    "PageWriteError",
]
