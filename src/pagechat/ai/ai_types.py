"""Typed stream chunks produced by the inference client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Mapping

__all__ = ["StreamChunkType", "FunctionCall", "Usage", "StreamChunk"]

StreamChunkType = Literal["text", "thinking", "function_call", "finish", "usage", "error"]


@dataclass(slots=True, frozen=True)
class FunctionCall:
    """A tool invocation requested by the model."""

    name: str
    args: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Usage:
    """Token counters reported by the provider.

    ``output_tokens`` includes reasoning ("thoughts") tokens.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(slots=True)
class StreamChunk:
    """Normalized representation of one decoded stream element.

    Attributes:
        type: Which of the optional fields below is populated.
        text: Answer text (``type == "text"``) or reasoning text (``"thinking"``).
        function_call: Requested tool call for ``"function_call"`` chunks.
        finish_reason: Provider finish reason for ``"finish"`` chunks.
        usage: Token counters for ``"usage"`` chunks.
        error: Human readable message for ``"error"`` chunks.
        raw_part: The provider-native part this chunk was decoded from, kept so it
            can be echoed back verbatim in the next request.
    """

    type: StreamChunkType
    text: str | None = None
    function_call: FunctionCall | None = None
    finish_reason: str | None = None
    usage: Usage | None = None
    error: str | None = None
    raw_part: Dict[str, Any] | None = None
