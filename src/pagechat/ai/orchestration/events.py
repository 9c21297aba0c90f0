"""Caller-facing events emitted during one chat turn."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Mapping

from ..ai_types import Usage
from .conversation import Turn

__all__ = ["AgentEventType", "ToolCallNotice", "AgentEvent"]

AgentEventType = Literal["text", "thinking", "tool_call", "usage", "finish", "error", "done"]


@dataclass(slots=True, frozen=True)
class ToolCallNotice:
    """Summary of one executed tool call, for display.

    ``round`` is the zero-based loop round the call was made in.
    """

    name: str
    args: Mapping[str, Any]
    source: str
    round: int
    success: bool = True
    error: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "args": dict(self.args),
            "source": self.source,
            "round": self.round,
            "success": self.success,
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class AgentEvent:
    """Normalized representation of agent output.

    Attributes:
        type: Event kind; decides which optional field is populated.
        text: Delta for ``text``/``thinking``; full answer text for ``done``.
        tool_call: Populated for ``tool_call`` events.
        usage: Token totals for ``usage`` events.
        finish_reason: Provider finish reason for ``finish`` events.
        error: Message for ``error`` events.
        aborted: On ``done``, whether the user stopped the turn.
        turns: On ``done``, the transcript as sent to the provider.
    """

    type: AgentEventType
    text: str | None = None
    tool_call: ToolCallNotice | None = None
    usage: Usage | None = None
    finish_reason: str | None = None
    error: str | None = None
    aborted: bool = False
    turns: tuple[Turn, ...] = field(default_factory=tuple)

    @classmethod
    def text_delta(cls, text: str) -> AgentEvent:
        return cls(type="text", text=text)

    @classmethod
    def thinking_delta(cls, text: str) -> AgentEvent:
        return cls(type="thinking", text=text)

    @classmethod
    def tool_call_notice(cls, notice: ToolCallNotice) -> AgentEvent:
        return cls(type="tool_call", tool_call=notice)

    @classmethod
    def usage_totals(cls, usage: Usage) -> AgentEvent:
        return cls(type="usage", usage=usage)

    @classmethod
    def finish(cls, reason: str) -> AgentEvent:
        return cls(type="finish", finish_reason=reason)

    @classmethod
    def failure(cls, message: str) -> AgentEvent:
        return cls(type="error", error=message)

    @classmethod
    def done(cls, *, aborted: bool = False, text: str = "", turns: tuple[Turn, ...] = ()) -> AgentEvent:
        return cls(type="done", aborted=aborted, text=text, turns=turns)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for a JSON event channel; only populated fields are included."""

        payload: Dict[str, Any] = {"type": self.type}
        if self.type in ("text", "thinking"):
            payload["text"] = self.text or ""
        elif self.type == "tool_call" and self.tool_call is not None:
            payload.update(self.tool_call.to_dict())
        elif self.type == "usage" and self.usage is not None:
            payload["usage"] = self.usage.to_dict()
        elif self.type == "finish":
            payload["finish_reason"] = self.finish_reason
        elif self.type == "error":
            payload["error"] = self.error
        elif self.type == "done":
            payload["aborted"] = self.aborted
        return payload
