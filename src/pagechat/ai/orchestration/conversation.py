"""Chat history and the provider-native conversation transcript."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Mapping, Sequence

__all__ = [
    "MAX_HISTORY_MESSAGES",
    "ChatMessage",
    "Turn",
    "Conversation",
    "text_part",
    "history_to_turns",
]

MAX_HISTORY_MESSAGES = 25

ChatRole = Literal["user", "assistant"]
TurnRole = Literal["user", "model"]


def text_part(text: str) -> Dict[str, Any]:
    return {"text": text}


@dataclass(slots=True, frozen=True)
class ChatMessage:
    """A message as the user saw it in the chat panel."""

    role: ChatRole
    content: str

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> ChatMessage:
        return cls(role="assistant", content=content)


@dataclass(slots=True, frozen=True)
class Turn:
    """One provider-native conversation entry.

    Attributes:
        role: ``"user"`` for the human and tool results, ``"model"`` for model output.
        parts: Provider parts (text, ``functionCall``, ``functionResponse``), kept verbatim.
    """

    role: TurnRole
    parts: tuple[Mapping[str, Any], ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "parts": [dict(part) for part in self.parts]}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Turn:
        role = "model" if payload.get("role") == "model" else "user"
        parts = payload.get("parts") or ()
        return cls(role=role, parts=tuple(dict(part) for part in parts if isinstance(part, Mapping)))


def history_to_turns(
    messages: Iterable[ChatMessage],
    *,
    window: int = MAX_HISTORY_MESSAGES,
) -> List[Turn]:
    """Convert chat-panel history to provider turns, keeping only the last ``window``.

    Messages with empty content are dropped before the window is applied.
    """

    turns = [
        Turn(role="user" if message.role == "user" else "model", parts=(text_part(message.content),))
        for message in messages
        if message.content
    ]
    if window <= 0:
        return []
    return turns[-window:]


@dataclass(slots=True)
class Conversation:
    """Ordered transcript owned by the agent for the duration of one chat turn."""

    turns: List[Turn] = field(default_factory=list)

    @classmethod
    def start(cls, history: Sequence[Turn], prompt: str) -> Conversation:
        conversation = cls(turns=list(history))
        conversation.add_user_text(prompt)
        return conversation

    def add_user_text(self, text: str) -> None:
        self.turns.append(Turn(role="user", parts=(text_part(text),)))

    def add_model_parts(self, parts: Sequence[Mapping[str, Any]]) -> None:
        self.turns.append(Turn(role="model", parts=tuple(parts)))

    def add_tool_responses(self, parts: Sequence[Mapping[str, Any]]) -> None:
        self.turns.append(Turn(role="user", parts=tuple(parts)))

    def to_contents(self) -> List[Dict[str, Any]]:
        return [turn.to_dict() for turn in self.turns]

    def __len__(self) -> int:
        return len(self.turns)
