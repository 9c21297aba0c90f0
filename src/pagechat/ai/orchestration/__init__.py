"""Chat turn orchestration: prompts, transcript, events and the agent loop."""

from .agent import AgentConfig, AgentState, ChatAgent, ChatRequest, InferenceStreamer
from .conversation import ChatMessage, Conversation, Turn, history_to_turns
from .events import AgentEvent, ToolCallNotice
from .personas import DEFAULT_PERSONAS, Persona, resolve_persona_prompt
from .prompts import BASE_SYSTEM_PROMPT, compose_system_prompt

__all__ = [
    "AgentConfig",
    "AgentState",
    "ChatAgent",
    "ChatRequest",
    "InferenceStreamer",
    "ChatMessage",
    "Conversation",
    "Turn",
    "history_to_turns",
    "AgentEvent",
    "ToolCallNotice",
    "DEFAULT_PERSONAS",
    "Persona",
    "resolve_persona_prompt",
    "BASE_SYSTEM_PROMPT",
    "compose_system_prompt",
]
