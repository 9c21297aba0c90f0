"""Bounded, cancellable tool-calling loop for one chat connection."""

from __future__ import annotations

import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, List, Protocol, Sequence, Tuple

from ...page import (
    CredentialSupplier,
    PageContent,
    PageExtractor,
    PageWriter,
    TabInfo,
    is_restricted_url,
)
from ...snapshots.models import UrlChanged
from ...snapshots.store import SnapshotStore, TabId
from ..ai_types import FunctionCall, StreamChunk, Usage
from ..cancellation import AbortSignal
from ..client import InferenceRequest
from ..errors import RequestCancelled
from ..tools.declarations import tools_for_mode
from ..tools.dispatcher import ToolDispatcher
from .conversation import MAX_HISTORY_MESSAGES, ChatMessage, Conversation, history_to_turns
from .events import AgentEvent, ToolCallNotice
from .prompts import build_page_context_prompt, build_unavailable_page_prompt, compose_system_prompt

__all__ = [
    "AgentState",
    "AgentConfig",
    "ChatRequest",
    "InferenceStreamer",
    "ChatAgent",
    "MAX_TOOL_ROUNDS",
    "STOPPED_MARKER",
    "NOT_LOGGED_IN",
]

LOGGER = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 50
STOPPED_MARKER = "*[Stopped by user]*"
NOT_LOGGED_IN = "Not logged in"


class AgentState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    STREAMING = "streaming"
    TOOL_EXECUTING = "tool_executing"
    DONE = "done"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class AgentConfig:
    """Defaults applied to every turn unless the request overrides them."""

    model: str = "gemini-2.5-flash"
    temperature: float | None = None
    max_output_tokens: int | None = None
    thinking_level: str = "high"
    mode: str = "ask"
    page_context_enabled: bool = True
    max_tool_rounds: int = MAX_TOOL_ROUNDS
    history_window: int = MAX_HISTORY_MESSAGES


@dataclass(slots=True)
class ChatRequest:
    """One user message plus the context needed to answer it.

    Attributes:
        prompt: The new user message.
        history: Earlier chat-panel messages, oldest first.
        system_prompt: Persona or user instructions appended to the base prompt.
        tab: The tab the user is looking at, if any.
        model: Per-turn model override.
        mode: Per-turn ``"ask"``/``"edit"`` override.
        page_context_enabled: Per-turn override of the page-context toggle.
        thinking_level: Per-turn reasoning depth override.
    """

    prompt: str
    history: Sequence[ChatMessage] = field(default_factory=tuple)
    system_prompt: str = ""
    tab: TabInfo | None = None
    model: str | None = None
    mode: str | None = None
    page_context_enabled: bool | None = None
    thinking_level: str | None = None


class InferenceStreamer(Protocol):
    def stream(self, request: InferenceRequest, *, signal: AbortSignal | None = None) -> AsyncIterator[StreamChunk]:
        ...


@dataclass(slots=True)
class _RoundOutput:
    model_parts: List[dict] = field(default_factory=list)
    function_calls: List[FunctionCall] = field(default_factory=list)
    finish_reason: str | None = None
    usage: Usage | None = None
    error: str | None = None


class ChatAgent:
    """Runs chat turns for a single connection.

    The agent remembers which tab and URL the model last saw so that a tab switch
    or navigation between turns is reported to the model as a page change. Each
    turn alternates between streaming the model and executing the tool calls it
    asks for, up to ``max_tool_rounds`` rounds.
    """

    def __init__(
        self,
        client: InferenceStreamer,
        store: SnapshotStore,
        credentials: CredentialSupplier,
        *,
        extractor: PageExtractor | None = None,
        page_writer: PageWriter | None = None,
        config: AgentConfig | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._credentials = credentials
        self._extractor = extractor
        self._page_writer = page_writer
        self._config = config or AgentConfig()
        self._state = AgentState.IDLE
        self._last_tab_id: TabId | None = None
        self._last_url: str | None = None

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def config(self) -> AgentConfig:
        return self._config

    @property
    def last_seen(self) -> Tuple[TabId | None, str | None]:
        return self._last_tab_id, self._last_url

    async def run_turn(
        self,
        request: ChatRequest,
        *,
        signal: AbortSignal | None = None,
    ) -> AsyncIterator[AgentEvent]:
        """Answer ``request``, yielding events until a final ``done`` event."""

        signal = signal or AbortSignal()
        self._state = AgentState.PREPARING
        streamed_text: List[str] = []
        conversation: Conversation | None = None
        try:
            credentials = await self._credentials.get_credentials()
            if credentials is None:
                self._state = AgentState.FAILED
                yield AgentEvent.failure(NOT_LOGGED_IN)
                yield AgentEvent.done()
                return

            mode = "edit" if (request.mode or self._config.mode) == "edit" else "ask"
            page_section, tab_id = await self._prepare_page_context(request, mode, signal)
            system_prompt = compose_system_prompt(request.system_prompt) + page_section
            LOGGER.debug("System prompt:\n%s", system_prompt)

            history = history_to_turns(request.history, window=self._config.history_window)
            conversation = Conversation.start(history, request.prompt)
            tools = tools_for_mode(mode) if page_section else None
            dispatcher = ToolDispatcher(self._store, page_writer=self._page_writer, mode=mode)

            max_rounds = max(1, self._config.max_tool_rounds)
            for round_index in range(max_rounds):
                if signal.aborted:
                    break
                self._state = AgentState.STREAMING
                round_output = _RoundOutput()
                inference_request = InferenceRequest(
                    access_token=credentials.access_token,
                    project_id=credentials.project_id,
                    model=request.model or self._config.model,
                    contents=conversation.to_contents(),
                    system_prompt=system_prompt,
                    tools=tools,
                    max_output_tokens=self._config.max_output_tokens,
                    temperature=self._config.temperature,
                    thinking_level=request.thinking_level or self._config.thinking_level,
                    provider=credentials.provider,
                )
                async with aclosing(self._client.stream(inference_request, signal=signal)) as chunks:
                    async for chunk in chunks:
                        if signal.aborted:
                            break
                        event = _absorb_chunk(chunk, round_output)
                        if event is None:
                            continue
                        if event.type == "text" and event.text:
                            streamed_text.append(event.text)
                        yield event

                if signal.aborted:
                    break
                if round_output.error is not None:
                    self._state = AgentState.FAILED
                    break

                last_round = round_index == max_rounds - 1
                if not round_output.function_calls or last_round:
                    if round_output.function_calls:
                        LOGGER.warning("Stopping after %s tool round(s) with tool calls still pending", max_rounds)
                    if round_output.model_parts:
                        conversation.add_model_parts(round_output.model_parts)
                    if round_output.finish_reason:
                        yield AgentEvent.finish(round_output.finish_reason)
                    if round_output.usage is not None:
                        yield AgentEvent.usage_totals(round_output.usage)
                    self._state = AgentState.DONE
                    break

                self._state = AgentState.TOOL_EXECUTING
                responses = []
                for call in round_output.function_calls:
                    if signal.aborted:
                        break
                    result = await dispatcher.execute(call, tab_id=tab_id)
                    responses.append(result.to_part())
                    yield AgentEvent.tool_call_notice(
                        ToolCallNotice(
                            name=result.name,
                            args=result.args,
                            source=result.source,
                            round=round_index,
                            success=result.success,
                            error=result.error.message if result.error is not None else None,
                        )
                    )
                conversation.add_model_parts(round_output.model_parts)
                if signal.aborted:
                    break
                conversation.add_tool_responses(responses)

            if signal.aborted:
                async for event in self._finish_aborted(streamed_text, conversation):
                    yield event
                return
            if self._state is not AgentState.FAILED:
                self._state = AgentState.DONE
            yield AgentEvent.done(text="".join(streamed_text), turns=tuple(conversation.turns))
        except RequestCancelled:
            async for event in self._finish_aborted(streamed_text, conversation):
                yield event
        except GeneratorExit:
            signal.abort("consumer went away")
            raise
        except Exception as exc:
            LOGGER.exception("Chat turn failed")
            self._state = AgentState.FAILED
            yield AgentEvent.failure(str(exc) or exc.__class__.__name__)
            yield AgentEvent.done(text="".join(streamed_text))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _finish_aborted(
        self,
        streamed_text: List[str],
        conversation: Conversation | None,
    ) -> AsyncIterator[AgentEvent]:
        self._state = AgentState.ABORTED
        marker = f"\n\n{STOPPED_MARKER}" if streamed_text else STOPPED_MARKER
        streamed_text.append(marker)
        LOGGER.debug("Chat turn stopped by user")
        yield AgentEvent.text_delta(marker)
        turns = tuple(conversation.turns) if conversation is not None else ()
        yield AgentEvent.done(aborted=True, text="".join(streamed_text), turns=turns)

    async def _prepare_page_context(
        self,
        request: ChatRequest,
        mode: str,
        signal: AbortSignal,
    ) -> Tuple[str, TabId | None]:
        """Push the current page into the store and describe it for the system prompt.

        Returns the page-context section (empty when page context is off or there is
        no tab) and the tab id tools should read from.
        """

        enabled = request.page_context_enabled
        if enabled is None:
            enabled = self._config.page_context_enabled
        tab = request.tab
        if not enabled or tab is None:
            return "", None

        tab_switched = self._last_tab_id is not None and self._last_tab_id != tab.tab_id
        url_changed = not tab_switched and self._last_url is not None and self._last_url != tab.url
        page_changed = tab_switched or url_changed
        previous_url = self._last_url
        title = tab.title or "Untitled"

        await self._store.prune_stale()
        content, reason = await self._extract(tab, signal)
        if content is not None and content.text:
            pushed = await self._store.push(
                tab.tab_id,
                url=content.url or tab.url,
                title=content.title or title,
                text=content.text,
                editor_contents=content.editor_contents,
            )
            meta = await self._store.get_meta(tab.tab_id)
            previous = meta["previous"]
            diff = pushed.diff
            if page_changed:
                diff = UrlChanged(old_url=previous_url or "unknown", new_url=tab.url)
            LOGGER.debug("Page context for tab %s: %s", tab.tab_id, diff.kind)
            section = build_page_context_prompt(
                url=pushed.snapshot.url,
                title=pushed.snapshot.title,
                total_chunks=pushed.snapshot.total_chunks,
                previous_chunks=previous.total_chunks if previous is not None else None,
                diff=diff,
                editors=pushed.snapshot.editor_metadata(),
                mode=mode,
            )
        else:
            # An empty snapshot moves the last good content into ``previous``.
            await self._store.push(tab.tab_id, url=tab.url, title=title, text="")
            section = build_unavailable_page_prompt(
                url=tab.url,
                title=title,
                page_changed=page_changed,
                previous_url=previous_url,
                reason=reason,
            )

        self._last_tab_id = tab.tab_id
        self._last_url = tab.url
        return section, tab.tab_id

    async def _extract(self, tab: TabInfo, signal: AbortSignal) -> Tuple[PageContent | None, str | None]:
        if is_restricted_url(tab.url):
            LOGGER.debug("Skipping restricted URL: %s", tab.url)
            return None, None
        if self._extractor is None:
            return None, "Page extraction is not available."
        try:
            content = await signal.wrap(self._extractor.extract(tab))
        except RequestCancelled:
            raise
        except Exception as exc:
            LOGGER.warning("Page extraction failed for tab %s: %s", tab.tab_id, exc)
            return None, str(exc) or exc.__class__.__name__
        return content, None


def _absorb_chunk(chunk: StreamChunk, round_output: _RoundOutput) -> AgentEvent | None:
    """Record ``chunk`` for this round and return the event to forward immediately, if any."""

    if chunk.raw_part is not None:
        round_output.model_parts.append(chunk.raw_part)
    if chunk.type == "function_call" and chunk.function_call is not None:
        round_output.function_calls.append(chunk.function_call)
        return None
    if chunk.type == "finish":
        round_output.finish_reason = chunk.finish_reason
        return None
    if chunk.type == "usage":
        round_output.usage = chunk.usage
        return None
    if chunk.type == "text":
        return AgentEvent.text_delta(chunk.text or "")
    if chunk.type == "thinking":
        return AgentEvent.thinking_delta(chunk.text or "")
    if chunk.type == "error":
        round_output.error = chunk.error or "Unknown error"
        return AgentEvent.failure(round_output.error)
    return None
