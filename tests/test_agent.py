"""Tests for the tool-calling chat agent."""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from pagechat.ai.ai_types import StreamChunk
from pagechat.ai.cancellation import AbortSignal
from pagechat.ai.orchestration import (
    AgentConfig,
    AgentEvent,
    AgentState,
    ChatAgent,
    ChatMessage,
    ChatRequest,
)
from pagechat.ai.orchestration.agent import STOPPED_MARKER
from pagechat.ai.orchestration.prompts import BASE_SYSTEM_PROMPT, DEFAULT_EXTRACTION_FAILURE_REASON
from pagechat.ai.tools import ASK_TOOLS, EDIT_TOOLS
from pagechat.page import Credentials, PageContent, StaticCredentials, TabInfo
from pagechat.snapshots import SnapshotStore
from tests.helpers import ScriptedClient, call, finish, text, thinking, usage

PAGE_A = "https://example.com/a"
PAGE_B = "https://example.com/b"
CREDENTIALS = StaticCredentials(Credentials(access_token="tok", project_id="proj"))


# =============================================================================
# Doubles
# =============================================================================


class DictExtractor:
    """Page extractor serving fixed content per URL."""

    def __init__(self, pages: Dict[str, str] | None = None, *, error: Exception | None = None) -> None:
        self._pages = pages or {}
        self._error = error
        self.calls: List[TabInfo] = []

    async def extract(self, tab: TabInfo) -> PageContent | None:
        self.calls.append(tab)
        if self._error is not None:
            raise self._error
        body = self._pages.get(tab.url)
        if body is None:
            return None
        return PageContent(url=tab.url, title=tab.title, text=body)


def _agent(client: ScriptedClient, store: SnapshotStore, **kwargs: Any) -> ChatAgent:
    kwargs.setdefault("extractor", DictExtractor({PAGE_A: "Alpha page\n" * 5, PAGE_B: "Beta page\n" * 5}))
    credentials = kwargs.pop("credentials", CREDENTIALS)
    return ChatAgent(client, store, credentials, **kwargs)


async def _run(agent: ChatAgent, request: ChatRequest, signal: AbortSignal | None = None) -> List[AgentEvent]:
    return [event async for event in agent.run_turn(request, signal=signal)]


def _types(events: List[AgentEvent]) -> List[str]:
    return [event.type for event in events]


# =============================================================================
# Plain answers
# =============================================================================


class TestPlainAnswers:
    @pytest.mark.asyncio
    async def test_not_logged_in(self, snapshot_store):
        client = ScriptedClient()
        agent = _agent(client, snapshot_store, credentials=StaticCredentials(None))

        events = await _run(agent, ChatRequest(prompt="hi"))

        assert _types(events) == ["error", "done"]
        assert events[0].error == "Not logged in"
        assert client.requests == []
        assert agent.state is AgentState.FAILED

    @pytest.mark.asyncio
    async def test_streams_text_then_finish_usage_done(self, snapshot_store):
        client = ScriptedClient([thinking("hmm"), text("Hel"), text("lo"), finish(), usage(12)])
        agent = _agent(client, snapshot_store)

        events = await _run(agent, ChatRequest(prompt="hi"))

        assert _types(events) == ["thinking", "text", "text", "finish", "usage", "done"]
        assert events[3].finish_reason == "STOP"
        assert events[4].usage.total_tokens == 12
        done = events[-1]
        assert done.text == "Hello"
        assert not done.aborted
        assert [turn.role for turn in done.turns] == ["user", "model"]
        assert done.turns[1].parts[0] == {"text": "hmm", "thought": True}
        assert agent.state is AgentState.DONE

    @pytest.mark.asyncio
    async def test_no_tab_means_no_tools_or_page_section(self, snapshot_store):
        client = ScriptedClient([text("ok"), finish()])

        await _run(_agent(client, snapshot_store), ChatRequest(prompt="hi", system_prompt="Be terse"))

        (request,) = client.requests
        assert request.tools is None
        assert request.system_prompt == f"{BASE_SYSTEM_PROMPT}\n\nAdditional user instructions:\nBe terse"
        assert request.contents == [{"role": "user", "parts": [{"text": "hi"}]}]

    @pytest.mark.asyncio
    async def test_history_is_windowed(self, snapshot_store):
        client = ScriptedClient([text("ok"), finish()])
        history = [ChatMessage.user(f"m{index}") for index in range(30)]

        await _run(_agent(client, snapshot_store), ChatRequest(prompt="now", history=history))

        contents = client.requests[0].contents
        assert len(contents) == 26
        assert contents[0]["parts"][0]["text"] == "m5"

    @pytest.mark.asyncio
    async def test_request_overrides(self, snapshot_store):
        client = ScriptedClient([text("ok"), finish()])
        agent = _agent(client, snapshot_store, config=AgentConfig(model="gemini-2.5-flash", temperature=0.5))

        await _run(agent, ChatRequest(prompt="hi", model="gemini-3-pro-preview", thinking_level="low"))

        request = client.requests[0]
        assert request.model == "gemini-3-pro-preview"
        assert request.thinking_level == "low"
        assert request.temperature == 0.5
        assert request.access_token == "tok"

    @pytest.mark.asyncio
    async def test_stream_error_ends_turn(self, snapshot_store):
        client = ScriptedClient([text("part"), StreamChunk(type="error", error="API error (400): bad")])
        agent = _agent(client, snapshot_store)

        events = await _run(agent, ChatRequest(prompt="hi"))

        assert _types(events) == ["text", "error", "done"]
        assert events[1].error == "API error (400): bad"
        assert not events[-1].aborted
        assert agent.state is AgentState.FAILED
        assert len(client.requests) == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_reported(self, snapshot_store):
        client = ScriptedClient([RuntimeError("boom")])
        agent = _agent(client, snapshot_store)

        events = await _run(agent, ChatRequest(prompt="hi"))

        assert _types(events) == ["error", "done"]
        assert events[0].error == "boom"
        assert agent.state is AgentState.FAILED


# =============================================================================
# Tool loop
# =============================================================================


class TestToolLoop:
    @pytest.mark.asyncio
    async def test_tool_round_then_answer(self, snapshot_store):
        client = ScriptedClient(
            [call("read_page_chunks", indices=[0]), finish(), usage(5)],
            [text("It says alpha."), finish(), usage(20)],
        )
        agent = _agent(client, snapshot_store)

        events = await _run(agent, ChatRequest(prompt="what is this?", tab=TabInfo(1, PAGE_A, "A")))

        assert _types(events) == ["tool_call", "text", "finish", "usage", "done"]
        notice = events[0].tool_call
        assert notice.name == "read_page_chunks"
        assert notice.success
        assert notice.round == 0
        assert events[3].usage.total_tokens == 20

        first, second = client.requests
        assert first.tools == ASK_TOOLS
        assert [entry["role"] for entry in second.contents] == ["user", "model", "user"]
        assert second.contents[1]["parts"] == [{"functionCall": {"name": "read_page_chunks", "args": {"indices": [0]}}}]
        response = second.contents[2]["parts"][0]["functionResponse"]
        assert response["name"] == "read_page_chunks"
        assert response["response"]["content"]["chunks"][0]["index"] == 0
        assert [turn.role for turn in events[-1].turns] == ["user", "model", "user", "model"]

    @pytest.mark.asyncio
    async def test_tool_errors_go_back_to_the_model(self, snapshot_store):
        client = ScriptedClient(
            [call("delete_page"), call("read_page_chunks", indices=[0])],
            [text("Sorry."), finish()],
        )

        events = await _run(_agent(client, snapshot_store), ChatRequest(prompt="go", tab=TabInfo(1, PAGE_A, "A")))

        notices = [event.tool_call for event in events if event.type == "tool_call"]
        assert [(notice.name, notice.success) for notice in notices] == [
            ("delete_page", False),
            ("read_page_chunks", True),
        ]
        assert notices[0].error == "Unknown tool: delete_page"
        parts = client.requests[1].contents[-1]["parts"]
        assert parts[0]["functionResponse"]["response"]["content"]["status"] == "failed"
        assert events[-1].text == "Sorry."

    @pytest.mark.asyncio
    async def test_edit_mode_declares_write_tool(self, snapshot_store):
        client = ScriptedClient([text("ok"), finish()])

        await _run(
            _agent(client, snapshot_store),
            ChatRequest(prompt="fix it", tab=TabInfo(1, PAGE_A, "A"), mode="edit"),
        )

        assert client.requests[0].tools == EDIT_TOOLS

    @pytest.mark.asyncio
    async def test_round_limit_ends_done(self, snapshot_store):
        looping = [call("read_page_chunks", indices=[0]), finish("STOP")]
        client = ScriptedClient(looping, looping, looping)
        agent = _agent(client, snapshot_store, config=AgentConfig(max_tool_rounds=2))

        events = await _run(agent, ChatRequest(prompt="loop", tab=TabInfo(1, PAGE_A, "A")))

        assert len(client.requests) == 2
        assert _types(events) == ["tool_call", "finish", "done"]
        assert not events[-1].aborted
        assert agent.state is AgentState.DONE
        assert events[-1].turns[-1].role == "model"


# =============================================================================
# Cancellation
# =============================================================================


class TestCancellation:
    @pytest.mark.asyncio
    async def test_abort_mid_stream_appends_marker(self, snapshot_store):
        client = ScriptedClient([text("partial"), text(" never"), finish()])
        agent = _agent(client, snapshot_store)
        signal = AbortSignal()

        events = []
        async for event in agent.run_turn(ChatRequest(prompt="hi"), signal=signal):
            events.append(event)
            if event.type == "text" and event.text == "partial":
                signal.abort("user")

        assert _types(events) == ["text", "text", "done"]
        assert events[1].text == f"\n\n{STOPPED_MARKER}"
        assert events[-1].aborted
        assert events[-1].text == f"partial\n\n{STOPPED_MARKER}"
        assert agent.state is AgentState.ABORTED

    @pytest.mark.asyncio
    async def test_abort_before_first_round(self, snapshot_store):
        client = ScriptedClient([text("never")])
        signal = AbortSignal()
        signal.abort()

        events = await _run(_agent(client, snapshot_store), ChatRequest(prompt="hi"), signal)

        assert _types(events) == ["text", "done"]
        assert events[0].text == STOPPED_MARKER
        assert events[1].aborted
        assert client.requests == []

    @pytest.mark.asyncio
    async def test_abort_during_tools_skips_next_round(self, snapshot_store):
        client = ScriptedClient(
            [call("read_page_chunks", indices=[0]), call("read_page_chunks", indices=[1])],
            [text("never")],
        )
        agent = _agent(client, snapshot_store)
        signal = AbortSignal()

        events = []
        async for event in agent.run_turn(ChatRequest(prompt="go", tab=TabInfo(1, PAGE_A, "A")), signal=signal):
            events.append(event)
            if event.type == "tool_call":
                signal.abort()

        assert _types(events) == ["tool_call", "text", "done"]
        assert events[-1].aborted
        assert len(client.requests) == 1

    @pytest.mark.asyncio
    async def test_closing_the_event_stream_aborts(self, snapshot_store):
        client = ScriptedClient([text("one"), text("two"), finish()])
        signal = AbortSignal()
        events = _agent(client, snapshot_store).run_turn(ChatRequest(prompt="hi"), signal=signal)

        first = await events.__anext__()
        await events.aclose()

        assert first.text == "one"
        assert signal.aborted


# =============================================================================
# Page context
# =============================================================================


class TestPageContext:
    @pytest.mark.asyncio
    async def test_first_read(self, snapshot_store):
        client = ScriptedClient([text("ok"), finish()])

        await _run(_agent(client, snapshot_store), ChatRequest(prompt="hi", tab=TabInfo(1, PAGE_A, "A")))

        prompt = client.requests[0].system_prompt
        assert f"- URL: {PAGE_A}" in prompt
        assert "split into 1 chunks (indices 0 to 0)" in prompt
        assert "first time reading this page" in prompt

    @pytest.mark.asyncio
    async def test_same_page_unchanged(self, snapshot_store):
        client = ScriptedClient([text("ok"), finish()], [text("ok"), finish()])
        agent = _agent(client, snapshot_store)
        tab = TabInfo(1, PAGE_A, "A")

        await _run(agent, ChatRequest(prompt="one", tab=tab))
        await _run(agent, ChatRequest(prompt="two", tab=tab))

        prompt = client.requests[1].system_prompt
        assert "has NOT changed" in prompt
        assert 'source="previous" to read the previous version (1 chunks)' in prompt

    @pytest.mark.asyncio
    async def test_tab_switch_is_reported_as_navigation(self, snapshot_store):
        client = ScriptedClient([text("ok"), finish()], [text("ok"), finish()])
        agent = _agent(client, snapshot_store)

        await _run(agent, ChatRequest(prompt="one", tab=TabInfo(1, PAGE_A, "A")))
        await _run(agent, ChatRequest(prompt="two", tab=TabInfo(2, PAGE_B, "B")))

        prompt = client.requests[1].system_prompt
        assert f"navigated to a different page (was: {PAGE_A}, now: {PAGE_B})" in prompt
        assert agent.last_seen == (2, PAGE_B)

    @pytest.mark.asyncio
    async def test_extraction_failure_uses_unavailable_section(self, snapshot_store):
        client = ScriptedClient([text("ok"), finish()])
        agent = _agent(client, snapshot_store, extractor=DictExtractor(error=RuntimeError("content script timeout")))

        await _run(agent, ChatRequest(prompt="hi", tab=TabInfo(1, PAGE_A, "A")))

        prompt = client.requests[0].system_prompt
        assert "Their current tab is: A (https://example.com/a)." in prompt
        assert prompt.endswith("Page content could not be extracted. Reason: content script timeout")
        assert (await snapshot_store.get_snapshot(1)).text == ""

    @pytest.mark.asyncio
    async def test_failed_extraction_after_navigation_warns(self, snapshot_store):
        client = ScriptedClient([text("ok"), finish()], [text("ok"), finish()])
        extractor = DictExtractor({PAGE_A: "Alpha"})
        agent = _agent(client, snapshot_store, extractor=extractor)

        await _run(agent, ChatRequest(prompt="one", tab=TabInfo(1, PAGE_A, "A")))
        await _run(agent, ChatRequest(prompt="two", tab=TabInfo(1, PAGE_B, "B")))

        prompt = client.requests[1].system_prompt
        assert f"DIFFERENT page since the last message (was: {PAGE_A})" in prompt
        assert prompt.endswith(f"Reason: {DEFAULT_EXTRACTION_FAILURE_REASON}")
        previous = await snapshot_store.get_snapshot(1, "previous")
        assert previous.text == "Alpha"

    @pytest.mark.asyncio
    async def test_restricted_pages_are_not_extracted(self, snapshot_store):
        client = ScriptedClient([text("ok"), finish()])
        extractor = DictExtractor()
        agent = _agent(client, snapshot_store, extractor=extractor)

        await _run(agent, ChatRequest(prompt="hi", tab=TabInfo(1, "chrome://settings", "Settings")))

        assert extractor.calls == []
        assert DEFAULT_EXTRACTION_FAILURE_REASON in client.requests[0].system_prompt

    @pytest.mark.asyncio
    async def test_page_context_disabled(self, snapshot_store):
        client = ScriptedClient([text("ok"), finish()])
        extractor = DictExtractor({PAGE_A: "Alpha"})
        agent = _agent(client, snapshot_store, extractor=extractor, config=AgentConfig(page_context_enabled=False))

        await _run(agent, ChatRequest(prompt="hi", tab=TabInfo(1, PAGE_A, "A")))

        assert client.requests[0].tools is None
        assert client.requests[0].system_prompt == BASE_SYSTEM_PROMPT
        assert extractor.calls == []
