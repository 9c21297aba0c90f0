"""Tests for the streaming inference client."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Callable, List

import httpx
import pytest

from pagechat.ai.cancellation import AbortSignal
from pagechat.ai.client import (
    ClientSettings,
    InferenceClient,
    InferenceRequest,
    build_request_body,
    build_request_headers,
    parse_retry_after_hint,
)
from pagechat.ai.errors import RequestCancelled
from pagechat.ai.providers import ANTIGRAVITY_PROVIDER, GEMINI_CLI_PROVIDER, INTERLEAVED_THINKING_BETA

PRIMARY = "daily-cloudcode-pa.sandbox.googleapis.com"
SECONDARY = "cloudcode-pa.googleapis.com"


# =============================================================================
# Helpers
# =============================================================================


def _sse(*payloads: dict) -> bytes:
    return "".join(f"data: {json.dumps(payload)}\n\n" for payload in payloads).encode("utf-8")


def _text_payload(text: str, finish: str | None = None) -> dict:
    candidate: dict[str, Any] = {"content": {"role": "model", "parts": [{"text": text}]}}
    if finish:
        candidate["finishReason"] = finish
    return {"response": {"candidates": [candidate]}}


def _ok(*texts: str) -> httpx.Response:
    payloads = [_text_payload(text) for text in texts] or [_text_payload("")]
    payloads[-1] = _text_payload(texts[-1] if texts else "", finish="STOP")
    return httpx.Response(200, content=_sse(*payloads), headers={"Content-Type": "text/event-stream"})


class _ScriptedTransport:
    """Replays a list of responses (or exceptions) and records every request."""

    def __init__(self, script: List[Any]) -> None:
        self._script = list(script)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self._script.pop(0)
        if callable(step):
            step = step(request)
        if isinstance(step, Exception):
            raise step
        return step

    @property
    def hosts(self) -> List[str]:
        return [request.url.host for request in self.requests]


class _SleepRecorder:
    def __init__(self, on_sleep: Callable[[float], None] | None = None) -> None:
        self.delays: List[float] = []
        self._on_sleep = on_sleep

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._on_sleep is not None:
            self._on_sleep(delay)


def _client(transport: _ScriptedTransport, sleeper: _SleepRecorder, **settings: Any) -> InferenceClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(transport))
    return InferenceClient(ClientSettings(**settings), http_client=http, sleep=sleeper)


def _request(**overrides: Any) -> InferenceRequest:
    values: dict[str, Any] = {
        "access_token": "token-123",
        "project_id": "proj-1",
        "model": "gemini-2.5-flash",
        "contents": [{"role": "user", "parts": [{"text": "hi"}]}],
    }
    values.update(overrides)
    return InferenceRequest(**values)


async def _collect(client: InferenceClient, request: InferenceRequest, signal: AbortSignal | None = None):
    return [chunk async for chunk in client.stream(request, signal=signal)]


# =============================================================================
# Request building
# =============================================================================


class TestRequestBuilding:
    def test_body_for_agent_provider(self):
        request = _request(
            system_prompt="Be brief",
            tools=[{"functionDeclarations": []}],
            temperature=0.2,
            max_output_tokens=512,
            thinking_level="low",
        )

        body = build_request_body(request, ANTIGRAVITY_PROVIDER)

        assert body["project"] == "proj-1"
        assert body["model"] == "gemini-2.5-flash"
        assert body["userAgent"] == "antigravity"
        assert body["requestType"] == "agent"
        assert body["requestId"].startswith("agent-")
        inner = body["request"]
        assert inner["contents"] == request.contents
        assert inner["systemInstruction"] == {"parts": [{"text": "Be brief"}]}
        assert inner["tools"] == [{"functionDeclarations": []}]
        assert inner["generationConfig"] == {
            "maxOutputTokens": 512,
            "temperature": 0.2,
            "thinkingConfig": {"includeThoughts": True, "thinkingLevel": "low"},
        }

    def test_body_omits_optional_fields(self):
        body = build_request_body(_request(), GEMINI_CLI_PROVIDER, request_id="fixed")

        assert "requestType" not in body
        assert body["requestId"] == "fixed"
        assert body["userAgent"] == "pi-coding-agent"
        assert "systemInstruction" not in body["request"]
        assert "tools" not in body["request"]
        assert body["request"]["generationConfig"] == {
            "thinkingConfig": {"includeThoughts": True, "thinkingLevel": "high"}
        }

    def test_generated_request_id_prefix_without_request_type(self):
        assert build_request_body(_request(), GEMINI_CLI_PROVIDER)["requestId"].startswith("pi-")

    def test_headers_include_provider_identity(self):
        headers = build_request_headers(_request(), ANTIGRAVITY_PROVIDER)

        assert headers["Authorization"] == "Bearer token-123"
        assert headers["Accept"] == "text/event-stream"
        assert headers["User-Agent"].startswith("antigravity/")
        assert "anthropic-beta" not in headers

    def test_claude_thinking_models_get_beta_header(self):
        headers = build_request_headers(_request(model="claude-sonnet-4-5-thinking"), GEMINI_CLI_PROVIDER)

        assert headers["anthropic-beta"] == INTERLEAVED_THINKING_BETA

    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            ("Resource exhausted, please retry after 5s.", 5),
            ('{"error": "quota resets after 42s"}', 42),
            ("Too many requests", None),
            ("", None),
        ],
    )
    def test_retry_after_hint(self, body, expected):
        assert parse_retry_after_hint(body) == expected


# =============================================================================
# Streaming and retries
# =============================================================================


class TestStreaming:
    @pytest.mark.asyncio
    async def test_successful_stream(self):
        transport = _ScriptedTransport([_ok("Hello", " world")])
        sleeper = _SleepRecorder()
        client = _client(transport, sleeper)

        chunks = await _collect(client, _request())

        assert [(chunk.type, chunk.text) for chunk in chunks] == [
            ("text", "Hello"),
            ("text", " world"),
            ("finish", None),
        ]
        assert chunks[-1].finish_reason == "STOP"
        (sent,) = transport.requests
        assert str(sent.url) == f"https://{PRIMARY}/v1internal:streamGenerateContent?alt=sse"
        assert sent.headers["Authorization"] == "Bearer token-123"
        assert json.loads(sent.content)["requestType"] == "agent"
        assert sleeper.delays == []

    @pytest.mark.asyncio
    async def test_rate_limit_hint_is_honoured(self):
        transport = _ScriptedTransport([httpx.Response(429, text="retry after 5s"), _ok("ok")])
        sleeper = _SleepRecorder()

        chunks = await _collect(_client(transport, sleeper), _request())

        assert sleeper.delays == [6.0]
        assert transport.hosts == [PRIMARY, PRIMARY]
        assert chunks[0].text == "ok"

    @pytest.mark.asyncio
    async def test_rate_limit_without_hint_uses_default_wait(self):
        transport = _ScriptedTransport([httpx.Response(429, text="slow down"), _ok("ok")])
        sleeper = _SleepRecorder()

        await _collect(_client(transport, sleeper), _request())

        assert sleeper.delays == [2.0]

    @pytest.mark.asyncio
    async def test_rate_limit_over_ceiling_moves_to_next_endpoint(self):
        transport = _ScriptedTransport([httpx.Response(429, text="retry after 60s"), _ok("fallback")])
        sleeper = _SleepRecorder()

        chunks = await _collect(_client(transport, sleeper), _request())

        assert sleeper.delays == []
        assert transport.hosts == [PRIMARY, SECONDARY]
        assert chunks[0].text == "fallback"

    @pytest.mark.asyncio
    async def test_rate_limit_over_ceiling_everywhere_reports_wait(self):
        transport = _ScriptedTransport([httpx.Response(429, text="retry after 60s") for _ in range(2)])
        sleeper = _SleepRecorder()

        chunks = await _collect(_client(transport, sleeper), _request())

        assert [chunk.type for chunk in chunks] == ["error"]
        assert chunks[0].error == "Rate limit exceeded. Please try again in 60 seconds."

    @pytest.mark.asyncio
    async def test_service_unavailable_backs_off_then_fails_over(self):
        transport = _ScriptedTransport([*(httpx.Response(503, text="busy") for _ in range(3)), _ok("second")])
        sleeper = _SleepRecorder()

        chunks = await _collect(_client(transport, sleeper), _request())

        assert sleeper.delays == [2.0, 4.0]
        assert transport.hosts == [PRIMARY, PRIMARY, PRIMARY, SECONDARY]
        assert chunks[0].text == "second"

    @pytest.mark.asyncio
    async def test_exhausted_endpoints_yield_single_error(self):
        transport = _ScriptedTransport([httpx.Response(503, text="busy") for _ in range(6)])
        sleeper = _SleepRecorder()

        chunks = await _collect(_client(transport, sleeper), _request())

        assert len(chunks) == 1
        assert chunks[0].type == "error"
        assert chunks[0].error == "Service unavailable (503): busy"
        assert sleeper.delays == [2.0, 4.0, 2.0, 4.0]
        assert len(transport.requests) == 6

    @pytest.mark.asyncio
    async def test_persistent_rate_limit_reports_exceeded(self):
        transport = _ScriptedTransport(
            [httpx.Response(429, text="Quota exhausted, retry after 5s") for _ in range(6)]
        )
        sleeper = _SleepRecorder()

        chunks = await _collect(_client(transport, sleeper), _request())

        assert len(chunks) == 1
        assert chunks[0].type == "error"
        assert chunks[0].error == "Rate limit exceeded. Please try again in 6 seconds."
        assert "retrying" not in chunks[0].error
        assert sleeper.delays == [6.0, 6.0, 6.0, 6.0]
        assert len(transport.requests) == 6

    @pytest.mark.asyncio
    async def test_other_status_is_not_retried(self):
        transport = _ScriptedTransport([httpx.Response(400, text="bad request") for _ in range(2)])
        sleeper = _SleepRecorder()

        chunks = await _collect(_client(transport, sleeper), _request())

        assert sleeper.delays == []
        assert transport.hosts == [PRIMARY, SECONDARY]
        assert chunks[0].error == "API error (400): bad request"

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self):
        def _fail(request: httpx.Request) -> Exception:
            return httpx.ConnectError("connection refused", request=request)

        transport = _ScriptedTransport([_fail, _ok("recovered")])
        sleeper = _SleepRecorder()

        chunks = await _collect(_client(transport, sleeper), _request())

        assert sleeper.delays == [2.0]
        assert chunks[0].text == "recovered"

    @pytest.mark.asyncio
    async def test_single_attempt_setting_disables_retries(self):
        transport = _ScriptedTransport([httpx.Response(503, text="busy") for _ in range(2)])
        sleeper = _SleepRecorder()

        chunks = await _collect(_client(transport, sleeper, max_attempts=1), _request())

        assert sleeper.delays == []
        assert len(transport.requests) == 2
        assert chunks[0].type == "error"

    @pytest.mark.asyncio
    async def test_missing_claude_model_gets_specific_message(self):
        transport = _ScriptedTransport([httpx.Response(404, text="not found")])
        sleeper = _SleepRecorder()
        request = _request(model="claude-opus-4-5-thinking", provider="gemini-cli")

        chunks = await _collect(_client(transport, sleeper), request)

        assert "not found (404)" in chunks[0].error
        assert "Try using a Gemini model instead." in chunks[0].error
        assert transport.requests[0].headers["anthropic-beta"] == INTERLEAVED_THINKING_BETA

    @pytest.mark.asyncio
    async def test_interrupted_stream_reports_error(self):
        class _BrokenStream(httpx.AsyncByteStream):
            async def __aiter__(self) -> AsyncIterator[bytes]:
                yield _sse(_text_payload("partial"))
                raise httpx.ReadError("connection reset")

        transport = _ScriptedTransport([httpx.Response(200, stream=_BrokenStream())])

        chunks = await _collect(_client(transport, _SleepRecorder()), _request())

        assert [chunk.type for chunk in chunks] == ["text", "error"]
        assert chunks[1].error == "Stream interrupted: connection reset"


# =============================================================================
# Cancellation
# =============================================================================


class TestCancellation:
    @pytest.mark.asyncio
    async def test_abort_before_start_sends_nothing(self):
        transport = _ScriptedTransport([_ok("never")])
        signal = AbortSignal()
        signal.abort()

        chunks = await _collect(_client(transport, _SleepRecorder()), _request(), signal)

        assert chunks == []
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_abort_during_backoff_stops_all_endpoints(self):
        signal = AbortSignal()
        transport = _ScriptedTransport([httpx.Response(503, text="busy"), _ok("never")])
        sleeper = _SleepRecorder(on_sleep=lambda _delay: signal.abort("user"))

        chunks = await _collect(_client(transport, sleeper), _request(), signal)

        assert chunks == []
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_abort_between_chunks_ends_quietly(self):
        signal = AbortSignal()
        transport = _ScriptedTransport([_ok("one", "two", "three")])
        client = _client(transport, _SleepRecorder())

        received = []
        async for chunk in client.stream(_request(), signal=signal):
            received.append(chunk)
            signal.abort()

        assert [chunk.text for chunk in received] == ["one"]

    @pytest.mark.asyncio
    async def test_signal_sleep_is_interrupted(self):
        signal = AbortSignal()
        signal.abort("stop")

        with pytest.raises(RequestCancelled):
            await signal.sleep(30)


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open():
    http = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: _ok("x")))
    client = InferenceClient(http_client=http)

    await client.aclose()

    assert not http.is_closed
    await http.aclose()
