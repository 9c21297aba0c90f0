"""Shared test helpers and stub classes.

Import from here instead of duplicating these doubles in individual test files.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, List, Sequence

from pagechat.ai.ai_types import FunctionCall, StreamChunk, Usage
from pagechat.ai.cancellation import AbortSignal
from pagechat.ai.client import InferenceRequest


def text(value: str) -> StreamChunk:
    return StreamChunk(type="text", text=value, raw_part={"text": value})


def thinking(value: str) -> StreamChunk:
    return StreamChunk(type="thinking", text=value, raw_part={"text": value, "thought": True})


def call(name: str, **args: Any) -> StreamChunk:
    return StreamChunk(
        type="function_call",
        function_call=FunctionCall(name=name, args=args),
        raw_part={"functionCall": {"name": name, "args": args}},
    )


def finish(reason: str = "STOP") -> StreamChunk:
    return StreamChunk(type="finish", finish_reason=reason)


def usage(total: int = 10) -> StreamChunk:
    return StreamChunk(type="usage", usage=Usage(input_tokens=total - 2, output_tokens=2, total_tokens=total))


class ScriptedClient:
    """Inference client double replaying one chunk list per round.

    Example:
        from tests.helpers import ScriptedClient, text, finish

        client = ScriptedClient([text("Hello"), finish()])
    """

    def __init__(self, *rounds: Sequence[Any]) -> None:
        self._rounds = [list(chunks) for chunks in rounds]
        self.requests: List[InferenceRequest] = []
        self.closed = False

    async def stream(self, request: InferenceRequest, *, signal: AbortSignal | None = None) -> AsyncIterator[StreamChunk]:
        self.requests.append(request)
        script = self._rounds.pop(0) if self._rounds else [text("unscripted"), finish()]
        for chunk in script:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk

    async def aclose(self) -> None:
        self.closed = True
