"""Decoding of the provider's server-sent-event response stream."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, List, Mapping

from .ai_types import FunctionCall, StreamChunk, Usage

__all__ = ["parse_data_line", "chunks_from_payload", "decode_usage", "iter_stream_chunks"]

LOGGER = logging.getLogger(__name__)
_DATA_PREFIX = "data:"


def parse_data_line(line: str) -> Mapping[str, Any] | None:
    """Return the JSON object carried by a ``data:`` line, or ``None``.

    Comment lines, other SSE fields, blank lines and malformed JSON all yield ``None``.
    """

    if not line.startswith(_DATA_PREFIX):
        return None
    body = line[len(_DATA_PREFIX):].strip()
    if not body or body == "[DONE]":
        return None
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        LOGGER.debug("Skipping malformed SSE payload: %.200s", body)
        return None
    return payload if isinstance(payload, Mapping) else None


def decode_usage(metadata: Mapping[str, Any]) -> Usage:
    def _count(key: str) -> int:
        value = metadata.get(key)
        return int(value) if isinstance(value, (int, float)) else 0

    return Usage(
        input_tokens=_count("promptTokenCount"),
        output_tokens=_count("candidatesTokenCount") + _count("thoughtsTokenCount"),
        total_tokens=_count("totalTokenCount"),
    )


def chunks_from_payload(payload: Mapping[str, Any]) -> List[StreamChunk]:
    """Translate one decoded SSE payload into zero or more stream chunks.

    Payloads are wrapped in a ``response`` envelope; only the first candidate is read.
    Parts come out in provider order, followed by the finish reason and then usage.
    """

    envelope = payload.get("response")
    if not isinstance(envelope, Mapping):
        return []

    chunks: List[StreamChunk] = []
    candidates = envelope.get("candidates")
    candidate: Mapping[str, Any] = {}
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], Mapping):
        candidate = candidates[0]

    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, Mapping) else None
    for part in parts if isinstance(parts, list) else ():
        if not isinstance(part, Mapping):
            continue
        chunk = _chunk_from_part(part)
        if chunk is not None:
            chunks.append(chunk)

    finish_reason = candidate.get("finishReason")
    if finish_reason:
        chunks.append(StreamChunk(type="finish", finish_reason=str(finish_reason)))

    metadata = envelope.get("usageMetadata")
    if isinstance(metadata, Mapping):
        chunks.append(StreamChunk(type="usage", usage=decode_usage(metadata)))
    return chunks


def _chunk_from_part(part: Mapping[str, Any]) -> StreamChunk | None:
    raw = dict(part)
    text = part.get("text")
    if isinstance(text, str):
        kind = "thinking" if part.get("thought") is True else "text"
        return StreamChunk(type=kind, text=text, raw_part=raw)
    call = part.get("functionCall")
    if isinstance(call, Mapping):
        args = call.get("args")
        return StreamChunk(
            type="function_call",
            function_call=FunctionCall(
                name=str(call.get("name") or ""),
                args=dict(args) if isinstance(args, Mapping) else {},
            ),
            raw_part=raw,
        )
    return None


async def iter_stream_chunks(lines: AsyncIterable[str]) -> AsyncIterator[StreamChunk]:
    """Decode an async iterable of already-split text lines into stream chunks."""

    async for line in lines:
        payload = parse_data_line(line.rstrip("\r"))
        if payload is None:
            continue
        for chunk in chunks_from_payload(payload):
            yield chunk
