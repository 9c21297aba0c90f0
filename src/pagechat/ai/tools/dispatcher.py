"""Executes model tool calls against the snapshot store and the live page."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from ...page import PageWriter
from ...snapshots.models import SnapshotSource
from ...snapshots.store import SnapshotStore, TabId
from ..ai_types import FunctionCall
from .calls import (
    ReadEditableContentCall,
    ReadPageChunksCall,
    ToolCall,
    UnknownToolCall,
    WriteEditableContentCall,
    parse_tool_call,
    resolve_source,
)
from .errors import (
    ErrorCode,
    NoActiveTabError,
    PageWriteError,
    ToolError,
    ToolUnavailableError,
    UnknownToolError,
)

__all__ = ["ToolExecutionResult", "ToolDispatcher", "function_response_part"]

LOGGER = logging.getLogger(__name__)
_LOG_PREVIEW_CHARS = 200


def function_response_part(name: str, content: Any) -> Dict[str, Any]:
    """Wrap a tool result in the provider's ``functionResponse`` part shape."""

    return {"functionResponse": {"name": name, "response": {"name": name, "content": content}}}


@dataclass(slots=True, frozen=True)
class ToolExecutionResult:
    """Result from executing a single tool call.

    Attributes:
        name: Name of the tool the model called.
        args: Arguments exactly as the model sent them.
        source: Snapshot slot the call targeted.
        success: Whether execution succeeded.
        content: Payload returned to the model (an error object on failure).
        error: The failure, when there was one.
        duration_ms: Execution time in milliseconds.
    """

    name: str
    args: Mapping[str, Any]
    source: SnapshotSource
    success: bool
    content: Any
    error: ToolError | None = None
    duration_ms: float = 0.0

    @classmethod
    def from_success(
        cls,
        call: FunctionCall,
        source: SnapshotSource,
        content: Any,
        duration_ms: float = 0.0,
    ) -> ToolExecutionResult:
        return cls(
            name=call.name,
            args=dict(call.args),
            source=source,
            success=True,
            content=content,
            duration_ms=duration_ms,
        )

    @classmethod
    def from_error(
        cls,
        call: FunctionCall,
        source: SnapshotSource,
        error: ToolError,
        duration_ms: float = 0.0,
    ) -> ToolExecutionResult:
        return cls(
            name=call.name,
            args=dict(call.args),
            source=source,
            success=False,
            content=error.to_dict(),
            error=error,
            duration_ms=duration_ms,
        )

    def to_part(self) -> Dict[str, Any]:
        return function_response_part(self.name, self.content)


class ToolDispatcher:
    """Routes parsed tool calls to their handlers.

    ``mode`` gates mutation: ``write_editable_content`` only runs in ``"edit"`` mode
    and only when a :class:`PageWriter` is available. Every failure, including
    unexpected exceptions from the store or the page, comes back as a failed
    :class:`ToolExecutionResult` instead of propagating.
    """

    def __init__(
        self,
        store: SnapshotStore,
        *,
        page_writer: PageWriter | None = None,
        mode: str = "ask",
    ) -> None:
        self._store = store
        self._page_writer = page_writer
        self._mode = mode

    @property
    def mode(self) -> str:
        return self._mode

    async def execute(self, call: FunctionCall, *, tab_id: TabId | None) -> ToolExecutionResult:
        start = time.perf_counter()
        source = resolve_source(call.args or {}, strict=False)
        LOGGER.debug("Tool input: %s source=%s args=%s", call.name, source, _preview(call.args))
        try:
            if tab_id is None:
                raise NoActiveTabError()
            parsed = parse_tool_call(call)
            source = parsed.source
            content = await self._dispatch(parsed, tab_id)
        except ToolError as exc:
            LOGGER.debug("Tool %s failed: %s", call.name, exc)
            return ToolExecutionResult.from_error(call, source, exc, _elapsed_ms(start))
        except Exception as exc:
            LOGGER.warning("Tool %s raised unexpectedly", call.name, exc_info=True)
            error = ToolError(error_code=ErrorCode.INTERNAL_ERROR, message=str(exc) or "Unknown tool error")
            return ToolExecutionResult.from_error(call, source, error, _elapsed_ms(start))
        LOGGER.debug("Tool output: %s %s", call.name, _preview(content))
        return ToolExecutionResult.from_success(call, source, content, _elapsed_ms(start))

    async def _dispatch(self, call: ToolCall, tab_id: TabId) -> Any:
        if isinstance(call, ReadPageChunksCall):
            chunks = await self._store.get_chunks(tab_id, call.source, call.indices)
            return {"chunks": [chunk.to_dict() for chunk in chunks]}
        if isinstance(call, ReadEditableContentCall):
            contents: Dict[str, str] = {}
            for key in call.keys:
                text = await self._store.get_editor_content(tab_id, call.source, key)
                if text is not None:
                    contents[key] = text
            return contents
        if isinstance(call, WriteEditableContentCall):
            return await self._write(call, tab_id)
        if isinstance(call, UnknownToolCall):
            raise UnknownToolError.for_name(call.name)
        raise UnknownToolError.for_name(getattr(call, "name", "?"))  # pragma: no cover

    async def _write(self, call: WriteEditableContentCall, tab_id: TabId) -> Dict[str, Any]:
        if self._mode != "edit":
            raise ToolUnavailableError(
                message=f"{call.name} is only available in edit mode",
                details={"mode": self._mode},
            )
        if self._page_writer is None:
            raise ToolUnavailableError(message="Editing the page is not supported here")
        LOGGER.debug("Write request: key=%s find=%.80r replace=%.80r", call.key, call.find, call.replace)
        result = await self._page_writer.write(tab_id, call.key, call.find, call.replace)
        if not result.success:
            raise PageWriteError(message=result.error or "Write failed", details={"key": call.key})
        return {"success": True, "key": call.key, "message": f"Successfully edited {call.key}"}


def _preview(value: Any) -> str:
    try:
        text = json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        text = repr(value)
    if len(text) > _LOG_PREVIEW_CHARS:
        return f"{text[:_LOG_PREVIEW_CHARS]}..."
    return text


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0
