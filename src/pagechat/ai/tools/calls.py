"""Typed tool-call variants parsed from model ``functionCall`` parts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping, Tuple, Union

from ...page import parse_editor_key
from ...snapshots.models import SnapshotSource
from ..ai_types import FunctionCall
from .declarations import READ_EDITABLE_CONTENT, READ_PAGE_CHUNKS, WRITE_EDITABLE_CONTENT
from .errors import ErrorCode, InvalidToolArgumentsError

__all__ = [
    "ReadPageChunksCall",
    "ReadEditableContentCall",
    "WriteEditableContentCall",
    "UnknownToolCall",
    "ToolCall",
    "parse_tool_call",
    "resolve_source",
]

_SOURCES = ("latest", "previous")


@dataclass(slots=True, frozen=True)
class ReadPageChunksCall:
    indices: Tuple[int, ...]
    source: SnapshotSource = "latest"
    name: ClassVar[str] = READ_PAGE_CHUNKS


@dataclass(slots=True, frozen=True)
class ReadEditableContentCall:
    keys: Tuple[str, ...]
    source: SnapshotSource = "latest"
    name: ClassVar[str] = READ_EDITABLE_CONTENT


@dataclass(slots=True, frozen=True)
class WriteEditableContentCall:
    """Find/replace inside one editor; an empty ``find`` overwrites the whole value."""

    key: str
    find: str
    replace: str
    name: ClassVar[str] = WRITE_EDITABLE_CONTENT

    @property
    def source(self) -> SnapshotSource:
        return "latest"


@dataclass(slots=True, frozen=True)
class UnknownToolCall:
    name: str
    args: Mapping[str, Any] = field(default_factory=dict)

    @property
    def source(self) -> SnapshotSource:
        return resolve_source(self.args, strict=False)


ToolCall = Union[ReadPageChunksCall, ReadEditableContentCall, WriteEditableContentCall, UnknownToolCall]


def resolve_source(args: Mapping[str, Any], *, strict: bool = True) -> SnapshotSource:
    """Return the snapshot slot named by ``args["source"]`` (``"latest"`` when absent)."""

    value = args.get("source")
    if value is None or value == "":
        return "latest"
    if value in _SOURCES:
        return value
    if strict:
        raise InvalidToolArgumentsError(
            message=f"Invalid 'source' value {value!r}; expected 'latest' or 'previous'",
            details={"source": value},
        )
    return "latest"


def parse_tool_call(call: FunctionCall) -> ToolCall:
    """Validate ``call`` against the declared tools.

    Raises:
        InvalidToolArgumentsError: when a known tool is called with unusable arguments.
    """

    args = call.args or {}
    if call.name == READ_PAGE_CHUNKS:
        return ReadPageChunksCall(indices=_coerce_indices(args.get("indices")), source=resolve_source(args))
    if call.name == READ_EDITABLE_CONTENT:
        keys = args.get("keys")
        if keys is None:
            raise InvalidToolArgumentsError(
                error_code=ErrorCode.MISSING_PARAMETER,
                message="Missing 'keys' parameter for read_editable_content",
                details={"missing": ["keys"]},
            )
        if not isinstance(keys, (list, tuple)):
            raise InvalidToolArgumentsError(
                message="'keys' must be an array of editable keys",
                details={"keys": keys},
            )
        return ReadEditableContentCall(keys=tuple(str(key) for key in keys), source=resolve_source(args))
    if call.name == WRITE_EDITABLE_CONTENT:
        return _parse_write(args)
    return UnknownToolCall(name=call.name, args=dict(args))


def _coerce_indices(raw: Any) -> Tuple[int, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise InvalidToolArgumentsError(
            message="'indices' must be an array of integers",
            details={"indices": raw},
        )
    indices = []
    for value in raw:
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            indices.append(value)
        elif isinstance(value, float) and value.is_integer():
            indices.append(int(value))
    return tuple(indices)


def _parse_write(args: Mapping[str, Any]) -> WriteEditableContentCall:
    key = args.get("key")
    find = args.get("find")
    replace = args.get("replace")
    missing = [
        name
        for name, value in (("key", key or None), ("find", find), ("replace", replace))
        if value is None
    ]
    if missing:
        raise InvalidToolArgumentsError(
            error_code=ErrorCode.MISSING_PARAMETER,
            message="Missing required parameters (key, find, replace) for write_editable_content",
            details={"missing": missing},
        )
    key = str(key)
    if parse_editor_key(key) is None:
        raise InvalidToolArgumentsError(
            message=f"Invalid editable key {key!r}; expected '<type>_<number>' such as 'monaco_1'",
            details={"key": key},
        )
    return WriteEditableContentCall(key=key, find=str(find), replace=str(replace))
