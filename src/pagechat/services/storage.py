"""Durable key-value side-stores backing the snapshot store.

Values are JSON-compatible mappings. Two implementations ship with the package:
:class:`MemoryKeyValueStore` for tests and ephemeral sessions, and
:class:`JsonDirectoryStore` which keeps one JSON file per key on disk.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Protocol, runtime_checkable

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "JsonDirectoryStore",
]

LOGGER = logging.getLogger(__name__)
_SAFE_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


@runtime_checkable
class KeyValueStore(Protocol):
    """Async key-value contract consumed by :class:`~pagechat.snapshots.store.SnapshotStore`."""

    async def get(self, key: str) -> Mapping[str, Any] | None:
        """Return the stored value for ``key`` or ``None``."""
        ...

    async def set(self, key: str, value: Mapping[str, Any]) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        ...

    async def remove(self, *keys: str) -> None:
        """Delete ``keys``; missing keys are ignored."""
        ...

    async def items(self, prefix: str = "") -> Dict[str, Mapping[str, Any]]:
        """Return every stored entry whose key starts with ``prefix``."""
        ...


class MemoryKeyValueStore:
    """Process-local store; values are JSON round-tripped to mimic durable storage."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Mapping[str, Any] | None:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Mapping[str, Any]) -> None:
        self._data[key] = json.dumps(value)

    async def remove(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def items(self, prefix: str = "") -> Dict[str, Mapping[str, Any]]:
        return {key: json.loads(raw) for key, raw in self._data.items() if key.startswith(prefix)}

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data


class JsonDirectoryStore:
    """Store each key as ``<directory>/<key>.json`` using atomic temp-file replaces."""

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory).expanduser()

    @property
    def directory(self) -> Path:
        return self._directory

    async def get(self, key: str) -> Mapping[str, Any] | None:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Mapping[str, Any]) -> None:
        body = json.dumps(value, ensure_ascii=False)
        await asyncio.to_thread(self._write, key, body)

    async def remove(self, *keys: str) -> None:
        await asyncio.to_thread(self._unlink, keys)

    async def items(self, prefix: str = "") -> Dict[str, Mapping[str, Any]]:
        return await asyncio.to_thread(self._scan, prefix)

    def _path_for(self, key: str) -> Path:
        if not _SAFE_KEY_RE.match(key):
            raise ValueError(f"Unsupported storage key: {key!r}")
        return self._directory / f"{key}.json"

    def _read(self, key: str) -> Mapping[str, Any] | None:
        path = self._path_for(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Stored value %s is not valid JSON: %s", path, exc)
            return None
        return payload if isinstance(payload, dict) else None

    def _write(self, key: str, body: str) -> None:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(path)

    def _unlink(self, keys: tuple[str, ...]) -> None:
        for key in keys:
            self._path_for(key).unlink(missing_ok=True)

    def _scan(self, prefix: str) -> Dict[str, Mapping[str, Any]]:
        if not self._directory.exists():
            return {}
        result: Dict[str, Mapping[str, Any]] = {}
        for path in sorted(self._directory.glob(f"{prefix}*.json")):
            value = self._read(path.stem)
            if value is not None:
                result[path.stem] = value
        return result
