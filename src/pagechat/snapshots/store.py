"""Per-tab two-slot snapshot store with diffing and TTL expiry."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping

from ..services.storage import KeyValueStore
from .chunker import DEFAULT_CHUNK_SIZE, DEFAULT_OVERLAP, split_into_chunks
from .diffing import classify_diff
from .models import (
    ChunkRead,
    DiffResult,
    EditorContent,
    NoPrevious,
    PushResult,
    Snapshot,
    SnapshotMeta,
    SnapshotSource,
    TabEntry,
    Unchanged,
    UrlChanged,
    hash_content,
)

__all__ = ["StoreConfig", "SnapshotStore", "TabId", "storage_key"]

LOGGER = logging.getLogger(__name__)

TabId = int | str
_KEY_PREFIX = "snapshot_"


def storage_key(tab_id: TabId) -> str:
    return f"{_KEY_PREFIX}{tab_id}"


@dataclass(slots=True, frozen=True)
class StoreConfig:
    """Tunables for :class:`SnapshotStore`.

    Attributes:
        chunk_size: Window size handed to the chunker.
        chunk_overlap: Overlap between consecutive chunks.
        ttl_seconds: Age after which a tab's ``latest`` snapshot is stale.
        diff_threshold_ratio: Changed-line ratio above which a diff is "large".
        patch_context_lines: Context lines around each hunk of a small-diff patch.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: int = DEFAULT_OVERLAP
    ttl_seconds: float = 30 * 60.0
    diff_threshold_ratio: float = 0.3
    patch_context_lines: int = 3


class SnapshotStore:
    """Holds the latest and previous snapshot for every tab.

    The in-memory map is authoritative for the life of the process. When a durable
    ``storage`` is supplied, every push is written through to it under
    ``"snapshot_<tab_id>"`` and cache misses fall back to it. Storage failures are
    logged and otherwise ignored.

    Each operation reads and replaces a tab's entry without awaiting in between, so
    two racing pushes for the same tab resolve as last-write-wins.
    """

    def __init__(
        self,
        storage: KeyValueStore | None = None,
        *,
        config: StoreConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._config = config or StoreConfig()
        self._clock = clock
        self._tabs: dict[str, TabEntry] = {}

    @property
    def config(self) -> StoreConfig:
        return self._config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def push(
        self,
        tab_id: TabId,
        *,
        url: str,
        title: str,
        text: str,
        editor_contents: Mapping[str, EditorContent] | None = None,
    ) -> PushResult:
        """Install new page content as ``latest`` and diff it against the old ``latest``."""

        now = self._clock()
        text = text or ""
        snapshot = Snapshot(
            url=url,
            title=title,
            text=text,
            chunks=tuple(
                split_into_chunks(text, self._config.chunk_size, self._config.chunk_overlap)
            ),
            content_hash=hash_content(text),
            updated_at=now,
            editor_contents=dict(editor_contents) if editor_contents is not None else None,
        )

        existing = await self._load_entry(tab_id)
        if existing is None or self._is_stale(existing.latest, now):
            await self._save_entry(tab_id, TabEntry(latest=snapshot, previous=None))
            LOGGER.debug("Snapshot push for tab %s: no_previous (%s chunks)", tab_id, snapshot.total_chunks)
            return PushResult(snapshot=snapshot, diff=NoPrevious())

        old_latest = existing.latest
        await self._save_entry(tab_id, TabEntry(latest=snapshot, previous=old_latest))
        diff = self._diff(old_latest, snapshot)
        LOGGER.debug("Snapshot push for tab %s: %s", tab_id, diff.kind)
        return PushResult(snapshot=snapshot, diff=diff)

    async def get_chunks(
        self,
        tab_id: TabId,
        source: SnapshotSource,
        indices: Iterable[int],
    ) -> list[ChunkRead]:
        """Return the requested chunks in request order, skipping out-of-range indices."""

        snapshot = await self._get_snapshot(tab_id, source)
        if snapshot is None:
            return []
        total = snapshot.total_chunks
        return [
            ChunkRead(index=index, content=snapshot.chunks[index])
            for index in indices
            if isinstance(index, int) and 0 <= index < total
        ]

    async def get_editor_content(self, tab_id: TabId, source: SnapshotSource, key: str) -> str | None:
        snapshot = await self._get_snapshot(tab_id, source)
        if snapshot is None or not snapshot.editor_contents:
            return None
        content = snapshot.editor_contents.get(key)
        if content is None or not content.code:
            return None
        return content.code

    async def get_snapshot(self, tab_id: TabId, source: SnapshotSource = "latest") -> Snapshot | None:
        return await self._get_snapshot(tab_id, source)

    async def get_meta(self, tab_id: TabId) -> dict[str, SnapshotMeta | None]:
        entry = await self._load_entry(tab_id)
        if entry is None:
            return {"latest": None, "previous": None}
        return {"latest": SnapshotMeta.of(entry.latest), "previous": SnapshotMeta.of(entry.previous)}

    async def prune_stale(self) -> list[str]:
        """Drop every tab whose ``latest`` snapshot is older than the TTL.

        Returns the storage keys that were removed.
        """

        now = self._clock()
        stale_keys: set[str] = set()
        for key, entry in list(self._tabs.items()):
            if self._is_stale(entry.latest, now):
                stale_keys.add(storage_key(key))
                self._tabs.pop(key, None)

        if self._storage is not None:
            try:
                stored = await self._storage.items(_KEY_PREFIX)
            except Exception:  # pragma: no cover - depends on storage backend
                LOGGER.warning("Failed to list stored snapshots for pruning", exc_info=True)
                stored = {}
            for key, payload in stored.items():
                latest = payload.get("latest") if isinstance(payload, Mapping) else None
                updated_at = latest.get("updated_at") if isinstance(latest, Mapping) else None
                if not isinstance(updated_at, (int, float)) or now - updated_at <= self._config.ttl_seconds:
                    continue
                if key[len(_KEY_PREFIX):] in self._tabs:
                    # The cached entry is fresh (stale ones were dropped above).
                    continue
                stale_keys.add(key)
            if stale_keys:
                try:
                    await self._storage.remove(*sorted(stale_keys))
                except Exception:  # pragma: no cover - depends on storage backend
                    LOGGER.warning("Failed to remove stale snapshots", exc_info=True)

        if stale_keys:
            LOGGER.debug("Pruned %s stale tab snapshot(s)", len(stale_keys))
        return sorted(stale_keys)

    async def clear_tab(self, tab_id: TabId) -> None:
        self._tabs.pop(str(tab_id), None)
        if self._storage is None:
            return
        try:
            await self._storage.remove(storage_key(tab_id))
        except Exception:  # pragma: no cover - depends on storage backend
            LOGGER.warning("Failed to remove stored snapshot for tab %s", tab_id, exc_info=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _diff(self, old: Snapshot, new: Snapshot) -> DiffResult:
        if old.url != new.url:
            return UrlChanged(old_url=old.url, new_url=new.url)
        if old.content_hash == new.content_hash:
            return Unchanged()
        return classify_diff(
            old.text,
            new.text,
            old.chunks,
            new.chunks,
            threshold=self._config.diff_threshold_ratio,
            context=self._config.patch_context_lines,
        )

    def _is_stale(self, snapshot: Snapshot, now: float) -> bool:
        return now - snapshot.updated_at > self._config.ttl_seconds

    async def _get_snapshot(self, tab_id: TabId, source: SnapshotSource) -> Snapshot | None:
        entry = await self._load_entry(tab_id)
        if entry is None:
            return None
        return entry.slot(source)

    async def _load_entry(self, tab_id: TabId) -> TabEntry | None:
        cached = self._tabs.get(str(tab_id))
        if cached is not None or self._storage is None:
            return cached
        try:
            payload = await self._storage.get(storage_key(tab_id))
        except Exception:  # pragma: no cover - depends on storage backend
            LOGGER.warning("Failed to load stored snapshot for tab %s", tab_id, exc_info=True)
            return None
        if payload is None:
            return None
        try:
            entry = TabEntry.from_dict(payload)
        except (TypeError, ValueError):
            LOGGER.warning("Discarding malformed stored snapshot for tab %s", tab_id, exc_info=True)
            return None
        # A push may have landed while storage was being read; keep the newer entry.
        return self._tabs.setdefault(str(tab_id), entry)

    async def _save_entry(self, tab_id: TabId, entry: TabEntry) -> None:
        self._tabs[str(tab_id)] = entry
        if self._storage is None:
            return
        try:
            await self._storage.set(storage_key(tab_id), entry.to_dict())
        except Exception:  # pragma: no cover - depends on storage backend
            LOGGER.warning("Failed to persist snapshot for tab %s", tab_id, exc_info=True)
