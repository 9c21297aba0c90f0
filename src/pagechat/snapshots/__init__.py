"""Page snapshots: chunking, per-tab two-slot storage and change summaries."""

from .chunker import DEFAULT_CHUNK_SIZE, DEFAULT_OVERLAP, MAX_CHUNKS, split_into_chunks
from .models import (
    ChunkRead,
    DiffResult,
    EditorContent,
    LargeDiff,
    NoPrevious,
    PushResult,
    SmallDiff,
    Snapshot,
    SnapshotMeta,
    SnapshotSource,
    TabEntry,
    Unchanged,
    UrlChanged,
)
from .store import SnapshotStore, StoreConfig, TabId

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_OVERLAP",
    "MAX_CHUNKS",
    "split_into_chunks",
    "ChunkRead",
    "DiffResult",
    "EditorContent",
    "LargeDiff",
    "NoPrevious",
    "PushResult",
    "SmallDiff",
    "Snapshot",
    "SnapshotMeta",
    "SnapshotSource",
    "TabEntry",
    "Unchanged",
    "UrlChanged",
    "SnapshotStore",
    "StoreConfig",
    "TabId",
]
