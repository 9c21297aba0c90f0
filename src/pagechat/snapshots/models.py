"""Snapshot, tab entry and diff result types."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, Mapping, Union

__all__ = [
    "SnapshotSource",
    "EditorContent",
    "Snapshot",
    "SnapshotMeta",
    "TabEntry",
    "ChunkRead",
    "NoPrevious",
    "Unchanged",
    "UrlChanged",
    "SmallDiff",
    "LargeDiff",
    "DiffResult",
    "PushResult",
    "hash_content",
]

SnapshotSource = Literal["latest", "previous"]


def hash_content(text: str) -> str:
    """Return a short digest used to skip diffing identical text."""

    return hashlib.blake2b(text.encode("utf-8", errors="surrogatepass"), digest_size=8).hexdigest()


@dataclass(slots=True, frozen=True)
class EditorContent:
    """Raw text of one editor or form field found on the page."""

    label: str
    code: str

    def to_dict(self) -> dict[str, str]:
        return {"label": self.label, "code": self.code}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "EditorContent":
        return cls(label=str(payload.get("label", "")), code=str(payload.get("code", "")))


@dataclass(slots=True, frozen=True)
class Snapshot:
    """One immutable read of a tab's page state.

    Attributes:
        url: Source URL of the page.
        title: Page title.
        text: Full markdown-ish page text.
        chunks: Chunks derived from ``text``; chunk ``n`` is ``chunks[n]``.
        content_hash: Digest of ``text``.
        updated_at: Wall-clock seconds when the snapshot was taken.
        editor_contents: Editor key (e.g. ``"monaco_1"``) to label and raw text.
    """

    url: str
    title: str
    text: str
    chunks: tuple[str, ...]
    content_hash: str
    updated_at: float
    editor_contents: Mapping[str, EditorContent] | None = None

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    def editor_metadata(self) -> list[tuple[str, str]]:
        """Return ``(key, label)`` pairs for every editor on the page."""

        if not self.editor_contents:
            return []
        return [(key, content.label) for key, content in self.editor_contents.items()]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "url": self.url,
            "title": self.title,
            "text": self.text,
            "chunks": list(self.chunks),
            "hash": self.content_hash,
            "updated_at": self.updated_at,
        }
        if self.editor_contents is not None:
            payload["editor_contents"] = {
                key: content.to_dict() for key, content in self.editor_contents.items()
            }
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Snapshot":
        raw_editors = payload.get("editor_contents")
        editors: dict[str, EditorContent] | None = None
        if isinstance(raw_editors, Mapping):
            editors = {
                str(key): EditorContent.from_dict(value)
                for key, value in raw_editors.items()
                if isinstance(value, Mapping)
            }
        text = str(payload.get("text", ""))
        return cls(
            url=str(payload.get("url", "")),
            title=str(payload.get("title", "")),
            text=text,
            chunks=tuple(str(chunk) for chunk in payload.get("chunks") or ()),
            content_hash=str(payload.get("hash") or hash_content(text)),
            updated_at=float(payload.get("updated_at", 0.0)),
            editor_contents=editors,
        )


@dataclass(slots=True, frozen=True)
class SnapshotMeta:
    """Summary of one snapshot slot exposed to prompt building."""

    url: str
    title: str
    total_chunks: int

    @classmethod
    def of(cls, snapshot: Snapshot | None) -> "SnapshotMeta | None":
        if snapshot is None:
            return None
        return cls(url=snapshot.url, title=snapshot.title, total_chunks=snapshot.total_chunks)


@dataclass(slots=True, frozen=True)
class TabEntry:
    """Two-slot holder: ``previous`` is whatever ``latest`` was before the last push."""

    latest: Snapshot
    previous: Snapshot | None = None

    def slot(self, source: SnapshotSource) -> Snapshot | None:
        return self.latest if source == "latest" else self.previous

    def to_dict(self) -> dict[str, Any]:
        return {
            "latest": self.latest.to_dict(),
            "previous": self.previous.to_dict() if self.previous is not None else None,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TabEntry":
        latest = payload.get("latest")
        if not isinstance(latest, Mapping):
            raise ValueError("Tab entry payload is missing 'latest'")
        previous = payload.get("previous")
        return cls(
            latest=Snapshot.from_dict(latest),
            previous=Snapshot.from_dict(previous) if isinstance(previous, Mapping) else None,
        )


@dataclass(slots=True, frozen=True)
class ChunkRead:
    """One chunk returned by :meth:`SnapshotStore.get_chunks`."""

    index: int
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "content": self.content}


# -----------------------------------------------------------------------------
# Diff results
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class NoPrevious:
    """First read of the tab, or the prior snapshot expired."""

    kind: ClassVar[str] = "no_previous"


@dataclass(slots=True, frozen=True)
class Unchanged:
    """Text is hash-identical to the prior snapshot."""

    kind: ClassVar[str] = "unchanged"


@dataclass(slots=True, frozen=True)
class UrlChanged:
    """The tab navigated to another URL."""

    old_url: str
    new_url: str
    kind: ClassVar[str] = "url_changed"


@dataclass(slots=True, frozen=True)
class SmallDiff:
    """Changed-line ratio at or under the threshold; carries a unified patch."""

    patch: str
    changed_lines: int
    total_lines: int
    changed_chunks: tuple[int, ...]
    kind: ClassVar[str] = "small_diff"


@dataclass(slots=True, frozen=True)
class LargeDiff:
    """Changed-line ratio above the threshold; the patch is omitted."""

    changed_lines: int
    total_lines: int
    changed_chunks: tuple[int, ...]
    kind: ClassVar[str] = "large_diff"


DiffResult = Union[NoPrevious, Unchanged, UrlChanged, SmallDiff, LargeDiff]


@dataclass(slots=True, frozen=True)
class PushResult:
    """Return value of :meth:`SnapshotStore.push`."""

    snapshot: Snapshot
    diff: DiffResult = field(default_factory=NoPrevious)
