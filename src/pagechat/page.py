"""Interfaces for the collaborators that sit outside the chat core.

The browser side (tab tracking, DOM extraction, in-page editing) and credential
management live elsewhere; the agent only talks to them through the protocols
declared here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Mapping, Protocol, Tuple, runtime_checkable

from .snapshots.models import EditorContent
from .snapshots.store import TabId

__all__ = [
    "TabInfo",
    "PageContent",
    "WriteResult",
    "Credentials",
    "PageExtractor",
    "PageWriter",
    "CredentialSupplier",
    "StaticCredentials",
    "RESTRICTED_URL_PREFIXES",
    "is_restricted_url",
    "parse_editor_key",
]

RESTRICTED_URL_PREFIXES: Tuple[str, ...] = (
    "chrome://",
    "about:",
    "edge://",
    "extension://",
    "devtools://",
    "view-source:",
)
_EDITOR_KEY_RE = re.compile(r"^(\w+?)_(\d+)$")


@dataclass(slots=True, frozen=True)
class TabInfo:
    """The tab the user is looking at when a chat turn starts."""

    tab_id: TabId
    url: str = ""
    title: str = ""


@dataclass(slots=True, frozen=True)
class PageContent:
    """Result of extracting a page.

    Attributes:
        url: Final URL of the page.
        title: Document title.
        text: Markdown-ish rendering of the visible content.
        editor_contents: Editors and form fields keyed by ``<type>_<ordinal>``.
    """

    url: str
    title: str
    text: str
    editor_contents: Mapping[str, EditorContent] | None = None


@dataclass(slots=True, frozen=True)
class WriteResult:
    success: bool
    error: str | None = None


@dataclass(slots=True, frozen=True)
class Credentials:
    """Bearer token plus the provider/project the token is valid for."""

    access_token: str
    project_id: str
    provider: str | None = None


@runtime_checkable
class PageExtractor(Protocol):
    """Reads the current content of a tab."""

    async def extract(self, tab: TabInfo) -> PageContent | None:
        """Return the page content, or ``None`` when it cannot be read.

        Implementations may also raise; the agent treats both as an extraction failure.
        """
        ...


@runtime_checkable
class PageWriter(Protocol):
    """Applies a find/replace edit to an editor on the live page."""

    async def write(self, tab_id: TabId, key: str, find: str, replace: str) -> WriteResult:
        """Replace ``find`` with ``replace`` in editor ``key``; ``find=""`` overwrites everything."""
        ...


@runtime_checkable
class CredentialSupplier(Protocol):
    async def get_credentials(self) -> Credentials | None:
        """Return valid credentials or ``None`` when the user is not signed in."""
        ...


@dataclass(slots=True)
class StaticCredentials:
    """Credential supplier that always returns the same token."""

    credentials: Credentials | None = field(default=None)

    async def get_credentials(self) -> Credentials | None:
        return self.credentials


def is_restricted_url(url: str | None) -> bool:
    """True for pages that are never sent to extraction (browser-internal or blank)."""

    if not url:
        return True
    return url.startswith(RESTRICTED_URL_PREFIXES)


def parse_editor_key(key: str) -> tuple[str, int] | None:
    """Split ``"monaco_2"`` into ``("monaco", 2)``; ordinals are 1-based.

    Returns ``None`` for keys that do not have the ``<type>_<ordinal>`` shape.
    """

    match = _EDITOR_KEY_RE.match(key or "")
    if match is None:
        return None
    ordinal = int(match.group(2))
    if ordinal < 1:
        return None
    return match.group(1), ordinal
