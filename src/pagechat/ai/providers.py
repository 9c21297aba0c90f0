"""Backend provider table: endpoints, static headers and body-level identity."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, Mapping, Tuple

__all__ = [
    "ProviderConfig",
    "GEMINI_CLI_PROVIDER",
    "ANTIGRAVITY_PROVIDER",
    "DEFAULT_PROVIDER_ID",
    "PROVIDERS",
    "get_provider",
    "is_claude_thinking_model",
    "STREAM_PATH",
    "INTERLEAVED_THINKING_BETA",
]

STREAM_PATH = "/v1internal:streamGenerateContent?alt=sse"
INTERLEAVED_THINKING_BETA = "interleaved-thinking-2025-05-14"

_CLIENT_METADATA = json.dumps(
    {
        "ideType": "IDE_UNSPECIFIED",
        "platform": "PLATFORM_UNSPECIFIED",
        "pluginType": "GEMINI",
    },
    separators=(",", ":"),
)


@dataclass(slots=True, frozen=True)
class ProviderConfig:
    """Static description of one inference backend.

    Attributes:
        id: Identifier used in settings (``"gemini-cli"``, ``"antigravity"``).
        name: Human readable label.
        endpoints: Base URLs tried in order until one answers with 2xx.
        headers: Static headers attached to every request.
        user_agent: Value of the ``userAgent`` field in the request body.
        request_type: Optional ``requestType`` body field.
    """

    id: str
    name: str
    endpoints: Tuple[str, ...]
    headers: Mapping[str, str] = field(default_factory=dict)
    user_agent: str = ""
    request_type: str | None = None

    def stream_url(self, endpoint: str) -> str:
        return f"{endpoint.rstrip('/')}{STREAM_PATH}"

    @property
    def request_id_prefix(self) -> str:
        return "agent" if self.request_type == "agent" else "pi"


GEMINI_CLI_PROVIDER = ProviderConfig(
    id="gemini-cli",
    name="Gemini CLI",
    endpoints=("https://cloudcode-pa.googleapis.com",),
    headers={
        "User-Agent": "google-cloud-sdk vscode_cloudshelleditor/0.1",
        "X-Goog-Api-Client": "gl-node/22.17.0",
        "Client-Metadata": _CLIENT_METADATA,
    },
    user_agent="pi-coding-agent",
)

ANTIGRAVITY_PROVIDER = ProviderConfig(
    id="antigravity",
    name="Antigravity",
    endpoints=(
        "https://daily-cloudcode-pa.sandbox.googleapis.com",
        "https://cloudcode-pa.googleapis.com",
    ),
    headers={
        "User-Agent": "antigravity/1.15.8 darwin/arm64",
        "X-Goog-Api-Client": "google-cloud-sdk vscode_cloudshelleditor/0.1",
        "Client-Metadata": _CLIENT_METADATA,
    },
    user_agent="antigravity",
    request_type="agent",
)

DEFAULT_PROVIDER_ID = ANTIGRAVITY_PROVIDER.id

PROVIDERS: Dict[str, ProviderConfig] = {
    GEMINI_CLI_PROVIDER.id: GEMINI_CLI_PROVIDER,
    ANTIGRAVITY_PROVIDER.id: ANTIGRAVITY_PROVIDER,
}


def get_provider(provider_id: str | None) -> ProviderConfig:
    """Return the provider registered under ``provider_id``.

    Unknown or empty ids resolve to the default provider.
    """

    if not provider_id:
        return PROVIDERS[DEFAULT_PROVIDER_ID]
    return PROVIDERS.get(provider_id, PROVIDERS[DEFAULT_PROVIDER_ID])


def is_claude_thinking_model(model_id: str | None) -> bool:
    lowered = (model_id or "").lower()
    return "claude" in lowered and "thinking" in lowered
