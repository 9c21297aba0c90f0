"""Settings dataclass and JSON persistence with environment overrides."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Literal, Mapping

__all__ = [
    "Settings",
    "SettingsStore",
    "AgentMode",
    "ThinkingLevel",
    "DEFAULT_SETTINGS_PATH",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".pagechat"
DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "PAGECHAT_PROVIDER": "provider",
    "PAGECHAT_MODEL": "model",
    "PAGECHAT_AGENT_MODE": "agent_mode",
    "PAGECHAT_THINKING_LEVEL": "thinking_level",
    "PAGECHAT_PERSONA": "persona_id",
    "PAGECHAT_STORAGE_DIR": "storage_dir",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "PAGECHAT_DEBUG_LOGGING": "debug_logging",
    "PAGECHAT_PAGE_CONTEXT": "page_context_enabled",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "PAGECHAT_TEMPERATURE": "temperature",
    "PAGECHAT_REQUEST_TIMEOUT": "request_timeout",
    "PAGECHAT_SNAPSHOT_TTL": "snapshot_ttl_seconds",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "PAGECHAT_MAX_TOOL_ROUNDS": "max_tool_rounds",
    "PAGECHAT_MAX_OUTPUT_TOKENS": "max_output_tokens",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}

AgentMode = Literal["ask", "edit"]
ThinkingLevel = Literal["high", "low"]


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    provider: str = "antigravity"
    model: str = "gemini-2.5-flash"
    temperature: float | None = None
    max_output_tokens: int | None = None
    thinking_level: ThinkingLevel = "high"
    agent_mode: AgentMode = "ask"
    page_context_enabled: bool = True
    system_prompt: str = ""
    persona_id: str = "none"
    max_tool_rounds: int = 50
    history_window: int = 25
    chunk_size: int = 2_000
    chunk_overlap: int = 200
    snapshot_ttl_seconds: float = 30 * 60.0
    diff_threshold_ratio: float = 0.3
    request_timeout: float = 120.0
    max_attempts: int = 3
    retry_base_delay: float = 1.0
    rate_limit_default_wait: float = 2.0
    rate_limit_max_wait: float = 20.0
    storage_dir: str | None = None
    debug_logging: bool = False


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying CLI then environment overrides."""

        payload = self._read_payload()
        settings = Settings()
        if payload:
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            if payload.get("version") != _SETTINGS_VERSION:
                try:
                    self.save(settings)
                except OSError as exc:  # pragma: no cover - depends on filesystem
                    LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with an atomic replace."""

        payload = asdict(settings)
        payload["version"] = _SETTINGS_VERSION
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {field.name for field in fields(Settings)}
        filtered = {
            key: value for key, value in overrides.items() if key in allowed and value is not None
        }
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(Settings)}
    return {key: value for key, value in payload.items() if key in allowed}
