"""Command-line front end: chat about a local text or markdown file."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.cancellation import AbortSignal
from .ai.client import ClientSettings, InferenceClient
from .ai.orchestration.agent import AgentConfig, ChatAgent, ChatRequest, InferenceStreamer
from .ai.orchestration.personas import resolve_persona_prompt
from .page import Credentials, PageContent, TabInfo
from .services.settings import Settings, SettingsStore
from .services.storage import JsonDirectoryStore
from .snapshots.store import SnapshotStore, StoreConfig
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)

ACCESS_TOKEN_ENV = "PAGECHAT_ACCESS_TOKEN"
PROJECT_ID_ENV = "PAGECHAT_PROJECT_ID"
_FILE_TAB_ID = "file"


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure logging for the command-line session."""

    level = logging_utils.resolve_level(debug)
    logging_utils.setup_logging(level, console=debug, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except Exception as exc:  # pragma: no cover - depends on filesystem
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


# ----------------------------------------------------------------------
# Derived configuration
# ----------------------------------------------------------------------


def build_client_settings(settings: Settings, *, debug_logging: bool = False) -> ClientSettings:
    return ClientSettings(
        request_timeout=settings.request_timeout,
        max_attempts=settings.max_attempts,
        retry_base_delay=settings.retry_base_delay,
        rate_limit_default_wait=settings.rate_limit_default_wait,
        rate_limit_max_wait=settings.rate_limit_max_wait,
        debug_logging=debug_logging or settings.debug_logging,
    )


def build_agent_config(settings: Settings) -> AgentConfig:
    return AgentConfig(
        model=settings.model,
        temperature=settings.temperature,
        max_output_tokens=settings.max_output_tokens,
        thinking_level=settings.thinking_level,
        mode=settings.agent_mode,
        page_context_enabled=settings.page_context_enabled,
        max_tool_rounds=max(1, int(settings.max_tool_rounds)),
        history_window=max(0, int(settings.history_window)),
    )


def build_store_config(settings: Settings) -> StoreConfig:
    return StoreConfig(
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        ttl_seconds=settings.snapshot_ttl_seconds,
        diff_threshold_ratio=settings.diff_threshold_ratio,
    )


def build_snapshot_store(settings: Settings) -> SnapshotStore:
    storage = JsonDirectoryStore(settings.storage_dir) if settings.storage_dir else None
    return SnapshotStore(storage, config=build_store_config(settings))


# ----------------------------------------------------------------------
# Local collaborators
# ----------------------------------------------------------------------


class FilePageExtractor:
    """Serves a local file as the "page" the user is looking at."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path).expanduser().resolve()

    @property
    def path(self) -> Path:
        return self._path

    def tab(self) -> TabInfo:
        return TabInfo(tab_id=_FILE_TAB_ID, url=self._path.as_uri(), title=self._path.name)

    async def extract(self, tab: TabInfo) -> PageContent | None:
        text = await asyncio.to_thread(self._path.read_text, encoding="utf-8", errors="replace")
        return PageContent(url=tab.url, title=_title_from_text(text) or tab.title, text=text)


class EnvCredentials:
    """Reads a bearer token and project id from the environment."""

    def __init__(self, provider: str | None = None, *, environ: Mapping[str, str] | None = None) -> None:
        self._provider = provider
        self._environ = environ if environ is not None else os.environ

    async def get_credentials(self) -> Credentials | None:
        token = (self._environ.get(ACCESS_TOKEN_ENV) or "").strip()
        project = (self._environ.get(PROJECT_ID_ENV) or "").strip()
        if not token or not project:
            return None
        return Credentials(access_token=token, project_id=project, provider=self._provider)


def _title_from_text(text: str) -> str:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("#"):
            return stripped.lstrip("#").strip()
        if stripped:
            return ""
    return ""


# ----------------------------------------------------------------------
# Chat session
# ----------------------------------------------------------------------


async def run_chat(
    prompt: str,
    *,
    settings: Settings,
    page_path: Path | None = None,
    client: InferenceStreamer | None = None,
    credentials: Any = None,
    abort_signal: AbortSignal | None = None,
    show_thinking: bool = False,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    """Run one chat turn and print the streamed answer. Returns a process exit code."""

    out = stdout or sys.stdout
    err = stderr or sys.stderr
    owned_client: InferenceClient | None = None
    if client is None:
        owned_client = InferenceClient(build_client_settings(settings))
        client = owned_client

    extractor = FilePageExtractor(page_path) if page_path is not None else None
    agent = ChatAgent(
        client,
        build_snapshot_store(settings),
        credentials or EnvCredentials(settings.provider),
        extractor=extractor,
        config=build_agent_config(settings),
    )
    request = ChatRequest(
        prompt=prompt,
        system_prompt=resolve_persona_prompt(settings.persona_id, settings.system_prompt),
        tab=extractor.tab() if extractor is not None else None,
    )

    exit_code = 0
    try:
        async for event in agent.run_turn(request, signal=abort_signal):
            if event.type == "text":
                out.write(event.text or "")
                out.flush()
            elif event.type == "thinking" and show_thinking:
                err.write(event.text or "")
            elif event.type == "tool_call" and event.tool_call is not None:
                call = event.tool_call
                status = "ok" if call.success else f"failed: {call.error}"
                err.write(f"\n[tool] {call.name} {json.dumps(dict(call.args))} ({status})\n")
            elif event.type == "usage" and event.usage is not None:
                _LOGGER.info(
                    "Token usage: input=%s output=%s total=%s",
                    event.usage.input_tokens,
                    event.usage.output_tokens,
                    event.usage.total_tokens,
                )
            elif event.type == "error":
                err.write(f"\nError: {event.error}\n")
                exit_code = 1
            elif event.type == "done":
                out.write("\n")
                if event.aborted:
                    exit_code = 130
    finally:
        if owned_client is not None:
            await owned_client.aclose()
    return exit_code


async def _run_with_interrupt(prompt: str, **kwargs: Any) -> int:
    abort_signal = AbortSignal()
    loop = asyncio.get_running_loop()
    installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, abort_signal.abort, "interrupted")
        installed = True
    try:
        return await run_chat(prompt, abort_signal=abort_signal, **kwargs)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the `pagechat` console script."""

    args = _parse_cli_args(argv)

    debug = _env_flag("PAGECHAT_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("PAGECHAT_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    if args.mode:
        cli_overrides["agent_mode"] = args.mode
    if args.model:
        cli_overrides["model"] = args.model
    if args.persona:
        cli_overrides["persona_id"] = args.persona

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    prompt = " ".join(args.prompt).strip()
    if not prompt:
        print("A prompt is required.", file=sys.stderr)
        raise SystemExit(2)

    page_path = Path(args.page).expanduser() if args.page else None
    if page_path is not None and not page_path.is_file():
        print(f"Page file not found: {page_path}", file=sys.stderr)
        raise SystemExit(2)

    try:
        exit_code = asyncio.run(
            _run_with_interrupt(
                prompt,
                settings=settings,
                page_path=page_path,
                show_thinking=args.show_thinking,
            )
        )
    except KeyboardInterrupt:  # pragma: no cover - platforms without signal handlers
        _LOGGER.info("Chat interrupted by user.")
        exit_code = 130
    raise SystemExit(exit_code)


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pagechat",
        add_help=True,
        description="Ask a question about a local page (text or markdown file).",
    )
    parser.add_argument("prompt", nargs="*", help="The question to ask.")
    parser.add_argument("--page", metavar="PATH", help="Text or markdown file to use as the current page.")
    parser.add_argument("--mode", choices=("ask", "edit"), help="Agent mode for this turn.")
    parser.add_argument("--model", help="Model identifier to use.")
    parser.add_argument("--persona", help="Persona preset id (none, dsa-coach, concise, custom).")
    parser.add_argument(
        "--show-thinking",
        action="store_true",
        help="Echo the model's reasoning to stderr.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.pagechat/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    normalized = raw_value.strip()
    if get_origin(annotation) is Literal:
        choices = get_args(annotation)
        if normalized not in choices:
            raise ValueError(f"Expected one of {', '.join(map(str, choices))}; got '{normalized}'.")
        return normalized

    target = _resolve_annotation(annotation)
    optional = type(None) in get_args(annotation)
    if optional and normalized.lower() in {"none", "null", ""}:
        return None
    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": asdict(settings), "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    # Token values never leave the process; only variable names are reported.
    return sorted(name for name in os.environ if name.startswith("PAGECHAT_"))
