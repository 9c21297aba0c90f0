"""Async streaming client for the Cloud Code Assist ``streamGenerateContent`` API."""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .ai_types import FunctionCall, StreamChunk, Usage
from .cancellation import AbortSignal
from .errors import (
    InferenceError,
    RateLimitedError,
    RateLimitExceededError,
    RequestCancelled,
    ServiceUnavailableError,
    TerminalApiError,
    TransientNetworkError,
)
from .providers import INTERLEAVED_THINKING_BETA, ProviderConfig, get_provider, is_claude_thinking_model
from .sse import iter_stream_chunks

__all__ = [
    "ClientSettings",
    "InferenceRequest",
    "InferenceClient",
    "StreamChunk",
    "FunctionCall",
    "Usage",
    "build_request_body",
    "build_request_headers",
    "parse_retry_after_hint",
]

LOGGER = logging.getLogger(__name__)
_RETRY_AFTER_RE = re.compile(r"after (\d+)s")
_FALLBACK_ERROR = "Failed to connect to Cloud Code Assist API"
_END_OF_STREAM = object()

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the inference client."""

    request_timeout: float | None = 120.0
    max_attempts: int = 3
    retry_base_delay: float = 1.0
    rate_limit_default_wait: float = 2.0
    rate_limit_max_wait: float = 20.0
    debug_logging: bool = False


@dataclass(slots=True)
class InferenceRequest:
    """Everything needed to issue one streamed generation call.

    Attributes:
        access_token: OAuth bearer token.
        project_id: Cloud project the call is billed to.
        model: Model identifier, e.g. ``"gemini-2.5-flash"``.
        contents: Provider-native conversation turns.
        system_prompt: Optional system instruction text.
        tools: Optional provider-native tool declarations.
        max_output_tokens: Optional generation cap.
        temperature: Optional sampling temperature.
        thinking_level: Reasoning depth (``"high"`` when unset).
        provider: Provider id; unknown ids fall back to the default provider.
    """

    access_token: str
    project_id: str
    model: str
    contents: Sequence[Mapping[str, Any]]
    system_prompt: str | None = None
    tools: Sequence[Mapping[str, Any]] | None = None
    max_output_tokens: int | None = None
    temperature: float | None = None
    thinking_level: str | None = None
    provider: str | None = None


def parse_retry_after_hint(body: str) -> int | None:
    """Best-effort extraction of a ``"... after Ns"`` wait hint from an error body."""

    match = _RETRY_AFTER_RE.search(body or "")
    if match is None:
        return None
    return int(match.group(1))


def build_request_body(
    request: InferenceRequest,
    provider: ProviderConfig,
    *,
    request_id: str | None = None,
) -> Dict[str, Any]:
    generation_config: Dict[str, Any] = {}
    if request.max_output_tokens:
        generation_config["maxOutputTokens"] = request.max_output_tokens
    if request.temperature is not None:
        generation_config["temperature"] = request.temperature
    generation_config["thinkingConfig"] = {
        "includeThoughts": True,
        "thinkingLevel": request.thinking_level or "high",
    }

    inner: Dict[str, Any] = {"contents": list(request.contents)}
    if request.system_prompt:
        inner["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}
    if request.tools:
        inner["tools"] = list(request.tools)
    inner["generationConfig"] = generation_config

    body: Dict[str, Any] = {
        "project": request.project_id,
        "model": request.model,
        "request": inner,
        "userAgent": provider.user_agent,
    }
    if provider.request_type:
        body["requestType"] = provider.request_type
    body["requestId"] = request_id or _new_request_id(provider)
    return body


def build_request_headers(request: InferenceRequest, provider: ProviderConfig) -> Dict[str, str]:
    headers = {
        "Authorization": f"Bearer {request.access_token}",
        "Content-Type": "application/json",
        "Accept": "text/event-stream",
    }
    headers.update(provider.headers)
    if is_claude_thinking_model(request.model):
        headers["anthropic-beta"] = INTERLEAVED_THINKING_BETA
    return headers


def _new_request_id(provider: ProviderConfig) -> str:
    return f"{provider.request_id_prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class InferenceClient:
    """Streams model output from the first provider endpoint that answers.

    Each endpoint is attempted up to ``max_attempts`` times. Network failures and
    HTTP 503 back off exponentially (``retry_base_delay * 2 ** attempt``); HTTP 429
    waits for the server's hint (or the default) when it fits under the ceiling and
    otherwise abandons the endpoint. Any other non-2xx status moves straight on to
    the next endpoint. When every endpoint fails the stream yields a single
    ``error`` chunk.

    Cancellation through the :class:`AbortSignal` interrupts in-flight requests,
    backoff sleeps and stream reads alike; the stream then ends without an error.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        self._settings = settings or ClientSettings()
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(self._settings.request_timeout))
        self._sleep = sleep
        self._backoff = wait_exponential(multiplier=2 * self._settings.retry_base_delay)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def stream(
        self,
        request: InferenceRequest,
        *,
        signal: AbortSignal | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Yield decoded stream chunks for ``request``."""

        signal = signal or AbortSignal()
        provider = get_provider(request.provider)
        body = build_request_body(request, provider)
        headers = build_request_headers(request, provider)
        LOGGER.debug(
            "Starting streamed generation via %s (%s) with %s turn(s)",
            request.model,
            provider.id,
            len(body["request"]["contents"]),
        )
        if self._settings.debug_logging:
            self._log_request_payload(body)

        try:
            response = await self._open_stream(provider, headers, body, request.model, signal)
        except RequestCancelled:
            LOGGER.debug("Streamed generation cancelled before a response arrived")
            return
        except InferenceError as exc:
            LOGGER.warning("Streamed generation failed: %s", exc.message)
            yield StreamChunk(type="error", error=exc.message)
            return

        try:
            async for chunk in iter_stream_chunks(self._iter_lines(response, signal)):
                yield chunk
        except RequestCancelled:
            LOGGER.debug("Streamed generation cancelled mid-stream")
        except httpx.RequestError as exc:
            LOGGER.warning("Stream interrupted: %s", exc)
            yield StreamChunk(type="error", error=f"Stream interrupted: {exc}")
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client when this instance created it."""

        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Request execution
    # ------------------------------------------------------------------
    async def _open_stream(
        self,
        provider: ProviderConfig,
        headers: Mapping[str, str],
        body: Mapping[str, Any],
        model: str,
        signal: AbortSignal,
    ) -> httpx.Response:
        last_error: InferenceError | None = None
        for endpoint in provider.endpoints:
            try:
                return await self._open_endpoint(endpoint, provider, headers, body, model, signal)
            except InferenceError as exc:
                LOGGER.warning("Endpoint %s failed: %s", endpoint, exc.message)
                last_error = exc
        raise last_error or InferenceError(_FALLBACK_ERROR)

    async def _open_endpoint(
        self,
        endpoint: str,
        provider: ProviderConfig,
        headers: Mapping[str, str],
        body: Mapping[str, Any],
        model: str,
        signal: AbortSignal,
    ) -> httpx.Response:
        url = provider.stream_url(endpoint)
        try:
            async for attempt in self._retrying(signal):
                with attempt:
                    LOGGER.debug(
                        "Stream request attempt %s to %s (model=%s)",
                        attempt.retry_state.attempt_number,
                        url,
                        model,
                    )
                    return await self._attempt(url, endpoint, headers, body, model, signal)
        except RateLimitedError as exc:
            # Attempts ran out while still rate limited; no retry is coming.
            raise RateLimitExceededError(
                f"Rate limit exceeded. Please try again in {exc.retry_after:g} seconds.",
                retry_after=exc.retry_after,
                endpoint=endpoint,
            ) from exc
        raise InferenceError(_FALLBACK_ERROR, endpoint=endpoint)  # pragma: no cover - reraise=True

    async def _attempt(
        self,
        url: str,
        endpoint: str,
        headers: Mapping[str, str],
        body: Mapping[str, Any],
        model: str,
        signal: AbortSignal,
    ) -> httpx.Response:
        request = self._http.build_request("POST", url, headers=dict(headers), json=body)
        try:
            response = await signal.wrap(self._http.send(request, stream=True))
        except httpx.RequestError as exc:
            raise TransientNetworkError(f"Network error: {exc}", endpoint=endpoint) from exc
        if response.is_success:
            return response
        try:
            await signal.wrap(response.aread())
            error_text = response.text
        except httpx.RequestError:
            error_text = ""
        finally:
            await response.aclose()
        raise self._classify_failure(response.status_code, error_text, endpoint, model)

    def _classify_failure(self, status_code: int, error_text: str, endpoint: str, model: str) -> InferenceError:
        if status_code == 429:
            hint = parse_retry_after_hint(error_text)
            wait = float(hint + 1) if hint is not None else self._settings.rate_limit_default_wait
            if wait <= self._settings.rate_limit_max_wait:
                return RateLimitedError(
                    f"Rate limited (429), retrying in {wait:g}s",
                    retry_after=wait,
                    endpoint=endpoint,
                )
            detail = f"Please try again in {hint} seconds." if hint is not None else "Please try again later."
            return RateLimitExceededError(
                f"Rate limit exceeded. {detail}",
                retry_after=wait,
                endpoint=endpoint,
            )
        if status_code == 503:
            return ServiceUnavailableError(f"Service unavailable (503): {error_text}", endpoint=endpoint)
        if status_code == 404 and is_claude_thinking_model(model):
            return TerminalApiError(
                f"Claude model '{model}' not found (404). Your Google Cloud project likely does not "
                "have access to these internal/beta models. Try using a Gemini model instead.",
                status_code=status_code,
                endpoint=endpoint,
            )
        return TerminalApiError(f"API error ({status_code}): {error_text}", status_code=status_code, endpoint=endpoint)

    def _retrying(self, signal: AbortSignal) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_attempts)),
            wait=self._wait_for,
            retry=retry_if_exception_type(
                (
                    TransientNetworkError,
                    RateLimitedError,
                    ServiceUnavailableError,
                )
            ),
            sleep=self._sleeper(signal),
            before_sleep=self._log_retry,
        )

    def _wait_for(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        if isinstance(error, RateLimitedError):
            return error.retry_after
        return self._backoff(retry_state)

    def _sleeper(self, signal: AbortSignal) -> SleepFn:
        override = self._sleep

        async def _sleep(delay: float) -> None:
            if override is None:
                await signal.sleep(delay)
                return
            signal.raise_if_aborted()
            await override(delay)
            signal.raise_if_aborted()

        return _sleep

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        delay = retry_state.next_action.sleep if retry_state.next_action is not None else 0.0
        LOGGER.warning(
            "Stream attempt %s failed (%s); retrying in %.1fs",
            retry_state.attempt_number,
            error,
            delay,
        )

    # ------------------------------------------------------------------
    # Stream reading
    # ------------------------------------------------------------------
    async def _iter_lines(self, response: httpx.Response, signal: AbortSignal) -> AsyncIterator[str]:
        lines = response.aiter_lines()
        while True:
            line = await signal.wrap(_next_or_end(lines))
            if line is _END_OF_STREAM:
                return
            yield line

    def _log_request_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Inference request payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Inference request payload:\n%s", serialized)


async def _next_or_end(iterator: AsyncIterator[str]) -> Any:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _END_OF_STREAM
