"""Inference client, page tools and the agent loop."""

from .ai_types import FunctionCall, StreamChunk, Usage
from .cancellation import AbortSignal
from .client import ClientSettings, InferenceClient, InferenceRequest
from .errors import (
    InferenceError,
    RateLimitedError,
    RateLimitExceededError,
    RequestCancelled,
    ServiceUnavailableError,
    TerminalApiError,
    TransientNetworkError,
)
from .providers import ProviderConfig, get_provider

__all__ = [
    "FunctionCall",
    "StreamChunk",
    "Usage",
    "AbortSignal",
    "ClientSettings",
    "InferenceClient",
    "InferenceRequest",
    "InferenceError",
    "RateLimitedError",
    "RateLimitExceededError",
    "RequestCancelled",
    "ServiceUnavailableError",
    "TerminalApiError",
    "TransientNetworkError",
    "ProviderConfig",
    "get_provider",
]
