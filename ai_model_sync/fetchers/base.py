"""
Provider fetcher contract.

A fetcher retrieves the raw payload for one provider and classifies every
failure as transient (eligible for retry) or permanent (not retried within
the same run).
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol

import httpx
import openai


# HTTP statuses worth retrying: timeouts, too-early, rate limits.
RETRYABLE_STATUSES = frozenset({408, 425, 429})


class FetchStatus(Enum):
    """Tag of a single fetch attempt's outcome."""
    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one fetch attempt. Never persisted."""
    status: FetchStatus
    payload: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, payload: Dict[str, Any]) -> "FetchResult":
        return cls(FetchStatus.SUCCESS, payload=payload)

    @classmethod
    def transient(cls, reason: str) -> "FetchResult":
        return cls(FetchStatus.TRANSIENT_FAILURE, reason=reason)

    @classmethod
    def permanent(cls, reason: str) -> "FetchResult":
        return cls(FetchStatus.PERMANENT_FAILURE, reason=reason)

    @property
    def ok(self) -> bool:
        return self.status == FetchStatus.SUCCESS

    @property
    def retryable(self) -> bool:
        return self.status == FetchStatus.TRANSIENT_FAILURE


class FetchError(Exception):
    """Base class for fetch failures raised by fetchers."""
    def __init__(self, provider_id: str, reason: str):
        super().__init__(f"{provider_id}: {reason}")
        self.provider_id = provider_id
        self.reason = reason


class FetchTransientError(FetchError):
    """Network, timeout, 5xx or rate-limit failure. Eligible for retry."""


class FetchPermanentError(FetchError):
    """Failure that will not resolve by retrying (e.g. removed endpoint)."""


class Fetcher(Protocol):
    """Capability interface implemented by one adapter per provider kind."""

    def fetch(self, provider_id: str, timeout: float) -> FetchResult:
        """Fetch the raw payload for a provider within ``timeout`` seconds."""
        ...


def classify_status(status_code: int) -> FetchStatus:
    """Map an HTTP status code to a failure class."""
    if status_code in RETRYABLE_STATUSES or status_code >= 500:
        return FetchStatus.TRANSIENT_FAILURE
    return FetchStatus.PERMANENT_FAILURE


def classify_exception(exc: BaseException) -> FetchResult:
    """Classify an exception raised while fetching into a FetchResult.

    Precedence:
        1. Explicit FetchTransientError / FetchPermanentError
        2. Timeouts (builtin, httpx, openai)
        3. HTTP status carried by httpx or openai errors
        4. Connection/transport errors
        5. Undecodable payloads are permanent
        6. Anything else is transient
    """
    if isinstance(exc, FetchPermanentError):
        return FetchResult.permanent(exc.reason)
    if isinstance(exc, FetchTransientError):
        return FetchResult.transient(exc.reason)
    if isinstance(exc, (TimeoutError, httpx.TimeoutException, openai.APITimeoutError)):
        return FetchResult.transient(f"timeout: {exc}")

    status_code = _extract_status(exc)
    if status_code is not None:
        reason = f"HTTP {status_code}"
        if classify_status(status_code) == FetchStatus.TRANSIENT_FAILURE:
            return FetchResult.transient(reason)
        return FetchResult.permanent(reason)

    if isinstance(exc, (httpx.TransportError, openai.APIConnectionError, ConnectionError)):
        return FetchResult.transient(f"connection error: {exc}")
    if isinstance(exc, json.JSONDecodeError):
        return FetchResult.permanent(f"malformed response: {exc}")
    return FetchResult.transient(f"{type(exc).__name__}: {exc}")


def _extract_status(exc: BaseException) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code
    return None
