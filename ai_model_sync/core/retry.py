"""
Retry policy around the fetcher contract.

Only transient failures are retried, with exponential backoff and jitter.
Permanent failures short-circuit immediately.
"""

import random
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from ai_model_sync.fetchers.base import Fetcher, FetchResult, classify_exception
from .cancellation import CancellationToken


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff schedule for one provider."""
    max_attempts: int = 3
    backoff_ms: int = 500
    jitter: float = 0.5  # fraction of each step that is randomized

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_ms < 0:
            raise ValueError("backoff_ms cannot be negative")
        if not 0 <= self.jitter <= 1:
            raise ValueError("jitter must be between 0 and 1")

    def delay_seconds(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        """Backoff before retry number ``attempt`` (0-based).

        The step doubles each attempt; the last ``jitter`` fraction of the
        step is scaled by a random factor in [0, 1).
        """
        step = self.backoff_ms * (2 ** attempt) / 1000.0
        return step * (1 - self.jitter) + step * self.jitter * rand()


@dataclass(frozen=True)
class FetchAttempts:
    """Final fetch result plus how many attempts it took."""
    result: FetchResult
    attempts: int


def fetch_with_retry(
    fetcher: Fetcher,
    provider_id: str,
    timeout: float,
    policy: RetryPolicy,
    cancel_token: Optional[CancellationToken] = None,
    rand: Callable[[], float] = random.random,
) -> FetchAttempts:
    """Fetch a provider payload, retrying transient failures.

    Exceptions escaping the fetcher are classified, never propagated.

    Raises:
        SyncCancelled: If the run is cancelled before or between attempts
    """
    cancel_token = cancel_token or CancellationToken()
    result = FetchResult.transient("not attempted")
    attempt = 0

    for attempt in range(1, policy.max_attempts + 1):
        cancel_token.raise_if_cancelled()
        try:
            result = fetcher.fetch(provider_id, timeout)
        except Exception as e:
            result = classify_exception(e)

        if not result.retryable:
            return FetchAttempts(result, attempt)
        if attempt == policy.max_attempts:
            break

        delay = policy.delay_seconds(attempt - 1, rand)
        logger.debug(
            f"{provider_id}: attempt {attempt}/{policy.max_attempts} failed "
            f"({result.reason}), retrying in {delay:.2f}s"
        )
        if cancel_token.wait(delay):
            cancel_token.raise_if_cancelled()

    logger.warning(f"{provider_id}: giving up after {attempt} attempts ({result.reason})")
    return FetchAttempts(result, attempt)
