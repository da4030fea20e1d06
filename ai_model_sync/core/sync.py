"""
Sync orchestration across providers.

Drives fetch -> validate -> diff -> publish for every configured provider
and aggregates per-provider outcomes into one run report.

Failure semantics:
1. A provider's fetch, validation, model id or write-conflict failure is recorded in
   the report and never aborts the run
2. A store failure (StoreUnavailableError) aborts the run and propagates
3. Cancellation stops pending providers; committed updates stay committed
"""

import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from ai_model_sync.config.loader import SyncConfig
from ai_model_sync.fetchers.base import Fetcher
from ai_model_sync.storage.base import DatasetStore, InvalidModelIdError, StoreWriteConflict
from .cancellation import CancellationToken, SyncCancelled
from .change_detector import diff_fields, has_material_change
from .publish import PublishError, PublishSink
from .retry import fetch_with_retry
from .validator import ValidationError, validate


# How often the coordinating thread checks for cancellation.
POLL_INTERVAL_SECONDS = 0.05


class OutcomeStatus(Enum):
    """Per-provider outcome of one run."""
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    REJECTED = "rejected"
    FETCH_FAILED = "fetch_failed"
    CONFLICT = "conflict"
    CANCELLED = "cancelled"


FAILED_STATUSES = (OutcomeStatus.REJECTED, OutcomeStatus.FETCH_FAILED, OutcomeStatus.CONFLICT)


@dataclass(frozen=True)
class ProviderOutcome:
    """What happened to one provider during a run."""
    provider_id: str
    status: OutcomeStatus
    model_id: Optional[str] = None
    reason_code: Optional[str] = None
    message: Optional[str] = None
    attempts: int = 0
    changed_fields: Tuple[str, ...] = ()

    @property
    def failed(self) -> bool:
        return self.status in FAILED_STATUSES


@dataclass
class RunReport:
    """Results of a sync run, one outcome per requested provider."""
    outcomes: List[ProviderOutcome]
    started_at: datetime
    finished_at: Optional[datetime] = None
    cancelled: bool = False
    published: bool = False
    publish_error: Optional[str] = None

    @property
    def counts(self) -> Dict[OutcomeStatus, int]:
        counts = {status: 0 for status in OutcomeStatus}
        for outcome in self.outcomes:
            counts[outcome.status] += 1
        return counts

    @property
    def updated_model_ids(self) -> List[str]:
        return sorted(o.model_id for o in self.outcomes if o.status == OutcomeStatus.UPDATED)

    @property
    def dataset_changed(self) -> bool:
        return any(o.status == OutcomeStatus.UPDATED for o in self.outcomes)

    @property
    def failures(self) -> List[ProviderOutcome]:
        return [o for o in self.outcomes if o.failed]

    def outcome_for(self, provider_id: str) -> ProviderOutcome:
        for outcome in self.outcomes:
            if outcome.provider_id == provider_id:
                return outcome
        raise KeyError(provider_id)


class _RunState:
    """Outcomes shared between workers and the coordinating thread.

    Commits and outcome recording share one gate, so once the run is closed
    no worker can commit or report anything further.
    """

    def __init__(self):
        self._gate = threading.Lock()
        self._outcomes: Dict[str, ProviderOutcome] = {}
        self._closed = False

    def record(self, outcome: ProviderOutcome) -> None:
        with self._gate:
            if not self._closed:
                self._outcomes[outcome.provider_id] = outcome

    def commit(self, write: Callable[[], None], outcome: ProviderOutcome, token: CancellationToken) -> bool:
        """Run ``write`` and record ``outcome`` atomically w.r.t. close().

        Returns False without writing if the run is closed or cancelled.
        """
        with self._gate:
            if self._closed or token.cancelled:
                return False
            write()
            self._outcomes[outcome.provider_id] = outcome
            return True

    def close(self) -> Dict[str, ProviderOutcome]:
        with self._gate:
            self._closed = True
            return dict(self._outcomes)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def run_sync(
    provider_ids: Optional[Iterable[str]],
    config: SyncConfig,
    *,
    store: DatasetStore,
    fetcher: Fetcher,
    publisher: Optional[PublishSink] = None,
    cancel_token: Optional[CancellationToken] = None,
    clock: Callable[[], datetime] = _utcnow,
) -> RunReport:
    """Synchronize the dataset with every requested provider.

    Args:
        provider_ids: Providers to sync; None means ``config.provider_ids``
        config: Timeouts, retry policy and worker pool size
        store: Dataset store to read and publish records
        fetcher: Fetcher (usually a FetcherRegistry) for all providers
        publisher: Sink notified when at least one record was updated
        cancel_token: External cancellation signal
        clock: Source of verification timestamps

    Returns:
        RunReport with exactly one outcome per distinct provider id,
        ordered by provider id

    Raises:
        StoreUnavailableError: If the store fails; no report is produced
    """
    ordered = sorted(set(config.provider_ids if provider_ids is None else provider_ids))
    run_token = cancel_token.child() if cancel_token is not None else CancellationToken()
    state = _RunState()
    report = RunReport(outcomes=[], started_at=clock())

    logger.info(f"Starting sync of {len(ordered)} providers (max {config.max_concurrent_fetches} concurrent)")

    executor = ThreadPoolExecutor(max_workers=config.max_concurrent_fetches, thread_name_prefix="model-sync")
    pending = {
        executor.submit(_sync_provider, provider_id, config, store, fetcher, state, run_token, clock)
        for provider_id in ordered
    }
    try:
        while pending and not run_token.cancelled:
            done, pending = wait(pending, timeout=POLL_INTERVAL_SECONDS, return_when=FIRST_COMPLETED)
            for future in done:
                error = future.exception()
                if error is not None:
                    logger.error(f"Sync aborted: {error}")
                    run_token.cancel(f"aborted: {error}")
                    state.close()
                    raise error
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    recorded = state.close()
    cancel_reason = run_token.reason or "sync cancelled"
    report.outcomes = [
        recorded.get(provider_id) or ProviderOutcome(
            provider_id=provider_id,
            status=OutcomeStatus.CANCELLED,
            reason_code="cancelled",
            message=cancel_reason,
        )
        for provider_id in ordered
    ]
    report.cancelled = any(o.status == OutcomeStatus.CANCELLED for o in report.outcomes)
    report.finished_at = clock()

    counts = report.counts
    summary = ", ".join(f"{counts[status]} {status.value}" for status in OutcomeStatus if counts[status])
    logger.info(f"Sync finished: {summary or 'no providers requested'}")

    if report.dataset_changed and publisher is not None:
        try:
            publisher.notify(report)
            report.published = True
        except PublishError as e:
            logger.error(f"Dataset changed but publish signal failed: {e}")
            report.publish_error = str(e)

    return report


def _sync_provider(
    provider_id: str,
    config: SyncConfig,
    store: DatasetStore,
    fetcher: Fetcher,
    state: _RunState,
    token: CancellationToken,
    clock: Callable[[], datetime],
) -> None:
    """Run the fetch -> validate -> diff -> publish sequence for one provider."""
    try:
        fetched = fetch_with_retry(
            fetcher, provider_id, config.timeout_seconds, config.retry_policy(), token
        )
    except SyncCancelled:
        return

    result = fetched.result
    if not result.ok:
        logger.warning(f"{provider_id}: fetch failed after {fetched.attempts} attempt(s): {result.reason}")
        state.record(ProviderOutcome(
            provider_id=provider_id,
            status=OutcomeStatus.FETCH_FAILED,
            reason_code=result.status.value,
            message=result.reason,
            attempts=fetched.attempts,
        ))
        return

    try:
        record = validate(result.payload, model_id=provider_id, verified_at=clock())
    except ValidationError as e:
        logger.warning(f"{provider_id}: rejected payload: {e}")
        claimed_id = result.payload.get("modelId") if isinstance(result.payload, dict) else None
        state.record(ProviderOutcome(
            provider_id=provider_id,
            status=OutcomeStatus.REJECTED,
            model_id=claimed_id if isinstance(claimed_id, str) else provider_id,
            reason_code=e.reason.value,
            message=str(e),
            attempts=fetched.attempts,
        ))
        return

    with store.lock(record.model_id):
        try:
            existing = store.get(record.model_id)
        except InvalidModelIdError as e:
            logger.warning(f"{provider_id}: rejected model id: {e}")
            state.record(ProviderOutcome(
                provider_id=provider_id,
                status=OutcomeStatus.REJECTED,
                model_id=record.model_id,
                reason_code="invalid_model_id",
                message=str(e),
                attempts=fetched.attempts,
            ))
            return
        if not has_material_change(existing, record):
            logger.debug(f"{provider_id}: {record.model_id} unchanged")
            state.record(ProviderOutcome(
                provider_id=provider_id,
                status=OutcomeStatus.UNCHANGED,
                model_id=record.model_id,
                attempts=fetched.attempts,
            ))
            return

        changed = tuple(diff_fields(existing, record))
        outcome = ProviderOutcome(
            provider_id=provider_id,
            status=OutcomeStatus.UPDATED,
            model_id=record.model_id,
            attempts=fetched.attempts,
            changed_fields=changed,
        )
        try:
            committed = state.commit(lambda: store.upsert(record), outcome, token)
        except StoreWriteConflict as e:
            logger.error(f"{provider_id}: write conflict: {e}")
            state.record(ProviderOutcome(
                provider_id=provider_id,
                status=OutcomeStatus.CONFLICT,
                model_id=record.model_id,
                reason_code="store_write_conflict",
                message=str(e),
                attempts=fetched.attempts,
            ))
            return

    if committed:
        logger.info(f"{provider_id}: published {record.model_id} ({', '.join(changed)} changed)")
