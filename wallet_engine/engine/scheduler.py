"""
Background reconciliation of PENDING transactions.

Every tick (default 10s):
  1. Load PENDING transactions not written for at least 20s, oldest first,
     at most one page (default 50)
  2. For each, skip it unless its last status write is at least
     schedule[attempts] seconds old (the query floor is fixed, the
     required interval grows with every attempt)
  3. Out of attempts → force FAILED ("max retry attempts reached")
  4. Otherwise re-inquire the provider:
       - terminal answer  → persist it, clear the attempt counter
       - still PENDING    → count the attempt, no write
       - inquiry failed   → log it, count the attempt, no write

A still-PENDING answer does not touch the row, so `updated_at` stays pinned
to the last status write while the attempt counter advances.

Ticks run as an APScheduler interval job with max_instances=1, so a slow
tick delays the next one instead of overlapping it. Rows whose charge is
still in flight (their key is held in the shared KeyedLock) are skipped.
One row's failure never stops the rest of the batch, and a failed tick
never stops the job.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from wallet_engine.engine.backoff import DEFAULT_SCHEDULE, AttemptTracker, is_due, is_exhausted
from wallet_engine.engine.locks import KeyedLock
from wallet_engine.errors import NetworkError, ProviderError, StoreError
from wallet_engine.models.enums import TransactionStatus
from wallet_engine.models.transaction import Transaction, as_utc
from wallet_engine.providers.registry import ProviderRegistry
from wallet_engine.store.transactions import StatusUpdate, TransactionStore

logger = logging.getLogger("wallet_engine.scheduler")

MAX_ATTEMPTS_REASON = "max retry attempts reached"
TICK_JOB_ID = "reconciliation_tick"

# Per-row outcomes, named after the TickSummary counters
SKIPPED = "skipped"
RESOLVED = "resolved"
STILL_PENDING = "still_pending"
ERROR = "errors"
EXPIRED = "expired"


@dataclass
class TickSummary:
    scanned: int = 0
    skipped: int = 0
    resolved: int = 0
    still_pending: int = 0
    errors: int = 0
    expired: int = 0

    @property
    def inquired(self) -> int:
        return self.resolved + self.still_pending + self.errors

    def record(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def attempt_key(transaction: Transaction) -> str:
    """Counter key: provider transaction id, or the idempotency key before one exists."""
    if transaction.provider_transaction_id:
        return transaction.provider_transaction_id
    return f"{transaction.merchant_id}:{transaction.reference}"


class ReconciliationScheduler:
    def __init__(
        self,
        store: TransactionStore,
        registry: ProviderRegistry,
        schedule: Sequence[int] = DEFAULT_SCHEDULE,
        tick_seconds: float = 10.0,
        min_age_seconds: float = 20.0,
        page_size: int = 50,
        recover_attempts_from_elapsed: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
        locks: Optional[KeyedLock] = None,
    ):
        if not schedule:
            raise ValueError("retry schedule must not be empty")
        self._store = store
        self._registry = registry
        self._schedule = tuple(schedule)
        self._tick_seconds = tick_seconds
        self._min_age_seconds = min_age_seconds
        self._page_size = page_size
        self._clock = clock or _utcnow
        self._locks = locks or KeyedLock()
        self.attempts = AttemptTracker(self._schedule, recover_from_elapsed=recover_attempts_from_elapsed)
        # Rows created before this moment may have been inquired by an earlier process
        self.started_at = self._clock()
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def run_tick(self) -> TickSummary:
        """One pass over the eligible PENDING transactions."""
        summary = TickSummary()
        try:
            pending = await self._store.list_pending_older_than(self._min_age_seconds, self._page_size)
        except StoreError as e:
            logger.error("Could not list pending transactions: %s", e)
            return summary

        if pending:
            logger.info("Found %d pending transactions to check", len(pending))

        for transaction in pending:
            summary.scanned += 1
            try:
                outcome = await self.process_transaction(transaction)
            except Exception:
                logger.exception("Unexpected error processing %s", transaction.reference)
                outcome = ERROR
            summary.record(outcome)

        return summary

    async def process_transaction(self, transaction: Transaction) -> str:
        """Advance one PENDING transaction if its next attempt is due."""
        charge_key = (transaction.merchant_id, transaction.reference)
        if self._locks.locked(charge_key):
            logger.info("Charge %s is still initiating, skipping", transaction.reference)
            return SKIPPED

        async with self._locks.hold(charge_key):
            return await self._advance(transaction)

    async def _advance(self, transaction: Transaction) -> str:
        now = self._clock()
        key = attempt_key(transaction)
        attempts = self.attempts.get(key, self._inherited_age(transaction, now))

        since_write = (now - as_utc(transaction.updated_at)).total_seconds() if transaction.updated_at else float("inf")
        if not is_due(since_write, attempts, self._schedule):
            return SKIPPED

        if is_exhausted(attempts, self._schedule):
            logger.info("Max attempts reached for %s, marking as FAILED", key)
            await self._store.update_status(
                StatusUpdate(status=TransactionStatus.FAILED, provider_response_desc=MAX_ATTEMPTS_REASON),
                reference=transaction.reference,
                merchant_id=transaction.merchant_id,
                action="retry_exhausted",
                details={"attempts": attempts},
            )
            self.attempts.clear(key)
            return EXPIRED

        logger.info(
            "Attempt %d/%d for transaction %s (reference: %s)",
            attempts + 1,
            len(self._schedule),
            key,
            transaction.reference,
        )

        provider = self._registry.get(transaction.provider)
        if provider is None:
            logger.error("No provider '%s' registered for %s", transaction.provider, transaction.reference)
            self.attempts.record_attempt(key, attempts)
            return ERROR

        lookup = provider.lookup_key(transaction)
        if not lookup:
            logger.warning("No %s to inquire %s with", provider.lookup_field, transaction.reference)
            self.attempts.record_attempt(key, attempts)
            return ERROR

        try:
            response = await provider.inquire(lookup)
        except (NetworkError, ProviderError) as e:
            logger.error("Error inquiring transaction %s: %s", key, e)
            self.attempts.record_attempt(key, attempts)
            return ERROR

        normalized = provider.normalize(response)
        if normalized.status is TransactionStatus.PENDING:
            self.attempts.record_attempt(key, attempts)
            logger.info("Transaction %s still PENDING, will retry later", key)
            return STILL_PENDING

        logger.info("Transaction %s status changed to %s", key, normalized.status.value)
        await self._store.update_status(
            StatusUpdate(
                status=normalized.status,
                provider_transaction_id=response.provider_transaction_id,
                provider_response_code=response.response_code,
                provider_response_desc=response.response_desc,
                provider_payload=response.raw,
            ),
            reference=transaction.reference,
            merchant_id=transaction.merchant_id,
            action="status_changed",
            details={"attempt": attempts + 1, "error_code": normalized.error_code},
        )
        self.attempts.clear(key)
        return RESOLVED

    def _inherited_age(self, transaction: Transaction, now: datetime) -> Optional[float]:
        """Age of a row this process did not see created, else None."""
        if transaction.created_at is None:
            return None
        created_at = as_utc(transaction.created_at)
        if created_at >= self.started_at:
            return None
        return (now - created_at).total_seconds()

    async def _tick_job(self) -> None:
        try:
            summary = await self.run_tick()
        except Exception:
            logger.exception("Reconciliation tick failed")
            return
        if summary.scanned:
            logger.info("Tick finished: %s", summary)

    def start(self) -> None:
        """Register the tick as an interval job. Call from inside the running event loop."""
        if self.running:
            return
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.add_job(
            self._tick_job,
            trigger=IntervalTrigger(seconds=self._tick_seconds),
            id=TICK_JOB_ID,
            name="Reconcile pending transactions",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=int(self._tick_seconds) + 1,
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Started reconciliation scheduler (checking every %ss)", self._tick_seconds)

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Scheduler stopped")
