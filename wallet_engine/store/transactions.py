"""
Durable keyed record store for wallet transactions.

Each operation runs in its own short session. Status writes are conditional
UPDATEs (`... WHERE status = 'PENDING'`), which makes the database the
serialization point between the charge orchestrator and the reconciliation
scheduler:

  - a SUCCESS / FAILED row is never written again (monotonic status)
  - completed_at is stamped once, on the first terminal transition
  - only non-null fields of an update are applied
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wallet_engine.audit.logger import log_event
from wallet_engine.errors import DuplicateKeyError, StoreError
from wallet_engine.models.enums import TERMINAL_STATUSES, TransactionStatus
from wallet_engine.models.transaction import AuditLog, Transaction

logger = logging.getLogger("wallet_engine.store")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def dump_payload(payload: Any) -> Optional[str]:
    if payload is None:
        return None
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, default=str)


@dataclass
class StatusUpdate:
    """Partial update; None fields are left untouched."""

    status: Optional[TransactionStatus] = None
    provider_transaction_id: Optional[str] = None
    provider_response_code: Optional[str] = None
    provider_response_desc: Optional[str] = None
    provider_payload: Any = None

    def values(self) -> dict[str, Any]:
        values: dict[str, Any] = {}
        if self.status is not None:
            values["status"] = TransactionStatus(self.status).value
        if self.provider_transaction_id is not None:
            values["provider_transaction_id"] = self.provider_transaction_id
        if self.provider_response_code is not None:
            values["provider_response_code"] = self.provider_response_code
        if self.provider_response_desc is not None:
            values["provider_response_desc"] = self.provider_response_desc
        if self.provider_payload is not None:
            values["provider_payload"] = dump_payload(self.provider_payload)
        return values


class TransactionStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or _utcnow

    async def find_by_reference(self, reference: str, merchant_id: str) -> Optional[Transaction]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Transaction).where(
                        Transaction.reference == reference,
                        Transaction.merchant_id == merchant_id,
                    )
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Error getting transaction reference=%s: %s", reference, e)
            raise StoreError(f"Failed to read transaction {reference}") from e

    async def find_by_provider_txn_id(
        self,
        provider_transaction_id: str,
        merchant_id: Optional[str] = None,
    ) -> Optional[Transaction]:
        try:
            async with self._session_factory() as session:
                return await self._by_provider_txn_id(session, provider_transaction_id, merchant_id)
        except SQLAlchemyError as e:
            logger.error("Error getting transaction by provider txn id=%s: %s", provider_transaction_id, e)
            raise StoreError(f"Failed to read transaction {provider_transaction_id}") from e

    async def create(self, transaction: Transaction) -> Transaction:
        """
        Insert a new transaction.

        Raises:
            DuplicateKeyError: (reference, merchant_id) already exists. The
                caller re-fetches and treats it as an idempotent hit.
            StoreError: Any other persistence failure.
        """
        now = self._clock()
        transaction.created_at = transaction.created_at or now
        transaction.updated_at = transaction.updated_at or transaction.created_at
        if transaction.status in TERMINAL_STATUSES and transaction.completed_at is None:
            transaction.completed_at = transaction.updated_at

        try:
            async with self._session_factory() as session:
                session.add(transaction)
                await session.flush()
                log_event(session, "transaction_created", transaction_id=transaction.id, details={
                    "reference": transaction.reference,
                    "merchant_id": transaction.merchant_id,
                    "provider": transaction.provider,
                    "amount": transaction.amount,
                    "status": transaction.status,
                    "provider_transaction_id": transaction.provider_transaction_id,
                    "provider_response_code": transaction.provider_response_code,
                }, timestamp=now)
                await session.commit()
                return transaction
        except IntegrityError as e:
            logger.info("Duplicate reference: %s (merchant %s)", transaction.reference, transaction.merchant_id)
            raise DuplicateKeyError(transaction.reference, transaction.merchant_id) from e
        except SQLAlchemyError as e:
            logger.error("Error saving transaction reference=%s: %s", transaction.reference, e)
            raise StoreError(f"Failed to save transaction {transaction.reference}") from e

    async def update_status(
        self,
        status_update: StatusUpdate,
        *,
        reference: Optional[str] = None,
        provider_transaction_id: Optional[str] = None,
        merchant_id: Optional[str] = None,
        action: str = "status_updated",
        details: Optional[dict[str, Any]] = None,
    ) -> Optional[Transaction]:
        """
        Apply a partial update to a PENDING transaction.

        The row is located by (reference, merchant_id) or by provider
        transaction id. A row that is already SUCCESS / FAILED is returned
        unchanged: terminal statuses are final.

        Returns:
            The stored transaction after the write, or None if not found.
        """
        if reference is None and provider_transaction_id is None:
            raise ValueError("update_status needs a reference or a provider_transaction_id")

        try:
            async with self._session_factory() as session:
                if reference is not None:
                    if merchant_id is None:
                        raise ValueError("updating by reference requires merchant_id")
                    result = await session.execute(
                        select(Transaction).where(
                            Transaction.reference == reference,
                            Transaction.merchant_id == merchant_id,
                        )
                    )
                    txn = result.scalar_one_or_none()
                else:
                    txn = await self._by_provider_txn_id(session, provider_transaction_id, merchant_id)

                if txn is None:
                    return None

                requested = status_update.status
                if txn.status in TERMINAL_STATUSES:
                    if requested is not None and TransactionStatus(requested).value != txn.status:
                        logger.warning(
                            "Refusing %s -> %s for terminal transaction %s",
                            txn.status,
                            TransactionStatus(requested).value,
                            txn.reference,
                        )
                    return txn

                now = self._clock()
                values = status_update.values()
                values["updated_at"] = now
                if requested is not None and TransactionStatus(requested).is_terminal:
                    values["completed_at"] = now

                result = await session.execute(
                    update(Transaction)
                    .where(
                        Transaction.id == txn.id,
                        Transaction.status == TransactionStatus.PENDING.value,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount == 0:
                    # Another writer made it terminal between our read and write
                    await session.rollback()
                    logger.info("Transaction %s already finalized by a concurrent writer", txn.reference)
                    return await session.get(Transaction, txn.id, populate_existing=True)

                log_event(session, action, transaction_id=txn.id, details={
                    "from": txn.status,
                    "to": values.get("status", txn.status),
                    "provider_response_code": status_update.provider_response_code,
                    "provider_response_desc": status_update.provider_response_desc,
                    **(details or {}),
                }, timestamp=now)
                await session.commit()
                return await session.get(Transaction, txn.id, populate_existing=True)
        except SQLAlchemyError as e:
            logger.error("Error updating transaction %s: %s", reference or provider_transaction_id, e)
            raise StoreError(f"Failed to update transaction {reference or provider_transaction_id}") from e

    async def list_pending_older_than(self, threshold_seconds: float, limit: int = 50) -> list[Transaction]:
        """PENDING transactions not written for `threshold_seconds`, oldest first."""
        cutoff = self._clock() - timedelta(seconds=threshold_seconds)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Transaction)
                    .where(
                        Transaction.status == TransactionStatus.PENDING.value,
                        Transaction.completed_at.is_(None),
                        Transaction.updated_at < cutoff,
                    )
                    .order_by(Transaction.updated_at.asc(), Transaction.created_at.asc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Error getting pending transactions: %s", e)
            raise StoreError("Failed to list pending transactions") from e

    async def list_events(self, transaction_id: str) -> list[AuditLog]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(AuditLog)
                    .where(AuditLog.transaction_id == transaction_id)
                    .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Error getting audit trail for %s: %s", transaction_id, e)
            raise StoreError(f"Failed to read audit trail for {transaction_id}") from e

    @staticmethod
    async def _by_provider_txn_id(
        session: AsyncSession,
        provider_transaction_id: str,
        merchant_id: Optional[str],
    ) -> Optional[Transaction]:
        stmt = select(Transaction).where(Transaction.provider_transaction_id == provider_transaction_id)
        if merchant_id is not None:
            stmt = stmt.where(Transaction.merchant_id == merchant_id)
        result = await session.execute(stmt.order_by(Transaction.created_at.asc()))
        return result.scalars().first()
