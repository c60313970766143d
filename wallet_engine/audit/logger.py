"""
Immutable audit trail for wallet transactions.

Every state change gets an append-only audit log entry with:
  - Transaction ID (which charge)
  - Action (transaction_created, status_changed, retry_exhausted, ...)
  - Details (provider codes, previous/new status, reasons)
  - Timestamp (UTC)

Entries are added to the same session as the change they describe, so they
commit or roll back together with it. They are never modified or deleted.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from wallet_engine.models.transaction import AuditLog

logger = logging.getLogger("wallet_engine.audit")


def log_event(
    session: AsyncSession,
    action: str,
    transaction_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
    timestamp: Optional[datetime] = None,
) -> AuditLog:
    """
    Add an immutable audit log entry to the session.

    Args:
        session: Database session holding the change being audited.
        action: What happened (e.g. "transaction_created", "status_changed").
        transaction_id: The transaction this event relates to.
        details: Arbitrary context (serialized to JSON).
        timestamp: Event time; defaults to now (UTC).

    Returns:
        The AuditLog record (not yet committed).
    """
    entry = AuditLog(
        transaction_id=transaction_id,
        action=action,
        details=json.dumps(details, default=str) if details else None,
        timestamp=timestamp or datetime.now(timezone.utc),
    )
    session.add(entry)
    logger.info(
        "AUDIT | txn=%s action=%s | %s",
        transaction_id or "-",
        action,
        json.dumps(details, default=str)[:200] if details else "",
    )
    return entry
