"""SQLAlchemy models for the wallet charge engine."""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored here is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Transaction(Base):
    """
    A single wallet charge against an external provider.

    Created once by the charge orchestrator and advanced to a terminal
    status (SUCCESS / FAILED) either immediately or later by the
    reconciliation scheduler. The (reference, merchant_id) pair is the
    caller's idempotency key; at most one row ever exists per pair.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("reference", "merchant_id", name="uq_reference_merchant"),
    )

    id = Column(String(12), primary_key=True, default=_new_id)
    reference = Column(String(100), nullable=False, index=True)
    merchant_id = Column(String(50), nullable=False, index=True)
    provider = Column(String(30), nullable=False)  # "easypaisa", "jazzcash", "mock"
    channel = Column(String(20), nullable=True)  # "MA", "MWALLET"
    amount = Column(Float, nullable=False)
    currency = Column(String(3), default="PKR")
    payer_account = Column(String(20), nullable=False)  # 03XXXXXXXXX

    status = Column(String(10), nullable=False, default="PENDING", index=True)
    provider_transaction_id = Column(String(100), nullable=True, index=True)
    provider_response_code = Column(String(20), nullable=True)
    provider_response_desc = Column(Text, nullable=True)
    provider_payload = Column(Text, nullable=True)  # JSON snapshot of the raw response

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    audit_logs = relationship("AuditLog", back_populates="transaction", lazy="raise")

    @property
    def payload(self) -> Optional[dict[str, Any]]:
        if not self.provider_payload:
            return None
        try:
            return json.loads(self.provider_payload)
        except (json.JSONDecodeError, TypeError):
            return {"raw": self.provider_payload}


class ApiKey(Base):
    """Merchant API key used to authenticate charge requests."""

    __tablename__ = "api_keys"

    api_key = Column(String(100), primary_key=True)
    merchant_id = Column(String(50), nullable=False, index=True)
    merchant_name = Column(String(200), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    last_used_at = Column(DateTime(timezone=True), nullable=True)


class AuditLog(Base):
    """
    Immutable audit trail entry.

    Every transaction creation and status write gets an entry, written in
    the same database transaction as the change itself. Append-only.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(String(12), ForeignKey("transactions.id"), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)

    transaction = relationship("Transaction", back_populates="audit_logs")
