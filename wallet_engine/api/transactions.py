"""
Transaction query and trace endpoints (scoped to the calling merchant).

GET /v1/transactions/{reference}        - Current state of one charge.
GET /v1/transactions/{reference}/trace  - Charge plus its full audit trail.
"""

import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from wallet_engine.api.deps import get_merchant, get_transaction_store
from wallet_engine.errors import StoreError
from wallet_engine.models.transaction import Transaction
from wallet_engine.store.api_keys import Merchant
from wallet_engine.store.transactions import TransactionStore

router = APIRouter(prefix="/v1/transactions", tags=["transactions"])


class TransactionDetail(BaseModel):
    id: str
    reference: str
    merchant_id: str
    provider: str
    channel: Optional[str]
    amount: float
    currency: str
    payer_account: str
    status: str
    provider_transaction_id: Optional[str]
    provider_response_code: Optional[str]
    provider_response_desc: Optional[str]
    created_at: Optional[str]
    updated_at: Optional[str]
    completed_at: Optional[str]


class AuditEntry(BaseModel):
    id: int
    action: str
    details: Optional[dict] = None
    timestamp: Optional[str]


class TransactionTrace(BaseModel):
    transaction: TransactionDetail
    audit_trail: list[AuditEntry]


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _transaction_to_detail(t: Transaction) -> TransactionDetail:
    return TransactionDetail(
        id=t.id,
        reference=t.reference,
        merchant_id=t.merchant_id,
        provider=t.provider,
        channel=t.channel,
        amount=t.amount,
        currency=t.currency,
        payer_account=t.payer_account,
        status=t.status,
        provider_transaction_id=t.provider_transaction_id,
        provider_response_code=t.provider_response_code,
        provider_response_desc=t.provider_response_desc,
        created_at=_iso(t.created_at),
        updated_at=_iso(t.updated_at),
        completed_at=_iso(t.completed_at),
    )


async def _load(store: TransactionStore, reference: str, merchant: Merchant) -> Transaction:
    try:
        transaction = await store.find_by_reference(reference, merchant.merchant_id)
    except StoreError:
        raise HTTPException(status_code=500, detail="Could not read transaction")
    if transaction is None:
        raise HTTPException(status_code=404, detail=f"Transaction not found: {reference}")
    return transaction


@router.get("/{reference}", response_model=TransactionDetail)
async def get_transaction(
    reference: str,
    merchant: Merchant = Depends(get_merchant),
    store: TransactionStore = Depends(get_transaction_store),
):
    """Get a single transaction by the merchant's reference."""
    return _transaction_to_detail(await _load(store, reference, merchant))


@router.get("/{reference}/trace", response_model=TransactionTrace)
async def get_transaction_trace(
    reference: str,
    merchant: Merchant = Depends(get_merchant),
    store: TransactionStore = Depends(get_transaction_store),
):
    """
    Full audit trail for a transaction.

    Returns the transaction plus every status write recorded against it,
    ordered chronologically: creation, initiation, each reconciliation
    outcome.
    """
    transaction = await _load(store, reference, merchant)
    try:
        logs = await store.list_events(transaction.id)
    except StoreError:
        raise HTTPException(status_code=500, detail="Could not read audit trail")

    audit_trail = []
    for log in logs:
        details = None
        if log.details:
            try:
                details = json.loads(log.details)
            except (json.JSONDecodeError, TypeError):
                details = {"raw": log.details}

        audit_trail.append(AuditEntry(
            id=log.id,
            action=log.action,
            details=details,
            timestamp=_iso(log.timestamp),
        ))

    return TransactionTrace(
        transaction=_transaction_to_detail(transaction),
        audit_trail=audit_trail,
    )
