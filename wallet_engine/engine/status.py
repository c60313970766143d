"""
Provider status normalization.

Every provider reports outcomes in its own vocabulary. This module maps a
(status string, response code) pair onto the three canonical states with a
fixed decision order:

  1. Response code not in the provider's "call accepted" set  → FAILED
  2. Status matches a paid / settled pattern                   → SUCCESS
  3. Status matches a failed / reversed / expired pattern      → FAILED
  4. Anything else, including an empty or unknown status       → PENDING

An unrecognized status is never an error: it degrades to PENDING and the
reconciliation scheduler makes the final call later.
"""

from dataclasses import dataclass
from typing import Any, Optional

from wallet_engine.models.enums import TransactionStatus


@dataclass(frozen=True)
class StatusRules:
    """Provider-specific constants consumed by normalize()."""

    error_prefix: str
    accepted_codes: frozenset[str]
    success_statuses: frozenset[str]
    failure_statuses: frozenset[str]


@dataclass
class NormalizedStatus:
    status: TransactionStatus
    success: bool
    http_status: int
    error_code: Optional[str] = None
    error_message: Optional[str] = None


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize(
    provider_status: Optional[str],
    provider_code: Optional[str],
    rules: StatusRules,
) -> NormalizedStatus:
    """
    Map a provider response onto SUCCESS / PENDING / FAILED.

    Args:
        provider_status: Provider transaction status string, if any.
        provider_code: Provider response code for the call.
        rules: The provider's accepted codes and status patterns.

    Returns:
        Exactly one NormalizedStatus. Never raises.
    """
    code = _clean(provider_code)

    if code not in rules.accepted_codes:
        return NormalizedStatus(
            status=TransactionStatus.FAILED,
            success=False,
            http_status=400,
            error_code=f"{rules.error_prefix}{code or 'ERROR'}",
            error_message="Payment initiation failed",
        )

    normalized = _clean(provider_status).upper()

    if normalized in rules.success_statuses:
        return NormalizedStatus(status=TransactionStatus.SUCCESS, success=True, http_status=200)

    if normalized in rules.failure_statuses:
        return NormalizedStatus(
            status=TransactionStatus.FAILED,
            success=False,
            http_status=400,
            error_code=f"{rules.error_prefix}{code or 'ERROR'}",
            error_message=f"Transaction {normalized}",
        )

    return NormalizedStatus(status=TransactionStatus.PENDING, success=True, http_status=202)


def from_stored(status: str) -> NormalizedStatus:
    """Caller-facing view of a status already persisted (idempotent replay)."""
    if status == TransactionStatus.SUCCESS.value:
        return NormalizedStatus(status=TransactionStatus.SUCCESS, success=True, http_status=200)
    if status == TransactionStatus.FAILED.value:
        return NormalizedStatus(
            status=TransactionStatus.FAILED,
            success=False,
            http_status=400,
            error_code="TRANSACTION_FAILED",
            error_message="Transaction failed",
        )
    return NormalizedStatus(status=TransactionStatus.PENDING, success=True, http_status=202)
