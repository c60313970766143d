"""
Charge request checks with categorized reject reasons.

Before any provider is contacted we verify:
  1. Merchant is known (authenticated upstream)
  2. Reference is a non-empty string
  3. Amount is a finite positive number
  4. Payer account matches the provider's subscriber-number shape

Each check returns a structured result so callers can surface the exact
reason; the orchestrator turns a failed result into a ValidationError.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Optional

from wallet_engine.models.enums import RejectReason

MAX_REFERENCE_LENGTH = 100


@dataclass
class ValidationResult:
    """Result of validating a charge request."""

    valid: bool
    reason: Optional[RejectReason] = None
    message: str = ""


def check_charge_request(
    merchant_id: Optional[str],
    reference: Any,
    amount: Any,
    payer_account: Any,
    payer_account_pattern: re.Pattern,
) -> ValidationResult:
    """
    Check whether a charge request is well-formed.

    Args:
        merchant_id: Owning merchant (from API key authentication).
        reference: Caller-supplied idempotency key.
        amount: Charge amount in PKR.
        payer_account: Customer wallet number.
        payer_account_pattern: Provider's expected subscriber-number shape.

    Returns:
        ValidationResult indicating pass/fail with categorized reason.
    """
    if not merchant_id:
        return ValidationResult(
            valid=False,
            reason=RejectReason.MISSING_MERCHANT,
            message="merchant is required",
        )

    if not isinstance(reference, str) or not reference.strip():
        return ValidationResult(
            valid=False,
            reason=RejectReason.INVALID_REFERENCE,
            message="reference is required and must be a string",
        )

    if len(reference) > MAX_REFERENCE_LENGTH:
        return ValidationResult(
            valid=False,
            reason=RejectReason.INVALID_REFERENCE,
            message=f"reference must be at most {MAX_REFERENCE_LENGTH} characters",
        )

    # bool is an int subclass; True is not an amount
    if (
        isinstance(amount, bool)
        or not isinstance(amount, (int, float))
        or not math.isfinite(amount)
        or amount <= 0
    ):
        return ValidationResult(
            valid=False,
            reason=RejectReason.INVALID_AMOUNT,
            message="amount must be a positive number",
        )

    if not isinstance(payer_account, str) or not payer_account_pattern.fullmatch(payer_account):
        return ValidationResult(
            valid=False,
            reason=RejectReason.INVALID_PAYER_ACCOUNT,
            message="mobile must be a valid Pakistani number in 03XXXXXXXXX format",
        )

    return ValidationResult(valid=True)
