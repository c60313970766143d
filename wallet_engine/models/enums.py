"""Enumerations for the wallet charge domain model."""

from enum import Enum


class TransactionStatus(str, Enum):
    """Canonical lifecycle states for a charge."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


TERMINAL_STATUSES = frozenset({TransactionStatus.SUCCESS.value, TransactionStatus.FAILED.value})


class RejectReason(str, Enum):
    """Categorized reasons for rejecting a charge request before any provider call."""

    UNSUPPORTED_METHOD = "unsupported_method"
    INVALID_REFERENCE = "invalid_reference"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_PAYER_ACCOUNT = "invalid_payer_account"
    MISSING_MERCHANT = "missing_merchant"
