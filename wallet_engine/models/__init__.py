from wallet_engine.models.enums import TERMINAL_STATUSES, RejectReason, TransactionStatus
from wallet_engine.models.transaction import ApiKey, AuditLog, Base, Transaction

__all__ = [
    "Base",
    "Transaction",
    "ApiKey",
    "AuditLog",
    "TransactionStatus",
    "RejectReason",
    "TERMINAL_STATUSES",
]
