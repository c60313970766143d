"""
Error taxonomy for the charge engine.

  ValidationError   - caller input malformed, rejected before any provider call
  NetworkError      - transport failure or timeout talking to a provider (retryable)
  ProviderError     - structured rejection returned by the provider
  DuplicateKeyError - (reference, merchant_id) already stored; resolved by re-fetch
  StoreError        - persistence failure
"""

from typing import Any, Optional

from wallet_engine.models.enums import RejectReason


class WalletEngineError(Exception):
    """Base exception for the charge engine."""


class ValidationError(WalletEngineError):
    def __init__(self, reason: RejectReason, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


class NetworkError(WalletEngineError):
    """Transport failure or timeout. The provider-side outcome is unknown."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        provider_transaction_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.provider = provider
        # Set when the request already carried an id the provider can be asked about
        self.provider_transaction_id = provider_transaction_id


class ProviderError(WalletEngineError):
    """The provider answered, but with an error payload or an unusable body."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
        raw: Any = None,
        provider: Optional[str] = None,
        provider_transaction_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status
        self.raw = raw
        self.provider = provider
        self.provider_transaction_id = provider_transaction_id


class DuplicateKeyError(WalletEngineError):
    def __init__(self, reference: str, merchant_id: str):
        super().__init__(f"Transaction already exists: reference={reference} merchant={merchant_id}")
        self.reference = reference
        self.merchant_id = merchant_id


class StoreError(WalletEngineError):
    """Database failure while reading or writing transactions."""
