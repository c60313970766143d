"""
Charge orchestrator: the idempotent create-or-fetch protocol.

The flow for each charge request:

  1. Resolve the provider and validate the request (no provider call on failure)
  2. Look up (reference, merchant_id); an existing row is returned as-is
  3. Call the provider's initiate
  4. Normalize the response and persist the transaction
  5. Return the stored state

Idempotency guarantees:
  - Each (reference, merchant_id) pair has at most one transaction row
  - A duplicate request never reaches the provider a second time
  - Concurrent same-key requests in this process are serialized by a keyed
    lock; across processes the store's unique constraint decides, and a
    losing insert is resolved by re-fetching the winner

Network-error policy (`charge_network_error_policy`):
  - "fail": the provider is called first and a transport failure is
    returned as FAILED without persisting anything
  - "pending": a PENDING placeholder is persisted before the provider call;
    a transport failure leaves it PENDING for the reconciliation scheduler
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from wallet_engine.engine.locks import KeyedLock
from wallet_engine.engine.status import NormalizedStatus, from_stored
from wallet_engine.engine.validation import check_charge_request
from wallet_engine.errors import DuplicateKeyError, NetworkError, ProviderError, StoreError, ValidationError
from wallet_engine.models.enums import TransactionStatus
from wallet_engine.models.transaction import Transaction
from wallet_engine.providers.base import PaymentProvider, ProviderResponse
from wallet_engine.providers.registry import ProviderRegistry
from wallet_engine.store.transactions import StatusUpdate, TransactionStore, dump_payload

logger = logging.getLogger("wallet_engine.orchestrator")

NETWORK_ERROR_POLICIES = ("fail", "pending")


@dataclass
class ChargeResult:
    """Caller-facing outcome of a charge request."""

    success: bool
    status: TransactionStatus
    reference: str
    provider: str
    amount: float
    currency: str
    http_status: int
    provider_transaction_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    provider_meta: dict[str, Any] = field(default_factory=dict)
    replayed: bool = False  # True when served from an existing transaction


class ChargeOrchestrator:
    def __init__(
        self,
        store: TransactionStore,
        registry: ProviderRegistry,
        network_error_policy: str = "fail",
        locks: Optional[KeyedLock] = None,
    ):
        if network_error_policy not in NETWORK_ERROR_POLICIES:
            raise ValueError(f"Unknown network error policy: {network_error_policy}")
        self._store = store
        self._registry = registry
        self._policy = network_error_policy
        self._locks = locks or KeyedLock()

    async def charge(
        self,
        merchant_id: str,
        reference: str,
        amount: float,
        payer_account: str,
        provider_name: str,
    ) -> ChargeResult:
        """
        Charge a payer's wallet exactly once per (reference, merchant_id).

        Raises:
            ValidationError: Malformed request or unsupported provider.
            StoreError: Persistence failed. If the provider was already
                called, that call is not undone.
        """
        provider = self._registry.resolve(provider_name)

        check = check_charge_request(merchant_id, reference, amount, payer_account, provider.payer_account_pattern)
        if not check.valid:
            raise ValidationError(check.reason, check.message)

        logger.info(
            "Initiating %s charge reference=%s merchant=%s amount=%s",
            provider.name,
            reference,
            merchant_id,
            amount,
        )

        async with self._locks.hold((merchant_id, reference)):
            existing = await self._store.find_by_reference(reference, merchant_id)
            if existing is not None:
                logger.info("Duplicate reference=%s, returning existing transaction", reference)
                return self._from_transaction(existing)

            if self._policy == "pending":
                return await self._charge_with_placeholder(provider, merchant_id, reference, amount, payer_account)
            return await self._charge_direct(provider, merchant_id, reference, amount, payer_account)

    async def _charge_direct(
        self,
        provider: PaymentProvider,
        merchant_id: str,
        reference: str,
        amount: float,
        payer_account: str,
    ) -> ChargeResult:
        try:
            response = await provider.initiate(reference, amount, payer_account)
        except NetworkError as e:
            if e.provider_transaction_id:
                logger.warning(
                    "Charge reference=%s unanswered but sent as provider id %s; not persisted",
                    reference,
                    e.provider_transaction_id,
                )
            logger.error("Charge reference=%s: %s (nothing persisted)", reference, e)
            return self._failure(provider, reference, amount, error_code="PROVIDER_ERROR", message=str(e))
        except ProviderError as e:
            if e.provider_transaction_id:
                logger.warning(
                    "Charge reference=%s rejected but provider assigned id %s; not persisted",
                    reference,
                    e.provider_transaction_id,
                )
            logger.error("Charge reference=%s rejected: %s (code=%s)", reference, e, e.code)
            return self._provider_failure(provider, reference, amount, e)

        normalized = provider.normalize(response)
        transaction = Transaction(
            reference=reference,
            merchant_id=merchant_id,
            provider=provider.name,
            channel=provider.channel,
            amount=amount,
            currency=provider.currency,
            payer_account=payer_account,
            status=normalized.status.value,
            provider_transaction_id=response.provider_transaction_id,
            provider_response_code=response.response_code,
            provider_response_desc=response.response_desc,
            provider_payload=dump_payload(response.raw),
        )

        try:
            stored = await self._store.create(transaction)
        except DuplicateKeyError:
            logger.warning(
                "Reference=%s was stored concurrently; provider charge %s is superseded",
                reference,
                response.provider_transaction_id,
            )
            return await self._refetch(reference, merchant_id)
        except StoreError:
            logger.error(
                "Provider charge for reference=%s (%s, status %s) could not be persisted",
                reference,
                response.provider_transaction_id,
                normalized.status.value,
            )
            raise

        return self._result(stored, normalized, response)

    async def _charge_with_placeholder(
        self,
        provider: PaymentProvider,
        merchant_id: str,
        reference: str,
        amount: float,
        payer_account: str,
    ) -> ChargeResult:
        placeholder = Transaction(
            reference=reference,
            merchant_id=merchant_id,
            provider=provider.name,
            channel=provider.channel,
            amount=amount,
            currency=provider.currency,
            payer_account=payer_account,
            status=TransactionStatus.PENDING.value,
        )
        try:
            await self._store.create(placeholder)
        except DuplicateKeyError:
            return await self._refetch(reference, merchant_id)

        try:
            response = await provider.initiate(reference, amount, payer_account)
        except NetworkError as e:
            logger.warning("Charge reference=%s: %s; left PENDING for reconciliation", reference, e)
            if e.provider_transaction_id:
                await self._store.update_status(
                    StatusUpdate(provider_transaction_id=e.provider_transaction_id),
                    reference=reference,
                    merchant_id=merchant_id,
                    action="initiate_unanswered",
                )
            return ChargeResult(
                success=True,
                status=TransactionStatus.PENDING,
                reference=reference,
                provider=provider.name,
                amount=amount,
                currency=provider.currency,
                http_status=202,
                provider_transaction_id=e.provider_transaction_id,
                error_message="Provider did not answer; status will be reconciled",
            )
        except ProviderError as e:
            logger.error("Charge reference=%s rejected: %s (code=%s)", reference, e, e.code)
            stored = await self._store.update_status(
                StatusUpdate(
                    status=TransactionStatus.FAILED,
                    provider_transaction_id=e.provider_transaction_id,
                    provider_response_code=e.code,
                    provider_response_desc=e.message,
                    provider_payload=e.raw,
                ),
                reference=reference,
                merchant_id=merchant_id,
                action="initiate_rejected",
            )
            if stored is not None and stored.status != TransactionStatus.FAILED.value:
                return self._from_transaction(stored)
            return self._provider_failure(provider, reference, amount, e)

        normalized = provider.normalize(response)
        stored = await self._store.update_status(
            StatusUpdate(
                status=normalized.status,
                provider_transaction_id=response.provider_transaction_id,
                provider_response_code=response.response_code,
                provider_response_desc=response.response_desc,
                provider_payload=response.raw,
            ),
            reference=reference,
            merchant_id=merchant_id,
            action="initiated",
        )
        if stored is None:
            raise StoreError(f"Placeholder for reference {reference} disappeared")
        return self._result(stored, normalized, response)

    async def _refetch(self, reference: str, merchant_id: str) -> ChargeResult:
        existing = await self._store.find_by_reference(reference, merchant_id)
        if existing is None:
            raise StoreError(f"Duplicate reference {reference} reported but no row found")
        return self._from_transaction(existing)

    def _result(self, stored: Transaction, normalized: NormalizedStatus, response: ProviderResponse) -> ChargeResult:
        if stored.status != normalized.status.value:
            # A concurrent writer finalized it first; report what is stored
            return self._from_transaction(stored, replayed=False)
        return ChargeResult(
            success=normalized.success,
            status=normalized.status,
            reference=stored.reference,
            provider=stored.provider,
            amount=stored.amount,
            currency=stored.currency,
            http_status=normalized.http_status,
            provider_transaction_id=stored.provider_transaction_id,
            error_code=normalized.error_code,
            error_message=normalized.error_message,
            provider_meta={
                "providerResponseCode": response.response_code,
                "providerResponseDesc": response.response_desc,
                **response.meta,
            },
        )

    @staticmethod
    def _from_transaction(transaction: Transaction, replayed: bool = True) -> ChargeResult:
        view = from_stored(transaction.status)
        return ChargeResult(
            success=view.success,
            status=view.status,
            reference=transaction.reference,
            provider=transaction.provider,
            amount=transaction.amount,
            currency=transaction.currency,
            http_status=view.http_status,
            provider_transaction_id=transaction.provider_transaction_id,
            error_code=view.error_code,
            error_message=view.error_message,
            provider_meta={
                "providerResponseCode": transaction.provider_response_code,
                "providerResponseDesc": transaction.provider_response_desc,
            },
            replayed=replayed,
        )

    @staticmethod
    def _failure(
        provider: PaymentProvider,
        reference: str,
        amount: float,
        error_code: str,
        message: str,
        http_status: int = 500,
        meta: Optional[dict[str, Any]] = None,
    ) -> ChargeResult:
        return ChargeResult(
            success=False,
            status=TransactionStatus.FAILED,
            reference=reference,
            provider=provider.name,
            amount=amount,
            currency=provider.currency,
            http_status=http_status,
            error_code=error_code,
            error_message=message,
            provider_meta=meta or {},
        )

    def _provider_failure(self, provider: PaymentProvider, reference: str, amount: float, e: ProviderError) -> ChargeResult:
        code = f"{provider.rules.error_prefix}{e.code}" if e.code else "PROVIDER_ERROR"
        return self._failure(
            provider,
            reference,
            amount,
            error_code=code,
            message=e.message or "Payment processing failed",
            http_status=e.http_status if e.http_status and e.http_status >= 400 else 500,
            meta={"providerResponseCode": e.code, "providerResponseDesc": e.message},
        )
