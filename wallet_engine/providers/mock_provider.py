"""
Mock wallet provider for local development.

Simulates an eventually-consistent provider:
  - Configurable latency (default 100ms)
  - Configurable failure rate (default 5%): timeouts and structured rejections
  - Charges start as INITIATED (PENDING) and settle to PAID on a later inquiry
  - Realistic provider transaction IDs

In production this is replaced by the Easypaisa / JazzCash adapters.
"""

import asyncio
import random
import uuid
from typing import Optional

from wallet_engine.config import settings
from wallet_engine.engine.status import StatusRules
from wallet_engine.errors import NetworkError, ProviderError
from wallet_engine.providers.base import PaymentProvider, ProviderResponse

MOCK_RULES = StatusRules(
    error_prefix="MOCK_",
    accepted_codes=frozenset({"success"}),
    success_statuses=frozenset({"PAID"}),
    failure_statuses=frozenset({"FAILED", "REVERSED", "EXPIRED", "CANCELLED"}),
)


class MockPaymentProvider(PaymentProvider):
    """
    In-process provider with random latency, failures and delayed settlement.

    Inquiry is keyed by the provider transaction id it handed out.
    """

    channel = "MOCK"

    def __init__(
        self,
        failure_rate: Optional[float] = None,
        latency_ms: Optional[int] = None,
        settle_rate: Optional[float] = None,
    ):
        super().__init__()
        self._failure_rate = failure_rate if failure_rate is not None else settings.mock_failure_rate
        self._latency_ms = latency_ms if latency_ms is not None else settings.mock_latency_ms
        self._settle_rate = settle_rate if settle_rate is not None else settings.mock_settle_rate

    @property
    def name(self) -> str:
        return "mock"

    @property
    def rules(self) -> StatusRules:
        return MOCK_RULES

    async def _simulate_call(self) -> None:
        # Simulate network latency
        if self._latency_ms > 0:
            jitter = random.uniform(0.5, 1.5)
            await asyncio.sleep(self._latency_ms * jitter / 1000)

        roll = random.random()

        if roll < self._failure_rate * 0.5:
            raise NetworkError("mock network error: Request timeout", provider=self.name)

        if roll < self._failure_rate:
            raise ProviderError(
                "mock error: invalid wallet account",
                code="E401",
                http_status=400,
                raw={"code": "E401", "message": "invalid wallet account"},
                provider=self.name,
            )

    async def initiate(self, reference: str, amount: float, payer_account: str) -> ProviderResponse:
        await self._simulate_call()

        txn_id = f"mock_{uuid.uuid4().hex[:16]}"
        raw = {
            "code": "success",
            "message": f"Charge initiated (PKR {float(amount):.2f})",
            "status": "INITIATED",
            "id": txn_id,
            "reference": reference,
        }
        return ProviderResponse(
            raw=raw,
            response_code=raw["code"],
            response_desc=raw["message"],
            transaction_status=raw["status"],
            provider_transaction_id=txn_id,
        )

    async def inquire(self, lookup_key: str) -> ProviderResponse:
        await self._simulate_call()

        status = "PAID" if random.random() < self._settle_rate else "INITIATED"
        raw = {"code": "success", "message": f"Charge {status.lower()}", "status": status, "id": lookup_key}
        return ProviderResponse(
            raw=raw,
            response_code=raw["code"],
            response_desc=raw["message"],
            transaction_status=status,
            provider_transaction_id=lookup_key,
        )
