"""Shared test fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from wallet_engine.database import init_db
from wallet_engine.engine.status import StatusRules
from wallet_engine.models.transaction import Transaction
from wallet_engine.providers.base import PaymentProvider, ProviderResponse
from wallet_engine.providers.mock_provider import MOCK_RULES
from wallet_engine.providers.registry import ProviderRegistry
from wallet_engine.store.api_keys import ApiKeyStore
from wallet_engine.store.transactions import TransactionStore

T0 = datetime(2026, 1, 15, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable UTC clock shared by the store and the scheduler."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def at(self, seconds_after_start: float) -> datetime:
        self.now = T0 + timedelta(seconds=seconds_after_start)
        return self.now


def response(
    status: Optional[str] = "PAID",
    code: Optional[str] = "success",
    txn_id: Optional[str] = "mock_txn_1",
    **raw: Any,
) -> ProviderResponse:
    return ProviderResponse(
        raw={"code": code, "status": status, "id": txn_id, **raw},
        response_code=code,
        response_desc=f"status {status}",
        transaction_status=status,
        provider_transaction_id=txn_id,
    )


Scripted = Union[ProviderResponse, Exception]


class ScriptedProvider(PaymentProvider):
    """
    Provider double that replays scripted outcomes and records every call.

    The last scripted outcome repeats once the script runs out. With a
    `gate`, initiate blocks until the event is set.
    """

    channel = "MOCK"

    def __init__(
        self,
        name: str = "mock",
        initiate: Optional[list[Scripted]] = None,
        inquire: Optional[list[Scripted]] = None,
        rules: StatusRules = MOCK_RULES,
        delay: float = 0.0,
        gate: Optional[asyncio.Event] = None,
        lookup_field: str = "provider_transaction_id",
    ):
        super().__init__()
        self._name = name
        self._rules = rules
        self._initiate_script = list(initiate or [response()])
        self._inquire_script = list(inquire or [response()])
        self._delay = delay
        self._gate = gate
        self.lookup_field = lookup_field
        self.initiate_calls: list[tuple[str, float, str]] = []
        self.inquire_calls: list[str] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def rules(self) -> StatusRules:
        return self._rules

    @staticmethod
    def _next(script: list[Scripted]) -> ProviderResponse:
        outcome = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def initiate(self, reference: str, amount: float, payer_account: str) -> ProviderResponse:
        self.initiate_calls.append((reference, amount, payer_account))
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._gate is not None:
            await self._gate.wait()
        return self._next(self._initiate_script)

    async def inquire(self, lookup_key: str) -> ProviderResponse:
        self.inquire_calls.append(lookup_key)
        return self._next(self._inquire_script)


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Create a fresh file-backed SQLite database for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    await init_db(engine)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def store(session_factory, clock):
    return TransactionStore(session_factory, clock=clock)


@pytest.fixture
def api_key_store(session_factory, clock):
    return ApiKeyStore(session_factory, clock=clock)


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def registry(provider):
    return ProviderRegistry([provider])


def make_transaction(
    reference: str = "ORD-1",
    merchant_id: str = "M1",
    provider: str = "mock",
    status: str = "PENDING",
    provider_transaction_id: Optional[str] = "mock_txn_1",
    amount: float = 100.0,
    **fields: Any,
) -> Transaction:
    return Transaction(
        reference=reference,
        merchant_id=merchant_id,
        provider=provider,
        channel="MOCK",
        amount=amount,
        currency="PKR",
        payer_account="03001234567",
        status=status,
        provider_transaction_id=provider_transaction_id,
        **fields,
    )
