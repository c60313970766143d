"""Tests for the transaction store."""

import pytest

from conftest import T0, make_transaction
from wallet_engine.errors import DuplicateKeyError
from wallet_engine.models.enums import TransactionStatus
from wallet_engine.models.transaction import ApiKey, as_utc
from wallet_engine.store.transactions import StatusUpdate


@pytest.mark.asyncio
async def test_create_and_find(store):
    created = await store.create(make_transaction())
    assert created.id

    found = await store.find_by_reference("ORD-1", "M1")
    assert found is not None
    assert found.id == created.id
    assert found.status == "PENDING"
    assert as_utc(found.created_at) == T0
    assert as_utc(found.updated_at) == T0
    assert found.completed_at is None


@pytest.mark.asyncio
async def test_find_is_merchant_scoped(store):
    await store.create(make_transaction())
    assert await store.find_by_reference("ORD-1", "M2") is None


@pytest.mark.asyncio
async def test_terminal_on_create_stamps_completed_at(store):
    created = await store.create(make_transaction(status="SUCCESS"))
    assert as_utc(created.completed_at) == T0


@pytest.mark.asyncio
async def test_duplicate_reference_rejected(store):
    await store.create(make_transaction())
    with pytest.raises(DuplicateKeyError):
        await store.create(make_transaction(provider_transaction_id="mock_txn_2"))


@pytest.mark.asyncio
async def test_same_reference_different_merchants(store):
    await store.create(make_transaction(merchant_id="M1"))
    await store.create(make_transaction(merchant_id="M2"))

    assert await store.find_by_reference("ORD-1", "M1") is not None
    assert await store.find_by_reference("ORD-1", "M2") is not None


@pytest.mark.asyncio
async def test_find_by_provider_txn_id(store):
    await store.create(make_transaction(provider_transaction_id="ep_123"))
    found = await store.find_by_provider_txn_id("ep_123")
    assert found.reference == "ORD-1"
    assert await store.find_by_provider_txn_id("ep_123", merchant_id="M2") is None


@pytest.mark.asyncio
async def test_update_to_terminal(store, clock):
    await store.create(make_transaction())
    clock.advance(30)

    updated = await store.update_status(
        StatusUpdate(status=TransactionStatus.SUCCESS, provider_response_code="success"),
        reference="ORD-1",
        merchant_id="M1",
    )

    assert updated.status == "SUCCESS"
    assert updated.provider_response_code == "success"
    assert as_utc(updated.updated_at) == clock()
    assert as_utc(updated.completed_at) == clock()


@pytest.mark.asyncio
async def test_terminal_status_is_final(store, clock):
    await store.create(make_transaction())
    clock.advance(30)
    first = await store.update_status(
        StatusUpdate(status=TransactionStatus.SUCCESS),
        reference="ORD-1",
        merchant_id="M1",
    )
    completed_at = as_utc(first.completed_at)

    clock.advance(30)
    second = await store.update_status(
        StatusUpdate(status=TransactionStatus.FAILED, provider_response_desc="late failure"),
        reference="ORD-1",
        merchant_id="M1",
    )

    assert second.status == "SUCCESS"
    assert second.provider_response_desc is None
    assert as_utc(second.completed_at) == completed_at


@pytest.mark.asyncio
async def test_partial_update_keeps_existing_fields(store):
    await store.create(make_transaction(provider_response_code="success", provider_response_desc="initiated"))

    updated = await store.update_status(
        StatusUpdate(provider_response_desc="still waiting"),
        provider_transaction_id="mock_txn_1",
    )

    assert updated.status == "PENDING"
    assert updated.provider_response_code == "success"
    assert updated.provider_response_desc == "still waiting"
    assert updated.completed_at is None


@pytest.mark.asyncio
async def test_update_unknown_transaction(store):
    result = await store.update_status(
        StatusUpdate(status=TransactionStatus.FAILED),
        reference="nope",
        merchant_id="M1",
    )
    assert result is None


@pytest.mark.asyncio
async def test_update_by_reference_requires_merchant(store):
    with pytest.raises(ValueError):
        await store.update_status(StatusUpdate(status=TransactionStatus.FAILED), reference="ORD-1")


@pytest.mark.asyncio
async def test_list_pending_older_than(store, clock):
    await store.create(make_transaction(reference="OLD", provider_transaction_id="t_old"))
    clock.advance(10)
    await store.create(make_transaction(reference="NEWER", provider_transaction_id="t_newer"))
    await store.create(make_transaction(reference="DONE", provider_transaction_id="t_done", status="FAILED"))
    clock.advance(5)
    await store.create(make_transaction(reference="FRESH", provider_transaction_id="t_fresh"))

    clock.advance(20)  # OLD: 35s, NEWER: 25s, FRESH: 20s (not strictly older)
    pending = await store.list_pending_older_than(20)

    assert [t.reference for t in pending] == ["OLD", "NEWER"]


@pytest.mark.asyncio
async def test_list_pending_respects_limit(store, clock):
    for i in range(5):
        await store.create(make_transaction(reference=f"ORD-{i}", provider_transaction_id=f"t_{i}"))
        clock.advance(1)
    clock.advance(60)

    pending = await store.list_pending_older_than(20, limit=3)
    assert [t.reference for t in pending] == ["ORD-0", "ORD-1", "ORD-2"]


@pytest.mark.asyncio
async def test_audit_trail(store, clock):
    created = await store.create(make_transaction())
    clock.advance(30)
    await store.update_status(
        StatusUpdate(status=TransactionStatus.SUCCESS),
        reference="ORD-1",
        merchant_id="M1",
        action="status_changed",
    )

    events = await store.list_events(created.id)
    assert [e.action for e in events] == ["transaction_created", "status_changed"]


@pytest.mark.asyncio
async def test_refused_write_leaves_no_audit_entry(store):
    created = await store.create(make_transaction(status="FAILED"))
    await store.update_status(
        StatusUpdate(status=TransactionStatus.SUCCESS),
        reference="ORD-1",
        merchant_id="M1",
    )

    events = await store.list_events(created.id)
    assert [e.action for e in events] == ["transaction_created"]


@pytest.mark.asyncio
async def test_api_key_validation(session_factory, api_key_store, clock):
    async with session_factory() as session:
        session.add(ApiKey(api_key="key_live", merchant_id="M1", merchant_name="Shop", is_active=True))
        session.add(ApiKey(api_key="key_revoked", merchant_id="M1", is_active=False))
        await session.commit()

    merchant = await api_key_store.validate("key_live")
    assert merchant.merchant_id == "M1"
    assert merchant.merchant_name == "Shop"

    async with session_factory() as session:
        key = await session.get(ApiKey, "key_live")
        assert as_utc(key.last_used_at) == clock()

    assert await api_key_store.validate("key_revoked") is None
    assert await api_key_store.validate("unknown") is None
    assert await api_key_store.validate("") is None
