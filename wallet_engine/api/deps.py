"""Request dependencies: services live on app.state, built in main.build_services()."""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from wallet_engine.engine.orchestrator import ChargeOrchestrator
from wallet_engine.errors import StoreError
from wallet_engine.store.api_keys import ApiKeyStore, Merchant
from wallet_engine.store.transactions import TransactionStore


def get_orchestrator(request: Request) -> ChargeOrchestrator:
    return request.app.state.orchestrator


def get_transaction_store(request: Request) -> TransactionStore:
    return request.app.state.transaction_store


def get_api_key_store(request: Request) -> ApiKeyStore:
    return request.app.state.api_key_store


async def get_merchant(
    x_api_key: Optional[str] = Header(None, alias="X-Api-Key"),
    api_keys: ApiKeyStore = Depends(get_api_key_store),
) -> Merchant:
    """Resolve the calling merchant from the X-Api-Key header (401 otherwise)."""
    if not x_api_key:
        raise HTTPException(status_code=401, detail="Missing X-Api-Key header")
    try:
        merchant = await api_keys.validate(x_api_key)
    except StoreError:
        raise HTTPException(status_code=500, detail="Could not validate API key")
    if merchant is None:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return merchant
