"""
Wallet Engine: idempotent wallet charges with background reconciliation.

Charges customer mobile wallets through Easypaisa and JazzCash, returns a
normalized SUCCESS / PENDING / FAILED outcome, and keeps polling providers
for anything left PENDING until it settles or runs out of attempts.

Start the server:
    uvicorn wallet_engine.main:app --reload
"""

import logging
import time
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wallet_engine.api.charges import router as charges_router
from wallet_engine.api.health import router as health_router
from wallet_engine.api.transactions import router as transactions_router
from wallet_engine.config import Settings, settings
from wallet_engine.database import async_session, init_db
from wallet_engine.engine.locks import KeyedLock
from wallet_engine.engine.orchestrator import ChargeOrchestrator
from wallet_engine.engine.scheduler import ReconciliationScheduler
from wallet_engine.providers.registry import ProviderRegistry, build_registry
from wallet_engine.store.api_keys import ApiKeyStore
from wallet_engine.store.transactions import TransactionStore

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger("wallet_engine")
request_logger = logging.getLogger("wallet_engine.http")


def build_services(
    app: FastAPI,
    config: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    registry: Optional[ProviderRegistry] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> None:
    """Wire stores, providers, orchestrator and scheduler onto app.state."""
    registry = registry if registry is not None else build_registry(config)
    transaction_store = TransactionStore(session_factory, clock=clock)
    # Held by charges while they initiate; the scheduler skips held keys
    charge_locks = KeyedLock()

    if (
        config.charge_network_error_policy == "pending"
        and config.scheduler_min_age_seconds <= config.provider_timeout_seconds
    ):
        logger.warning(
            "scheduler_min_age_seconds (%s) <= provider_timeout_seconds (%s); "
            "in-flight charges are only protected within this process",
            config.scheduler_min_age_seconds,
            config.provider_timeout_seconds,
        )

    app.state.registry = registry
    app.state.transaction_store = transaction_store
    app.state.api_key_store = ApiKeyStore(session_factory, clock=clock)
    app.state.orchestrator = ChargeOrchestrator(
        transaction_store,
        registry,
        network_error_policy=config.charge_network_error_policy,
        locks=charge_locks,
    )
    app.state.scheduler = ReconciliationScheduler(
        transaction_store,
        registry,
        schedule=config.retry_schedule,
        tick_seconds=config.scheduler_tick_seconds,
        min_age_seconds=config.scheduler_min_age_seconds,
        page_size=config.scheduler_page_size,
        recover_attempts_from_elapsed=config.recover_attempts_from_elapsed,
        clock=clock,
        locks=charge_locks,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and services on startup; stop the scheduler on shutdown."""
    await init_db()
    build_services(app, settings, async_session)

    if settings.scheduler_enabled:
        app.state.scheduler.start()
    else:
        logger.info("Reconciliation scheduler disabled")

    yield

    await app.state.scheduler.stop()


def create_app(lifespan_handler=lifespan) -> FastAPI:
    application = FastAPI(
        title="Wallet Engine",
        description=(
            "Idempotent mobile wallet charges (Easypaisa, JazzCash) with status "
            "normalization, bounded-retry reconciliation of pending transactions, "
            "and immutable audit trails."
        ),
        version="0.1.0",
        lifespan=lifespan_handler,
    )

    @application.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        request_logger.info(
            "%s %s %d - %.0fms",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response

    application.include_router(health_router)
    application.include_router(charges_router, prefix="/api")
    application.include_router(transactions_router, prefix="/api")
    return application


app = create_app()
