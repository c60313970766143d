"""Merchant API key validation."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wallet_engine.errors import StoreError
from wallet_engine.models.transaction import ApiKey

logger = logging.getLogger("wallet_engine.store.api_keys")


@dataclass
class Merchant:
    merchant_id: str
    merchant_name: Optional[str] = None


class ApiKeyStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def validate(self, api_key: str) -> Optional[Merchant]:
        """Return the owning merchant for an active key and stamp last_used_at."""
        if not api_key:
            return None
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ApiKey).where(ApiKey.api_key == api_key, ApiKey.is_active.is_(True))
                )
                key = result.scalar_one_or_none()
                if key is None:
                    return None
                key.last_used_at = self._clock()
                await session.commit()
                return Merchant(merchant_id=key.merchant_id, merchant_name=key.merchant_name)
        except SQLAlchemyError as e:
            logger.error("Error validating API key: %s", e)
            raise StoreError("Failed to validate API key") from e
