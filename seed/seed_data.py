"""
Seed the database with demo merchants and API keys.

Creates:
  - Two active merchants with one API key each
  - One revoked key (requests with it are rejected with 401)

Run:
    python -m seed.seed_data
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from wallet_engine.database import async_session, init_db
from wallet_engine.models.transaction import ApiKey


API_KEYS = [
    {"api_key": "demo_key_merchant_001", "merchant_id": "MERCH-001", "merchant_name": "Karachi Grocers", "is_active": True},
    {"api_key": "demo_key_merchant_002", "merchant_id": "MERCH-002", "merchant_name": "Lahore Books", "is_active": True},
    {"api_key": "demo_key_revoked_001", "merchant_id": "MERCH-001", "merchant_name": "Karachi Grocers", "is_active": False},
]


async def seed():
    await init_db()

    async with async_session() as session:
        for data in API_KEYS:
            existing = await session.get(ApiKey, data["api_key"])
            if existing is None:
                session.add(ApiKey(**data))
        await session.commit()

    print(f"Seeded {len(API_KEYS)} API keys:")
    for data in API_KEYS:
        state = "active" if data["is_active"] else "revoked"
        print(f"  {data['api_key']}  {data['merchant_id']}  ({state})")


if __name__ == "__main__":
    asyncio.run(seed())
