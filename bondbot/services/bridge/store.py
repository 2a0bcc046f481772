"""
Pair state persistence on MongoDB (motor).

Every mutation is a single-document partial update ($set, $push, array-index
$set), so concurrent writers never need an in-process lock.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import DuplicateKeyError, PyMongoError

from bondbot.config.models import MongoConfig
from bondbot.common.logging import setup_logging
from .models import Device, Interaction, PairState, StoreUnavailable, utcnow

logger = setup_logging("store")


class PairStateStore:
    """Data access for pair_state documents. No policy lives here."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    @classmethod
    def from_config(cls, cfg: MongoConfig) -> "PairStateStore":
        client = AsyncIOMotorClient(cfg.uri, serverSelectionTimeoutMS=cfg.timeout_ms, tz_aware=True)
        logger.info(f"Using MongoDB database={cfg.database} collection={cfg.collection}")
        return cls(client[cfg.database][cfg.collection])

    def close(self):
        self.collection.database.client.close()

    async def ensure_indexes(self):
        try:
            await self.collection.create_index("pair_id", unique=True)
        except PyMongoError as e:
            raise StoreUnavailable(f"create_index failed: {e}") from e

    async def ensure_pair(self, pair_id: str, now: Optional[datetime] = None) -> bool:
        """Create the pair document if absent.

        Returns True when this call created it. A concurrent creator winning
        the race is not an error.
        """
        doc = PairState.new(pair_id, now).to_document()
        del doc["pair_id"]
        try:
            result = await self.collection.update_one(
                {"pair_id": pair_id},
                {"$setOnInsert": doc},
                upsert=True,
            )
        except DuplicateKeyError:
            logger.debug(f"pair_state for {pair_id} created concurrently")
            return False
        except PyMongoError as e:
            raise StoreUnavailable(f"ensure_pair({pair_id}) failed: {e}") from e
        return result.upserted_id is not None

    async def _update(self, op: str, pair_id: str, update: Dict[str, Any]) -> bool:
        try:
            result = await self.collection.update_one({"pair_id": pair_id}, update)
        except PyMongoError as e:
            raise StoreUnavailable(f"{op}({pair_id}) failed: {e}") from e
        if result.matched_count == 0:
            logger.warning(f"{op}: no pair_state document for {pair_id}")
            return False
        return True

    async def touch_presence(self, pair_id: str, device: Device, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return await self._update("touch_presence", pair_id, {
            "$set": {
                f"{device.field}.last_seen": now,
                f"{device.field}.online": True,
                "updated_at": now,
            }
        })

    async def append_interaction(self, pair_id: str, interaction: Interaction) -> bool:
        return await self._update("append_interaction", pair_id, {
            "$push": {"interactions": interaction.to_document()},
            "$set": {"updated_at": utcnow()},
        })

    async def set_activity_day(self, pair_id: str, device: Device, day: int) -> bool:
        # day is range-checked by the router
        return await self._update("set_activity_day", pair_id, {
            "$set": {
                f"{device.field}.activity_days.{day}": True,
                "updated_at": utcnow(),
            }
        })

    async def mark_stale_offline(self, stale_before: datetime) -> int:
        """Take both devices of a pair offline when either one is stale.

        Returns the number of pair documents modified.
        """
        try:
            result = await self.collection.update_many(
                {
                    "$or": [
                        {f"{Device.A.field}.last_seen": {"$lt": stale_before}},
                        {f"{Device.B.field}.last_seen": {"$lt": stale_before}},
                    ]
                },
                {
                    "$set": {
                        f"{Device.A.field}.online": False,
                        f"{Device.B.field}.online": False,
                    }
                },
            )
        except PyMongoError as e:
            raise StoreUnavailable(f"mark_stale_offline failed: {e}") from e
        return result.modified_count
