"""Online/offline tracking for paired devices."""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

from bondbot.common.logging import setup_logging
from .models import Device, StoreUnavailable, utcnow
from .store import PairStateStore

logger = setup_logging("presence")

DEFAULT_STALE_AFTER = 300.0
DEFAULT_SWEEP_INTERVAL = 60.0


class PresenceTracker:
    """
    Two-state presence per device.

    Messages are the only thing that bring a device online; the periodic
    sweep is the only thing that takes it offline.
    """

    def __init__(self, store: PairStateStore, stale_after: float = DEFAULT_STALE_AFTER):
        self.store = store
        self.stale_after = timedelta(seconds=stale_after)

    async def record_activity(self, pair_id: str, device: Device, now: Optional[datetime] = None) -> bool:
        updated = await self.store.touch_presence(pair_id, device, now or utcnow())
        if updated:
            logger.debug(f"{pair_id}: device {device.value} seen")
        return updated

    async def sweep(self, now: Optional[datetime] = None, threshold: Optional[timedelta] = None) -> int:
        """Mark pairs with a stale device offline. Returns pairs modified."""
        now = now or utcnow()
        stale_before = now - (threshold if threshold is not None else self.stale_after)
        modified = await self.store.mark_stale_offline(stale_before)
        if modified:
            logger.info(f"Presence sweep marked {modified} pair(s) offline")
        return modified

    async def sweep_forever(self, interval: float = DEFAULT_SWEEP_INTERVAL):
        """Sweep on a fixed period until cancelled."""
        logger.info(f"Presence sweep every {interval:.0f}s, stale after {self.stale_after.total_seconds():.0f}s")
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except StoreUnavailable as e:
                logger.error(f"Presence sweep failed: {e}")
