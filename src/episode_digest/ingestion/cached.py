"""
Discovery results cached in the item store for a number of days
"""
import logging
from datetime import date
from typing import List

import aiosqlite

from episode_digest.core.schemas import ItemMetadata
from episode_digest.ingestion.base import DiscoveryAdapter
from episode_digest.services.item_store import ItemStore

logger = logging.getLogger(__name__)


def discovery_cache_key(start: date, end: date) -> str:
    return f"search_{start.isoformat()}_{end.isoformat()}"


class CachedDiscoveryAdapter(DiscoveryAdapter):
    """
    Wraps another adapter. Empty results are never cached; a broken cache is
    logged and bypassed rather than failing discovery.
    """

    def __init__(self, inner: DiscoveryAdapter, store: ItemStore, ttl_days: int = 7):
        self.inner = inner
        self.store = store
        self.ttl_days = ttl_days

    async def discover(self, start: date, end: date) -> List[ItemMetadata]:
        key = discovery_cache_key(start, end)

        try:
            cached = await self.store.get_discovery(key)
        except aiosqlite.Error as e:
            logger.warning(f"Discovery cache read failed for {key}: {e}")
            cached = None

        if cached is not None:
            logger.info(f"Discovery cache hit for {key} ({len(cached)} episodes)")
            return cached

        items = await self.inner.discover(start, end)
        if not items:
            return items

        try:
            await self.store.put_discovery(key, items, self.ttl_days)
        except aiosqlite.Error as e:
            logger.warning(f"Discovery cache write failed for {key}: {e}")

        return items
