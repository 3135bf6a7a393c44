"""
Validation and pruning of cached period aggregates
"""
import logging
from datetime import date
from typing import Optional, Sequence

import aiosqlite

from episode_digest.core.schemas import ItemInsight, PeriodAggregate
from episode_digest.core.versioning import SCHEMA_VERSION
from episode_digest.services.item_store import ItemStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 52


class AggregateCacheManager:
    def __init__(
        self,
        store: ItemStore,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        schema_version: str = SCHEMA_VERSION,
    ):
        self.store = store
        self.max_entries = max_entries
        self.schema_version = schema_version

    async def lookup(self, period_start: date) -> Optional[PeriodAggregate]:
        return await self.store.get_aggregate(period_start)

    def is_valid(self, aggregate: PeriodAggregate, live_items: Sequence[ItemInsight]) -> bool:
        """
        An aggregate is reusable only while its schema is current, it references
        exactly the live item set, and every live item is on the current schema.
        """
        period = aggregate.period_start.isoformat()

        if aggregate.schema_version != self.schema_version:
            logger.info(
                f"Cached aggregate {period} invalid: schema {aggregate.schema_version} != {self.schema_version}"
            )
            return False

        live_ids = [item.id for item in live_items]
        if len(aggregate.item_ids) != len(live_ids) or set(aggregate.item_ids) != set(live_ids):
            logger.info(
                f"Cached aggregate {period} invalid: episode set changed "
                f"({len(aggregate.item_ids)} cached, {len(live_ids)} live)"
            )
            return False

        outdated = [item.id for item in live_items if item.schema_version != self.schema_version]
        if outdated:
            logger.info(f"Cached aggregate {period} invalid: {len(outdated)} episode(s) on an old schema")
            return False

        return True

    async def save(self, aggregate: PeriodAggregate) -> None:
        await self.store.put_aggregate(aggregate)
        logger.info(f"Cached aggregate for period {aggregate.period_start}")

    async def prune(self) -> int:
        """Keep the most recent max_entries aggregates by period start; returns how many were deleted."""
        starts = await self.store.aggregate_period_starts()
        if len(starts) <= self.max_entries:
            return 0

        deleted = 0
        for period_start in starts[self.max_entries:]:
            try:
                if await self.store.delete_aggregate(period_start):
                    deleted += 1
            except aiosqlite.Error as e:
                logger.warning(f"Failed to prune cached aggregate {period_start}: {e}")

        logger.info(f"Pruned {deleted} cached aggregate(s), keeping {self.max_entries}")
        return deleted
