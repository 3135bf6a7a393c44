"""
Keyed persistence for analyzed items, period aggregates and discovery results.

Every value is stored as pydantic JSON next to the columns it is queried by.
Timestamps are written in one fixed UTC format so that range comparisons on
the text columns order correctly.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from pydantic import TypeAdapter

from episode_digest.core.schemas import ItemInsight, ItemMetadata, PeriodAggregate
from episode_digest.services.database import Database

logger = logging.getLogger(__name__)

_METADATA_LIST = TypeAdapter(List[ItemMetadata])


def _utc_text(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


class ItemStore:
    def __init__(self, db: Database):
        self.db = db

    # Items

    async def put_item(self, item: ItemInsight) -> None:
        """Insert or overwrite the insight stored under item.id."""
        await self.db.execute(
            """
            INSERT OR REPLACE INTO items
            (id, source_name, published_date, processed_at, schema_version, data)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                item.id,
                item.source_name,
                item.published_date.isoformat(),
                _utc_text(item.processed_at),
                item.schema_version,
                item.model_dump_json(),
            ),
        )

    async def get_item(self, item_id: str) -> Optional[ItemInsight]:
        row = await self.db.fetchone("SELECT data FROM items WHERE id = ?", (item_id,))
        if row is None:
            return None
        return ItemInsight.model_validate_json(row[0])

    async def item_exists(self, item_id: str) -> bool:
        row = await self.db.fetchone("SELECT 1 FROM items WHERE id = ?", (item_id,))
        return row is not None

    async def delete_item(self, item_id: str) -> bool:
        return await self.db.execute("DELETE FROM items WHERE id = ?", (item_id,)) > 0

    async def count_items(self) -> int:
        row = await self.db.fetchone("SELECT COUNT(*) FROM items")
        return row[0]

    async def items_in_range(self, start: date, end: date) -> List[ItemInsight]:
        """Items published in [start, end], oldest first."""
        rows = await self.db.fetchall(
            """SELECT data FROM items
               WHERE published_date >= ? AND published_date <= ?
               ORDER BY published_date ASC, id ASC""",
            (start.isoformat(), end.isoformat()),
        )
        return [ItemInsight.model_validate_json(row[0]) for row in rows]

    async def items_processed_before(self, cutoff: datetime) -> List[ItemInsight]:
        rows = await self.db.fetchall(
            "SELECT data FROM items WHERE processed_at < ? ORDER BY processed_at ASC",
            (_utc_text(cutoff),),
        )
        return [ItemInsight.model_validate_json(row[0]) for row in rows]

    async def items_by_schema_version(self, schema_version: str) -> List[ItemInsight]:
        rows = await self.db.fetchall(
            "SELECT data FROM items WHERE schema_version = ? ORDER BY published_date ASC",
            (schema_version,),
        )
        return [ItemInsight.model_validate_json(row[0]) for row in rows]

    async def item_schema_versions(self) -> List[str]:
        rows = await self.db.fetchall("SELECT schema_version FROM items")
        return [row[0] for row in rows]

    # Period aggregates

    async def put_aggregate(self, aggregate: PeriodAggregate) -> None:
        await self.db.execute(
            """
            INSERT OR REPLACE INTO period_aggregates
            (period_start, period_end, computed_at, schema_version, data)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                aggregate.period_start.isoformat(),
                aggregate.period_end.isoformat(),
                _utc_text(aggregate.computed_at),
                aggregate.schema_version,
                aggregate.model_dump_json(),
            ),
        )

    async def get_aggregate(self, period_start: date) -> Optional[PeriodAggregate]:
        row = await self.db.fetchone(
            "SELECT data FROM period_aggregates WHERE period_start = ?",
            (period_start.isoformat(),),
        )
        if row is None:
            return None
        return PeriodAggregate.model_validate_json(row[0])

    async def delete_aggregate(self, period_start: date) -> bool:
        deleted = await self.db.execute(
            "DELETE FROM period_aggregates WHERE period_start = ?",
            (period_start.isoformat(),),
        )
        return deleted > 0

    async def count_aggregates(self) -> int:
        row = await self.db.fetchone("SELECT COUNT(*) FROM period_aggregates")
        return row[0]

    async def all_aggregates(self) -> List[PeriodAggregate]:
        rows = await self.db.fetchall(
            "SELECT data FROM period_aggregates ORDER BY period_start DESC"
        )
        return [PeriodAggregate.model_validate_json(row[0]) for row in rows]

    async def aggregate_period_starts(self) -> List[date]:
        """Cached period starts, most recent first."""
        rows = await self.db.fetchall(
            "SELECT period_start FROM period_aggregates ORDER BY period_start DESC"
        )
        return [date.fromisoformat(row[0]) for row in rows]

    # Discovery cache

    async def put_discovery(
        self,
        cache_key: str,
        items: List[ItemMetadata],
        ttl_days: int,
        now: Optional[datetime] = None,
    ) -> None:
        now = now or datetime.now(timezone.utc)
        await self.db.execute(
            """
            INSERT OR REPLACE INTO discovery_cache (cache_key, data, created_at, expires_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                cache_key,
                _METADATA_LIST.dump_json(items).decode(),
                _utc_text(now),
                _utc_text(now + timedelta(days=ttl_days)),
            ),
        )

    async def get_discovery(
        self,
        cache_key: str,
        now: Optional[datetime] = None,
    ) -> Optional[List[ItemMetadata]]:
        """Cached discovery results, or None when missing or expired (expired rows are removed)."""
        now = now or datetime.now(timezone.utc)
        row = await self.db.fetchone(
            "SELECT data, expires_at FROM discovery_cache WHERE cache_key = ?",
            (cache_key,),
        )
        if row is None:
            return None

        data, expires_at = row
        if expires_at <= _utc_text(now):
            await self.db.execute("DELETE FROM discovery_cache WHERE cache_key = ?", (cache_key,))
            logger.debug(f"Discovery cache entry {cache_key} expired")
            return None

        return _METADATA_LIST.validate_json(data)

    async def clear_expired_discovery(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        return await self.db.execute(
            "DELETE FROM discovery_cache WHERE expires_at <= ?",
            (_utc_text(now),),
        )
