import aiosqlite
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator
import logging

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, path: str):
        self.path = path

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self.path)
        await conn.execute("PRAGMA journal_mode=WAL;")
        await conn.execute("PRAGMA foreign_keys=ON;")
        try:
            yield conn
        finally:
            await conn.close()

    async def execute(self, query: str, params: tuple = ()) -> int:
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def fetchone(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()

    async def fetchall(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()

    async def init_tables(self) -> None:
        """Initialize tables for analyzed items, period aggregates and the discovery cache."""
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        async with self.connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS items (
                    id TEXT PRIMARY KEY,
                    source_name TEXT NOT NULL,
                    published_date TEXT NOT NULL,
                    processed_at TEXT NOT NULL,
                    schema_version TEXT NOT NULL,
                    data TEXT NOT NULL
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_items_published_date ON items(published_date)
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_items_processed_at ON items(processed_at)
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_items_schema_version ON items(schema_version)
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_items_source_name ON items(source_name)
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS period_aggregates (
                    period_start TEXT PRIMARY KEY,
                    period_end TEXT NOT NULL,
                    computed_at TEXT NOT NULL,
                    schema_version TEXT NOT NULL,
                    data TEXT NOT NULL
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_period_aggregates_computed_at ON period_aggregates(computed_at)
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_period_aggregates_schema_version ON period_aggregates(schema_version)
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS discovery_cache (
                    cache_key TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_discovery_cache_expires_at ON discovery_cache(expires_at)
            """)
            await conn.commit()
            logger.info("Database tables initialized")
