"""Shared fixtures: temporary item store, insight factories and fake collaborators."""

import asyncio
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

import pytest

from episode_digest.core.schemas import ItemInsight, ItemMetadata, TopicMention
from episode_digest.core.versioning import SCHEMA_VERSION
from episode_digest.ingestion.base import DiscoveryAdapter
from episode_digest.processing.analyzer import ItemAnalyzer
from episode_digest.services.database import Database
from episode_digest.services.item_store import ItemStore


def topic(
    label: str,
    sentiment: Optional[float] = 50.0,
    confidence: float = 0.8,
    prominence: float = 0.5,
    quotes: Optional[List[str]] = None,
) -> TopicMention:
    return TopicMention(
        topic_label=label,
        sentiment=sentiment,
        confidence=confidence,
        prominence=prominence,
        evidence_quotes=quotes or [],
    )


def insight(
    item_id: str,
    published: date,
    topics: Iterable[TopicMention] = (),
    schema_version: str = SCHEMA_VERSION,
    processed_at: Optional[datetime] = None,
    source_name: str = "Test Show",
    title: Optional[str] = None,
) -> ItemInsight:
    return ItemInsight(
        id=item_id,
        source_name=source_name,
        title=title or f"Episode {item_id}",
        published_date=published,
        topics=list(topics),
        schema_version=schema_version,
        processed_at=processed_at or datetime.now(timezone.utc),
        model_id="test-model",
    )


def metadata(item_id: str, published: date, source_name: str = "Test Show") -> ItemMetadata:
    return ItemMetadata(
        id=item_id,
        source_name=source_name,
        title=f"Episode {item_id}",
        published_date=published,
        content_ref=f"https://cdn.example.com/{item_id}.mp3",
    )


class FakeAnalyzer(ItemAnalyzer):
    """Analyzer double that records how many calls are in flight at once."""

    def __init__(
        self,
        delay: float = 0.01,
        fail_ids: Iterable[str] = (),
        on_call: Optional[Callable[[str], None]] = None,
        topics: Optional[List[TopicMention]] = None,
    ):
        self.delay = delay
        self.fail_ids = set(fail_ids)
        self.on_call = on_call
        self.topics = topics if topics is not None else [topic("Economy")]
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def analyze(self, item_id: str, metadata: ItemMetadata, schema_version: str) -> ItemInsight:
        self.calls.append(item_id)
        if self.on_call is not None:
            self.on_call(item_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        if item_id in self.fail_ids:
            raise RuntimeError(f"analysis failed for {item_id}")

        return ItemInsight(
            id=item_id,
            source_name=metadata.source_name,
            title=metadata.title,
            published_date=metadata.published_date,
            content_ref=metadata.content_ref,
            topics=list(self.topics),
            schema_version=schema_version,
            model_id="fake",
        )


class FakeDiscovery(DiscoveryAdapter):
    def __init__(self, items: Optional[List[ItemMetadata]] = None, error: Optional[Exception] = None):
        self.items = items or []
        self.error = error
        self.calls = 0

    async def discover(self, start: date, end: date) -> List[ItemMetadata]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [m for m in self.items if start <= m.published_date <= end]


@pytest.fixture
def db(tmp_path) -> Database:
    database = Database(str(tmp_path / "episodes.db"))
    asyncio.run(database.init_tables())
    return database


@pytest.fixture
def store(db) -> ItemStore:
    return ItemStore(db)


@pytest.fixture
def make_topic():
    return topic


@pytest.fixture
def make_insight():
    return insight


@pytest.fixture
def make_metadata():
    return metadata


@pytest.fixture
def week_metadata() -> Callable[[int], List[ItemMetadata]]:
    """n episodes spread over the week of 2024-01-07 (a Sunday)."""
    def build(n: int) -> List[ItemMetadata]:
        return [metadata(f"ep-{i:02d}", date(2024, 1, 7 + (i % 7))) for i in range(n)]
    return build


@pytest.fixture
def fake_analyzer_cls():
    return FakeAnalyzer


@pytest.fixture
def fake_discovery_cls():
    return FakeDiscovery


@pytest.fixture
def by_id() -> Callable[[Iterable[ItemInsight]], Dict[str, ItemInsight]]:
    return lambda items: {i.id: i for i in items}
