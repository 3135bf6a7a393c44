"""Tests for period report composition and the aggregate cache."""

from datetime import date, datetime, timedelta, timezone

import aiosqlite
import pytest

from episode_digest.core.errors import ComposeError
from episode_digest.core.schemas import PeriodAggregate
from episode_digest.services.config import CachingConfig, ReportConfig
from episode_digest.services.item_store import ItemStore
from episode_digest.workflows.cache_manager import AggregateCacheManager
from episode_digest.workflows.composer import PeriodComposer, collect_evidence
from episode_digest.processing.ranking import rank_issues

PERIOD = (date(2024, 1, 7), date(2024, 1, 13), date(2023, 12, 31), date(2024, 1, 6))


@pytest.fixture
def seeded(store, make_insight, make_topic):
    """Two prior-week and two current-week episodes."""
    async def seed():
        await store.put_item(make_insight("p1", date(2024, 1, 2), [
            make_topic("Economy", 40, quotes=["Prices kept climbing at the grocery store."]),
            make_topic("Housing", 50, quotes=["Rents are up again in most cities."]),
        ]))
        await store.put_item(make_insight("p2", date(2024, 1, 4), [make_topic("Economy", 40)]))
        await store.put_item(make_insight("c1", date(2024, 1, 8), [
            make_topic("Jan 6 Hearing", 30, prominence=0.6,
                       quotes=["The committee released new testimony on Monday."]),
            make_topic("Economy", 55),
        ]))
        await store.put_item(make_insight("c2", date(2024, 1, 10), [
            make_topic("January 6 Investigation", 30, prominence=0.6,
                       quotes=["Prosecutors outlined the next phase of the case."]),
            make_topic("Economy", 55, quotes=["Job numbers beat expectations this month."]),
        ]))
    return seed


def composer_for(store, **caching) -> PeriodComposer:
    return PeriodComposer(store, AggregateCacheManager(store), caching_config=CachingConfig(**caching))


def aggregate(period_start: date) -> PeriodAggregate:
    return PeriodAggregate(
        period_start=period_start,
        period_end=period_start + timedelta(days=6),
        item_ids=[],
        computed_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        schema_version="v2.0.0",
    )


@pytest.mark.asyncio
async def test_weekly_report(store, seeded):
    await seeded()

    report = await composer_for(store).compose(*PERIOD)

    assert [i.issue_name for i in report.top_issues] == ["January 6", "Economy"]
    january, economy = report.top_issues
    assert january.issue_id == "issue-1"
    assert january.sentiment_index == 30
    assert january.sentiment_label == "negative"
    assert january.delta_vs_prior is None
    assert [e.item_id for e in january.evidence] == ["c1", "c2"]
    assert january.what_changed.startswith("January 6 emerged as a new focus this week")

    assert economy.delta_vs_prior == 15
    assert economy.sentiment_label == "neutral"
    assert [e.evidence_text for e in economy.evidence] == ["Job numbers beat expectations this month."]

    assert [(m.issue_name, m.movement) for m in report.issues_gaining_importance] == [
        ("January 6", "new"),
        ("Economy", "up"),
    ]
    assert [(m.issue_name, m.movement) for m in report.issues_losing_importance] == [("Housing", "dropped")]
    assert report.issues_losing_importance[0].supporting_evidence[0].item_id == "p1"

    assert [s.shift for s in report.narrative_shifts] == ["New focus on January 6"]
    assert report.evidence_gaps == []
    assert report.quality_flags.hallucination_risk == "low"
    assert report.quality_flags.data_coverage == "partial"
    assert [s.item_id for s in report.sources_analyzed] == ["c1", "c2"]
    assert report.run_window.window_start == date(2024, 1, 7)
    assert report.prior_window.window_end == date(2024, 1, 6)
    assert len(report.executive_summary) == 3
    assert not report.cache_hit


@pytest.mark.asyncio
async def test_top_issue_count_limits_entries(store, seeded):
    await seeded()
    composer = PeriodComposer(store, AggregateCacheManager(store), report_config=ReportConfig(top_issue_count=1))

    report = await composer.compose(*PERIOD)

    assert [i.issue_name for i in report.top_issues] == ["January 6"]
    assert report.issues_losing_importance[0].reason == "Dropped out of top 1 issues this week."


@pytest.mark.asyncio
async def test_empty_period(store):
    report = await composer_for(store).compose(*PERIOD)

    assert report.top_issues == []
    assert report.executive_summary == ["No significant topics identified this week."]
    assert report.quality_flags.data_coverage == "none"


@pytest.mark.asyncio
async def test_second_compose_hits_cache(store, seeded):
    await seeded()
    composer = composer_for(store)

    first = await composer.compose(*PERIOD)
    second = await composer.compose(*PERIOD)

    assert not first.cache_hit
    assert second.cache_hit
    assert second.generated_at == first.generated_at
    assert second.top_issues == first.top_issues
    cached = await store.get_aggregate(date(2024, 1, 7))
    assert sorted(cached.item_ids) == ["c1", "c2"]
    assert [i.issue_name for i in cached.top_issues] == ["January 6", "Economy"]


@pytest.mark.asyncio
async def test_outdated_item_invalidates_cache(store, seeded, make_insight, make_topic):
    await seeded()
    composer = composer_for(store)
    await composer.compose(*PERIOD)

    await store.put_item(make_insight("c1", date(2024, 1, 8), [make_topic("Economy", 55)], schema_version="v1.0.0"))
    report = await composer.compose(*PERIOD)

    assert not report.cache_hit


@pytest.mark.asyncio
async def test_new_item_invalidates_cache(store, seeded, make_insight, make_topic):
    await seeded()
    composer = composer_for(store)
    await composer.compose(*PERIOD)

    await store.put_item(make_insight("c3", date(2024, 1, 12), [make_topic("Economy", 60)]))
    report = await composer.compose(*PERIOD)

    assert not report.cache_hit
    assert [s.item_id for s in report.sources_analyzed] == ["c1", "c2", "c3"]
    third = await composer.compose(*PERIOD)
    assert third.cache_hit


@pytest.mark.asyncio
async def test_aggregate_cache_disabled(store, seeded):
    await seeded()
    composer = composer_for(store, enable_aggregate_cache=False)

    await composer.compose(*PERIOD)
    report = await composer.compose(*PERIOD)

    assert not report.cache_hit
    assert await store.count_aggregates() == 0


@pytest.mark.asyncio
async def test_save_failure_is_not_fatal(store, seeded):
    class BrokenCache(AggregateCacheManager):
        async def save(self, aggregate):
            raise aiosqlite.OperationalError("database is locked")

    await seeded()
    report = await PeriodComposer(store, BrokenCache(store)).compose(*PERIOD)

    assert len(report.top_issues) == 2
    assert await store.count_aggregates() == 0


@pytest.mark.asyncio
async def test_store_failure_raises_compose_error(db):
    class BrokenStore(ItemStore):
        async def items_in_range(self, start, end):
            raise aiosqlite.OperationalError("no such table: items")

    store = BrokenStore(db)
    with pytest.raises(ComposeError):
        await PeriodComposer(store, AggregateCacheManager(store)).compose(*PERIOD)


@pytest.mark.asyncio
async def test_prune_keeps_most_recent(store):
    first = date(2023, 1, 1)
    starts = [first + timedelta(weeks=n) for n in range(60)]
    for start in starts:
        await store.put_aggregate(aggregate(start))

    deleted = await AggregateCacheManager(store, max_entries=52).prune()

    assert deleted == 8
    remaining = await store.aggregate_period_starts()
    assert len(remaining) == 52
    assert remaining == sorted(starts, reverse=True)[:52]


@pytest.mark.asyncio
async def test_prune_under_limit_is_noop(store):
    await store.put_aggregate(aggregate(date(2024, 1, 7)))
    assert await AggregateCacheManager(store, max_entries=52).prune() == 0


@pytest.mark.asyncio
async def test_prune_continues_past_delete_failure(db):
    class FlakyStore(ItemStore):
        async def delete_aggregate(self, period_start):
            if period_start == date(2024, 1, 7):
                raise aiosqlite.OperationalError("database is locked")
            return await super().delete_aggregate(period_start)

    store = FlakyStore(db)
    for start in [date(2024, 1, 7), date(2024, 1, 14), date(2024, 1, 21), date(2024, 1, 28)]:
        await store.put_aggregate(aggregate(start))

    deleted = await AggregateCacheManager(store, max_entries=1).prune()

    assert deleted == 2
    assert await store.aggregate_period_starts() == [date(2024, 1, 28), date(2024, 1, 7)]


def test_cache_validity_rules(make_insight):
    manager = AggregateCacheManager(store=None)
    items = [make_insight("a", date(2024, 1, 8)), make_insight("b", date(2024, 1, 9))]
    cached = PeriodAggregate(
        period_start=date(2024, 1, 7),
        period_end=date(2024, 1, 13),
        item_ids=["b", "a"],
        computed_at=datetime(2024, 1, 14, tzinfo=timezone.utc),
        schema_version="v2.0.0",
    )

    assert manager.is_valid(cached, items)
    assert not manager.is_valid(cached.model_copy(update={"schema_version": "v1.0.0"}), items)
    assert not manager.is_valid(cached.model_copy(update={"item_ids": ["a", "a"]}), items)
    assert not manager.is_valid(cached, items[:1])


def test_collect_evidence_uses_merged_labels(make_insight, make_topic):
    items = [
        make_insight("a", date(2024, 1, 8), [make_topic("Jan 6", quotes=["one", "two", "three"])]),
        make_insight("b", date(2024, 1, 9), [
            make_topic("January 6th", quotes=["four"]),
            make_topic("Economy", quotes=["unrelated"]),
        ]),
    ]
    issue = [i for i in rank_issues(items) if i.normalized_key == "january 6"][0]

    assert [e.evidence_text for e in collect_evidence(issue, items)] == ["one", "two", "four"]
