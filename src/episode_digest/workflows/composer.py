"""
Assembles the period report from stored insights.

Nothing here calls the analyzer: ranking, deltas and the narrative text are
recomputed from the item store on every call. The aggregate cache only records
that a period's episode set has already been ranked under the current schema.
"""
import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from episode_digest.core.entities import DeltaComputation, RankedIssue
from episode_digest.core.errors import ComposeError
from episode_digest.core.report import (
    AnalyzedSource,
    IssueEntry,
    IssueMovement,
    PeriodReport,
    RunWindow,
)
from episode_digest.core.schemas import AggregatedIssue, Evidence, ItemInsight, PeriodAggregate
from episode_digest.processing.deltas import compute_deltas
from episode_digest.processing.narrative import (
    build_executive_summary,
    describe_delta,
    detect_narrative_shifts,
    format_delta,
    sentiment_label,
)
from episode_digest.processing.normalizer import normalize_topic
from episode_digest.processing.quality import compute_quality_flags
from episode_digest.processing.ranking import rank_issues
from episode_digest.services.config import CachingConfig, ReportConfig
from episode_digest.services.item_store import ItemStore
from episode_digest.workflows.cache_manager import AggregateCacheManager

logger = logging.getLogger(__name__)

QUOTES_PER_TOPIC = 2
MAX_EVIDENCE = 15
GAIN_THRESHOLD = 10.0


def collect_evidence(issue: RankedIssue, items: Sequence[ItemInsight]) -> List[Evidence]:
    """Quotes from every contributing episode whose topic label was merged into this issue."""
    contributing = set(issue.item_ids)
    evidence: List[Evidence] = []

    for item in sorted(items, key=lambda i: (i.published_date, i.id)):
        if item.id not in contributing:
            continue
        for mention in item.topics:
            if normalize_topic(mention.topic_label) not in issue.aliases:
                continue
            for quote in mention.evidence_quotes[:QUOTES_PER_TOPIC]:
                evidence.append(
                    Evidence(
                        item_id=item.id,
                        source_name=item.source_name,
                        published_date=item.published_date,
                        evidence_text=quote,
                    )
                )
                if len(evidence) >= MAX_EVIDENCE:
                    return evidence

    return evidence


class PeriodComposer:
    def __init__(
        self,
        store: ItemStore,
        cache_manager: AggregateCacheManager,
        report_config: Optional[ReportConfig] = None,
        caching_config: Optional[CachingConfig] = None,
    ):
        self.store = store
        self.cache_manager = cache_manager
        self.report_config = report_config or ReportConfig()
        self.caching_config = caching_config or CachingConfig()

    async def compose(
        self,
        period_start: date,
        period_end: date,
        prior_start: date,
        prior_end: date,
    ) -> PeriodReport:
        try:
            return await self._compose(period_start, period_end, prior_start, prior_end)
        except ComposeError:
            raise
        except Exception as e:
            logger.exception(f"Failed to compose report for {period_start} to {period_end}: {e}")
            raise ComposeError(f"Failed to compose report for {period_start}: {e}") from e

    async def _compose(
        self,
        period_start: date,
        period_end: date,
        prior_start: date,
        prior_end: date,
    ) -> PeriodReport:
        logger.info(f"Composing report for {period_start} to {period_end}")
        use_cache = self.caching_config.enable_aggregate_cache

        current_items = await self.store.items_in_range(period_start, period_end)

        cached: Optional[PeriodAggregate] = None
        if use_cache:
            cached = await self.cache_manager.lookup(period_start)
            if cached is not None and not self.cache_manager.is_valid(cached, current_items):
                cached = None
        cache_hit = cached is not None
        logger.info(f"Aggregate cache {'hit' if cache_hit else 'miss'} for {period_start}")

        prior_items = await self.store.items_in_range(prior_start, prior_end)
        logger.info(f"Found {len(current_items)} episodes in period, {len(prior_items)} in prior period")

        current_ranked = rank_issues(current_items)
        prior_ranked = rank_issues(prior_items)
        top = current_ranked[:self.report_config.top_issue_count]
        computation = compute_deltas(top, prior_ranked)

        generated_at = cached.computed_at if cached is not None else datetime.now(timezone.utc)
        report = self._build_report(
            period_start, period_end, prior_start, prior_end,
            current_items, prior_items, current_ranked, computation,
            generated_at, cache_hit,
        )

        if use_cache and not cache_hit:
            await self._save_aggregate(period_start, period_end, current_items, top, generated_at)

        return report

    async def _save_aggregate(
        self,
        period_start: date,
        period_end: date,
        items: Sequence[ItemInsight],
        top: Sequence[RankedIssue],
        computed_at: datetime,
    ) -> None:
        aggregate = PeriodAggregate(
            period_start=period_start,
            period_end=period_end,
            item_ids=[item.id for item in items],
            top_issues=[
                AggregatedIssue(
                    issue_name=issue.issue_name,
                    avg_sentiment=issue.avg_sentiment,
                    confidence=issue.avg_confidence,
                    episode_count=issue.episode_count,
                    evidence=collect_evidence(issue, items),
                )
                for issue in top
            ],
            computed_at=computed_at,
            schema_version=self.cache_manager.schema_version,
        )
        try:
            await self.cache_manager.save(aggregate)
            await self.cache_manager.prune()
        except Exception as e:
            logger.error(f"Failed to cache aggregate for {period_start}: {e}")

    def _window(self, start: date, end: date) -> RunWindow:
        return RunWindow(window_start=start, window_end=end, timezone=self.report_config.timezone)

    def _build_movements(
        self,
        computation: DeltaComputation,
        evidence_by_key: Dict[str, List[Evidence]],
        prior_items: Sequence[ItemInsight],
    ) -> Tuple[List[IssueMovement], List[IssueMovement]]:
        gaining: List[IssueMovement] = []
        losing: List[IssueMovement] = []

        for delta in computation.deltas:
            evidence = evidence_by_key.get(delta.issue.normalized_key, [])
            sentiment = delta.sentiment_delta
            if delta.movement == "up" and sentiment is not None and sentiment > GAIN_THRESHOLD:
                gaining.append(IssueMovement(
                    issue_name=delta.issue.issue_name,
                    movement="up",
                    reason=f"Sentiment improved by {format_delta(sentiment)} points.",
                    supporting_evidence=evidence[:3],
                ))
            elif delta.movement == "down" and sentiment is not None and sentiment < -GAIN_THRESHOLD:
                losing.append(IssueMovement(
                    issue_name=delta.issue.issue_name,
                    movement="down",
                    reason=f"Sentiment declined by {format_delta(sentiment)} points.",
                    supporting_evidence=evidence[:3],
                ))
            elif delta.movement == "new":
                gaining.append(IssueMovement(
                    issue_name=delta.issue.issue_name,
                    movement="new",
                    reason="New topic of focus this week.",
                    supporting_evidence=evidence[:2],
                ))

        for issue in computation.dropped:
            losing.append(IssueMovement(
                issue_name=issue.issue_name,
                movement="dropped",
                reason=f"Dropped out of top {self.report_config.top_issue_count} issues this week.",
                supporting_evidence=collect_evidence(issue, prior_items)[:2],
            ))

        return gaining, losing

    def _build_report(
        self,
        period_start: date,
        period_end: date,
        prior_start: date,
        prior_end: date,
        current_items: Sequence[ItemInsight],
        prior_items: Sequence[ItemInsight],
        current_ranked: Sequence[RankedIssue],
        computation: DeltaComputation,
        generated_at: datetime,
        cache_hit: bool,
    ) -> PeriodReport:
        evidence_by_key = {
            delta.issue.normalized_key: collect_evidence(delta.issue, current_items)
            for delta in computation.deltas
        }

        entries: List[IssueEntry] = []
        evidence_gaps: List[str] = []
        for rank, delta in enumerate(computation.deltas, start=1):
            issue = delta.issue
            evidence = evidence_by_key[issue.normalized_key]
            if not evidence:
                evidence_gaps.append(f"No supporting quotes found for {issue.issue_name}.")
            sentiment_index = round(issue.avg_sentiment)
            entries.append(IssueEntry(
                issue_id=f"issue-{rank}",
                issue_name=issue.issue_name,
                rank=rank,
                sentiment_index=sentiment_index,
                sentiment_label=sentiment_label(sentiment_index),
                confidence=issue.avg_confidence,
                delta_vs_prior=round(delta.sentiment_delta) if delta.sentiment_delta is not None else None,
                why_this_period=(
                    f"Mentioned in {issue.episode_count} episode(s) with "
                    f"{round(issue.avg_prominence * 100)}% prominence."
                ),
                what_changed=describe_delta(delta, [e.evidence_text for e in evidence]),
                evidence=evidence,
            ))

        gaining, losing = self._build_movements(computation, evidence_by_key, prior_items)
        top = [delta.issue for delta in computation.deltas]

        return PeriodReport(
            run_window=self._window(period_start, period_end),
            prior_window=self._window(prior_start, prior_end),
            generated_at=generated_at,
            sources_analyzed=[
                AnalyzedSource(
                    item_id=item.id,
                    source_name=item.source_name,
                    title=item.title,
                    published_date=item.published_date,
                )
                for item in current_items
            ],
            executive_summary=build_executive_summary(top, len(current_items)),
            top_issues=entries,
            issues_gaining_importance=gaining,
            issues_losing_importance=losing,
            narrative_shifts=detect_narrative_shifts(computation.deltas, evidence_by_key),
            evidence_gaps=evidence_gaps,
            quality_flags=compute_quality_flags(current_items, current_ranked),
            cache_hit=cache_hit,
        )
