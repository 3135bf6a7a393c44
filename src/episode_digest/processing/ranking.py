"""
Deterministic issue ranking across the episodes of one period
"""
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, Set

from episode_digest.core.entities import RankedIssue
from episode_digest.core.schemas import ItemInsight
from episode_digest.processing.normalizer import canonicalize, format_issue_name, normalize_topic

MIN_PROMINENCE = 0.2
MAX_BUCKET_QUOTES = 12
STRICT_ITEM_COUNT = 6


@dataclass
class _Bucket:
    sentiments: List[float] = field(default_factory=list)
    confidences: List[float] = field(default_factory=list)
    prominences: List[float] = field(default_factory=list)
    quotes: List[str] = field(default_factory=list)
    item_ids: Dict[str, None] = field(default_factory=dict)  # insertion-ordered set
    aliases: Set[str] = field(default_factory=set)
    latest: Optional[date] = None


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _stddev(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    avg = _mean(values)
    return math.sqrt(_mean([(v - avg) ** 2 for v in values]))


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def rank_score(
    *,
    episode_count: int,
    max_episode_count: int,
    avg_prominence: float,
    sentiment_consistency: float,
    recency_days: int,
) -> float:
    freq = episode_count / max_episode_count if max_episode_count > 0 else 0.0
    recency = math.exp(-recency_days / 7)
    return 0.35 * freq + 0.30 * avg_prominence + 0.20 * sentiment_consistency + 0.15 * recency


def rank_issues(items: Sequence[ItemInsight]) -> List[RankedIssue]:
    """
    Aggregate every topic mention into ranked issues.

    Pure function of its input. Items are processed in publish-date order so
    that topic merging does not depend on the order the caller fetched them in.
    """
    if not items:
        return []

    ordered = sorted(items, key=lambda i: (i.published_date, i.id))
    buckets: Dict[str, _Bucket] = {}
    window_latest: Optional[date] = None

    for item in ordered:
        if window_latest is None or item.published_date > window_latest:
            window_latest = item.published_date

        for mention in item.topics:
            if mention.sentiment is None:
                continue
            normalized = normalize_topic(mention.topic_label)
            if not normalized:
                continue

            key = canonicalize(normalized, buckets.keys())
            bucket = buckets.setdefault(key, _Bucket())
            bucket.sentiments.append(mention.sentiment)
            bucket.confidences.append(mention.confidence)
            bucket.prominences.append(mention.prominence)
            bucket.quotes.extend(mention.evidence_quotes)
            bucket.item_ids[item.id] = None
            bucket.aliases.add(normalized)
            if bucket.latest is None or item.published_date > bucket.latest:
                bucket.latest = item.published_date

    if not buckets:
        return []

    max_episode_count = max(len(b.item_ids) for b in buckets.values())

    issues: List[RankedIssue] = []
    for key, bucket in buckets.items():
        avg_prominence = _mean(bucket.prominences)
        consistency = _clamp01(1 - _stddev(bucket.sentiments) / 50)
        recency_days = 0
        if window_latest is not None and bucket.latest is not None:
            recency_days = max(0, (window_latest - bucket.latest).days)

        issues.append(
            RankedIssue(
                issue_name=format_issue_name(key),
                normalized_key=key,
                avg_sentiment=_mean(bucket.sentiments),
                avg_confidence=_mean(bucket.confidences),
                avg_prominence=avg_prominence,
                episode_count=len(bucket.item_ids),
                rank_score=rank_score(
                    episode_count=len(bucket.item_ids),
                    max_episode_count=max_episode_count,
                    avg_prominence=avg_prominence,
                    sentiment_consistency=consistency,
                    recency_days=recency_days,
                ),
                sentiment_values=list(bucket.sentiments),
                item_ids=list(bucket.item_ids),
                evidence_quotes=bucket.quotes[:MAX_BUCKET_QUOTES],
                latest_date=bucket.latest,
                recency_days=recency_days,
                aliases=set(bucket.aliases),
            )
        )

    issues.sort(key=lambda i: (-i.rank_score, i.recency_days, i.normalized_key))

    # Sparse weeks: an empty ranking is worse than a lower-confidence one
    min_episodes = 2 if len(ordered) >= STRICT_ITEM_COUNT else 1
    strict = [
        i for i in issues
        if i.episode_count >= min_episodes and i.avg_prominence > MIN_PROMINENCE
    ]
    if strict:
        return strict

    relaxed = [i for i in issues if i.episode_count >= 1 and i.avg_prominence > MIN_PROMINENCE]
    if relaxed:
        return relaxed

    return issues
