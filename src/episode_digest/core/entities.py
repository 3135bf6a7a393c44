from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Set

from episode_digest.core.schemas import ItemInsight


@dataclass
class RankedIssue:
    """
    Topic bucket aggregated across the episodes of one period.
    """
    issue_name: str
    normalized_key: str
    avg_sentiment: float
    avg_confidence: float
    avg_prominence: float
    episode_count: int
    rank_score: float
    sentiment_values: List[float] = field(default_factory=list)
    item_ids: List[str] = field(default_factory=list)
    evidence_quotes: List[str] = field(default_factory=list)
    latest_date: Optional[date] = None
    recency_days: int = 0
    aliases: Set[str] = field(default_factory=set)


@dataclass(frozen=True)
class DeltaResult:
    """
    Movement of one current issue against its best prior match.
    Deltas are None when there is no prior data.
    """
    issue: RankedIssue
    matched_prior: Optional[RankedIssue]
    sentiment_delta: Optional[float]
    prominence_delta: Optional[float]
    movement: str  # up, down, new, unchanged
    match_confidence: float


@dataclass(frozen=True)
class DeltaComputation:
    deltas: List[DeltaResult]
    dropped: List[RankedIssue]


@dataclass(frozen=True)
class ProcessError:
    id: str
    message: str


@dataclass
class ProcessStats:
    total: int = 0
    cached: int = 0
    newly_analyzed: int = 0
    failed: int = 0
    duration: float = 0.0
    cancelled: bool = False
    skipped: int = 0


@dataclass
class ProcessResult:
    """
    Outcome of one orchestration run over a period.
    """
    items: List[ItemInsight] = field(default_factory=list)
    stats: ProcessStats = field(default_factory=ProcessStats)
    errors: List[ProcessError] = field(default_factory=list)
