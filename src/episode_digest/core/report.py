"""
Period report payload handed to the presentation layer
"""
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from episode_digest.core.schemas import Evidence


class RunWindow(BaseModel):
    window_start: date
    window_end: date
    timezone: str


class AnalyzedSource(BaseModel):
    item_id: str
    source_name: str
    title: str
    published_date: date
    input_types_present: List[str] = Field(default_factory=lambda: ["transcript_summary"])


class IssueEntry(BaseModel):
    issue_id: str
    issue_name: str
    rank: int
    sentiment_index: int
    sentiment_label: Literal["positive", "neutral", "negative"]
    confidence: float
    delta_vs_prior: Optional[int] = None
    why_this_period: str
    what_changed: str
    evidence: List[Evidence] = Field(default_factory=list)


class IssueMovement(BaseModel):
    issue_name: str
    movement: Literal["up", "down", "new", "dropped", "unchanged"]
    reason: str
    supporting_evidence: List[Evidence] = Field(default_factory=list)


class NarrativeShift(BaseModel):
    shift: str
    why_it_changed: str
    supporting_evidence: List[Evidence] = Field(default_factory=list)


class QualityFlags(BaseModel):
    hallucination_risk: Literal["low", "medium", "high"]
    data_coverage: Literal["full", "partial", "minimal", "none"]
    notes: List[str] = Field(default_factory=list)


class PeriodReport(BaseModel):
    """
    Ranked issues, deltas, narrative shifts and quality flags for one period.
    """
    run_window: RunWindow
    prior_window: RunWindow
    generated_at: datetime
    sources_analyzed: List[AnalyzedSource] = Field(default_factory=list)
    executive_summary: List[str] = Field(default_factory=list)
    top_issues: List[IssueEntry] = Field(default_factory=list)
    issues_gaining_importance: List[IssueMovement] = Field(default_factory=list)
    issues_losing_importance: List[IssueMovement] = Field(default_factory=list)
    narrative_shifts: List[NarrativeShift] = Field(default_factory=list)
    evidence_gaps: List[str] = Field(default_factory=list)
    quality_flags: QualityFlags
    cache_hit: bool = False
