"""
Pydantic schemas for discovered items, analyzed insights and cached period aggregates
"""
from datetime import date, datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator


def _coerce_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class ItemMetadata(BaseModel):
    """
    Lightweight metadata for a discovered episode, before analysis.
    """
    model_config = {"frozen": True}

    id: str
    source_name: str
    title: str
    published_date: date
    content_ref: Optional[str] = None
    summary: Optional[str] = None  # show notes or transcript summary


class TopicMention(BaseModel):
    """
    One topic as extracted from a single episode.
    Loose LLM numbers are coerced and clamped; a missing sentiment stays None.
    """
    topic_label: str
    sentiment: Optional[float] = None  # 0-100
    confidence: float = 0.6  # 0-1
    prominence: float = 0.3  # 0-1
    evidence_quotes: List[str] = Field(default_factory=list)

    @field_validator("topic_label", mode="before")
    @classmethod
    def _label(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, value: Any) -> Optional[float]:
        number = _coerce_number(value)
        return None if number is None else _clamp(number, 0.0, 100.0)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        number = _coerce_number(value)
        return 0.6 if number is None else _clamp(number, 0.0, 1.0)

    @field_validator("prominence", mode="before")
    @classmethod
    def _prominence(cls, value: Any) -> float:
        number = _coerce_number(value)
        return 0.3 if number is None else _clamp(number, 0.0, 1.0)

    @field_validator("evidence_quotes", mode="before")
    @classmethod
    def _quotes(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [q for q in value if isinstance(q, str) and q.strip()]


class ItemInsight(BaseModel):
    """
    Fully scored analysis of one episode. Keyed by id in the item store.
    """
    id: str
    source_name: str
    title: str
    published_date: date
    content_ref: Optional[str] = None
    topics: List[TopicMention] = Field(default_factory=list)
    overall_sentiment: float = Field(default=50.0, ge=0.0, le=100.0)
    is_focus_subject: bool = False
    key_quotes: List[str] = Field(default_factory=list)
    schema_version: str
    processed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    model_id: str = "unknown"

    @field_validator("overall_sentiment", mode="before")
    @classmethod
    def _overall(cls, value: Any) -> float:
        number = _coerce_number(value)
        return 50.0 if number is None else _clamp(number, 0.0, 100.0)

    @field_validator("key_quotes", mode="before")
    @classmethod
    def _key_quotes(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [q for q in value if isinstance(q, str) and q.strip()]

    @field_validator("processed_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Evidence(BaseModel):
    """
    A quote attributed to the episode it came from.
    """
    item_id: str
    source_name: str
    published_date: date
    evidence_type: str = "quote_excerpt"
    evidence_text: str


class AggregatedIssue(BaseModel):
    issue_name: str
    avg_sentiment: float
    confidence: float
    episode_count: int
    evidence: List[Evidence] = Field(default_factory=list)


class PeriodAggregate(BaseModel):
    """
    Cached aggregation row for one period, keyed by period_start.
    """
    period_start: date
    period_end: date
    item_ids: List[str]
    top_issues: List[AggregatedIssue] = Field(default_factory=list)
    computed_at: datetime
    schema_version: str
