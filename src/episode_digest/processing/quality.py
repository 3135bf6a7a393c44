from typing import List, Sequence

from episode_digest.core.entities import RankedIssue
from episode_digest.core.report import QualityFlags
from episode_digest.core.schemas import ItemInsight

LOW_PROMINENCE = 0.3


def compute_quality_flags(items: Sequence[ItemInsight], issues: Sequence[RankedIssue]) -> QualityFlags:
    """
    Hallucination risk from mean topic confidence, coverage from episode count.
    """
    if not items:
        return QualityFlags(
            hallucination_risk="high",
            data_coverage="none",
            notes=["No episodes found in this date range."],
        )

    avg_confidence = sum(i.avg_confidence for i in issues) / len(issues) if issues else 0.0
    notes: List[str] = []

    risk = "low"
    if avg_confidence < 0.5:
        risk = "high"
        notes.append("Low average confidence in topic identification.")
    elif avg_confidence < 0.7:
        risk = "medium"
        notes.append("Moderate confidence in topic identification.")

    coverage = "full"
    if len(items) < 2:
        coverage = "minimal"
        notes.append("Limited episode coverage for this week (less than 2 episodes).")
    elif len(items) < 5:
        coverage = "partial"
        notes.append(f"Partial episode coverage ({len(items)} episodes analyzed).")

    low_prominence = sum(1 for i in issues if i.avg_prominence < LOW_PROMINENCE)
    if low_prominence > 2:
        notes.append(f"{low_prominence} issues have low prominence scores.")

    return QualityFlags(
        hallucination_risk=risk,
        data_coverage=coverage,
        notes=notes or ["Analysis based on comprehensive episode coverage."],
    )
