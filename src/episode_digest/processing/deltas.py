"""
Period-over-period movement of ranked issues
"""
from typing import List, Optional, Sequence, Set

from episode_digest.core.entities import DeltaComputation, DeltaResult, RankedIssue
from episode_digest.processing.normalizer import SIMILARITY_THRESHOLD, topic_similarity

MAX_DROPPED = 5
SENTIMENT_STEADY = 5.0
PROMINENCE_STEADY = 0.10


def find_prior_match(current: RankedIssue, prior: Sequence[RankedIssue]) -> Optional[RankedIssue]:
    """Exact key wins immediately; otherwise the most similar prior issue above threshold."""
    best: Optional[RankedIssue] = None
    best_score = 0.0

    for candidate in prior:
        if candidate.normalized_key == current.normalized_key:
            return candidate
        score = topic_similarity(current.normalized_key, candidate.normalized_key)
        if score >= SIMILARITY_THRESHOLD and score > best_score:
            best, best_score = candidate, score

    return best


def classify_movement(sentiment_delta: Optional[float], prominence_delta: Optional[float]) -> str:
    if sentiment_delta is None or prominence_delta is None:
        return "new"
    if abs(sentiment_delta) < SENTIMENT_STEADY and abs(prominence_delta) < PROMINENCE_STEADY:
        return "unchanged"
    if sentiment_delta > 0 or prominence_delta > 0:
        return "up"
    return "down"


def compute_deltas(current: Sequence[RankedIssue], prior: Sequence[RankedIssue]) -> DeltaComputation:
    """
    Match every current issue against the prior period and classify its movement.
    Prior issues nobody matched are reported as dropped (at most five).
    """
    if not current:
        return DeltaComputation(deltas=[], dropped=list(prior[:MAX_DROPPED]))

    deltas: List[DeltaResult] = []
    matched: Set[str] = set()

    for issue in current:
        match = find_prior_match(issue, prior)
        if match is None:
            deltas.append(
                DeltaResult(
                    issue=issue,
                    matched_prior=None,
                    sentiment_delta=None,
                    prominence_delta=None,
                    movement="new",
                    match_confidence=0.0,
                )
            )
            continue

        matched.add(match.normalized_key)
        sentiment_delta = issue.avg_sentiment - match.avg_sentiment
        prominence_delta = issue.avg_prominence - match.avg_prominence
        deltas.append(
            DeltaResult(
                issue=issue,
                matched_prior=match,
                sentiment_delta=sentiment_delta,
                prominence_delta=prominence_delta,
                movement=classify_movement(sentiment_delta, prominence_delta),
                match_confidence=topic_similarity(issue.normalized_key, match.normalized_key),
            )
        )

    dropped = [p for p in prior if p.normalized_key not in matched][:MAX_DROPPED]
    return DeltaComputation(deltas=deltas, dropped=dropped)
