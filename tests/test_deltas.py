"""Tests for period-over-period delta computation."""

import pytest

from episode_digest.core.entities import RankedIssue
from episode_digest.processing.deltas import MAX_DROPPED, classify_movement, compute_deltas, find_prior_match
from episode_digest.processing.normalizer import format_issue_name


def issue(key: str, sentiment: float = 50.0, prominence: float = 0.5) -> RankedIssue:
    return RankedIssue(
        issue_name=format_issue_name(key),
        normalized_key=key,
        avg_sentiment=sentiment,
        avg_confidence=0.8,
        avg_prominence=prominence,
        episode_count=2,
        rank_score=0.5,
    )


def test_matched_issue_moving_up():
    result = compute_deltas([issue("economy", 55)], [issue("economy", 40)])
    delta = result.deltas[0]

    assert delta.movement == "up"
    assert delta.sentiment_delta == pytest.approx(15.0)
    assert delta.prominence_delta == pytest.approx(0.0)
    assert delta.match_confidence == 1.0
    assert delta.matched_prior.normalized_key == "economy"


def test_unmatched_issue_is_new():
    result = compute_deltas([issue("trade tariffs")], [issue("economy")])
    delta = result.deltas[0]

    assert delta.movement == "new"
    assert delta.matched_prior is None
    assert delta.sentiment_delta is None
    assert delta.prominence_delta is None
    assert delta.match_confidence == 0.0


def test_small_changes_are_unchanged():
    result = compute_deltas([issue("economy", 52, 0.55)], [issue("economy", 50, 0.5)])
    assert result.deltas[0].movement == "unchanged"


def test_decline_is_down():
    result = compute_deltas([issue("economy", 40)], [issue("economy", 60)])
    assert result.deltas[0].movement == "down"
    assert result.deltas[0].sentiment_delta == pytest.approx(-20.0)


def test_prominence_gain_alone_is_up():
    result = compute_deltas([issue("economy", 50, 0.5)], [issue("economy", 50, 0.3)])
    assert result.deltas[0].movement == "up"


def test_fuzzy_match_above_threshold():
    result = compute_deltas([issue("supreme court decision")], [issue("economy"), issue("supreme court")])
    delta = result.deltas[0]

    assert delta.matched_prior.normalized_key == "supreme court"
    assert delta.match_confidence == pytest.approx(2 / 3 + 0.15)


def test_exact_match_preferred_over_earlier_fuzzy_match():
    prior = [issue("supreme court"), issue("supreme court decision")]
    assert find_prior_match(issue("supreme court decision"), prior).normalized_key == "supreme court decision"


def test_dropped_capped_and_in_prior_order():
    prior = [issue(k) for k in ["alpha", "bravo", "charlie", "delta", "echo", "foxtrot", "golf"]]
    result = compute_deltas([issue("hotel"), issue("bravo")], prior)

    assert [p.normalized_key for p in result.dropped] == ["alpha", "charlie", "delta", "echo", "foxtrot"]
    assert len(result.dropped) == MAX_DROPPED


def test_empty_current_drops_top_prior():
    prior = [issue(k) for k in ["alpha", "bravo", "charlie", "delta", "echo", "foxtrot"]]
    result = compute_deltas([], prior)

    assert result.deltas == []
    assert [p.normalized_key for p in result.dropped] == ["alpha", "bravo", "charlie", "delta", "echo"]


def test_no_prior_period():
    result = compute_deltas([issue("economy"), issue("housing")], [])
    assert [d.movement for d in result.deltas] == ["new", "new"]
    assert result.dropped == []


@pytest.mark.parametrize("sentiment_delta,prominence_delta,expected", [
    (None, None, "new"),
    (4.9, 0.09, "unchanged"),
    (-4.9, -0.09, "unchanged"),
    (5.0, 0.0, "up"),
    (-5.0, 0.0, "down"),
    (-10.0, 0.2, "up"),
    (0.0, -0.1, "down"),
])
def test_classify_movement(sentiment_delta, prominence_delta, expected):
    assert classify_movement(sentiment_delta, prominence_delta) == expected
