"""
Evidence-derived wording for period reports.

Everything here is presentation text layered on top of the ranking and delta
results; none of it feeds back into how issues are identified or ranked.
"""
import re
from typing import Dict, List, Sequence

from episode_digest.core.entities import DeltaResult, RankedIssue
from episode_digest.core.report import NarrativeShift
from episode_digest.core.schemas import Evidence

MAX_THEMES = 3
MAX_SHIFTS = 5
SHIFT_SENTIMENT_DELTA = 15.0
SIGNIFICANT_SENTIMENT_DELTA = 20.0

_END = r"(?:\.|,|;|$)"
THEME_PATTERNS = [
    re.compile(rf"(?:following|after|due to|amid|regarding)\s+(.{{20,80}}?){_END}", re.IGNORECASE),
    re.compile(
        rf"(?:developments?|events?|announcements?|decisions?|actions?)\s+(?:on|about|regarding)\s+(.{{20,80}}?){_END}",
        re.IGNORECASE,
    ),
    re.compile(rf"concerns?\s+(?:about|over|regarding)\s+(.{{20,80}}?){_END}", re.IGNORECASE),
    re.compile(rf"criticism\s+(?:of|about|over)\s+(.{{20,80}}?){_END}", re.IGNORECASE),
    re.compile(
        rf"(?:announced|proposed|introduced|passed|signed|blocked|rejected)\s+(.{{20,80}}?){_END}",
        re.IGNORECASE,
    ),
    re.compile(rf"(?:focus|attention|emphasis)\s+on\s+(.{{20,80}}?){_END}", re.IGNORECASE),
]

_LEADING_WORD = re.compile(r"^(the|a|an|this|that|these|those|he|she|it|they)\s+", re.IGNORECASE)
_TRAILING_ARTICLE = re.compile(r"\s+(the|a|an)$", re.IGNORECASE)


def format_delta(delta: float) -> str:
    rounded = round(delta)
    return f"+{rounded}" if rounded > 0 else str(rounded)


def sentiment_label(score: float) -> str:
    if score >= 60:
        return "positive"
    if score <= 40:
        return "negative"
    return "neutral"


def sentiment_description(score: float) -> str:
    if score >= 70:
        return "highly positive"
    if score >= 60:
        return "positive"
    if score >= 45:
        return "slightly positive"
    if score >= 35:
        return "slightly negative"
    if score >= 25:
        return "negative"
    return "highly negative"


def clean_theme(text: str) -> str:
    """Trim a raw phrase into a readable theme, or "" when it is too short or long."""
    cleaned = _LEADING_WORD.sub("", text.strip()).strip()
    cleaned = re.sub(r"[,;:]$", "", cleaned).strip()
    cleaned = _TRAILING_ARTICLE.sub("", cleaned)
    if len(cleaned) < 15 or len(cleaned) > 120:
        return ""
    return cleaned


def _key_phrases(texts: Sequence[str]) -> List[str]:
    phrases: List[str] = []
    for text in texts:
        sentences = [s for s in re.split(r"[.!?]+", text) if len(s.strip()) > 20]
        for sentence in sentences[:2]:
            for part in (p.strip() for p in re.split(r"[,;]", sentence)):
                if 30 < len(part) < 100:
                    cleaned = clean_theme(part)
                    if cleaned and cleaned not in phrases:
                        phrases.append(cleaned)
                        if len(phrases) >= 2:
                            return phrases
    return phrases


def extract_themes(evidence_texts: Sequence[str]) -> List[str]:
    """
    Pull up to three short themes ("new tariffs on steel imports") out of
    evidence quotes, falling back to plain key phrases.
    """
    texts = [t for t in evidence_texts if t]
    if not texts:
        return []

    themes: List[str] = []
    for text in texts[:5]:
        for pattern in THEME_PATTERNS:
            for match in list(pattern.finditer(text))[:2]:
                raw = match.group(1).strip()
                if len(raw) <= 10:
                    continue
                theme = clean_theme(raw)
                if theme and theme not in themes:
                    themes.append(theme)
                    if len(themes) >= MAX_THEMES:
                        return themes

    if not themes:
        themes.extend(_key_phrases(texts[:3])[:2])
    return themes


def describe_delta(delta: DeltaResult, evidence_texts: Sequence[str]) -> str:
    issue = delta.issue
    themes = extract_themes(evidence_texts)
    theme = themes[0].lower() if themes else None

    if delta.movement == "new" or delta.sentiment_delta is None:
        if theme:
            return f"{issue.issue_name} emerged as a new focus this week following {theme}."
        return (
            f"{issue.issue_name} emerged as a new focus this week with "
            f"{issue.episode_count} episode(s) covering this topic."
        )

    sentiment = delta.sentiment_delta
    prominence = delta.prominence_delta or 0.0
    magnitude = round(abs(sentiment))

    if delta.movement == "unchanged":
        if theme:
            return f"{issue.issue_name} maintained steady coverage this week, with continued discussion of {theme}."
        return f"{issue.issue_name} held steady week over week (Δ {format_delta(sentiment)} pts sentiment)."

    if delta.movement == "up":
        if theme and magnitude > SIGNIFICANT_SENTIMENT_DELTA:
            return f"{issue.issue_name} sentiment improved significantly (+{magnitude} pts) amid {theme}."
        if theme:
            return f"{issue.issue_name} gained momentum (+{magnitude} pts) with focus on {theme}."
        return (
            f"{issue.issue_name} gained momentum (Δ {format_delta(sentiment)} pts sentiment, "
            f"{format_delta(prominence * 100)} pts prominence)."
        )

    if theme and magnitude > SIGNIFICANT_SENTIMENT_DELTA:
        return f"{issue.issue_name} sentiment declined significantly (-{magnitude} pts) amid concerns about {theme}."
    if theme:
        return f"{issue.issue_name} lost momentum (-{magnitude} pts) with continued attention to {theme}."
    return (
        f"{issue.issue_name} lost momentum (Δ {format_delta(sentiment)} pts sentiment, "
        f"{format_delta(prominence * 100)} pts prominence)."
    )


def detect_narrative_shifts(
    deltas: Sequence[DeltaResult],
    evidence_by_key: Dict[str, List[Evidence]],
) -> List[NarrativeShift]:
    """New issues among the top three, then matched issues whose sentiment swung hard."""
    shifts: List[NarrativeShift] = []

    for delta in deltas[:3]:
        if delta.matched_prior is None:
            issue = delta.issue
            shifts.append(
                NarrativeShift(
                    shift=f"New focus on {issue.issue_name}",
                    why_it_changed=(
                        f"This topic emerged as a top issue this week, mentioned in "
                        f"{issue.episode_count} episode(s)."
                    ),
                    supporting_evidence=evidence_by_key.get(issue.normalized_key, [])[:2],
                )
            )

    for delta in deltas:
        if delta.sentiment_delta is None or abs(delta.sentiment_delta) <= SHIFT_SENTIMENT_DELTA:
            continue
        issue = delta.issue
        direction = "more positive" if delta.sentiment_delta > 0 else "more negative"
        shifts.append(
            NarrativeShift(
                shift=f"{issue.issue_name} sentiment turned {direction}",
                why_it_changed=f"Sentiment shifted by {format_delta(delta.sentiment_delta)} points compared to prior week.",
                supporting_evidence=evidence_by_key.get(issue.normalized_key, [])[:2],
            )
        )

    return shifts[:MAX_SHIFTS]


def build_executive_summary(top_issues: Sequence[RankedIssue], item_count: int) -> List[str]:
    if not top_issues:
        return ["No significant topics identified this week."]

    names = ", ".join(i.issue_name for i in top_issues[:3])
    summary = [
        f"This week's discussion focused primarily on {names}. "
        f"Analysis of {item_count} episode(s) revealed these as the most prominent topics."
    ]

    lead = top_issues[0]
    summary.append(
        f"{lead.issue_name} emerged as the leading topic, mentioned across {lead.episode_count} episode(s) "
        f"with a {sentiment_description(lead.avg_sentiment)} sentiment ({round(lead.avg_sentiment)}/100)."
    )

    if len(top_issues) > 1:
        summary.append(
            f"{top_issues[1].issue_name} also received significant attention this week, "
            f"reflecting ongoing developments in this area."
        )

    return summary
