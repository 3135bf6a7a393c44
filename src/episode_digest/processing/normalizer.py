"""
Topic label normalization and fuzzy matching.

Labels are lowercased, stripped of punctuation and mapped through a static
synonym table so that "Jan. 6 Hearing" and "January 6 Investigation" end up
under the same key. Near-duplicates that survive normalization are merged by
token overlap.
"""
import re
from typing import Iterable, List

SIMILARITY_THRESHOLD = 0.78

STOP_WORDS = frozenset({"the", "of", "and", "for", "on", "in", "to", "a"})

# Order matters: abbreviations expand before the event collapses run.
TOPIC_SYNONYMS = {
    "jan 6": "january 6",
    "jan 6th": "january 6",
    "january 6th": "january 6",
    "january sixth": "january 6",
    "j6": "january 6",
    "january 6 hearing": "january 6",
    "january 6 hearings": "january 6",
    "january 6 investigation": "january 6",
    "january 6 committee": "january 6",
    "january 6 probe": "january 6",
    "doj": "department of justice",
    "scotus": "supreme court",
    "potus": "president",
    "gop": "republican party",
    "dems": "democratic party",
    "democrats": "democratic party",
    "republicans": "republican party",
    "border policy": "immigration policy",
    "border": "immigration policy",
    "climate": "climate change",
}

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_SYNONYM_PATTERNS = [
    (re.compile(rf"\b{re.escape(pattern)}\b"), replacement)
    for pattern, replacement in TOPIC_SYNONYMS.items()
]


def _substitute(text: str, pattern: re.Pattern, replacement: str) -> str:
    def repl(match: re.Match) -> str:
        # "climate" must not grow "climate change" into "climate change change"
        matched = match.group(0)
        if len(replacement) > len(matched) and text.startswith(replacement, match.start()):
            return matched
        return replacement

    return pattern.sub(repl, text)


def normalize_topic(label: str) -> str:
    """Canonical comparison key for a free-text topic label ("" if nothing is left)."""
    cleaned = _NON_ALNUM.sub(" ", (label or "").lower())
    cleaned = _WHITESPACE.sub(" ", cleaned).strip()
    if not cleaned:
        return ""

    if cleaned in TOPIC_SYNONYMS:
        return TOPIC_SYNONYMS[cleaned]

    normalized = cleaned
    for pattern, replacement in _SYNONYM_PATTERNS:
        normalized = _substitute(normalized, pattern, replacement)

    return TOPIC_SYNONYMS.get(normalized, normalized)


def tokenize_topic(key: str) -> List[str]:
    return sorted({t for t in key.split() if t and t not in STOP_WORDS})


def topic_similarity(a: str, b: str) -> float:
    """
    Jaccard overlap of stop-word-filtered tokens, boosted by 0.1 when one key
    contains the other and 0.05 when the first sorted tokens agree.
    """
    if a == b:
        return 1.0
    tokens_a = tokenize_topic(a)
    tokens_b = tokenize_topic(b)
    if not tokens_a or not tokens_b:
        return 0.0

    set_a, set_b = set(tokens_a), set(tokens_b)
    overlap = len(set_a & set_b) / len(set_a | set_b)
    substring_boost = 0.1 if (a in b or b in a) else 0.0
    prefix_boost = 0.05 if tokens_a[0] == tokens_b[0] else 0.0

    return min(1.0, overlap + substring_boost + prefix_boost)


def canonicalize(key: str, existing_keys: Iterable[str]) -> str:
    """First existing key (in iteration order) that matches key, else key itself."""
    for existing in existing_keys:
        if topic_similarity(key, existing) >= SIMILARITY_THRESHOLD:
            return existing
    return key


def format_issue_name(key: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in key.split(" ") if word)
