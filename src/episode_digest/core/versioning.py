"""
Schema version management.

Bump SCHEMA_VERSION whenever the analysis prompt, topic extraction or the
ranking/aggregation logic changes in a way that would produce different
results for the same input. Cached insights and period aggregates carrying
another version are then recomputed.
"""
import re
from functools import cmp_to_key
from typing import Dict, List

SCHEMA_VERSION = "v2.0.0"

SCHEMA_CHANGELOG: Dict[str, str] = {
    "v2.0.0": "Episode-centric analysis with parallel processing, topic merging and evidence-based deltas",
    "v1.0.0": "Week-centric analysis with sequential processing",
    "v1-legacy": "Week-level reports imported from the legacy store",
}


def _parts(version: str) -> List[int]:
    if version == "v1-legacy":
        version = "v1.0.0"
    parts = []
    for chunk in version.lstrip("v").split("."):
        match = re.match(r"\d+", chunk)
        parts.append(int(match.group(0)) if match else 0)
    return parts


def compare_versions(a: str, b: str) -> int:
    """Return 1 if a > b, -1 if a < b, 0 if equal."""
    pa, pb = _parts(a), _parts(b)
    for i in range(max(len(pa), len(pb))):
        x = pa[i] if i < len(pa) else 0
        y = pb[i] if i < len(pb) else 0
        if x > y:
            return 1
        if x < y:
            return -1
    return 0


def is_version_outdated(version: str, current: str = SCHEMA_VERSION) -> bool:
    return compare_versions(current, version) > 0


def version_changelog(version: str) -> str:
    return SCHEMA_CHANGELOG.get(version, "Unknown version")


def all_versions() -> List[str]:
    """Known versions, newest first."""
    return sorted(SCHEMA_CHANGELOG, key=cmp_to_key(compare_versions), reverse=True)
