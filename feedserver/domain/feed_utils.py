import re
from typing import Optional


def match_text(value: str, keyword: str, match_type: Optional[str]) -> bool:
    """
    Match a single value against a search keyword.

    Supported match types: Exact (case-sensitive), CaseInsensitive,
    StartsWith, Substring (default) and Wildcard (* and ?).
    """
    if keyword is None:
        return False
    match = (match_type or "Substring").strip() or "Substring"

    if match == "Exact":
        return value == keyword

    v = value.lower()
    k = keyword.lower()

    if match == "CaseInsensitive":
        return v == k
    if match == "StartsWith":
        return v.startswith(k)
    if match == "Wildcard":
        pattern = "^" + re.escape(keyword).replace(r"\*", ".*").replace(r"\?", ".") + "$"
        return re.search(pattern, value, flags=re.IGNORECASE) is not None

    # Fallback: case-insensitive substring
    return k in v


def split_tags(value: Optional[str]) -> list:
    """Split a .nuspec tag string (space or comma separated)."""
    if not value:
        return []
    return [t for t in re.split(r"[\s,;]+", value.strip()) if t]


def split_authors(value: Optional[str]) -> list:
    if not value:
        return []
    return [a.strip() for a in value.split(",") if a.strip()]
