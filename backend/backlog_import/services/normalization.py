"""
Field normalization for imported work items.

Export data is uncurated, so every function here is total: unrecognized
input degrades to a documented default instead of raising. Classification
walks the ordered rule tables in core.type_config; the first match wins.
"""

import re

from backlog_import.core.type_config import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    DEFAULT_TYPE,
    MAX_PRIORITY,
    MIN_PRIORITY,
    PRIORITY_RULES,
    STATUS_RULES,
    WORK_ITEM_TYPES,
    WorkItemStatus,
    WorkItemType,
)

# Leading number, like a lenient float parse: "8h" → 8, "2.5 days" → 2.5
_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+))")
_LEADING_INTEGER = re.compile(r"^\s*([+-]?\d+)")


def normalize_whitespace(value: str) -> str:
    """Collapse whitespace and strip."""
    return re.sub(r"\s+", " ", value.strip())


def normalize_header(value: str) -> str:
    """
    Normalization used to compare export headers.
    '  Issue   Type ' → 'issue type'
    """
    return normalize_whitespace(value).lower()


# ─── Enumerations ─────────────────────────────────────────────

def parse_type(value: str | None) -> WorkItemType:
    """Classify free text as a work item type. Defaults to Task."""
    if not value:
        return DEFAULT_TYPE
    lower = value.lower()
    for config in WORK_ITEM_TYPES.values():
        if any(keyword in lower for keyword in config.keywords):
            return config.type
    return DEFAULT_TYPE


def parse_status(value: str | None) -> WorkItemStatus:
    """Classify free text as a status. Defaults to Planning."""
    if not value:
        return DEFAULT_STATUS
    lower = value.lower()
    for rule in STATUS_RULES:
        if any(keyword in lower for keyword in rule.keywords):
            return rule.status
    return DEFAULT_STATUS


def parse_priority(value: str | None) -> int:
    """
    Map a priority label or number onto 0..5.

    'Critical' / 'P0' → 5, 'High' → 4, 'Medium' → 3, 'Low' → 2, 'Lowest' → 1.
    Otherwise a leading integer is clamped into range; anything else is 0.
    """
    if not value:
        return DEFAULT_PRIORITY
    lower = value.strip().lower()
    for rule in PRIORITY_RULES:
        if lower in rule.codes or any(keyword in lower for keyword in rule.keywords):
            return rule.priority

    m = _LEADING_INTEGER.match(lower)
    if m:
        return min(MAX_PRIORITY, max(MIN_PRIORITY, int(m.group(1))))
    return DEFAULT_PRIORITY


# ─── Scalars ──────────────────────────────────────────────────

def parse_hours(value: str | None) -> float | None:
    """
    Parse an estimate in hours.

    Returns None (unset, not zero) for empty, non-numeric or negative input.
    """
    if not value:
        return None
    m = _LEADING_NUMBER.match(value)
    if not m:
        return None
    hours = float(m.group(1))
    if hours < 0:
        return None
    return hours


def split_names(value: str | None) -> list[str]:
    """Split a comma-separated list, trimming and dropping empties and repeats."""
    if not value:
        return []
    seen: dict[str, None] = {}
    for part in value.split(","):
        part = part.strip()
        if part:
            seen.setdefault(part, None)
    return list(seen)


def parse_tags(value: str | None) -> list[str]:
    """Tags are a comma-separated set; first occurrence order is kept."""
    return split_names(value)
