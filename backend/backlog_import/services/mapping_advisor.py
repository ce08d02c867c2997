"""
Column mapping suggestions.

The advisor proposes a FieldMapping for an export's headers; the user may
override any of it before importing, and the reconciliation engine never
calls an advisor itself. HeaderAliasAdvisor is the deterministic default:
exact alias matches first, then whole-phrase matches inside longer headers.
An external (e.g. model-backed) advisor can be swapped in through the
get_mapping_advisor dependency.
"""

import re
from collections.abc import Sequence
from typing import Protocol

from backlog_import.core.type_config import TARGET_FIELDS, TargetField
from backlog_import.schemas.imports import ColumnMapping, MappingSuggestion
from backlog_import.services.normalization import normalize_header

EXACT_CONFIDENCE = 0.9
PARTIAL_CONFIDENCE = 0.6
# Aliases shorter than this only match a header exactly ("id", "key")
MIN_PARTIAL_ALIAS = 4
_IDENTIFIER_SUFFIX = re.compile(r"(?<![a-z0-9])(id|key)$")

JIRA_MARKERS = {"issue key", "issue type", "issue id", "fields.summary", "fields.issuetype.name"}


class MappingAdvisor(Protocol):
    async def suggest(
        self,
        headers: Sequence[str],
        sample_rows: Sequence[dict[str, str]],
    ) -> MappingSuggestion:
        ...


def _partial_match(header: str, alias: str) -> bool:
    if len(alias) < MIN_PARTIAL_ALIAS:
        return False
    # "Parent id", "fields.parent.key": identifiers, never the named field itself
    if _IDENTIFIER_SUFFIX.search(header):
        return False
    return re.search(rf"(?<![a-z0-9]){re.escape(alias)}(?![a-z0-9])", header) is not None


class HeaderAliasAdvisor:
    """Suggests mappings from the alias lists in core.type_config."""

    def match_header(self, header: str) -> tuple[TargetField | None, float, int]:
        """Return (target, confidence, alias rank); lower rank is a better alias."""
        normalized = normalize_header(header)
        for definition in TARGET_FIELDS:
            if normalized in definition.aliases:
                return definition.field, EXACT_CONFIDENCE, definition.aliases.index(normalized)
        for definition in TARGET_FIELDS:
            for rank, alias in enumerate(definition.aliases):
                if _partial_match(normalized, alias):
                    return definition.field, PARTIAL_CONFIDENCE, rank
        return None, 0.0, 0

    async def suggest(
        self,
        headers: Sequence[str],
        sample_rows: Sequence[dict[str, str]],
    ) -> MappingSuggestion:
        candidates = [(header, *self.match_header(header)) for header in headers]

        # Each target goes to its best-scoring header; full ties keep header order.
        best: dict[TargetField, tuple[str, float, int]] = {}
        for header, target, confidence, rank in candidates:
            if target is None:
                continue
            current = best.get(target)
            if current is None or (confidence, -rank) > (current[1], -current[2]):
                best[target] = (header, confidence, rank)

        mappings: list[ColumnMapping] = []
        for header, target, confidence, _ in candidates:
            if target is not None and best[target][0] == header:
                mappings.append(ColumnMapping(source_column=header, target_field=target, confidence=confidence))
            else:
                mappings.append(ColumnMapping(source_column=header, target_field=None, confidence=0.0))

        normalized_headers = {normalize_header(h) for h in headers}
        detected_format = "jira" if normalized_headers & JIRA_MARKERS else "generic"

        suggestions: list[str] = []
        warnings: list[str] = []

        name_column = best.get(TargetField.NAME, (None, 0.0, 0))[0]
        if name_column is None:
            warnings.append("No column looks like a work item name; map one to 'name' before importing")
        elif sample_rows:
            blank = sum(1 for row in sample_rows if not (row.get(name_column) or "").strip())
            if blank:
                warnings.append(
                    f"{blank} of {len(sample_rows)} sample rows have no value in '{name_column}' "
                    "and will be skipped"
                )

        if TargetField.PARENT_NAME in best:
            suggestions.append(
                "Parent names are matched exactly against item names in this file; "
                "unknown parents can be created as Epics"
            )
        if TargetField.DEPENDENCIES in best:
            suggestions.append("Dependencies are matched exactly against item names in this file")
        if TargetField.SPRINT in best:
            suggestions.append("Per-row sprint values are ignored; choose one sprint for the whole import")

        unmapped = [m.source_column for m in mappings if m.target_field is None]
        if unmapped:
            suggestions.append(f"Unmapped columns will be ignored: {', '.join(unmapped)}")

        return MappingSuggestion(
            mappings=mappings,
            detected_format=detected_format,
            suggestions=suggestions,
            warnings=warnings,
        )


def get_mapping_advisor() -> MappingAdvisor:
    """FastAPI dependency; override it to plug in an external advisor."""
    return HeaderAliasAdvisor()
