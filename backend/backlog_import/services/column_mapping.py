"""
Column mapping resolution.

A FieldMapping is the ordered list of (source column → target field) pairs
the user confirmed, usually starting from the advisor's suggestion. Several
columns may feed the same target field: they are tried in mapping order and
the first non-blank cell wins.
"""

from collections.abc import Mapping, Sequence

from backlog_import.core.type_config import TargetField
from backlog_import.schemas.imports import ColumnMapping

RawRow = Mapping[str, str]


class MissingNameMappingError(ValueError):
    """The mapping has no column targeting the work item name."""

    def __init__(self) -> None:
        super().__init__("A column must be mapped to 'name' before importing")


class ColumnMapper:
    """Lookup from target field to the source columns mapped onto it."""

    def __init__(self, mappings: Sequence[ColumnMapping]) -> None:
        self._columns: dict[TargetField, list[str]] = {}
        for m in mappings:
            if m.target_field is None:
                continue
            self._columns.setdefault(m.target_field, []).append(m.source_column)

    def has_target(self, target: TargetField) -> bool:
        return bool(self._columns.get(target))

    def columns_for(self, target: TargetField) -> list[str]:
        return list(self._columns.get(target, ()))

    def require(self, target: TargetField) -> None:
        """Fail fast when a mandatory target has no column."""
        if not self.has_target(target):
            if target == TargetField.NAME:
                raise MissingNameMappingError()
            raise ValueError(f"No column is mapped to '{target.value}'")

    def value_of(self, row: RawRow, target: TargetField) -> str | None:
        """Trimmed value of the first mapped column with a non-blank cell."""
        for column in self._columns.get(target, ()):
            value = row.get(column)
            if value is None:
                continue
            value = str(value).strip()
            if value:
                return value
        return None
