"""Pydantic schemas for the import pipeline."""

import uuid

from pydantic import BaseModel, Field, model_validator

from backlog_import.core.type_config import TargetField


# ─── Column Mapping ───────────────────────────────────────────

class ColumnMapping(BaseModel):
    """
    One source column and the work item field it feeds.

    target_field None means the column is ignored. Confidence is advisory
    only; user overrides are sent back with confidence 1.
    """
    source_column: str
    target_field: TargetField | None = None
    confidence: float = Field(1.0, ge=0.0, le=1.0)


class MappingSuggestion(BaseModel):
    """What the mapping advisor proposes for an export."""
    mappings: list[ColumnMapping]
    detected_format: str = Field(
        "generic",
        description="Best guess at the export's origin, e.g. 'jira' or 'generic'",
    )
    suggestions: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class AnalyzeRequest(BaseModel):
    """Headers and a few sample rows of a parsed export."""
    headers: list[str]
    sample_rows: list[dict[str, str]] = Field(default_factory=list)


class ParsedExport(BaseModel):
    """A file turned into raw rows."""
    format: str
    headers: list[str]
    rows: list[dict[str, str]]


# ─── Import Request / Response ────────────────────────────────

class ImportRequest(BaseModel):
    """
    Request body for the main import endpoint.

    Either project_id (an existing project of the team) or project_name
    (a project to create) must be given.
    """
    team_id: uuid.UUID
    project_id: uuid.UUID | None = None
    project_name: str | None = Field(None, min_length=1, max_length=255)
    mappings: list[ColumnMapping]
    rows: list[dict[str, str]]
    create_missing_parents: bool | None = Field(
        None,
        description="Create an Epic for each unknown parent name. Defaults to server setting.",
    )
    auto_assign_sprint: uuid.UUID | None = Field(
        None,
        description="Sprint every imported item is assigned to",
    )

    @model_validator(mode="after")
    def strip_project_name(self):
        if self.project_name is not None:
            self.project_name = self.project_name.strip() or None
        return self


class ReconciliationReport(BaseModel):
    """
    Outcome of one reconciliation run.

    warnings are non-fatal (skipped rows, unresolved parents/dependencies);
    errors mean a row's effect was abandoned while the batch continued.
    """
    created: int = 0
    skipped: int = 0
    parents_linked: int = 0
    dependencies_linked: int = 0
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    model_config = {"frozen": True}


class ImportResult(BaseModel):
    """Full response from the import endpoint."""
    project_id: uuid.UUID
    stats: ReconciliationReport
