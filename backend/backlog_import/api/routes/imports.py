"""
Import API routes.

Endpoints:
  POST   /api/v1/import/parse    — Parse an uploaded export (CSV/JSON/Excel) into rows
  POST   /api/v1/import/analyze  — Suggest a column mapping for parsed headers
  POST   /api/v1/import          — Reconcile mapped rows into a project's backlog

The import itself is best-effort: rows that cannot be created, and links
that cannot be resolved, are reported in the result rather than failing the
request. Only request-level problems (unknown team/project/sprint, no name
mapping, oversized batch) are rejected up front, before anything is created.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backlog_import.core.config import settings
from backlog_import.core.database import get_db
from backlog_import.core.type_config import TargetField
from backlog_import.models.infrastructure import Project, Sprint, Team
from backlog_import.schemas.imports import (
    AnalyzeRequest,
    ImportRequest,
    ImportResult,
    MappingSuggestion,
    ParsedExport,
)
from backlog_import.services.column_mapping import ColumnMapper, MissingNameMappingError
from backlog_import.services.file_parsing import ExportParseError, parse_export
from backlog_import.services.mapping_advisor import MappingAdvisor, get_mapping_advisor
from backlog_import.services.reconciliation import ReconcileOptions, reconcile
from backlog_import.services.work_item_store import SqlWorkItemStore

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Helpers ───────────────────────────────────────────────────

async def _get_team_or_404(db: AsyncSession, team_id: uuid.UUID) -> Team:
    team = await db.get(Team, team_id)
    if not team:
        raise HTTPException(status_code=404, detail=f"Team not found: {team_id}")
    return team


async def _resolve_project(db: AsyncSession, team: Team, payload: ImportRequest) -> Project:
    """Use the given project of this team, or create one from project_name."""
    if payload.project_id:
        result = await db.execute(
            select(Project).where(
                Project.id == payload.project_id,
                Project.team_id == team.id,
            )
        )
        project = result.scalar_one_or_none()
        if not project:
            raise HTTPException(
                status_code=404,
                detail=f"Project not found in team: {payload.project_id}",
            )
        return project

    if payload.project_name:
        project = Project(team_id=team.id, name=payload.project_name)
        db.add(project)
        await db.flush()
        await db.refresh(project)
        logger.info("Created project %r for import", project.name)
        return project

    raise HTTPException(status_code=400, detail="Project is required for import")


async def _validate_sprint(db: AsyncSession, team: Team, sprint_id: uuid.UUID) -> Sprint:
    result = await db.execute(
        select(Sprint).where(Sprint.id == sprint_id, Sprint.team_id == team.id)
    )
    sprint = result.scalar_one_or_none()
    if not sprint:
        raise HTTPException(status_code=404, detail=f"Sprint not found in team: {sprint_id}")
    return sprint


# ─── Parse / Analyze ──────────────────────────────────────────

@router.post("/import/parse", response_model=ParsedExport)
async def parse_file(file: UploadFile = File(...)):
    """
    Parse an uploaded export into raw rows.

    Format is chosen by extension: .json, .xlsx, anything else as CSV.
    """
    file_bytes = await file.read()
    if not file_bytes:
        raise HTTPException(status_code=400, detail="Empty file uploaded")

    try:
        fmt, headers, rows = parse_export(file_bytes, file.filename)
    except ExportParseError as e:
        raise HTTPException(status_code=400, detail=f"Failed to parse file: {e}")

    if not headers:
        raise HTTPException(status_code=400, detail="No data found in file")
    if len(rows) > settings.IMPORT_MAX_ROWS:
        raise HTTPException(
            status_code=413,
            detail=f"File has {len(rows)} rows; the limit is {settings.IMPORT_MAX_ROWS}",
        )

    return ParsedExport(format=fmt, headers=headers, rows=rows)


@router.post("/import/analyze", response_model=MappingSuggestion)
async def analyze_import(
    payload: AnalyzeRequest,
    advisor: MappingAdvisor = Depends(get_mapping_advisor),
):
    """
    Suggest a column → field mapping for an export.

    Only the first IMPORT_SAMPLE_ROWS sample rows are passed to the advisor.
    The suggestion is advisory; the client sends back whatever mapping the
    user confirms.
    """
    if not payload.headers:
        raise HTTPException(status_code=400, detail="At least one header is required")
    return await advisor.suggest(
        payload.headers,
        payload.sample_rows[: settings.IMPORT_SAMPLE_ROWS],
    )


# ─── Main Import Endpoint ─────────────────────────────────────

@router.post("/import", response_model=ImportResult, status_code=201)
async def execute_import(
    payload: ImportRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Reconcile mapped rows into work items.

      1. Create one work item per named, non-duplicate row
      2. Link parents by name (optionally creating missing parents as Epics)
      3. Link dependencies by name

    Items already created stay created even if later rows fail.
    """
    if len(payload.rows) > settings.IMPORT_MAX_ROWS:
        raise HTTPException(
            status_code=413,
            detail=f"Import has {len(payload.rows)} rows; the limit is {settings.IMPORT_MAX_ROWS}",
        )

    team = await _get_team_or_404(db, payload.team_id)
    sprint_id = None
    if payload.auto_assign_sprint:
        sprint_id = (await _validate_sprint(db, team, payload.auto_assign_sprint)).id

    # Checked before the project is created so a bad request leaves nothing behind
    mapper = ColumnMapper(payload.mappings)
    try:
        mapper.require(TargetField.NAME)
    except MissingNameMappingError as e:
        raise HTTPException(status_code=400, detail=str(e))

    project = await _resolve_project(db, team, payload)

    create_missing_parents = payload.create_missing_parents
    if create_missing_parents is None:
        create_missing_parents = settings.IMPORT_CREATE_MISSING_PARENTS

    store = SqlWorkItemStore(db, project_id=project.id, sprint_id=sprint_id)
    report = await reconcile(
        payload.rows,
        mapper,
        store,
        ReconcileOptions(
            create_missing_parents=create_missing_parents,
            max_concurrency=settings.IMPORT_MAX_CONCURRENCY,
        ),
    )
    return ImportResult(project_id=project.id, stats=report)
