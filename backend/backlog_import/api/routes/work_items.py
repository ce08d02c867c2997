"""Work item API routes — read back what an import produced."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backlog_import.core.database import get_db
from backlog_import.core.type_config import WorkItemType
from backlog_import.models.core import Dependency, WorkItem
from backlog_import.models.infrastructure import Project
from backlog_import.schemas.work_items import DependencyResponse, PaginatedWorkItems

router = APIRouter()


async def _get_project_or_404(db: AsyncSession, project_id: uuid.UUID) -> Project:
    project = await db.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.get("/projects/{project_id}/work-items", response_model=PaginatedWorkItems)
async def list_work_items(
    project_id: uuid.UUID,
    type: WorkItemType | None = Query(None, description="Filter by work item type"),
    parent_id: uuid.UUID | None = Query(None, description="Only direct children of this item"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """List a project's work items, oldest first."""
    await _get_project_or_404(db, project_id)

    query = select(WorkItem).where(WorkItem.project_id == project_id)
    count_query = select(func.count(WorkItem.id)).where(WorkItem.project_id == project_id)

    if type:
        query = query.where(WorkItem.type == type.value)
        count_query = count_query.where(WorkItem.type == type.value)
    if parent_id:
        query = query.where(WorkItem.parent_id == parent_id)
        count_query = count_query.where(WorkItem.parent_id == parent_id)

    total = (await db.execute(count_query)).scalar()

    query = query.order_by(WorkItem.created_at, WorkItem.name).limit(limit).offset(offset)
    result = await db.execute(query)
    items = result.scalars().all()

    return PaginatedWorkItems(items=items, total=total, limit=limit, offset=offset)


@router.get("/projects/{project_id}/dependencies", response_model=list[DependencyResponse])
async def list_dependencies(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """All "requires" edges whose dependent item belongs to the project."""
    await _get_project_or_404(db, project_id)

    result = await db.execute(
        select(Dependency)
        .join(WorkItem, Dependency.dependent_id == WorkItem.id)
        .where(WorkItem.project_id == project_id)
        .order_by(Dependency.created_at)
    )
    return result.scalars().all()
