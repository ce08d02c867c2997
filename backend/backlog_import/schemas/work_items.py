"""Pydantic schemas for Work Items and Dependencies."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class WorkItemResponse(BaseModel):
    """Schema for a work item in API responses."""
    id: uuid.UUID
    project_id: uuid.UUID
    sprint_id: uuid.UUID | None
    parent_id: uuid.UUID | None
    name: str
    description: str | None
    type: str
    status: str
    priority: int
    owner: str | None
    external_id: str | None
    tags: list[str] = Field(default_factory=list)
    estimated_hours: float | None
    created_at: datetime

    model_config = {"from_attributes": True}


class PaginatedWorkItems(BaseModel):
    """Paginated list of work items with total count."""
    items: list[WorkItemResponse]
    total: int
    limit: int
    offset: int


class DependencyResponse(BaseModel):
    """A "requires" edge: dependent_id requires required_id."""
    id: uuid.UUID
    dependent_id: uuid.UUID
    required_id: uuid.UUID
    created_at: datetime

    model_config = {"from_attributes": True}
