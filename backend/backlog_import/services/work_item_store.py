"""
Entity store used by the reconciliation engine.

The engine only needs three writes; every one of them may fail on its own
and the engine treats each call site as fallible. SqlWorkItemStore wraps each
call in a savepoint so that one rejected row leaves the surrounding
transaction usable for the rest of the batch.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backlog_import.core.type_config import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    DEFAULT_TYPE,
    WorkItemStatus,
    WorkItemType,
)
from backlog_import.models.core import Dependency, WorkItem


@dataclass(frozen=True)
class WorkItemDraft:
    """Normalized fields of a work item about to be created."""
    name: str
    type: WorkItemType = DEFAULT_TYPE
    status: WorkItemStatus = DEFAULT_STATUS
    priority: int = DEFAULT_PRIORITY
    description: str | None = None
    owner: str | None = None
    external_id: str | None = None
    tags: tuple[str, ...] = ()
    estimated_hours: float | None = None


class WorkItemStore(Protocol):
    async def create_work_item(self, draft: WorkItemDraft) -> uuid.UUID:
        """Persist a new work item and return its id."""
        ...

    async def update_parent(self, item_id: uuid.UUID, parent_id: uuid.UUID) -> None:
        ...

    async def create_dependency_edge(self, dependent_id: uuid.UUID, required_id: uuid.UUID) -> bool:
        """Ensure the edge exists. Returns False if it already did."""
        ...


class SqlWorkItemStore:
    """
    WorkItemStore backed by an AsyncSession.

    Every item lands in project_id; sprint_id, when given, is assigned to the
    whole batch. An AsyncSession cannot be used concurrently, so calls are
    serialized on a lock.
    """

    def __init__(
        self,
        db: AsyncSession,
        project_id: uuid.UUID,
        sprint_id: uuid.UUID | None = None,
    ) -> None:
        self._db = db
        self.project_id = project_id
        self.sprint_id = sprint_id
        self._lock = asyncio.Lock()

    async def create_work_item(self, draft: WorkItemDraft) -> uuid.UUID:
        async with self._lock:
            item = WorkItem(
                project_id=self.project_id,
                sprint_id=self.sprint_id,
                name=draft.name,
                description=draft.description,
                type=draft.type.value,
                status=draft.status.value,
                priority=draft.priority,
                owner=draft.owner,
                external_id=draft.external_id,
                tags=list(draft.tags),
                estimated_hours=draft.estimated_hours,
            )
            async with self._db.begin_nested():
                self._db.add(item)
                await self._db.flush()
            return item.id

    async def update_parent(self, item_id: uuid.UUID, parent_id: uuid.UUID) -> None:
        if item_id == parent_id:
            raise ValueError("A work item cannot be its own parent")
        async with self._lock:
            async with self._db.begin_nested():
                item = await self._db.get(WorkItem, item_id)
                if item is None:
                    raise LookupError(f"Work item not found: {item_id}")
                item.parent_id = parent_id
                await self._db.flush()

    async def create_dependency_edge(self, dependent_id: uuid.UUID, required_id: uuid.UUID) -> bool:
        if dependent_id == required_id:
            raise ValueError("A work item cannot depend on itself")
        async with self._lock:
            existing = await self._db.execute(
                select(Dependency.id).where(
                    and_(
                        Dependency.dependent_id == dependent_id,
                        Dependency.required_id == required_id,
                    )
                )
            )
            if existing.scalar_one_or_none():
                return False
            async with self._db.begin_nested():
                self._db.add(Dependency(dependent_id=dependent_id, required_id=required_id))
                await self._db.flush()
            return True
