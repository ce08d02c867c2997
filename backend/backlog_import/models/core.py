"""
Core data models: WorkItems and Dependencies.

A backlog is a forest of work items (parent_id, owned by the child) with
directed "requires" edges layered on top:

  dependency (dependent_id → required_id) reads "dependent requires required".

Neither relation may point an item at itself.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backlog_import.core.database import Base
from backlog_import.core.type_config import DEFAULT_STATUS, DEFAULT_TYPE


class WorkItem(Base):
    """
    One importable unit of work: epic, feature, story, task or bug.

    type and status hold the enum values from core.type_config.
    """

    __tablename__ = "work_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    sprint_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("sprints.id", ondelete="SET NULL"),
        nullable=True,
    )
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("work_items.id", ondelete="SET NULL"),
        nullable=True,
    )
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DEFAULT_TYPE.value,
        comment="EPIC, FEATURE, STORY, TASK or BUG",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DEFAULT_STATUS.value,
    )
    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="0 (unset) to 5 (critical)",
    )
    owner: Mapped[str | None] = mapped_column(String(255), nullable=True)
    external_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Key in the originating tracker, e.g. a Jira issue key.",
    )
    tags: Mapped[list] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
    )
    estimated_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    required_dependencies: Mapped[list["Dependency"]] = relationship(
        "Dependency",
        foreign_keys="Dependency.dependent_id",
        back_populates="dependent",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_work_items_project", "project_id"),
        Index("idx_work_items_parent", "parent_id"),
        Index("idx_work_items_sprint", "sprint_id"),
        Index("idx_work_items_type", "type"),
        Index("idx_work_items_external_id", "external_id"),
        CheckConstraint(
            "parent_id IS NULL OR parent_id <> id",
            name="ck_work_items_not_own_parent",
        ),
    )

    def __repr__(self) -> str:
        return f"<WorkItem {self.type}:{self.name}>"


class Dependency(Base):
    """A directed "requires" edge between two work items."""

    __tablename__ = "dependencies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    dependent_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False,
    )
    required_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    dependent: Mapped["WorkItem"] = relationship(
        "WorkItem",
        foreign_keys=[dependent_id],
        back_populates="required_dependencies",
    )

    __table_args__ = (
        UniqueConstraint("dependent_id", "required_id", name="uq_dependencies_pair"),
        CheckConstraint("dependent_id <> required_id", name="ck_dependencies_no_self"),
        Index("idx_dependencies_required", "required_id"),
    )

    def __repr__(self) -> str:
        return f"<Dependency {self.dependent_id} → {self.required_id}>"
