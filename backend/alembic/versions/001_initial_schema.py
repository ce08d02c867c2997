"""Initial schema: teams, projects, sprints, work items and dependencies.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Extensions ──────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── Teams ───────────────────────────────────────────────
    op.create_table(
        "teams",
        sa.Column("id", UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text("uuid_generate_v4()")),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.func.now()),
    )

    # ── Projects ────────────────────────────────────────────
    op.create_table(
        "projects",
        sa.Column("id", UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text("uuid_generate_v4()")),
        sa.Column("team_id", UUID(as_uuid=True),
                  sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_projects_team", "projects", ["team_id"])

    # ── Sprints ─────────────────────────────────────────────
    op.create_table(
        "sprints",
        sa.Column("id", UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text("uuid_generate_v4()")),
        sa.Column("team_id", UUID(as_uuid=True),
                  sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False,
                  server_default="PLANNING"),
        sa.Column("created_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_sprints_team", "sprints", ["team_id"])

    # ── Work Items ──────────────────────────────────────────
    op.create_table(
        "work_items",
        sa.Column("id", UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text("uuid_generate_v4()")),
        sa.Column("project_id", UUID(as_uuid=True),
                  sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sprint_id", UUID(as_uuid=True),
                  sa.ForeignKey("sprints.id", ondelete="SET NULL"), nullable=True),
        sa.Column("parent_id", UUID(as_uuid=True),
                  sa.ForeignKey("work_items.id", ondelete="SET NULL"), nullable=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("type", sa.String(20), nullable=False, server_default="TASK"),
        sa.Column("status", sa.String(20), nullable=False, server_default="PLANNING"),
        sa.Column("priority", sa.Integer, nullable=False, server_default="0"),
        sa.Column("owner", sa.String(255), nullable=True),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("tags", JSONB, nullable=False,
                  server_default=sa.text("'[]'::jsonb")),
        sa.Column("estimated_hours", sa.Float, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("parent_id IS NULL OR parent_id <> id",
                           name="ck_work_items_not_own_parent"),
    )
    op.create_index("idx_work_items_project", "work_items", ["project_id"])
    op.create_index("idx_work_items_parent", "work_items", ["parent_id"])
    op.create_index("idx_work_items_sprint", "work_items", ["sprint_id"])
    op.create_index("idx_work_items_type", "work_items", ["type"])
    op.create_index("idx_work_items_external_id", "work_items", ["external_id"])

    # ── Dependencies ────────────────────────────────────────
    op.create_table(
        "dependencies",
        sa.Column("id", UUID(as_uuid=True), primary_key=True,
                  server_default=sa.text("uuid_generate_v4()")),
        sa.Column("dependent_id", UUID(as_uuid=True),
                  sa.ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("required_id", UUID(as_uuid=True),
                  sa.ForeignKey("work_items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True),
                  nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("dependent_id", "required_id", name="uq_dependencies_pair"),
        sa.CheckConstraint("dependent_id <> required_id", name="ck_dependencies_no_self"),
    )
    op.create_index("idx_dependencies_required", "dependencies", ["required_id"])


def downgrade() -> None:
    op.drop_table("dependencies")
    op.drop_table("work_items")
    op.drop_table("sprints")
    op.drop_table("projects")
    op.drop_table("teams")
