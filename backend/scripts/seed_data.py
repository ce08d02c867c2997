"""
Seed data script — creates a demo team with an imported backlog.

Creates:
  - 1 Team ("Demo Team")
  - 1 Project ("Checkout Revamp")
  - 1 Sprint ("Sprint 1")
  - a Jira-style export run through the import pipeline:
      epics, stories and tasks with parent links, dependencies,
      one missing parent (auto-created as an Epic) and one duplicate row

Usage:
  python -m scripts.seed_data

  Alternatively, import and call seed_demo() with a database session.
"""

import asyncio
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Ensure models are imported so Base.metadata is populated
import backlog_import.models  # noqa: F401
from backlog_import.core.config import settings
from backlog_import.core.database import Base
from backlog_import.core.logging import configure_logging
from backlog_import.core.type_config import TargetField
from backlog_import.models.infrastructure import Project, Sprint, Team
from backlog_import.schemas.imports import ColumnMapping, ReconciliationReport
from backlog_import.services.reconciliation import reconcile
from backlog_import.services.work_item_store import SqlWorkItemStore

logger = logging.getLogger(__name__)


# ─── Demo export ───────────────────────────────────────────────

DEMO_MAPPING = [
    ColumnMapping(source_column="Issue key", target_field=TargetField.EXTERNAL_ID),
    ColumnMapping(source_column="Summary", target_field=TargetField.NAME),
    ColumnMapping(source_column="Issue Type", target_field=TargetField.TYPE),
    ColumnMapping(source_column="Status", target_field=TargetField.STATUS),
    ColumnMapping(source_column="Priority", target_field=TargetField.PRIORITY),
    ColumnMapping(source_column="Assignee", target_field=TargetField.OWNER),
    ColumnMapping(source_column="Parent", target_field=TargetField.PARENT_NAME),
    ColumnMapping(source_column="Blocked By", target_field=TargetField.DEPENDENCIES),
    ColumnMapping(source_column="Labels", target_field=TargetField.TAGS),
    ColumnMapping(source_column="Original Estimate", target_field=TargetField.ESTIMATED_HOURS),
]


def _row(key, summary, issue_type, status="To Do", priority="Medium", assignee="",
         parent="", blocked_by="", labels="", estimate=""):
    return {
        "Issue key": key,
        "Summary": summary,
        "Issue Type": issue_type,
        "Status": status,
        "Priority": priority,
        "Assignee": assignee,
        "Parent": parent,
        "Blocked By": blocked_by,
        "Labels": labels,
        "Original Estimate": estimate,
    }


DEMO_ROWS = [
    _row("CHK-1", "Payments", "Epic", "In Progress", "High", "Dana"),
    _row("CHK-2", "Cart", "Epic", "In Progress", "Medium", "Lee"),
    _row("CHK-3", "Card tokenization", "Story", "In Progress", "Highest", "Dana",
         parent="Payments", labels="payments, security", estimate="13"),
    _row("CHK-4", "Stripe webhook handler", "Task", "To Do", "High", "Sam",
         parent="Payments", blocked_by="Card tokenization", estimate="5"),
    _row("CHK-5", "Refund flow", "Story", "Blocked", "Medium", "Sam",
         parent="Payments", blocked_by="Card tokenization, Stripe webhook handler", estimate="8"),
    _row("CHK-6", "Persist cart across sessions", "Story", "Done", "Medium", "Lee",
         parent="Cart", labels="cart", estimate="8"),
    _row("CHK-7", "Cart badge shows stale count", "Bug", "In Review", "High", "Lee",
         parent="Cart", labels="cart, ui", estimate="2"),
    _row("CHK-8", "Address autocomplete", "Story", "To Do", "Low", "Ari",
         parent="Shipping", estimate="5"),
    _row("CHK-9", "Shipping rates API", "Task", "To Do", "Lowest", "Ari",
         parent="Shipping", blocked_by="Address autocomplete", estimate="3"),
    _row("CHK-10", "Checkout analytics", "Task", "To Do", "P2", "",
         blocked_by="Refund flow, Fraud scoring"),
    # Same summary as CHK-6; skipped as a duplicate
    _row("CHK-11", "Persist cart across sessions", "Story", "To Do", "Low", "Lee"),
]


# ─── Seed ──────────────────────────────────────────────────────

async def seed_demo(db: AsyncSession) -> tuple[dict[str, uuid.UUID], ReconciliationReport]:
    """Create the demo team, project and sprint, then import DEMO_ROWS."""
    team = Team(name="Demo Team")
    db.add(team)
    await db.flush()

    project = Project(team_id=team.id, name="Checkout Revamp", description="Demo backlog")
    sprint = Sprint(team_id=team.id, name="Sprint 1", status="ACTIVE")
    db.add_all([project, sprint])
    await db.flush()

    store = SqlWorkItemStore(db, project_id=project.id, sprint_id=sprint.id)
    report = await reconcile(DEMO_ROWS, DEMO_MAPPING, store)

    ids = {"team": team.id, "project": project.id, "sprint": sprint.id}
    logger.info(
        "Seeded %s: %d work items, %d parent links, %d dependencies",
        project.name, report.created, report.parents_linked, report.dependencies_linked,
    )
    return ids, report


# ─── CLI entry point ───────────────────────────────────────────

async def main():
    configure_logging(level=settings.LOG_LEVEL)
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_factory() as session:
        async with session.begin():
            await seed_demo(session)

    await engine.dispose()
    logger.info("Seed complete")


if __name__ == "__main__":
    asyncio.run(main())
