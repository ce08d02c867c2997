"""
Tests for the three-pass reconciliation engine.

Covers:
  - Pass 1: creation, skipped rows (no name, duplicates), store failures
  - Pass 2: parent linking, auto-created parent Epics, unresolved parents
  - Pass 3: dependency edges, unknown names, self-dependencies, repeats
  - Report: counts, message order, determinism
  - SqlWorkItemStore against SQLite
"""

import uuid

import pytest
from sqlalchemy import select

from backlog_import.core.type_config import TargetField, WorkItemStatus, WorkItemType
from backlog_import.models.core import Dependency, WorkItem
from backlog_import.schemas.imports import ColumnMapping
from backlog_import.services.column_mapping import MissingNameMappingError
from backlog_import.services.reconciliation import (
    NameIndex,
    ReconcileOptions,
    reconcile,
)
from backlog_import.services.work_item_store import SqlWorkItemStore, WorkItemDraft
from tests.fixtures.export_factory import backlog_rows, standard_mappings


# ─── In-memory stores ─────────────────────────────────────────

class MemoryStore:
    """WorkItemStore keeping everything in dicts."""

    def __init__(self):
        self.items: dict[uuid.UUID, WorkItemDraft] = {}
        self.parents: dict[uuid.UUID, uuid.UUID] = {}
        self.edges: set[tuple[uuid.UUID, uuid.UUID]] = set()
        self.order: list[str] = []

    async def create_work_item(self, draft):
        item_id = uuid.uuid4()
        self.items[item_id] = draft
        self.order.append(draft.name)
        return item_id

    async def update_parent(self, item_id, parent_id):
        if item_id == parent_id:
            raise ValueError("A work item cannot be its own parent")
        self.parents[item_id] = parent_id

    async def create_dependency_edge(self, dependent_id, required_id):
        if dependent_id == required_id:
            raise ValueError("A work item cannot depend on itself")
        if (dependent_id, required_id) in self.edges:
            return False
        self.edges.add((dependent_id, required_id))
        return True

    # Test helpers
    def id_of(self, name):
        return next(i for i, d in self.items.items() if d.name == name)

    def draft(self, name):
        return self.items[self.id_of(name)]

    def parent_name(self, name):
        parent_id = self.parents.get(self.id_of(name))
        return self.items[parent_id].name if parent_id else None

    def edge_names(self):
        return {(self.items[a].name, self.items[b].name) for a, b in self.edges}


class FailingStore(MemoryStore):
    """MemoryStore that rejects chosen names, parent links or edges."""

    def __init__(self, fail_names=(), fail_parent_of=(), fail_edges_from=()):
        super().__init__()
        self.fail_names = set(fail_names)
        self.fail_parent_of = set(fail_parent_of)
        self.fail_edges_from = set(fail_edges_from)

    async def create_work_item(self, draft):
        if draft.name in self.fail_names:
            raise RuntimeError("insert rejected")
        return await super().create_work_item(draft)

    async def update_parent(self, item_id, parent_id):
        if self.items[item_id].name in self.fail_parent_of:
            raise RuntimeError("update rejected")
        await super().update_parent(item_id, parent_id)

    async def create_dependency_edge(self, dependent_id, required_id):
        if self.items[dependent_id].name in self.fail_edges_from:
            raise RuntimeError("edge rejected")
        return await super().create_dependency_edge(dependent_id, required_id)


MAPPINGS = [
    ColumnMapping(source_column="Name", target_field=TargetField.NAME),
    ColumnMapping(source_column="Type", target_field=TargetField.TYPE),
    ColumnMapping(source_column="Parent", target_field=TargetField.PARENT_NAME),
    ColumnMapping(source_column="Deps", target_field=TargetField.DEPENDENCIES),
]


def _rows(*entries):
    """entries: (name, type, parent, deps) tuples; missing trailing fields are ''."""
    rows = []
    for values in entries:
        name, type_, parent, deps = (list(values) + ["", "", "", ""])[:4]
        rows.append({"Name": name, "Type": type_, "Parent": parent, "Deps": deps})
    return rows


# ─── Pass 1: Create ───────────────────────────────────────────

@pytest.mark.asyncio
async def test_creates_one_item_per_row():
    store = MemoryStore()
    report = await reconcile(_rows(("Login",), ("Logout",)), MAPPINGS, store)

    assert report.created == 2
    assert report.skipped == 0
    assert report.warnings == ()
    assert report.errors == ()
    assert store.order == ["Login", "Logout"]


@pytest.mark.asyncio
async def test_row_fields_are_normalized():
    rows = [{
        "Summary": "  Checkout  ",
        "Kind": "User Story",
        "State": "In Progress",
        "Prio": "Highest",
        "Hours": "8h",
        "Labels": "ui, ui, payments",
        "Who": "Robin",
        "Key": "SHOP-7",
        "Notes": "Card only",
    }]
    mappings = [
        ColumnMapping(source_column="Summary", target_field=TargetField.NAME),
        ColumnMapping(source_column="Kind", target_field=TargetField.TYPE),
        ColumnMapping(source_column="State", target_field=TargetField.STATUS),
        ColumnMapping(source_column="Prio", target_field=TargetField.PRIORITY),
        ColumnMapping(source_column="Hours", target_field=TargetField.ESTIMATED_HOURS),
        ColumnMapping(source_column="Labels", target_field=TargetField.TAGS),
        ColumnMapping(source_column="Who", target_field=TargetField.OWNER),
        ColumnMapping(source_column="Key", target_field=TargetField.EXTERNAL_ID),
        ColumnMapping(source_column="Notes", target_field=TargetField.DESCRIPTION),
    ]
    store = MemoryStore()
    await reconcile(rows, mappings, store)

    draft = store.draft("Checkout")
    assert draft.type == WorkItemType.STORY
    assert draft.status == WorkItemStatus.IN_PROGRESS
    assert draft.priority == 5
    assert draft.estimated_hours == 8.0
    assert draft.tags == ("ui", "payments")
    assert draft.owner == "Robin"
    assert draft.external_id == "SHOP-7"
    assert draft.description == "Card only"


@pytest.mark.asyncio
async def test_defaults_for_unmapped_fields():
    store = MemoryStore()
    await reconcile([{"Name": "Plain"}], [MAPPINGS[0]], store)

    draft = store.draft("Plain")
    assert draft.type == WorkItemType.TASK
    assert draft.status == WorkItemStatus.PLANNING
    assert draft.priority == 0
    assert draft.estimated_hours is None
    assert draft.tags == ()


@pytest.mark.asyncio
async def test_row_without_name_is_skipped():
    store = MemoryStore()
    report = await reconcile(_rows(("A",), ("   ",), ("B",)), MAPPINGS, store)

    assert report.created == 2
    assert report.skipped == 1
    assert report.warnings == ("Row 2: Skipped - no name",)


@pytest.mark.asyncio
async def test_duplicate_name_is_skipped():
    store = MemoryStore()
    report = await reconcile(_rows(("A", "Epic"), ("A", "Bug")), MAPPINGS, store)

    assert report.created == 1
    assert report.skipped == 1
    assert report.warnings == ("Row 2: Skipped duplicate name 'A'",)
    # The first occurrence wins
    assert store.draft("A").type == WorkItemType.EPIC


@pytest.mark.asyncio
async def test_names_are_case_sensitive():
    store = MemoryStore()
    report = await reconcile(_rows(("Login",), ("login",)), MAPPINGS, store)

    assert report.created == 2
    assert report.skipped == 0


@pytest.mark.asyncio
async def test_store_failure_abandons_only_that_row():
    store = FailingStore(fail_names={"B"})
    report = await reconcile(_rows(("A",), ("B",), ("C", "", "", "B")), MAPPINGS, store)

    assert report.created == 2
    assert report.skipped == 0
    assert report.errors == ("Row 2: insert rejected",)
    # B never made it into the index, so C's dependency is unresolved
    assert report.warnings == ("Dependency not found: 'C' depends on 'B'",)


@pytest.mark.asyncio
async def test_missing_name_mapping_is_fatal():
    store = MemoryStore()
    mappings = [ColumnMapping(source_column="Title", target_field=TargetField.DESCRIPTION)]

    with pytest.raises(MissingNameMappingError):
        await reconcile([{"Title": "x"}], mappings, store)

    assert store.items == {}


@pytest.mark.asyncio
async def test_empty_batch():
    report = await reconcile([], MAPPINGS, MemoryStore())

    assert report.created == 0
    assert report.skipped == 0
    assert report.warnings == ()
    assert report.errors == ()


# ─── Pass 2: Link Parents ─────────────────────────────────────

@pytest.mark.asyncio
async def test_parent_defined_later_in_file_is_linked():
    store = MemoryStore()
    report = await reconcile(_rows(("Child", "Task", "Epic A"), ("Epic A", "Epic")), MAPPINGS, store)

    assert report.parents_linked == 1
    assert report.warnings == ()
    assert store.parent_name("Child") == "Epic A"


@pytest.mark.asyncio
async def test_missing_parent_is_created_once():
    store = MemoryStore()
    report = await reconcile(
        _rows(("Story 1", "Story", "Payments"), ("Story 2", "Story", "Payments")),
        MAPPINGS,
        store,
    )

    assert report.created == 3
    assert report.parents_linked == 2
    assert report.warnings == ("Auto-created parent Epic: Payments",)
    assert store.draft("Payments").type == WorkItemType.EPIC
    assert store.parent_name("Story 1") == "Payments"
    assert store.parent_name("Story 2") == "Payments"


@pytest.mark.asyncio
async def test_missing_parent_without_auto_create():
    store = MemoryStore()
    report = await reconcile(
        _rows(("Story 1", "Story", "Payments")),
        MAPPINGS,
        store,
        ReconcileOptions(create_missing_parents=False),
    )

    assert report.created == 1
    assert report.parents_linked == 0
    assert report.warnings == ("Parent not found: Payments",)
    assert store.parent_name("Story 1") is None


@pytest.mark.asyncio
async def test_self_parent_is_ignored():
    store = MemoryStore()
    report = await reconcile(_rows(("Loop", "Task", "Loop")), MAPPINGS, store)

    assert report.parents_linked == 0
    assert report.warnings == ("Ignored self-parent: Loop",)
    assert store.parents == {}


@pytest.mark.asyncio
async def test_failed_parent_creation_warns():
    store = FailingStore(fail_names={"Payments"})
    report = await reconcile(_rows(("Story 1", "Story", "Payments")), MAPPINGS, store)

    assert report.created == 1
    assert report.errors == ()
    assert report.warnings == (
        "Could not create parent Epic: Payments",
        "Parent not found: Payments",
    )


@pytest.mark.asyncio
async def test_failed_parent_link_warns_and_continues():
    store = FailingStore(fail_parent_of={"A"})
    report = await reconcile(_rows(("P", "Epic"), ("A", "Task", "P"), ("B", "Task", "P")), MAPPINGS, store)

    assert report.parents_linked == 1
    assert report.warnings == ("Could not link 'A' to parent 'P': update rejected",)
    assert store.parent_name("B") == "P"


# ─── Pass 3: Link Dependencies ────────────────────────────────

@pytest.mark.asyncio
async def test_dependencies_are_linked():
    store = MemoryStore()
    report = await reconcile(_rows(("API",), ("UI", "", "", "API"), ("Docs", "", "", "API, UI")), MAPPINGS, store)

    assert report.dependencies_linked == 3
    assert store.edge_names() == {("UI", "API"), ("Docs", "API"), ("Docs", "UI")}


@pytest.mark.asyncio
async def test_unknown_dependency_warns():
    store = MemoryStore()
    report = await reconcile(_rows(("UI", "", "", "API, Auth"), ("Auth",)), MAPPINGS, store)

    assert report.dependencies_linked == 1
    assert report.warnings == ("Dependency not found: 'UI' depends on 'API'",)


@pytest.mark.asyncio
async def test_self_dependency_is_dropped_silently():
    store = MemoryStore()
    report = await reconcile(_rows(("Solo", "", "", "Solo")), MAPPINGS, store)

    assert report.dependencies_linked == 0
    assert report.warnings == ()
    assert store.edges == set()


@pytest.mark.asyncio
async def test_repeated_dependency_is_linked_once():
    store = MemoryStore()
    report = await reconcile(_rows(("A",), ("B", "", "", "A, A ,A")), MAPPINGS, store)

    assert report.dependencies_linked == 1
    assert len(store.edges) == 1


@pytest.mark.asyncio
async def test_existing_edge_is_not_counted():
    store = MemoryStore()
    first = await reconcile(_rows(("A",), ("B", "", "", "A")), MAPPINGS, store)
    a, b = store.id_of("A"), store.id_of("B")

    assert first.dependencies_linked == 1
    assert await store.create_dependency_edge(b, a) is False
    assert len(store.edges) == 1


@pytest.mark.asyncio
async def test_skipped_duplicate_contributes_no_dependencies():
    store = MemoryStore()
    report = await reconcile(_rows(("A",), ("B",), ("B", "", "", "A")), MAPPINGS, store)

    assert report.dependencies_linked == 0
    assert store.edges == set()


@pytest.mark.asyncio
async def test_dependency_on_synthesized_parent_is_not_found():
    store = MemoryStore()
    report = await reconcile(_rows(("Child", "Task", "Payments", "Payments")), MAPPINGS, store)

    assert report.parents_linked == 1
    assert report.dependencies_linked == 0
    assert report.warnings == (
        "Auto-created parent Epic: Payments",
        "Dependency not found: 'Child' depends on 'Payments'",
    )


@pytest.mark.asyncio
async def test_failed_edge_is_an_error_for_its_row():
    store = FailingStore(fail_edges_from={"B"})
    report = await reconcile(_rows(("A",), ("B", "", "", "A"), ("C", "", "", "A")), MAPPINGS, store)

    assert report.dependencies_linked == 1
    assert report.errors == ("Row 2: Could not link dependency 'B' -> 'A': edge rejected",)
    assert store.edge_names() == {("C", "A")}


@pytest.mark.asyncio
async def test_concurrency_limit_of_one():
    store = MemoryStore()
    rows = _rows(("Base",), *[(f"Item {i}", "", "", "Base") for i in range(20)])
    report = await reconcile(rows, MAPPINGS, store, ReconcileOptions(max_concurrency=1))

    assert report.dependencies_linked == 20


# ─── Report ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_report_orders_messages_by_pass():
    store = MemoryStore()
    rows = _rows(
        ("A", "Task", "Missing Parent", "Nope"),
        ("",),
        ("A",),
    )
    report = await reconcile(rows, MAPPINGS, store, ReconcileOptions(create_missing_parents=False))

    assert report.warnings == (
        "Row 2: Skipped - no name",
        "Row 3: Skipped duplicate name 'A'",
        "Parent not found: Missing Parent",
        "Dependency not found: 'A' depends on 'Nope'",
    )


@pytest.mark.asyncio
async def test_report_is_deterministic():
    rows = backlog_rows()
    first = await reconcile(rows, standard_mappings(), MemoryStore())
    second = await reconcile(rows, standard_mappings(), MemoryStore())

    assert first == second


@pytest.mark.asyncio
async def test_standard_backlog():
    store = MemoryStore()
    report = await reconcile(backlog_rows(), standard_mappings(), store)

    # 4 rows + "Activation" auto-created
    assert report.created == 5
    assert report.parents_linked == 3
    assert report.dependencies_linked == 3
    assert report.warnings == ("Auto-created parent Epic: Activation",)
    assert store.parent_name("Welcome tour") == "Activation"
    assert store.draft("Welcome tour").estimated_hours == 8.0
    assert store.draft("Sign-up form").tags == ("ui", "forms")


@pytest.mark.asyncio
async def test_report_is_frozen():
    report = await reconcile(_rows(("A",)), MAPPINGS, MemoryStore())
    with pytest.raises(Exception):
        report.created = 10


# ─── Name Index ───────────────────────────────────────────────

def test_name_index_never_overwrites():
    index = NameIndex()
    first = uuid.uuid4()
    index.insert("A", first)
    with pytest.raises(KeyError):
        index.insert("A", uuid.uuid4())
    assert index.get("A") == first


def test_frozen_view_does_not_see_later_inserts():
    index = NameIndex()
    index.insert("A", uuid.uuid4())
    view = index.freeze()
    index.insert("B", uuid.uuid4())

    assert "B" in index
    assert "B" not in view
    assert len(view) == 1


# ─── SQL store ────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_sql_store_persists_backlog(db_session, make_team, make_project, make_sprint):
    team = await make_team()
    project = await make_project(team)
    sprint = await make_sprint(team)
    store = SqlWorkItemStore(db_session, project_id=project.id, sprint_id=sprint.id)

    report = await reconcile(backlog_rows(), standard_mappings(), store)
    await db_session.commit()

    assert report.created == 5
    items = {i.name: i for i in (await db_session.execute(select(WorkItem))).scalars().all()}
    assert set(items) == {"Onboarding", "Sign-up form", "Email verification", "Welcome tour", "Activation"}
    assert all(i.project_id == project.id for i in items.values())
    # Synthesized parents land in the batch sprint as well
    assert all(i.sprint_id == sprint.id for i in items.values())
    assert items["Activation"].type == "EPIC"
    assert items["Sign-up form"].parent_id == items["Onboarding"].id
    assert items["Welcome tour"].parent_id == items["Activation"].id
    assert items["Sign-up form"].tags == ["ui", "forms"]
    assert items["Onboarding"].external_id == "APP-1"

    edges = (await db_session.execute(select(Dependency))).scalars().all()
    pairs = {(e.dependent_id, e.required_id) for e in edges}
    assert pairs == {
        (items["Email verification"].id, items["Sign-up form"].id),
        (items["Welcome tour"].id, items["Sign-up form"].id),
        (items["Welcome tour"].id, items["Email verification"].id),
    }


@pytest.mark.asyncio
async def test_sql_store_edges_are_idempotent(db_session, make_team, make_project):
    team = await make_team()
    project = await make_project(team)
    store = SqlWorkItemStore(db_session, project_id=project.id)

    a = await store.create_work_item(WorkItemDraft(name="A"))
    b = await store.create_work_item(WorkItemDraft(name="B"))

    assert await store.create_dependency_edge(b, a) is True
    assert await store.create_dependency_edge(b, a) is False
    count = len((await db_session.execute(select(Dependency))).scalars().all())
    assert count == 1


@pytest.mark.asyncio
async def test_sql_store_rejects_self_links(db_session, make_team, make_project):
    team = await make_team()
    project = await make_project(team)
    store = SqlWorkItemStore(db_session, project_id=project.id)
    a = await store.create_work_item(WorkItemDraft(name="A"))

    with pytest.raises(ValueError):
        await store.create_dependency_edge(a, a)
    with pytest.raises(ValueError):
        await store.update_parent(a, a)


@pytest.mark.asyncio
async def test_sql_store_update_parent_of_unknown_item(db_session, make_team, make_project):
    team = await make_team()
    project = await make_project(team)
    store = SqlWorkItemStore(db_session, project_id=project.id)
    parent = await store.create_work_item(WorkItemDraft(name="P"))

    with pytest.raises(LookupError):
        await store.update_parent(uuid.uuid4(), parent)


class RejectingSqlStore(SqlWorkItemStore):
    """SqlWorkItemStore whose insert for one name violates NOT NULL."""

    def __init__(self, *args, reject_name, **kwargs):
        super().__init__(*args, **kwargs)
        self.reject_name = reject_name

    async def create_work_item(self, draft):
        if draft.name == self.reject_name:
            draft = WorkItemDraft(name=None)
        return await super().create_work_item(draft)


@pytest.mark.asyncio
async def test_sql_store_failed_row_leaves_batch_usable(db_session, make_team, make_project):
    team = await make_team()
    project = await make_project(team)
    store = RejectingSqlStore(db_session, project_id=project.id, reject_name="Bad")

    report = await reconcile(_rows(("A",), ("Bad",), ("C", "Task", "A", "A, Bad")), MAPPINGS, store)
    await db_session.commit()

    assert report.created == 2
    assert report.parents_linked == 1
    assert report.dependencies_linked == 1
    assert report.warnings == ("Dependency not found: 'C' depends on 'Bad'",)
    assert len(report.errors) == 1
    # Driver message only, without the SQL statement or parameters
    assert report.errors[0].startswith("Row 2: ")
    assert "NOT NULL" in report.errors[0]
    assert "\n" not in report.errors[0]
    assert "[SQL:" not in report.errors[0]

    items = {i.name: i for i in (await db_session.execute(select(WorkItem))).scalars().all()}
    assert set(items) == {"A", "C"}
    assert items["C"].parent_id == items["A"].id
    edges = (await db_session.execute(select(Dependency))).scalars().all()
    assert [(e.dependent_id, e.required_id) for e in edges] == [(items["C"].id, items["A"].id)]
