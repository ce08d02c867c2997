"""
Import reconciliation engine.

Turns a batch of raw export rows into linked work items in three passes:

  1. Create        one work item per named, non-duplicate row, in file order
  2. Link parents  resolve each declared parent name, optionally creating an Epic
  3. Link deps     resolve each declared dependency name into a "requires" edge

Passes 2 and 3 only read what pass 1 produced and write disjoint things
(parent_id vs. dependency edges), so they run concurrently and keep their own
warning/error lists until the report is assembled.

Nothing row-scoped raises. Each row ends up as a RowOutcome, and every
problem lands in the ReconciliationReport. The only fatal condition is a
mapping without a name column, checked before anything is created.
"""

import asyncio
import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from sqlalchemy.exc import DBAPIError

from backlog_import.core.type_config import CONTAINER_TYPE, TargetField
from backlog_import.schemas.imports import ColumnMapping, ReconciliationReport
from backlog_import.services.column_mapping import ColumnMapper, RawRow
from backlog_import.services.normalization import (
    parse_hours,
    parse_priority,
    parse_status,
    parse_tags,
    parse_type,
    split_names,
)
from backlog_import.services.work_item_store import WorkItemDraft, WorkItemStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileOptions:
    create_missing_parents: bool = True
    # Upper bound on store calls in flight during dependency linking
    max_concurrency: int = 8


# ─── Name Index ───────────────────────────────────────────────

class NameIndexView:
    """Read-only, exact (case-sensitive) name → work item id lookup."""

    def __init__(self, entries: Mapping[str, uuid.UUID]) -> None:
        self._view = entries

    def get(self, name: str) -> uuid.UUID | None:
        return self._view.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._view

    def __len__(self) -> int:
        return len(self._view)

    def items(self):
        return self._view.items()


class NameIndex(NameIndexView):
    """
    The batch's name → id index.

    Pass 1 fills it, pass 2 extends it with synthesized parents. An entry is
    never overwritten. Pass 3 reads a frozen copy taken after pass 1.
    """

    def __init__(self) -> None:
        self._entries: dict[str, uuid.UUID] = {}
        super().__init__(MappingProxyType(self._entries))

    def insert(self, name: str, item_id: uuid.UUID) -> None:
        if name in self._entries:
            raise KeyError(f"Name already indexed: {name!r}")
        self._entries[name] = item_id

    def freeze(self) -> NameIndexView:
        return NameIndexView(MappingProxyType(dict(self._entries)))


# ─── Row Outcomes ─────────────────────────────────────────────

class ProblemKind(str, Enum):
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class RowProblem:
    kind: ProblemKind
    message: str


@dataclass(frozen=True)
class RowOutcome:
    """What pass 1 did with one row: an item id, or the reason it has none."""
    row_number: int
    name: str | None
    item_id: uuid.UUID | None = None
    problem: RowProblem | None = None

    @property
    def created(self) -> bool:
        return self.item_id is not None


@dataclass(frozen=True)
class ParentLink:
    """A child waiting for its parent name to be resolved in pass 2."""
    row_number: int
    child_id: uuid.UUID
    child_name: str
    parent_name: str


@dataclass
class IngestResult:
    index: NameIndex
    outcomes: list[RowOutcome]
    parent_queue: list[ParentLink]

    @property
    def created_rows(self) -> dict[int, uuid.UUID]:
        return {o.row_number: o.item_id for o in self.outcomes if o.item_id is not None}


@dataclass
class PassResult:
    """Output of a linking pass."""
    created: int = 0
    linked: int = 0
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _EdgeRequest:
    row_number: int
    name: str
    dependency_name: str
    dependent_id: uuid.UUID
    required_id: uuid.UUID


def _describe(exc: BaseException) -> str:
    # Driver errors carry the SQL statement and parameters; report the driver message only
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        exc = exc.orig
    return str(exc).strip() or exc.__class__.__name__


# ─── Pass 1: Create ───────────────────────────────────────────

def build_draft(row: RawRow, mapper: ColumnMapper, name: str) -> WorkItemDraft:
    """Normalize a row's mapped fields into a WorkItemDraft."""
    return WorkItemDraft(
        name=name,
        description=mapper.value_of(row, TargetField.DESCRIPTION),
        type=parse_type(mapper.value_of(row, TargetField.TYPE)),
        status=parse_status(mapper.value_of(row, TargetField.STATUS)),
        priority=parse_priority(mapper.value_of(row, TargetField.PRIORITY)),
        owner=mapper.value_of(row, TargetField.OWNER),
        external_id=mapper.value_of(row, TargetField.EXTERNAL_ID),
        tags=tuple(parse_tags(mapper.value_of(row, TargetField.TAGS))),
        estimated_hours=parse_hours(mapper.value_of(row, TargetField.ESTIMATED_HOURS)),
    )


async def ingest_rows(
    rows: Sequence[RawRow],
    mapper: ColumnMapper,
    store: WorkItemStore,
) -> IngestResult:
    """
    Pass 1: create one work item per usable row.

    Rows are numbered from 1 in file order. A row without a name, or whose
    name is already in the index, is skipped. A store failure abandons only
    that row. Parent names are queued for pass 2, not resolved here.
    """
    index = NameIndex()
    outcomes: list[RowOutcome] = []
    parent_queue: list[ParentLink] = []

    for row_number, row in enumerate(rows, start=1):
        name = mapper.value_of(row, TargetField.NAME)
        if not name:
            outcomes.append(RowOutcome(
                row_number, None,
                problem=RowProblem(ProblemKind.SKIPPED, f"Row {row_number}: Skipped - no name"),
            ))
            continue

        if name in index:
            outcomes.append(RowOutcome(
                row_number, name,
                problem=RowProblem(
                    ProblemKind.SKIPPED,
                    f"Row {row_number}: Skipped duplicate name '{name}'",
                ),
            ))
            continue

        try:
            draft = build_draft(row, mapper, name)
            item_id = await store.create_work_item(draft)
        except Exception as exc:
            logger.warning("Row %d (%r) was not created: %s", row_number, name, exc)
            logger.debug("Row %d failure", row_number, exc_info=True)
            outcomes.append(RowOutcome(
                row_number, name,
                problem=RowProblem(ProblemKind.FAILED, f"Row {row_number}: {_describe(exc)}"),
            ))
            continue

        index.insert(name, item_id)
        outcomes.append(RowOutcome(row_number, name, item_id=item_id))

        parent_name = mapper.value_of(row, TargetField.PARENT_NAME)
        if parent_name:
            parent_queue.append(ParentLink(row_number, item_id, name, parent_name))

    return IngestResult(index=index, outcomes=outcomes, parent_queue=parent_queue)


# ─── Pass 2: Link Parents ─────────────────────────────────────

async def _create_parent(
    parent_name: str,
    index: NameIndex,
    store: WorkItemStore,
    result: PassResult,
) -> uuid.UUID | None:
    try:
        parent_id = await store.create_work_item(WorkItemDraft(name=parent_name, type=CONTAINER_TYPE))
    except Exception as exc:
        logger.warning("Could not create parent %r: %s", parent_name, exc)
        result.warnings.append(f"Could not create parent Epic: {parent_name}")
        return None

    index.insert(parent_name, parent_id)
    result.created += 1
    result.warnings.append(f"Auto-created parent Epic: {parent_name}")
    return parent_id


async def link_parents(
    queue: Sequence[ParentLink],
    index: NameIndex,
    store: WorkItemStore,
    *,
    create_missing_parents: bool = True,
) -> PassResult:
    """
    Pass 2: resolve queued parent names in queue order.

    A synthesized parent goes into the index before the next entry is looked
    at, so later children of the same missing parent reuse it. This pass
    only ever warns; an unresolved parent leaves the child top-level.
    """
    result = PassResult()

    for link in queue:
        parent_id = index.get(link.parent_name)
        if parent_id is None and create_missing_parents:
            parent_id = await _create_parent(link.parent_name, index, store, result)

        if parent_id is None:
            result.warnings.append(f"Parent not found: {link.parent_name}")
            continue

        if parent_id == link.child_id:
            result.warnings.append(f"Ignored self-parent: {link.child_name}")
            continue

        try:
            await store.update_parent(link.child_id, parent_id)
        except Exception as exc:
            logger.warning("Row %d: parent link failed: %s", link.row_number, exc)
            result.warnings.append(
                f"Could not link '{link.child_name}' to parent '{link.parent_name}': {_describe(exc)}"
            )
            continue
        result.linked += 1

    return result


# ─── Pass 3: Link Dependencies ────────────────────────────────

async def link_dependencies(
    rows: Sequence[RawRow],
    mapper: ColumnMapper,
    index: NameIndexView,
    created_rows: Mapping[int, uuid.UUID],
    store: WorkItemStore,
    *,
    max_concurrency: int = 8,
) -> PassResult:
    """
    Pass 3: turn each created row's dependency names into edges.

    Rows skipped in pass 1 are ignored. Unknown names warn; a row naming
    itself is dropped without a warning; repeated pairs are linked once.
    Store calls fan out up to max_concurrency, and a failed edge becomes an
    error for its row without affecting the others.
    """
    result = PassResult()
    requests: list[_EdgeRequest] = []
    seen: set[tuple[uuid.UUID, uuid.UUID]] = set()

    for row_number, row in enumerate(rows, start=1):
        dependent_id = created_rows.get(row_number)
        if dependent_id is None:
            continue
        deps_raw = mapper.value_of(row, TargetField.DEPENDENCIES)
        if not deps_raw:
            continue

        name = mapper.value_of(row, TargetField.NAME) or ""
        for dep_name in split_names(deps_raw):
            required_id = index.get(dep_name)
            if required_id is None:
                result.warnings.append(f"Dependency not found: '{name}' depends on '{dep_name}'")
                continue
            if required_id == dependent_id:
                continue
            pair = (dependent_id, required_id)
            if pair in seen:
                continue
            seen.add(pair)
            requests.append(_EdgeRequest(row_number, name, dep_name, dependent_id, required_id))

    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _link(req: _EdgeRequest) -> tuple[bool, str | None]:
        async with semaphore:
            try:
                created = await store.create_dependency_edge(req.dependent_id, req.required_id)
            except Exception as exc:
                logger.warning("Row %d: dependency link failed: %s", req.row_number, exc)
                return False, (
                    f"Row {req.row_number}: Could not link dependency "
                    f"'{req.name}' -> '{req.dependency_name}': {_describe(exc)}"
                )
        return created, None

    for created, error in await asyncio.gather(*(_link(req) for req in requests)):
        if error:
            result.errors.append(error)
        elif created:
            result.linked += 1

    return result


# ─── Report ───────────────────────────────────────────────────

class ReportBuilder:
    """Accumulates pass outputs; build() is called once at the end."""

    def __init__(self) -> None:
        self._created = 0
        self._skipped = 0
        self._parents_linked = 0
        self._dependencies_linked = 0
        self._warnings: list[str] = []
        self._errors: list[str] = []

    def add_outcome(self, outcome: RowOutcome) -> None:
        if outcome.created:
            self._created += 1
        elif outcome.problem is None:
            return
        elif outcome.problem.kind is ProblemKind.SKIPPED:
            self._skipped += 1
            self._warnings.append(outcome.problem.message)
        else:
            self._errors.append(outcome.problem.message)

    def add_parent_pass(self, result: PassResult) -> None:
        self._created += result.created
        self._parents_linked += result.linked
        self._warnings.extend(result.warnings)
        self._errors.extend(result.errors)

    def add_dependency_pass(self, result: PassResult) -> None:
        self._dependencies_linked += result.linked
        self._warnings.extend(result.warnings)
        self._errors.extend(result.errors)

    def build(self) -> ReconciliationReport:
        return ReconciliationReport(
            created=self._created,
            skipped=self._skipped,
            parents_linked=self._parents_linked,
            dependencies_linked=self._dependencies_linked,
            warnings=tuple(self._warnings),
            errors=tuple(self._errors),
        )


# ─── Pipeline ─────────────────────────────────────────────────

async def reconcile(
    rows: Sequence[RawRow],
    mappings: Sequence[ColumnMapping] | ColumnMapper,
    store: WorkItemStore,
    options: ReconcileOptions | None = None,
) -> ReconciliationReport:
    """
    Reconcile one batch of rows into the store.

    Raises MissingNameMappingError, before touching the store, when no column
    is mapped to the name field. Everything else is reported, not raised.
    """
    options = options or ReconcileOptions()
    mapper = mappings if isinstance(mappings, ColumnMapper) else ColumnMapper(mappings)
    mapper.require(TargetField.NAME)

    logger.info("Reconciling %d rows", len(rows))
    ingest = await ingest_rows(rows, mapper, store)
    pass1_names = ingest.index.freeze()

    parents, dependencies = await asyncio.gather(
        link_parents(
            ingest.parent_queue,
            ingest.index,
            store,
            create_missing_parents=options.create_missing_parents,
        ),
        link_dependencies(
            rows,
            mapper,
            pass1_names,
            ingest.created_rows,
            store,
            max_concurrency=options.max_concurrency,
        ),
    )

    builder = ReportBuilder()
    for outcome in ingest.outcomes:
        builder.add_outcome(outcome)
    builder.add_parent_pass(parents)
    builder.add_dependency_pass(dependencies)
    report = builder.build()

    logger.info(
        "Reconciled %d rows: %d created, %d skipped, %d warnings, %d errors",
        len(rows), report.created, report.skipped, len(report.warnings), len(report.errors),
    )
    return report
