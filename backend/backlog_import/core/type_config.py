"""
Work item type configuration.

Types and statuses are a closed vocabulary; the keyword tables here are what
the import normalizers consult when they classify free text from an export.
Rule order matters: the first matching entry wins.

Each type defines:
  - display metadata (label, plural label)
  - its level in the backlog hierarchy (Epic at the top)
  - the keywords that identify it in free text
"""

from dataclasses import dataclass
from enum import Enum


class WorkItemType(str, Enum):
    EPIC = "EPIC"
    FEATURE = "FEATURE"
    STORY = "STORY"
    TASK = "TASK"
    BUG = "BUG"


class WorkItemStatus(str, Enum):
    PLANNING = "PLANNING"
    IN_PROGRESS = "IN_PROGRESS"
    BLOCKED = "BLOCKED"
    REVIEW = "REVIEW"
    COMPLETED = "COMPLETED"


class TargetField(str, Enum):
    """Work item fields an export column can be mapped onto."""
    NAME = "name"
    DESCRIPTION = "description"
    TYPE = "type"
    PARENT_NAME = "parentName"
    OWNER = "owner"
    STATUS = "status"
    PRIORITY = "priority"
    ESTIMATED_HOURS = "estimatedHours"
    SPRINT = "sprint"
    TAGS = "tags"
    EXTERNAL_ID = "externalId"
    DEPENDENCIES = "dependencies"


@dataclass(frozen=True)
class TypeConfig:
    """Configuration for a work item type."""
    type: WorkItemType
    label: str
    plural_label: str
    # 0 is the top of the hierarchy
    level: int
    keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class StatusRule:
    status: WorkItemStatus
    label: str
    keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class PriorityRule:
    """Matches when a keyword is a substring of, or a code equals, the value."""
    priority: int
    keywords: tuple[str, ...] = ()
    codes: tuple[str, ...] = ()


@dataclass(frozen=True)
class TargetFieldDef:
    field: TargetField
    label: str
    required: bool = False
    aliases: tuple[str, ...] = ()


DEFAULT_TYPE = WorkItemType.TASK
DEFAULT_STATUS = WorkItemStatus.PLANNING
DEFAULT_PRIORITY = 0
MIN_PRIORITY = 0
MAX_PRIORITY = 5

# Synthesized parents are always created as this type.
CONTAINER_TYPE = WorkItemType.EPIC


# ─── Type Registry ─────────────────────────────────────────────

WORK_ITEM_TYPES: dict[WorkItemType, TypeConfig] = {}


def register_type(config: TypeConfig) -> TypeConfig:
    """Register a work item type. Registration order is match order."""
    WORK_ITEM_TYPES[config.type] = config
    return config


register_type(TypeConfig(
    type=WorkItemType.EPIC,
    label="Epic",
    plural_label="Epics",
    level=0,
    keywords=("epic",),
))

register_type(TypeConfig(
    type=WorkItemType.FEATURE,
    label="Feature",
    plural_label="Features",
    level=1,
    keywords=("feature",),
))

register_type(TypeConfig(
    type=WorkItemType.STORY,
    label="Story",
    plural_label="Stories",
    level=2,
    keywords=("story", "user story"),
))

register_type(TypeConfig(
    type=WorkItemType.BUG,
    label="Bug",
    plural_label="Bugs",
    level=3,
    keywords=("bug",),
))

# The fallback; never matched by keyword.
register_type(TypeConfig(
    type=WorkItemType.TASK,
    label="Task",
    plural_label="Tasks",
    level=3,
))


# ─── Status Rules ──────────────────────────────────────────────

STATUS_RULES: tuple[StatusRule, ...] = (
    StatusRule(WorkItemStatus.IN_PROGRESS, "In Progress", ("progress", "doing", "active")),
    StatusRule(WorkItemStatus.BLOCKED, "Blocked", ("block",)),
    StatusRule(WorkItemStatus.REVIEW, "Review", ("review", "testing", "qa")),
    StatusRule(WorkItemStatus.COMPLETED, "Completed", ("done", "complete", "closed")),
)


# ─── Priority Rules ────────────────────────────────────────────

# "lowest" must be tried before "low", and "highest" before "high".
PRIORITY_RULES: tuple[PriorityRule, ...] = (
    PriorityRule(5, keywords=("critical", "highest"), codes=("p0",)),
    PriorityRule(4, keywords=("high",), codes=("p1",)),
    PriorityRule(3, keywords=("medium",), codes=("p2",)),
    PriorityRule(1, keywords=("lowest",), codes=("p4",)),
    PriorityRule(2, keywords=("low",), codes=("p3",)),
)


# ─── Target Fields ─────────────────────────────────────────────

# Aliases are compared case-insensitively against export headers.
TARGET_FIELDS: tuple[TargetFieldDef, ...] = (
    TargetFieldDef(TargetField.NAME, "Name (required)", required=True,
                   aliases=("name", "summary", "title", "task name", "issue summary", "fields.summary")),
    TargetFieldDef(TargetField.DESCRIPTION, "Description",
                   aliases=("description", "details", "body", "fields.description")),
    TargetFieldDef(TargetField.TYPE, "Type (Epic/Feature/Story/Task/Bug)",
                   aliases=("type", "issue type", "issuetype", "fields.issuetype.name", "work item type")),
    TargetFieldDef(TargetField.PARENT_NAME, "Parent Name (for hierarchy)",
                   aliases=("parent", "parent name", "parent summary", "epic name", "epic link",
                            "fields.parent.fields.summary")),
    TargetFieldDef(TargetField.OWNER, "Owner/Assignee",
                   aliases=("owner", "assignee", "assigned to", "fields.assignee.displayname")),
    TargetFieldDef(TargetField.STATUS, "Status",
                   aliases=("status", "state", "fields.status.name")),
    TargetFieldDef(TargetField.PRIORITY, "Priority",
                   aliases=("priority", "fields.priority.name")),
    TargetFieldDef(TargetField.ESTIMATED_HOURS, "Estimated Hours",
                   aliases=("estimated hours", "estimate", "hours", "original estimate", "time estimate")),
    TargetFieldDef(TargetField.SPRINT, "Sprint",
                   aliases=("sprint", "iteration")),
    TargetFieldDef(TargetField.TAGS, "Tags (comma-separated)",
                   aliases=("tags", "labels", "fields.labels")),
    TargetFieldDef(TargetField.EXTERNAL_ID, "External ID (e.g., Jira key)",
                   aliases=("key", "issue key", "id", "issue id", "external id")),
    TargetFieldDef(TargetField.DEPENDENCIES, "Dependencies (comma-separated)",
                   aliases=("dependencies", "depends on", "blocked by", "requires")),
)
