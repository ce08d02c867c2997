"""All models must be imported here so SQLAlchemy registers them."""

from backlog_import.models.core import WorkItem, Dependency  # noqa: F401
from backlog_import.models.infrastructure import Team, Project, Sprint  # noqa: F401
