"""Project status classification for the active / archive dashboard split."""
from enum import Enum
from typing import Any, Iterable, List, Optional, Tuple

from projectdesk.config import ARCHIVED_STATUSES
from projectdesk.services.aggregation_engine import field


def is_archived(status: Any, archived_statuses: Optional[Iterable[str]] = None) -> bool:
    """
    True when *status* is a terminal state (done or not commissioned).

    Case-insensitive. None and unknown values are active, so a project is
    never hidden from the default view by bad data.
    """
    archived = ARCHIVED_STATUSES if archived_statuses is None else {s.lower() for s in archived_statuses}
    if status is None:
        return False
    if isinstance(status, Enum):
        status = status.value
    return str(status).lower() in archived


def partition_projects(
    projects: Iterable[Any],
    archived_statuses: Optional[Iterable[str]] = None,
) -> Tuple[List[Any], List[Any]]:
    """Split into (active, archived), keeping the input order in both lists."""
    archived_set = None if archived_statuses is None else list(archived_statuses)
    active: List[Any] = []
    archived: List[Any] = []
    for project in projects:
        if is_archived(field(project, "status"), archived_set):
            archived.append(project)
        else:
            active.append(project)
    return active, archived
