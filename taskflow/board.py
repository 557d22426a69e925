"""
Board synchronizer: keeps one project's task list in step with the remote
tables and splits it into the four status columns.

There is no optimistic merge. Every create/update/delete issues a single
remote mutation and then re-fetches the whole task list, which replaces
the in-memory list wholesale. Loads and mutate-then-reload sequences on
one synchronizer are serialized, so the last mutation's reload is what
the board shows.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .remote import RemoteError, RemoteService
from .schema import (
    BOARD_COLUMNS,
    Project,
    Task,
    TaskStatus,
    ValidationError,
    clean_task_patch,
)
from .session import SessionStore

logger = logging.getLogger(__name__)

TASK_COLUMNS = """
    *,
    profiles:assignee_id (
        full_name,
        email
    )
"""


def partition_by_status(
    tasks: Iterable[Task],
    statuses: Iterable[Any] = BOARD_COLUMNS,
) -> Dict[TaskStatus, List[Task]]:
    """
    Group tasks by status, one bucket per requested status, in the order given.

    Relative task order is preserved inside each bucket. Tasks whose status
    was not requested are left out; with the default (all four statuses)
    every task lands in exactly one bucket.
    """
    buckets: Dict[TaskStatus, List[Task]] = {}
    for status in statuses:
        try:
            buckets[TaskStatus(status)] = []
        except ValueError:
            raise ValueError(f"Unknown task status: {status!r}")
    for task in tasks:
        bucket = buckets.get(task.status)
        if bucket is not None:
            bucket.append(task)
    return buckets


@dataclass
class BoardColumn:
    status: TaskStatus
    tasks: List[Task] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.status.label

    @property
    def count(self) -> int:
        return len(self.tasks)

    @property
    def is_empty(self) -> bool:
        return not self.tasks

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.status.value,
            "label": self.label,
            "count": self.count,
            "empty": self.is_empty,
            "tasks": [t.to_dict() for t in self.tasks],
        }


class BoardSynchronizer:
    """Owns the in-memory task list for one project."""

    def __init__(self, remote: RemoteService, session: SessionStore, project_id: str):
        self.remote = remote
        self.session = session
        self.project_id = project_id

        self.project: Optional[Project] = None
        self.tasks: List[Task] = []
        self.loaded = False
        self.last_error: Optional[RemoteError] = None
        self._lock = threading.Lock()

    # ── Reads ────────────────────────────────────────────────

    def _fetch_project(self) -> Dict[str, Any]:
        return self.remote.select("projects", filters={"id": self.project_id}, single=True)

    def _fetch_tasks(self) -> List[Dict[str, Any]]:
        return self.remote.select(
            "tasks",
            columns=TASK_COLUMNS,
            filters={"project_id": self.project_id},
            order="position",
            ascending=True,
        )

    def load(self) -> bool:
        """Fetch project and tasks together. On any failure keep the old state."""
        with self._lock:
            return self._load_locked()

    def _load_locked(self) -> bool:
        with ThreadPoolExecutor(max_workers=2) as pool:
            project_future = pool.submit(self._fetch_project)
            tasks_future = pool.submit(self._fetch_tasks)
            try:
                project_row = project_future.result()
                task_rows = tasks_future.result()
            except RemoteError as e:
                logger.error(f"Error loading project {self.project_id}: {e}")
                self.last_error = e
                return False

        self.project = Project.from_dict(project_row)
        self.tasks = [Task.from_dict(row) for row in task_rows or []]
        self.loaded = True
        self.last_error = None
        logger.debug(f"Loaded {len(self.tasks)} tasks for project {self.project_id}")
        return True

    def columns(self) -> List[BoardColumn]:
        partitions = partition_by_status(self.tasks)
        return [BoardColumn(status, partitions[status]) for status in BOARD_COLUMNS]

    def draft(self, status: Any = TaskStatus.TODO) -> Optional[Task]:
        """Pre-filled creation form for a column; None when nobody is signed in."""
        if not self.session.authenticated:
            return None
        return Task.draft(self.project_id, TaskStatus.parse(status))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project": self.project.to_dict() if self.project else None,
            "columns": [c.to_dict() for c in self.columns()],
            "total": len(self.tasks),
        }

    # ── Mutations ────────────────────────────────────────────

    def _mutate(self, action: str, call) -> bool:
        user = self.session.user
        if user is None:
            logger.debug(f"Ignoring {action} on project {self.project_id}: not signed in")
            return False
        with self._lock:
            try:
                call(user)
            except RemoteError as e:
                logger.error(f"Error during {action} on project {self.project_id}: {e}")
                raise
            self._load_locked()
        return True

    def create_task(self, draft: Task) -> bool:
        """Insert a draft (appended to the end of the board), then reload."""
        if not draft.is_draft:
            raise ValueError(f"Task {draft.id} already exists")
        if not draft.title.strip():
            raise ValidationError("title is required")

        def insert(user):
            row = draft.to_row()
            row["project_id"] = self.project_id
            row["reporter_id"] = user.id
            row["position"] = max((t.position for t in self.tasks), default=-1) + 1
            self.remote.insert("tasks", [row])

        return self._mutate("create_task", insert)

    def update_task(self, task_id: str, patch: Dict[str, Any]) -> bool:
        values = clean_task_patch(patch)
        if not values:
            return False
        return self._mutate(
            "update_task",
            lambda user: self.remote.update("tasks", values, {"id": task_id}),
        )

    def delete_task(self, task_id: str) -> bool:
        return self._mutate(
            "delete_task",
            lambda user: self.remote.delete("tasks", {"id": task_id}),
        )
