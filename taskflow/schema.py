"""
TaskFlow data model.

Rows come back from the remote tables as plain dicts; these dataclasses are
the typed view the board, comment thread and project directory work with.

Board pipeline:
  To Do → In Progress → Done, with Blocked as a side column.
Any status may move to any other; the pipeline is a display order, not a
transition table.
"""
import logging
from enum import Enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any, Tuple

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when client-supplied input is missing or malformed."""
    pass


class _Tag(Enum):
    """Enum base with strict parsing for input and lenient parsing for rows."""

    @classmethod
    def parse(cls, value: Any) -> "_Tag":
        """Strict: client input must name a known tag."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValidationError(
                f"Invalid {cls.__name__} '{value}'. Allowed: {allowed}"
            )

    @classmethod
    def from_str(cls, value: Any) -> "_Tag":
        """Lenient: unknown tags from the remote fall back to the default."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            default = cls.default()
            logger.warning(
                f"Unknown {cls.__name__} '{value}' from remote, using '{default.value}'"
            )
            return default

    @classmethod
    def default(cls) -> "_Tag":
        return next(iter(cls))


class TaskStatus(_Tag):
    """Board columns, in display order."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    BLOCKED = "blocked"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]


STATUS_LABELS = {
    TaskStatus.TODO: "To Do",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.DONE: "Done",
    TaskStatus.BLOCKED: "Blocked",
}


class TaskPriority(_Tag):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def default(cls) -> "TaskPriority":
        return cls.MEDIUM


class TaskType(_Tag):
    TASK = "task"
    BUG = "bug"
    STORY = "story"
    EPIC = "epic"


class MemberRole(_Tag):
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

    @classmethod
    def default(cls) -> "MemberRole":
        # Least privilege for anything we do not recognise
        return cls.VIEWER


class SprintStatus(_Tag):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"


def _parse_ts(value: Any) -> Optional[datetime]:
    """Parse a PostgREST timestamp (ISO-8601, possibly with a trailing Z)."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.warning(f"Unparseable timestamp from remote: {value!r}")
        return None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if isinstance(value, datetime) else value


@dataclass
class User:
    """Authenticated identity as reported by the auth service."""
    id: str
    email: str = ""
    full_name: Optional[str] = None

    @classmethod
    def from_auth(cls, data: Dict[str, Any]) -> "User":
        metadata = data.get("user_metadata") or {}
        return cls(
            id=data["id"],
            email=data.get("email") or "",
            full_name=metadata.get("full_name"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "full_name": self.full_name}


@dataclass
class Profile:
    """Row of the profiles table (or the subset joined onto another row)."""
    id: Optional[str] = None
    email: str = ""
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.email

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Profile"]:
        if not data:
            return None
        return cls(
            id=data.get("id"),
            email=data.get("email") or "",
            full_name=data.get("full_name"),
            avatar_url=data.get("avatar_url"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "avatar_url": self.avatar_url,
            "display_name": self.display_name,
        }


@dataclass
class Project:
    id: str
    name: str
    key: str
    owner_id: str = ""
    description: Optional[str] = None
    icon: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            key=data.get("key", ""),
            owner_id=data.get("owner_id", ""),
            description=data.get("description"),
            icon=data.get("icon"),
            created_at=_parse_ts(data.get("created_at")),
            updated_at=_parse_ts(data.get("updated_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "key": self.key,
            "owner_id": self.owner_id,
            "description": self.description,
            "icon": self.icon,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class Task:
    """A task row. An empty id marks a draft that has not been stored yet."""

    title: str
    id: str = ""
    project_id: str = ""
    description: Optional[str] = None

    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    type: TaskType = TaskType.TASK

    assignee_id: Optional[str] = None
    reporter_id: str = ""
    sprint_id: Optional[str] = None
    estimate: Optional[float] = None
    position: int = 0

    assignee: Optional[Profile] = None  # joined via assignee_id
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_draft(self) -> bool:
        return not self.id

    @classmethod
    def draft(cls, project_id: str, status: TaskStatus = TaskStatus.TODO) -> "Task":
        """Blank task used to pre-fill the creation form for a column."""
        return cls(title="", project_id=project_id, status=TaskStatus.parse(status))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Build from a tasks row; the assignee join arrives under 'profiles'."""
        return cls(
            id=data.get("id", ""),
            project_id=data.get("project_id", ""),
            title=data.get("title", ""),
            description=data.get("description"),
            status=TaskStatus.from_str(data.get("status")),
            priority=TaskPriority.from_str(data.get("priority")),
            type=TaskType.from_str(data.get("type")),
            assignee_id=data.get("assignee_id"),
            reporter_id=data.get("reporter_id", ""),
            sprint_id=data.get("sprint_id"),
            estimate=data.get("estimate"),
            position=data.get("position") or 0,
            assignee=Profile.from_dict(data.get("profiles")),
            created_at=_parse_ts(data.get("created_at")),
            updated_at=_parse_ts(data.get("updated_at")),
        )

    def to_row(self) -> Dict[str, Any]:
        """Column values for an insert (no id, no timestamps)."""
        return {
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description or None,
            "status": self.status.value,
            "priority": self.priority.value,
            "type": self.type.value,
            "assignee_id": self.assignee_id or None,
            "reporter_id": self.reporter_id,
            "sprint_id": self.sprint_id,
            "estimate": self.estimate,
            "position": self.position,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_row()
        data.update({
            "id": self.id,
            "assignee": self.assignee.to_dict() if self.assignee else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        })
        return data


def clean_text(value: Any, name: str) -> str:
    """Stripped string input; None counts as empty, any other type is rejected."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string, got {type(value).__name__}")
    return value.strip()


def _parse_estimate(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid value for estimate: {value!r}")


# Fields a task update may touch, with the parser applied to each value
EDITABLE_TASK_FIELDS = {
    "title": lambda v: clean_text(v, "title"),
    "description": lambda v: clean_text(v, "description") or None,
    "status": lambda v: TaskStatus.parse(v).value,
    "priority": lambda v: TaskPriority.parse(v).value,
    "type": lambda v: TaskType.parse(v).value,
    "assignee_id": lambda v: (v or None),
    "sprint_id": lambda v: (v or None),
    "estimate": _parse_estimate,
    "position": int,
}


def task_from_form(data: Dict[str, Any], project_id: str) -> Task:
    """Build a draft task from submitted form/JSON input, validating strictly."""
    title = clean_text(data.get("title"), "title")
    if not title:
        raise ValidationError("title is required")
    return Task(
        title=title,
        project_id=project_id,
        description=clean_text(data.get("description"), "description") or None,
        status=TaskStatus.parse(data.get("status") or TaskStatus.TODO),
        priority=TaskPriority.parse(data.get("priority") or TaskPriority.MEDIUM),
        type=TaskType.parse(data.get("type") or TaskType.TASK),
        assignee_id=data.get("assignee_id") or None,
        sprint_id=data.get("sprint_id") or None,
        estimate=_parse_estimate(data.get("estimate")),
    )


def clean_task_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Keep editable fields only and coerce their values for the update."""
    values = {}
    for name, value in patch.items():
        parser = EDITABLE_TASK_FIELDS.get(name)
        if parser is None:
            continue
        try:
            values[name] = parser(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid value for {name}: {value!r}")
    if "title" in values and not values["title"]:
        raise ValidationError("title cannot be empty")
    return values


@dataclass
class Sprint:
    id: str
    project_id: str
    name: str
    goal: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: SprintStatus = SprintStatus.PLANNED

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Sprint":
        return cls(
            id=data["id"],
            project_id=data.get("project_id", ""),
            name=data.get("name", ""),
            goal=data.get("goal"),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            status=SprintStatus.from_str(data.get("status")),
        )


@dataclass
class Comment:
    id: str
    task_id: str
    user_id: str
    content: str
    author: Optional[Profile] = None  # joined via user_id
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Comment":
        return cls(
            id=data["id"],
            task_id=data.get("task_id", ""),
            user_id=data.get("user_id", ""),
            content=data.get("content", ""),
            author=Profile.from_dict(data.get("profiles")),
            created_at=_parse_ts(data.get("created_at")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "content": self.content,
            "author": self.author.to_dict() if self.author else None,
            "created_at": _iso(self.created_at),
        }


@dataclass
class ProjectMember:
    project_id: str
    user_id: str
    role: MemberRole = MemberRole.MEMBER
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectMember":
        return cls(
            id=data.get("id"),
            project_id=data.get("project_id", ""),
            user_id=data.get("user_id", ""),
            role=MemberRole.from_str(data.get("role")),
        )

    def to_row(self) -> Dict[str, Any]:
        return {"project_id": self.project_id, "user_id": self.user_id, "role": self.role.value}


BOARD_COLUMNS: Tuple[TaskStatus, ...] = tuple(TaskStatus)
