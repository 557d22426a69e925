"""
Project directory: the signed-in user's projects and their members.

Creating a project also makes its owner an admin member.
"""
import logging
from typing import List, Optional

from .remote import RemoteError, RemoteService
from .schema import MemberRole, Profile, Project, ProjectMember, ValidationError, clean_text
from .session import SessionStore

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 10

MEMBER_COLUMNS = """
    profiles:user_id (
        id,
        email,
        full_name
    )
"""


class ProjectDirectory:
    """Lists, creates and looks up projects visible to the current user."""

    def __init__(self, remote: RemoteService, session: SessionStore):
        self.remote = remote
        self.session = session
        self.projects: List[Project] = []

    def load(self) -> bool:
        """Newest projects first. No-op while signed out."""
        if not self.session.authenticated:
            return False
        try:
            rows = self.remote.select("projects", order="created_at", ascending=False)
        except RemoteError as e:
            logger.error(f"Error loading projects: {e}")
            return False
        self.projects = [Project.from_dict(row) for row in rows]
        return True

    def create(self, name: str, key: str, description: str = "") -> Optional[Project]:
        """
        Create a project owned by the current user.

        Returns the stored project, or None while signed out. Raises
        ValidationError for a missing name/key or a key over 10 characters,
        and RemoteError when the insert fails.
        """
        name = clean_text(name, "name")
        key = clean_text(key, "key").upper()
        description = clean_text(description, "description")
        if not name:
            raise ValidationError("Project name is required")
        if not key:
            raise ValidationError("Project key is required")
        if len(key) > MAX_KEY_LENGTH:
            raise ValidationError(f"Project key must be at most {MAX_KEY_LENGTH} characters")

        user = self.session.user
        if user is None:
            return None

        try:
            row = self.remote.insert(
                "projects",
                [{
                    "name": name,
                    "key": key,
                    "description": description or None,
                    "owner_id": user.id,
                }],
                returning=True,
            )
        except RemoteError as e:
            logger.error(f"Error creating project {key}: {e}")
            raise
        if isinstance(row, list):
            row = row[0]
        project = Project.from_dict(row)

        owner = ProjectMember(project_id=project.id, user_id=user.id, role=MemberRole.ADMIN)
        try:
            self.remote.insert("project_members", [owner.to_row()])
        except RemoteError as e:
            logger.warning(f"Project {project.key} created but owner membership failed: {e}")

        self.projects.insert(0, project)
        logger.info(f"Created project {project.key} ({project.id})")
        return project

    def get(self, project_id: str) -> Optional[Project]:
        """The project, or None when it does not exist or is not visible."""
        try:
            row = self.remote.select("projects", filters={"id": project_id}, single=True)
        except RemoteError as e:
            if e.no_rows:
                return None
            logger.error(f"Error loading project {project_id}: {e}")
            raise
        return Project.from_dict(row) if row else None

    def members(self, project_id: str) -> List[Profile]:
        """Profiles of the project's members (assignee choices)."""
        try:
            rows = self.remote.select(
                "project_members",
                columns=MEMBER_COLUMNS,
                filters={"project_id": project_id},
            )
        except RemoteError as e:
            logger.error(f"Error loading members of project {project_id}: {e}")
            return []
        profiles = [Profile.from_dict(row.get("profiles")) for row in rows]
        return [p for p in profiles if p is not None]
