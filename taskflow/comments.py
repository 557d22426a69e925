"""
Comment thread for one task.

Comments are append-only: they are read oldest first and added one at a
time. There is no edit or delete path.
"""
import logging
from typing import List

from .remote import RemoteError, RemoteService
from .schema import Comment, ValidationError, clean_text
from .session import SessionStore

logger = logging.getLogger(__name__)

COMMENT_COLUMNS = """
    *,
    profiles:user_id (
        full_name,
        email
    )
"""


class CommentThread:
    """Loads and appends comments for a single task."""

    def __init__(self, remote: RemoteService, session: SessionStore, task_id: str):
        if not task_id:
            raise ValueError("Draft tasks have no comment thread")
        self.remote = remote
        self.session = session
        self.task_id = task_id
        self.comments: List[Comment] = []

    def load(self) -> bool:
        try:
            rows = self.remote.select(
                "comments",
                columns=COMMENT_COLUMNS,
                filters={"task_id": self.task_id},
                order="created_at",
                ascending=True,
            )
        except RemoteError as e:
            logger.error(f"Error loading comments for task {self.task_id}: {e}")
            return False
        self.comments = [Comment.from_dict(row) for row in rows]
        return True

    def add(self, content: str) -> bool:
        """
        Append a comment, then reload the thread.

        Raises ValidationError for empty or whitespace-only content before
        anything is sent. Returns False when nobody is signed in.
        """
        text = clean_text(content, "content")
        if not text:
            raise ValidationError("Comment cannot be empty")
        user = self.session.user
        if user is None:
            return False
        try:
            self.remote.insert(
                "comments",
                [{"task_id": self.task_id, "user_id": user.id, "content": text}],
            )
        except RemoteError as e:
            logger.error(f"Error adding comment to task {self.task_id}: {e}")
            raise
        self.load()
        return True

    def to_dict(self):
        return {
            "task_id": self.task_id,
            "comments": [c.to_dict() for c in self.comments],
            "count": len(self.comments),
        }
