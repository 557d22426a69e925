"""
Tests for the TaskFlow data model.

Covers:
    - Tag parsing         — strict for client input, lenient for remote rows
    - Task.from_dict()    — row parsing, assignee join, unknown tags
    - Task.draft()        — blank creation form per column
    - task_from_form()    — validation of submitted tasks
    - clean_task_patch()  — editable-field filtering and coercion
"""

import pytest

from taskflow.schema import (
    MemberRole,
    Profile,
    Project,
    ProjectMember,
    Sprint,
    SprintStatus,
    Task,
    TaskPriority,
    TaskStatus,
    TaskType,
    User,
    ValidationError,
    clean_task_patch,
    task_from_form,
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Tags
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestTags:

    def test_status_display_order_and_labels(self):
        assert [s.value for s in TaskStatus] == ["todo", "in_progress", "done", "blocked"]
        assert [s.label for s in TaskStatus] == ["To Do", "In Progress", "Done", "Blocked"]

    def test_parse_accepts_case_and_whitespace(self):
        assert TaskStatus.parse(" In_Progress ") is TaskStatus.IN_PROGRESS
        assert TaskPriority.parse("URGENT") is TaskPriority.URGENT

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValidationError) as excinfo:
            TaskStatus.parse("archived")
        assert "todo" in str(excinfo.value)

    def test_from_str_defaults_unknown_remote_values(self):
        assert TaskStatus.from_str("archived") is TaskStatus.TODO
        assert TaskPriority.from_str("critical") is TaskPriority.MEDIUM
        assert TaskType.from_str(None) is TaskType.TASK
        assert MemberRole.from_str("owner") is MemberRole.VIEWER


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Rows
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_task_from_row_with_assignee():
    task = Task.from_dict({
        "id": "t1",
        "project_id": "p1",
        "title": "Fix login",
        "status": "blocked",
        "priority": "high",
        "type": "bug",
        "assignee_id": "u2",
        "reporter_id": "u1",
        "position": 3,
        "created_at": "2024-05-01T10:00:00Z",
        "profiles": {"full_name": None, "email": "bob@example.com"},
    })
    assert task.status is TaskStatus.BLOCKED
    assert task.type is TaskType.BUG
    assert task.position == 3
    assert task.created_at.year == 2024
    assert task.assignee.display_name == "bob@example.com"
    assert not task.is_draft


def test_task_without_timestamp_keeps_none():
    row = {"id": "t1", "title": "A"}
    assert Task.from_dict(row).created_at is None
    assert Task.from_dict(row).to_dict() == Task.from_dict(row).to_dict()
    assert Task.draft("p1").created_at is None


def test_task_with_unknown_status_lands_in_todo():
    task = Task.from_dict({"id": "t1", "title": "Odd", "status": "archived"})
    assert task.status is TaskStatus.TODO


def test_task_to_dict_exposes_tag_values():
    task = Task(id="t1", title="A", status=TaskStatus.DONE, assignee=Profile(email="x@y.z"))
    data = task.to_dict()
    assert data["status"] == "done"
    assert data["priority"] == "medium"
    assert data["assignee"]["display_name"] == "x@y.z"


def test_draft_defaults():
    draft = Task.draft("p1", TaskStatus.BLOCKED)
    assert draft.is_draft
    assert draft.title == ""
    assert draft.status is TaskStatus.BLOCKED
    assert draft.priority is TaskPriority.MEDIUM
    assert draft.type is TaskType.TASK
    assert draft.assignee_id is None
    assert draft.position == 0


def test_user_from_auth_reads_metadata():
    user = User.from_auth({"id": "u1", "email": "a@b.c", "user_metadata": {"full_name": "A"}})
    assert user == User(id="u1", email="a@b.c", full_name="A")


def test_project_and_member_rows():
    project = Project.from_dict({"id": "p1", "name": "N", "key": "K", "owner_id": "u1"})
    assert project.to_dict()["key"] == "K"
    member = ProjectMember(project_id="p1", user_id="u1", role=MemberRole.ADMIN)
    assert member.to_row() == {"project_id": "p1", "user_id": "u1", "role": "admin"}


def test_sprint_row_with_unknown_status():
    sprint = Sprint.from_dict({"id": "s1", "project_id": "p1", "name": "S1", "status": "paused"})
    assert sprint.status is SprintStatus.PLANNED
    assert sprint.goal is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Input validation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestTaskFromForm:

    def test_minimal(self):
        task = task_from_form({"title": "  Write docs "}, "p1")
        assert task.title == "Write docs"
        assert task.project_id == "p1"
        assert task.status is TaskStatus.TODO
        assert task.description is None

    def test_title_required(self):
        with pytest.raises(ValidationError):
            task_from_form({"title": "   "}, "p1")

    def test_invalid_priority(self):
        with pytest.raises(ValidationError):
            task_from_form({"title": "x", "priority": "asap"}, "p1")

    @pytest.mark.parametrize("data", [
        {"title": 5},
        {"title": ["a"]},
        {"title": "ok", "description": 3},
        {"title": "ok", "estimate": "soon"},
    ])
    def test_non_string_or_malformed_fields(self, data):
        with pytest.raises(ValidationError):
            task_from_form(data, "p1")

    def test_empty_assignee_is_none(self):
        task = task_from_form({"title": "x", "assignee_id": ""}, "p1")
        assert task.assignee_id is None


class TestCleanTaskPatch:

    def test_drops_non_editable_fields(self):
        values = clean_task_patch({"title": "New", "reporter_id": "evil", "id": "t9"})
        assert values == {"title": "New"}

    def test_coerces_values(self):
        values = clean_task_patch({
            "status": "DONE",
            "description": "",
            "assignee_id": "",
            "estimate": "2.5",
            "position": "4",
        })
        assert values == {
            "status": "done",
            "description": None,
            "assignee_id": None,
            "estimate": 2.5,
            "position": 4,
        }

    def test_rejects_blank_title(self):
        with pytest.raises(ValidationError):
            clean_task_patch({"title": "  "})

    @pytest.mark.parametrize("patch", [{"title": 5}, {"description": {"a": 1}}, {"estimate": []}])
    def test_rejects_wrong_types(self, patch):
        with pytest.raises(ValidationError):
            clean_task_patch(patch)

    def test_rejects_bad_number(self):
        with pytest.raises(ValidationError):
            clean_task_patch({"position": "first"})

    def test_rejects_unknown_status(self):
        with pytest.raises(ValidationError):
            clean_task_patch({"status": "archived"})
