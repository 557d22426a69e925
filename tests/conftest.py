"""Shared test fixtures for TaskFlow tests."""

import sys
from pathlib import Path

import pytest

# Ensure the repo root (taskflow/, taskflow_server.py) and tests/ are importable
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import FakeRemote
from taskflow.session import SessionStore


@pytest.fixture
def remote():
    fake = FakeRemote()
    fake.add_user("ada@example.com", "secret", full_name="Ada Lovelace", user_id="user-ada")
    fake.tables["profiles"] = [
        {"id": "user-ada", "email": "ada@example.com", "full_name": "Ada Lovelace"},
        {"id": "user-bob", "email": "bob@example.com", "full_name": None},
    ]
    fake.tables["projects"] = [
        {
            "id": "proj-1",
            "name": "Apollo",
            "key": "APL",
            "description": "Moonshot",
            "owner_id": "user-ada",
            "created_at": "2024-01-01T00:00:00+00:00",
        },
    ]
    fake.tables["tasks"] = []
    fake.tables["comments"] = []
    fake.tables["project_members"] = [
        {"id": "pm-1", "project_id": "proj-1", "user_id": "user-ada", "role": "admin"},
        {"id": "pm-2", "project_id": "proj-1", "user_id": "user-bob", "role": "member"},
    ]
    return fake


@pytest.fixture
def store(remote):
    s = SessionStore(remote)
    yield s
    s.close()


@pytest.fixture
def signed_in(remote, store):
    """A resolved session with ada@example.com signed in."""
    store.initialize()
    store.sign_in("ada@example.com", "secret")
    return store
