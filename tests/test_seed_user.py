"""Tests for the test-user seeding script."""

import pytest

import seed_user
from taskflow.remote import RemoteError


def test_creates_user_and_profile(remote):
    user_id = seed_user.seed_user(remote, "test@example.com", "password123", "Test User")

    assert remote.users["test@example.com"]["user_metadata"] == {"full_name": "Test User"}
    profile = next(p for p in remote.tables["profiles"] if p["id"] == user_id)
    assert profile == {"id": user_id, "email": "test@example.com", "full_name": "Test User"}


def test_existing_user_is_left_alone(remote):
    user_id = seed_user.seed_user(remote, "ada@example.com", "other", "Someone Else")
    assert user_id == "user-ada"
    assert remote.calls_for("admin_create_user") == []
    assert remote.calls_for("upsert") == []


def test_main_requires_service_key(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("TASKFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co")
    monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
    assert seed_user.main([]) == 1
    assert "SUPABASE_SERVICE_ROLE_KEY" in capsys.readouterr().err


def test_main_reports_remote_failure(monkeypatch, tmp_path, remote):
    monkeypatch.setenv("TASKFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service")
    remote.fail("admin_list_users", None, RemoteError("Invalid API key", status=401))
    monkeypatch.setattr(seed_user, "RemoteService", lambda *args, **kwargs: remote)
    assert seed_user.main(["--email", "x@example.com"]) == 1


def test_main_success(monkeypatch, tmp_path, remote, capsys):
    monkeypatch.setenv("TASKFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service")
    monkeypatch.setattr(seed_user, "RemoteService", lambda *args, **kwargs: remote)
    assert seed_user.main(["--email", "x@example.com", "--password", "pw"]) == 0
    assert "x@example.com" in remote.users
    assert "Password: pw" in capsys.readouterr().out
