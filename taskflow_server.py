#!/usr/bin/env python3
"""
TaskFlow Board Server
---------------------
Local JSON API for one signed-in user's project boards, backed by a hosted
Supabase project (tables + auth + row-level security).

Usage:
    export SUPABASE_URL=https://<project>.supabase.co
    export SUPABASE_ANON_KEY=...
    python taskflow_server.py            # http://127.0.0.1:3000
    python taskflow_server.py --config taskflow.yaml --port 8080

Routes:
    GET  /health                               → { status, session }
    GET|POST /login, /signup                   → sign-in / sign-up (signed-out only)
    POST /logout                               → sign out, redirect to /login
    GET|POST /projects                         → list / create projects
    GET  /projects/<id>                        → board: project + four status columns
    GET  /projects/<id>/members                → member profiles (assignee choices)
    GET  /projects/<id>/tasks/new?status=todo  → draft task for a column
    POST /projects/<id>/tasks                  → create task, returns board
    PUT|DELETE /projects/<id>/tasks/<task_id>  → update / delete task, returns board
    GET|POST /tasks/<task_id>/comments         → list / add comments
    anything else                              → redirect to /projects

While the session is still being resolved every guarded route answers
503 {"status": "loading"}.
"""

import argparse
import atexit
import sys
import threading
from typing import Dict, Optional

from flask import Flask, jsonify, redirect, request

from taskflow.board import BoardSynchronizer
from taskflow.comments import CommentThread
from taskflow.config import ConfigError, TaskflowConfig, setup_logging
from taskflow.guard import LANDING_ROUTE, SIGN_IN_ROUTE, RouteGuard
from taskflow.projects import ProjectDirectory
from taskflow.remote import RemoteError, RemoteService
from taskflow.schema import TaskStatus, ValidationError, clean_text, task_from_form
from taskflow.session import SessionStore


def _payload() -> dict:
    """Request body as a dict, from JSON or form fields."""
    data = request.get_json(force=True, silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _credentials(data: dict):
    """Email and password from a sign-in or sign-up body."""
    email = clean_text(data.get("email"), "email")
    password = data.get("password") or ""
    if not isinstance(password, str):
        raise ValidationError("password must be a string")
    if not email or not password:
        raise ValidationError("email and password are required")
    return email, password


class BoardRegistry:
    """One BoardSynchronizer per project, dropped on sign-out."""

    def __init__(self, remote: RemoteService, session: SessionStore):
        self.remote = remote
        self.session = session
        self._boards: Dict[str, BoardSynchronizer] = {}
        self._lock = threading.Lock()
        session.subscribe(self._on_session_change)

    def get(self, project_id: str, refresh: bool = False) -> BoardSynchronizer:
        with self._lock:
            board = self._boards.get(project_id)
            if board is None:
                board = BoardSynchronizer(self.remote, self.session, project_id)
                self._boards[project_id] = board
        if refresh or not board.loaded:
            board.load()
        return board

    def clear(self) -> None:
        with self._lock:
            self._boards.clear()

    def _on_session_change(self, state) -> None:
        if not state.authenticated:
            self.clear()


def create_app(
    config: Optional[TaskflowConfig] = None,
    remote: Optional[RemoteService] = None,
    start_session: bool = True,
) -> Flask:
    """
    Build the Flask app.

    remote defaults to a RemoteService built from config. With
    start_session=True the session is resolved on a background thread, so
    the first requests may see the loading state.
    """
    config = config or TaskflowConfig()
    if remote is None:
        remote = RemoteService(
            config.supabase_url,
            config.supabase_anon_key,
            session_file=config.session_file or None,
            timeout=config.request_timeout,
        )

    app = Flask(__name__)
    session = SessionStore(remote)
    guard = RouteGuard(session, sign_in_route=SIGN_IN_ROUTE, landing_route=LANDING_ROUTE)
    directory = ProjectDirectory(remote, session)
    boards = BoardRegistry(remote, session)

    def forget_projects(state):
        if not state.authenticated:
            directory.projects = []

    session.subscribe(forget_projects)

    app.extensions["taskflow"] = {
        "remote": remote,
        "session": session,
        "guard": guard,
        "boards": boards,
    }

    if start_session:
        threading.Thread(target=session.initialize, name="session-init", daemon=True).start()

    # ── Errors ───────────────────────────────────────────────────────────────

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(RemoteError)
    def handle_remote_error(e):
        app.logger.warning(f"Remote error: {e.message} (status={e.status}, code={e.code})")
        status = e.status if e.status and 400 <= e.status < 500 else 502
        return jsonify({"error": e.message or "Remote request failed", "code": e.code}), status

    # ── Auth ─────────────────────────────────────────────────────────────────

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "session": guard.state.value})

    @app.route("/login", methods=["GET"])
    @guard.public_only
    def login_page():
        return jsonify({"page": "login"})

    @app.route("/login", methods=["POST"])
    @guard.public_only
    def login():
        email, password = _credentials(_payload())
        session.sign_in(email, password)
        return redirect(LANDING_ROUTE)

    @app.route("/signup", methods=["GET"])
    @guard.public_only
    def signup_page():
        return jsonify({"page": "signup"})

    @app.route("/signup", methods=["POST"])
    @guard.public_only
    def signup():
        data = _payload()
        email, password = _credentials(data)
        full_name = clean_text(data.get("full_name"), "full_name") or None
        user = session.sign_up(email, password, full_name=full_name)
        if user is None:
            return jsonify({"status": "confirmation_required", "email": email}), 202
        return redirect(LANDING_ROUTE)

    @app.route("/logout", methods=["POST"])
    @guard.protected
    def logout():
        session.sign_out()
        return redirect(SIGN_IN_ROUTE)

    # ── Projects ─────────────────────────────────────────────────────────────

    @app.route("/projects", methods=["GET"])
    @guard.protected
    def list_projects():
        directory.load()
        return jsonify({
            "user": session.user.to_dict() if session.user else None,
            "projects": [p.to_dict() for p in directory.projects],
            "count": len(directory.projects),
        })

    @app.route("/projects", methods=["POST"])
    @guard.protected
    def create_project():
        data = _payload()
        project = directory.create(
            data.get("name", ""),
            data.get("key", ""),
            data.get("description", ""),
        )
        if project is None:
            return jsonify({"error": "Not signed in"}), 401
        return jsonify({"project": project.to_dict()}), 201

    @app.route("/projects/<project_id>", methods=["GET"])
    @guard.protected
    def project_board(project_id):
        board = boards.get(project_id, refresh=True)
        if board.project is None:
            if board.last_error is not None and not board.last_error.no_rows:
                raise board.last_error
            return jsonify({"error": "Project not found"}), 404
        return jsonify(board.to_dict())

    @app.route("/projects/<project_id>/members", methods=["GET"])
    @guard.protected
    def project_members(project_id):
        project = directory.get(project_id)
        if project is None:
            return jsonify({"error": "Project not found"}), 404
        members = directory.members(project_id)
        return jsonify({
            "project": project.to_dict(),
            "members": [m.to_dict() for m in members],
        })

    # ── Tasks ────────────────────────────────────────────────────────────────

    @app.route("/projects/<project_id>/tasks/new", methods=["GET"])
    @guard.protected
    def draft_task(project_id):
        board = boards.get(project_id)
        draft = board.draft(request.args.get("status") or TaskStatus.TODO)
        if draft is None:
            return jsonify({"error": "Not signed in"}), 401
        return jsonify({"task": draft.to_dict()})

    @app.route("/projects/<project_id>/tasks", methods=["POST"])
    @guard.protected
    def create_task(project_id):
        board = boards.get(project_id)
        draft = task_from_form(_payload(), project_id)
        if not board.create_task(draft):
            return jsonify({"error": "Not signed in"}), 401
        return jsonify(board.to_dict()), 201

    @app.route("/projects/<project_id>/tasks/<task_id>", methods=["PUT", "PATCH"])
    @guard.protected
    def update_task(project_id, task_id):
        board = boards.get(project_id)
        if not board.update_task(task_id, _payload()):
            return jsonify({"error": "No editable fields in request"}), 400
        return jsonify(board.to_dict())

    @app.route("/projects/<project_id>/tasks/<task_id>", methods=["DELETE"])
    @guard.protected
    def delete_task(project_id, task_id):
        board = boards.get(project_id)
        if not board.delete_task(task_id):
            return jsonify({"error": "Not signed in"}), 401
        return jsonify(board.to_dict())

    # ── Comments ─────────────────────────────────────────────────────────────

    @app.route("/tasks/<task_id>/comments", methods=["GET"])
    @guard.protected
    def list_comments(task_id):
        thread = CommentThread(remote, session, task_id)
        thread.load()
        return jsonify(thread.to_dict())

    @app.route("/tasks/<task_id>/comments", methods=["POST"])
    @guard.protected
    def add_comment(task_id):
        thread = CommentThread(remote, session, task_id)
        if not thread.add(_payload().get("content", "")):
            return jsonify({"error": "Not signed in"}), 401
        return jsonify(thread.to_dict()), 201

    # ── Fallback ─────────────────────────────────────────────────────────────

    @app.route("/")
    @app.route("/<path:path>")
    def fallback(path=""):
        return redirect(LANDING_ROUTE)

    return app


# ── Main ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="TaskFlow Board Server")
    parser.add_argument("--config", help="Path to taskflow.yaml (overrides TASKFLOW_CONFIG)")
    parser.add_argument("--host", help="Bind address (default from config, 127.0.0.1)")
    parser.add_argument("--port", type=int)
    args = parser.parse_args()

    try:
        config = TaskflowConfig.load(args.config).validate()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    host = args.host or config.host
    port = args.port or config.port
    setup_logging(config.log_level)

    app = create_app(config)
    atexit.register(app.extensions["taskflow"]["session"].close)

    print(f"""
╔═══════════════════════════════════════╗
║  TaskFlow Board Server                ║
╠═══════════════════════════════════════╣
║  URL:     http://{host}:{port:<17}║
║  Backend: {config.supabase_url[:28]:<28}║
╚═══════════════════════════════════════╝
""")

    app.run(host=host, port=port, debug=False, threaded=True)
