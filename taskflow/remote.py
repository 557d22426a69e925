"""
Remote data service client (Supabase REST + auth).

Everything the board needs from the hosted backend goes through
RemoteService: table reads and writes via PostgREST, and the session
lifecycle via the auth endpoints. Row-level security, ordering and
referential integrity are enforced remotely; this module only moves
requests and responses and turns failures into RemoteError.

Usage:
    remote = RemoteService(url, anon_key, session_file="~/.local/share/taskflow/session.json")
    user = remote.sign_in_with_password("me@example.com", "secret")
    rows = remote.select("tasks", filters={"project_id": pid}, order="position")
"""
import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
from requests import RequestException, Response

logger = logging.getLogger(__name__)

# Auth change notifications delivered to on_auth_state_change() listeners
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

# PostgREST code for a single-row read that matched no rows
NO_ROWS = "PGRST116"

AuthListener = Callable[[str, Optional[Dict[str, Any]]], None]


class RemoteError(Exception):
    """A remote call failed: network error, non-2xx response, or RLS denial."""

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code

    @property
    def no_rows(self) -> bool:
        return self.code == NO_ROWS

    @classmethod
    def from_response(cls, response: Response) -> "RemoteError":
        """Build from a PostgREST / GoTrue error body."""
        message = ""
        code = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = (
                body.get("message")
                or body.get("msg")
                or body.get("error_description")
                or body.get("error")
                or ""
            )
            code = body.get("code") or body.get("error_code")
            if code is not None:
                code = str(code)
        if not message:
            message = response.text or response.reason or "request failed"
        return cls(message, status=response.status_code, code=code)


class RemoteService:
    """
    Thin client over the hosted backend.

    Holds the current access/refresh token pair, persists it to
    session_file (when given) so a restarted process resumes the session,
    and notifies auth listeners on sign-in, sign-out and refresh.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        session_file: Optional[str] = None,
        timeout: float = 10.0,
        http: Optional[requests.Session] = None,
    ):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.http = http or requests.Session()
        self.session_file = Path(session_file).expanduser() if session_file else None

        self._tokens: Dict[str, Any] = {}
        self._listeners: List[AuthListener] = []
        self._lock = threading.Lock()

    # ──────────────────────────────────────────
    # Transport
    # ──────────────────────────────────────────

    def _headers(self, extra: Optional[Dict[str, str]] = None, bearer: Optional[str] = None) -> Dict[str, str]:
        token = bearer or self._tokens.get("access_token") or self.api_key
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        payload: Any = None,
        headers: Optional[Dict[str, str]] = None,
        bearer: Optional[str] = None,
    ) -> Any:
        url = f"{self.url}{path}"
        try:
            response = self.http.request(
                method,
                url,
                params=params,
                json=payload,
                headers=self._headers(headers, bearer=bearer),
                timeout=self.timeout,
            )
        except RequestException as exc:
            raise RemoteError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            error = RemoteError.from_response(response)
            logger.debug(f"{method} {path} -> {response.status_code}: {error.message}")
            raise error

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(
                f"{method} {path} returned non-JSON body", status=response.status_code
            ) from exc

    # ──────────────────────────────────────────
    # Tables (PostgREST)
    # ──────────────────────────────────────────

    @staticmethod
    def _filter_params(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
        params = {}
        for column, value in (filters or {}).items():
            params[column] = "is.null" if value is None else f"eq.{value}"
        return params

    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order: Optional[str] = None,
        ascending: bool = True,
        single: bool = False,
    ) -> Any:
        """
        Read rows from a table.

        filters are equality matches; columns may embed joins in PostgREST
        syntax, e.g. "*, profiles:assignee_id (full_name, email)".
        With single=True exactly one row is expected and returned as a dict.
        """
        params = {"select": " ".join(columns.split())}
        params.update(self._filter_params(filters))
        if order:
            params["order"] = f"{order}.{'asc' if ascending else 'desc'}"
        headers = {"Accept": "application/vnd.pgrst.object+json"} if single else None
        result = self._request("GET", f"/rest/v1/{table}", params=params, headers=headers)
        if single:
            return result
        return result or []

    def insert(self, table: str, rows: List[Dict[str, Any]], returning: bool = False) -> Any:
        """Insert rows. With returning=True the stored rows come back."""
        prefer = "return=representation" if returning else "return=minimal"
        return self._request("POST", f"/rest/v1/{table}", payload=rows, headers={"Prefer": prefer})

    def upsert(self, table: str, rows: List[Dict[str, Any]]) -> Any:
        return self._request(
            "POST",
            f"/rest/v1/{table}",
            payload=rows,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def update(self, table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> Any:
        if not filters:
            raise ValueError("update() requires at least one filter")
        return self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=self._filter_params(filters),
            payload=values,
            headers={"Prefer": "return=minimal"},
        )

    def delete(self, table: str, filters: Dict[str, Any]) -> Any:
        if not filters:
            raise ValueError("delete() requires at least one filter")
        return self._request(
            "DELETE", f"/rest/v1/{table}", params=self._filter_params(filters)
        )

    # ──────────────────────────────────────────
    # Auth
    # ──────────────────────────────────────────

    @property
    def has_session(self) -> bool:
        return bool(self._tokens.get("access_token"))

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]:
        """Register an auth listener. Returns a function that removes it."""
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, event: str, user: Optional[Dict[str, Any]]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(event, user)
            except Exception as e:
                logger.error(f"Error in {event} auth listener: {e}")

    def get_session(self) -> Optional[Dict[str, Any]]:
        """
        Return the user of the stored session, or None when there is none.

        The stored access token is checked against the auth service; a
        rejected token is refreshed once with the refresh token.
        """
        if not self._tokens:
            self._tokens = self._read_session_file()
        access_token = self._tokens.get("access_token")
        if not access_token:
            return None
        try:
            return self._request("GET", "/auth/v1/user", bearer=access_token)
        except RemoteError as e:
            if e.status != 401 or not self._tokens.get("refresh_token"):
                raise
        return self._refresh()

    def _refresh(self) -> Optional[Dict[str, Any]]:
        try:
            data = self._request(
                "POST",
                "/auth/v1/token",
                params={"grant_type": "refresh_token"},
                payload={"refresh_token": self._tokens.get("refresh_token")},
                bearer=self.api_key,
            )
        except RemoteError as e:
            logger.info(f"Stored session could not be refreshed: {e}")
            self._store_tokens({})
            return None
        self._store_tokens(data)
        self._emit(TOKEN_REFRESHED, data.get("user"))
        return data.get("user")

    def sign_in_with_password(self, email: str, password: str) -> Dict[str, Any]:
        data = self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            payload={"email": email, "password": password},
            bearer=self.api_key,
        )
        self._store_tokens(data)
        user = data.get("user") or {}
        self._emit(SIGNED_IN, user)
        return user

    def sign_up(
        self, email: str, password: str, full_name: Optional[str] = None
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Register a new account. Returns (user, session_opened).

        Projects with email confirmation enabled return the user without a
        session; the caller then stays signed out until confirmation.
        """
        payload: Dict[str, Any] = {"email": email, "password": password}
        if full_name:
            payload["data"] = {"full_name": full_name}
        data = self._request("POST", "/auth/v1/signup", payload=payload, bearer=self.api_key)
        if data.get("access_token"):
            self._store_tokens(data)
            user = data.get("user") or {}
            self._emit(SIGNED_IN, user)
            return user, True
        return data.get("user") or data, False

    def drop_session(self) -> None:
        """Forget the in-memory tokens. The session file is kept for the next start."""
        self._tokens = {}

    def sign_out(self) -> None:
        """Revoke the session remotely and forget it locally, even on failure."""
        access_token = self._tokens.get("access_token")
        try:
            if access_token:
                self._request("POST", "/auth/v1/logout", bearer=access_token)
        finally:
            self._store_tokens({})
            self._emit(SIGNED_OUT, None)

    # ──────────────────────────────────────────
    # Admin (service-role key only)
    # ──────────────────────────────────────────

    def admin_list_users(self) -> List[Dict[str, Any]]:
        data = self._request("GET", "/auth/v1/admin/users", bearer=self.api_key)
        if isinstance(data, dict):
            return data.get("users", [])
        return data or []

    def admin_create_user(
        self,
        email: str,
        password: str,
        user_metadata: Optional[Dict[str, Any]] = None,
        email_confirm: bool = True,
    ) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/auth/v1/admin/users",
            payload={
                "email": email,
                "password": password,
                "email_confirm": email_confirm,
                "user_metadata": user_metadata or {},
            },
            bearer=self.api_key,
        )

    # ──────────────────────────────────────────
    # Session persistence
    # ──────────────────────────────────────────

    def _store_tokens(self, data: Dict[str, Any]) -> None:
        self._tokens = {
            k: data[k] for k in ("access_token", "refresh_token", "expires_at") if data.get(k)
        }
        if not self.session_file:
            return
        try:
            if self._tokens:
                self.session_file.parent.mkdir(parents=True, exist_ok=True)
                self.session_file.write_text(json.dumps(self._tokens))
                self.session_file.chmod(0o600)
            else:
                self.session_file.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Cannot persist session to {self.session_file}: {e}")

    def _read_session_file(self) -> Dict[str, Any]:
        if not self.session_file or not self.session_file.exists():
            return {}
        try:
            data = json.loads(self.session_file.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable session file {self.session_file}: {e}")
            return {}
        return data if isinstance(data, dict) else {}
