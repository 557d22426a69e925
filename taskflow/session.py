"""
Process-wide session store: who is signed in, and whether we know yet.

Lifecycle:
  SessionState(user=None, loading=True)       at construction
  → initialize() resolves the stored session once
  → SessionState(user or None, loading=False)  for the rest of the process
  → sign_in / sign_up / sign_out / auth notifications swap the user
  → close() drops every subscription

loading never goes back to True once initialize() has run.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from .remote import RemoteError, RemoteService, SIGNED_OUT
from .schema import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionState:
    user: Optional[User] = None
    loading: bool = True

    @property
    def authenticated(self) -> bool:
        return self.user is not None


Subscriber = Callable[[SessionState], None]


class SessionStore:
    """Single source of truth for the signed-in identity."""

    def __init__(self, remote: RemoteService):
        self.remote = remote
        self._state = SessionState()
        self._subscribers: List[Subscriber] = []
        self._unsubscribe_remote: Optional[Callable[[], None]] = None
        self._initialized = False
        self._lock = threading.RLock()

    # ── State ────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> Optional[User]:
        return self._state.user

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def authenticated(self) -> bool:
        return self._state.authenticated

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call callback with the new state on every change. Returns an unsubscriber."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _set(self, user: Optional[User], loading: Optional[bool] = None) -> None:
        with self._lock:
            new = SessionState(
                user=user,
                loading=self._state.loading if loading is None else loading,
            )
            if new == self._state:
                return
            self._state = new
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(new)
            except Exception as e:
                logger.error(f"Error in session subscriber {callback!r}: {e}")

    # ── Lifecycle ────────────────────────────────────────────

    def initialize(self) -> SessionState:
        """
        Resolve the existing session once and start listening for auth changes.

        A failing lookup resolves to signed-out; the store never stays loading.
        """
        with self._lock:
            if self._unsubscribe_remote is None:
                self._unsubscribe_remote = self.remote.on_auth_state_change(self._on_auth_change)
            if self._initialized:
                logger.debug("Session store already initialized")
                return self._state
            self._initialized = True

        user = None
        try:
            raw = self.remote.get_session()
            if raw:
                user = User.from_auth(raw)
        except RemoteError as e:
            logger.warning(f"Session lookup failed, continuing signed out: {e}")
            self.remote.drop_session()
        finally:
            self._set(user, loading=False)

        logger.info(f"Session resolved: {user.email if user else 'signed out'}")
        return self._state

    def close(self) -> None:
        with self._lock:
            if self._unsubscribe_remote is not None:
                self._unsubscribe_remote()
                self._unsubscribe_remote = None
            self._subscribers.clear()

    def _on_auth_change(self, event: str, raw_user) -> None:
        if event == SIGNED_OUT or not raw_user:
            self._set(None)
            return
        self._set(User.from_auth(raw_user))

    # ── Auth actions ─────────────────────────────────────────

    def sign_in(self, email: str, password: str) -> User:
        user = User.from_auth(self.remote.sign_in_with_password(email, password))
        self._set(user)
        logger.info(f"Signed in as {user.email}")
        return user

    def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> Optional[User]:
        """Register; returns the user when the backend opened a session right away."""
        raw, opened = self.remote.sign_up(email, password, full_name=full_name)
        if opened:
            user = User.from_auth(raw)
            self._set(user)
            logger.info(f"Signed up and signed in as {user.email}")
            return user
        logger.info(f"Signed up {email}; awaiting email confirmation")
        return None

    def sign_out(self) -> None:
        try:
            self.remote.sign_out()
        except RemoteError as e:
            logger.warning(f"Remote sign-out failed, clearing local session anyway: {e}")
        finally:
            self._set(None)
        logger.info("Signed out")
