"""
Route guard: decides whether a navigation target is reachable.

The guard owns no state of its own; it reads the SessionStore on every
evaluation:

    LOADING          → wait, for every route class
    AUTHENTICATED    → protected: render     public-only: redirect to landing
    UNAUTHENTICATED  → protected: redirect to sign-in     public-only: render
"""
import logging
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Optional

from flask import jsonify, redirect

from .session import SessionState, SessionStore

logger = logging.getLogger(__name__)

SIGN_IN_ROUTE = "/login"
LANDING_ROUTE = "/projects"


class GuardState(Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"

    @classmethod
    def of(cls, state: SessionState) -> "GuardState":
        if state.loading:
            return cls.LOADING
        return cls.AUTHENTICATED if state.authenticated else cls.UNAUTHENTICATED


class RouteAccess(Enum):
    PROTECTED = "protected"      # requires a signed-in user
    PUBLIC_ONLY = "public_only"  # sign-in / sign-up: requires no user


class Action(Enum):
    WAIT = "wait"
    RENDER = "render"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class Decision:
    action: Action
    location: Optional[str] = None


def evaluate(
    state: SessionState,
    access: RouteAccess,
    sign_in_route: str = SIGN_IN_ROUTE,
    landing_route: str = LANDING_ROUTE,
) -> Decision:
    guard_state = GuardState.of(state)
    if guard_state is GuardState.LOADING:
        return Decision(Action.WAIT)
    if access is RouteAccess.PROTECTED:
        if guard_state is GuardState.AUTHENTICATED:
            return Decision(Action.RENDER)
        return Decision(Action.REDIRECT, sign_in_route)
    if access is RouteAccess.PUBLIC_ONLY:
        if guard_state is GuardState.AUTHENTICATED:
            return Decision(Action.REDIRECT, landing_route)
        return Decision(Action.RENDER)
    raise ValueError(f"Unknown route access: {access!r}")


class RouteGuard:
    """Binds evaluate() to a SessionStore and wraps Flask views with it."""

    def __init__(
        self,
        store: SessionStore,
        sign_in_route: str = SIGN_IN_ROUTE,
        landing_route: str = LANDING_ROUTE,
    ):
        self.store = store
        self.sign_in_route = sign_in_route
        self.landing_route = landing_route
        self.state = GuardState.of(store.state)
        self._unsubscribe = store.subscribe(self._on_session_change)

    def _on_session_change(self, session: SessionState) -> None:
        new_state = GuardState.of(session)
        if new_state is not self.state:
            logger.info(f"Route guard: {self.state.value} → {new_state.value}")
            self.state = new_state

    def decide(self, access: RouteAccess) -> Decision:
        return evaluate(self.store.state, access, self.sign_in_route, self.landing_route)

    def close(self) -> None:
        self._unsubscribe()

    def _guarded(self, access: RouteAccess):
        def decorator(view):
            @wraps(view)
            def decorated(*args, **kwargs):
                decision = self.decide(access)
                if decision.action is Action.WAIT:
                    response = jsonify({"status": "loading"})
                    response.status_code = 503
                    response.headers["Retry-After"] = "1"
                    return response
                if decision.action is Action.REDIRECT:
                    return redirect(decision.location)
                return view(*args, **kwargs)
            return decorated
        return decorator

    def protected(self, view):
        """Decorator: only reachable with a signed-in user."""
        return self._guarded(RouteAccess.PROTECTED)(view)

    def public_only(self, view):
        """Decorator: only reachable while signed out."""
        return self._guarded(RouteAccess.PUBLIC_ONLY)(view)
