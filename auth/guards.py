"""
auth/guards.py -- Ordered guard pipeline for protected operations.

A guard is a plain function GuardContext -> Proceed | Reject. run_guards()
executes a tuple of guards in order, threading the context each Proceed
returns into the next guard, and raises the error carried by the first
Reject. There is no continuation to call and nothing runs after a Reject.

Standard pipelines:
  (bearer_token, active_session)                        -- authenticated
  (bearer_token, active_session, permission(res, act))  -- authorized

bearer_token never touches the store, so a missing or malformed
Authorization header is rejected before any query runs.

auth/dependencies.py adapts these pipelines to FastAPI Depends(); the
guards themselves know nothing about HTTP frameworks.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from auth.errors import AuthError, AuthenticationError, InvalidTokenError, PermissionDeniedError
from auth.models import UserIdentity
from auth.permissions import PermissionResolver
from auth.sessions import SessionManager

_BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class GuardContext:
    """Everything a guard may read, plus what earlier guards established."""

    authorization: str | None
    sessions: SessionManager
    permissions: PermissionResolver
    token: str | None = None
    identity: UserIdentity | None = None


@dataclass(frozen=True)
class Proceed:
    context: GuardContext


@dataclass(frozen=True)
class Reject:
    error: AuthError


Outcome = Proceed | Reject
Guard = Callable[[GuardContext], Outcome]


def run_guards(context: GuardContext, guards: Sequence[Guard]) -> GuardContext:
    """Run guards in order. Returns the final context or raises the first rejection's error."""
    for guard in guards:
        outcome = guard(context)
        if isinstance(outcome, Reject):
            raise outcome.error
        context = outcome.context
    return context


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


def bearer_token(context: GuardContext) -> Outcome:
    """Extract the token from 'Authorization: Bearer <token>'."""
    header = context.authorization or ""
    if not header.startswith(_BEARER_PREFIX):
        return Reject(AuthenticationError("Missing or malformed Authorization header."))
    token = header[len(_BEARER_PREFIX) :].strip()
    if not token:
        return Reject(AuthenticationError("Missing or malformed Authorization header."))
    return Proceed(dataclasses.replace(context, token=token))


def active_session(context: GuardContext) -> Outcome:
    """Resolve the token to a live session of an active user."""
    identity = context.sessions.validate(context.token or "")
    if identity is None:
        return Reject(InvalidTokenError())
    return Proceed(dataclasses.replace(context, identity=identity))


def permission(resource: str, action: str) -> Guard:
    """Build a guard requiring the authenticated identity to hold (resource, action)."""

    def guard(context: GuardContext) -> Outcome:
        if context.identity is None:
            return Reject(AuthenticationError())
        if not context.permissions.has_permission(context.identity.user_id, resource, action):
            return Reject(PermissionDeniedError())
        return Proceed(context)

    guard.__name__ = f"permission_{resource}_{action}"
    return guard


AUTHENTICATED: tuple[Guard, ...] = (bearer_token, active_session)


def authorized(resource: str, action: str) -> tuple[Guard, ...]:
    return (*AUTHENTICATED, permission(resource, action))
