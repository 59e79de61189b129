"""
auth/dependencies.py -- FastAPI Depends() adapters for the guard pipeline.

guarded(*guards) turns a guard tuple from auth/guards.py into a FastAPI
dependency. The dependency reads the Authorization header, runs the guards
in order and returns the resulting GuardContext. A rejection raises the
guard's AuthError, which the handler in api/main.py renders as 401/403.

require_auth                          -- bearer token + live session
require_permission(resource, action)  -- the above + (resource, action)

Use as:
    @router.get("/protected")
    def route(ctx: GuardContext = Depends(require_auth)): ...

Layer rule: no imports from core/ or api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.guards import AUTHENTICATED, Guard, GuardContext, authorized, run_guards
from auth.services import AuthServices


def get_services(request: Request) -> AuthServices:
    """Return the AuthServices bundle built in the application lifespan."""
    return request.app.state.services


def guarded(*guards: Guard) -> Callable[[Request], GuardContext]:
    """Build a dependency that runs guards against the incoming request."""

    def dependency(request: Request) -> GuardContext:
        services = get_services(request)
        context = GuardContext(
            authorization=request.headers.get("Authorization"),
            sessions=services.sessions,
            permissions=services.permissions,
        )
        return run_guards(context, guards)

    return dependency


require_auth = guarded(*AUTHENTICATED)


def require_permission(resource: str, action: str) -> Callable[[Request], GuardContext]:
    return guarded(*authorized(resource, action))
