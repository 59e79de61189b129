"""
api/routes/auth.py -- Registration, login, logout and self-service endpoints.

Routes:
  POST /api/auth/register  -- create an account holding the default role
  POST /api/auth/login     -- exchange credentials for a session token
  GET  /api/auth/profile   -- current user with role names (requires auth)
  POST /api/auth/logout    -- revoke the current token (requires auth)
  GET  /api/auth/logs      -- caller's last 50 authentication events (requires auth)

Security:
  Unknown e-mail and wrong password return the same 401 body. A disabled
  account returns 403. Login responses carry Cache-Control: no-store so the
  token is never cached by intermediaries.

Errors raised by the services (AuthError subclasses) are rendered by the
exception handler in api/main.py; these handlers only map success paths.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import (
    LoginLogEntry,
    LoginLogResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    MessageUserEnvelope,
    RegisterRequest,
    UserEnvelope,
    UserResponse,
)
from auth.authenticator import MSG_LOGIN_OK
from auth.dependencies import get_services, require_auth
from auth.errors import InvalidTokenError
from auth.guards import GuardContext
from auth.services import AuthServices

# Auth policy:
# - POST /api/auth/register:  public
# - POST /api/auth/login:     public
# - GET  /api/auth/profile:   requires auth (require_auth)
# - POST /api/auth/logout:    requires auth (require_auth)
# - GET  /api/auth/logs:      requires auth (require_auth)
router = APIRouter()


def _client_address(request: Request) -> str | None:
    return request.client.host if request.client else None


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=MessageUserEnvelope, status_code=201)
def register(body: RegisterRequest, services: AuthServices = Depends(get_services)) -> MessageUserEnvelope:
    """Create a user account. 409 if the e-mail is already registered."""
    user = services.authenticator.register(
        email=body.email,
        password=body.password,
        given_name=body.given_name,
        family_name=body.family_name,
    )
    return MessageUserEnvelope(message="User created.", user=UserResponse.from_user(user))


@router.post("/auth/login", response_model=LoginResponse)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    services: AuthServices = Depends(get_services),
) -> LoginResponse:
    """Authenticate with e-mail and password; return a bearer token valid for 24 hours."""
    response.headers["Cache-Control"] = "no-store"
    result = services.authenticator.login(
        email=body.email,
        password=body.password,
        source_address=_client_address(request),
        client_agent=request.headers.get("User-Agent"),
    )
    return LoginResponse.from_result(result, message=MSG_LOGIN_OK)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/profile", response_model=UserEnvelope)
def profile(
    ctx: GuardContext = Depends(require_auth),
    services: AuthServices = Depends(get_services),
) -> UserEnvelope:
    """Return the current user with the names of the roles it holds."""
    user = services.permissions.list_with_roles(ctx.identity.user_id)
    if user is None:
        # Deleted between token validation and this read.
        raise InvalidTokenError()
    return UserEnvelope(user=UserResponse.from_user(user))


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    request: Request,
    ctx: GuardContext = Depends(require_auth),
    services: AuthServices = Depends(get_services),
) -> MessageResponse:
    """Revoke the token used for this request. Repeating the call is harmless."""
    services.authenticator.logout(
        token=ctx.token,
        user_id=ctx.identity.user_id,
        email=ctx.identity.email,
        source_address=_client_address(request),
        client_agent=request.headers.get("User-Agent"),
    )
    return MessageResponse(message="Logged out.")


@router.get("/auth/logs", response_model=LoginLogResponse)
def login_logs(
    ctx: GuardContext = Depends(require_auth),
    services: AuthServices = Depends(get_services),
) -> LoginLogResponse:
    """Return the caller's 50 most recent authentication events, newest first."""
    entries = services.authenticator.login_history(ctx.identity.user_id)
    return LoginLogResponse(logs=[LoginLogEntry.from_audit(e) for e in entries])
