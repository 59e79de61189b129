"""
api/routes/users.py -- User administration endpoints.

Routes:
  GET    /api/users                   -- paginated listing      (users:read)
  GET    /api/users/{id}              -- one user with roles    (users:read)
  GET    /api/users/{id}/permissions  -- effective permissions  (users:read)
  PUT    /api/users/{id}              -- partial update         (users:write)
  DELETE /api/users/{id}              -- cascade delete         (users:delete)

Every route runs the full guard pipeline: bearer token -> live session ->
permission. 401 for a bad token, 403 for a missing permission, both before
the directory is called.

Pagination input is clamped rather than rejected: page < 1 becomes 1 and
limit is forced into [1, 100], so ?limit=500 silently returns 100 rows.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from api.models import (
    MessageResponse,
    MessageUserEnvelope,
    PermissionResponse,
    UserEnvelope,
    UserListResponse,
    UserPermissionsResponse,
    UserResponse,
    UserUpdateRequest,
)
from auth.dependencies import get_services, require_permission
from auth.errors import NotFoundError
from auth.guards import GuardContext
from auth.models import UserUpdate
from auth.services import AuthServices

router = APIRouter()

_can_read = require_permission("users", "read")
_can_write = require_permission("users", "write")
_can_delete = require_permission("users", "delete")


@router.get("/users", response_model=UserListResponse)
def list_users(
    page: Optional[int] = 1,
    limit: Optional[int] = 20,
    ctx: GuardContext = Depends(_can_read),
    services: AuthServices = Depends(get_services),
) -> UserListResponse:
    """List users, most recently created first."""
    return UserListResponse.from_page(services.directory.list(page=page, limit=limit))


@router.get("/users/{user_id}/permissions", response_model=UserPermissionsResponse)
def user_permissions(
    user_id: int,
    ctx: GuardContext = Depends(_can_read),
    services: AuthServices = Depends(get_services),
) -> UserPermissionsResponse:
    """List a user's effective permissions. 404 if the user is unknown or holds none."""
    services.directory.get(user_id)
    permissions = services.permissions.list_permissions(user_id)
    if not permissions:
        raise NotFoundError("No permissions found for this user.")
    return UserPermissionsResponse(
        user_id=user_id,
        permissions=[PermissionResponse.from_permission(p) for p in permissions],
    )


@router.get("/users/{user_id}", response_model=UserEnvelope)
def get_user(
    user_id: int,
    ctx: GuardContext = Depends(_can_read),
    services: AuthServices = Depends(get_services),
) -> UserEnvelope:
    return UserEnvelope(user=UserResponse.from_user(services.directory.get(user_id)))


@router.put("/users/{user_id}", response_model=MessageUserEnvelope)
def update_user(
    user_id: int,
    body: UserUpdateRequest,
    ctx: GuardContext = Depends(_can_write),
    services: AuthServices = Depends(get_services),
) -> MessageUserEnvelope:
    """Update the provided fields only. A roles list replaces the full role set.

    An explicit null for nom or prenom clears the stored value; an absent
    key leaves it alone.
    """
    update = UserUpdate(
        given_name=body.given_name,
        family_name=body.family_name,
        is_active=body.is_active,
        roles=body.roles,
        password=body.password or None,
        cleared=frozenset(name for name in body.model_fields_set if getattr(body, name) is None),
    )
    user = services.directory.update(user_id, update)
    return MessageUserEnvelope(message="User updated.", user=UserResponse.from_user(user))


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: int,
    ctx: GuardContext = Depends(_can_delete),
    services: AuthServices = Depends(get_services),
) -> MessageResponse:
    """Delete a user with its roles, sessions and audit rows. Self-deletion is refused with 400."""
    services.directory.delete(user_id, caller_id=ctx.identity.user_id)
    return MessageResponse(message=f"User {user_id} deleted.")
