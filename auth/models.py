"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; the store and the services do the work. Column names in the
database are French (utilisateurs.nom, sessions.actif, ...); the mappers in
auth/store.py translate them to the English attribute names used here.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class User:
    """An account in the credential store.

    email is unique and compared case-sensitively, exactly as stored.
    password_hash is only populated by store reads that need it (login);
    it must never be copied into an API response.

    roles is filled only when the user was loaded together with its role
    bindings (PermissionResolver.list_with_roles). It is an empty list, not
    None, for a user holding no roles.
    """

    email: str
    id: int | None = None
    password_hash: str | None = None
    given_name: str | None = None  # prenom
    family_name: str | None = None  # nom
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None
    roles: list[str] = field(default_factory=list)


@dataclass
class Permission:
    """A (resource, action) capability, e.g. ("users", "delete")."""

    resource: str
    action: str
    name: str = ""
    description: str | None = None
    id: int | None = None


@dataclass
class LoginAudit:
    """Append-only record of an authentication attempt.

    user_id is None for attempts against an e-mail that matches no account.
    Rows are inserted, never updated; they disappear only when their user
    is deleted.
    """

    email: str
    success: bool
    message: str
    user_id: int | None = None
    source_address: str | None = None
    client_agent: str | None = None
    created_at: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class UserIdentity:
    """Public identity resolved from a valid session token."""

    user_id: int
    email: str
    given_name: str | None = None
    family_name: str | None = None


@dataclass(frozen=True)
class IssuedSession:
    token: str
    expires_at: str


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful login. The password hash is never included."""

    token: str
    expires_at: str
    user: UserIdentity


@dataclass(frozen=True)
class UserUpdate:
    """Partial update for a user record.

    Every field is optional; None means "leave unchanged". roles is the one
    field where an empty list is meaningful: it replaces the role set with
    nothing. password is plaintext here and is hashed by the directory
    before it reaches the store.

    cleared names the fields the caller explicitly set to null. Only
    given_name and family_name can be cleared; the store ignores other names.
    """

    given_name: str | None = None
    family_name: str | None = None
    is_active: bool | None = None
    roles: list[str] | None = None
    password: str | None = None
    cleared: frozenset[str] = frozenset()


@dataclass
class Page(Generic[T]):
    """One slice of a paginated listing."""

    items: list[T]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        # An empty listing still has one (empty) page.
        return max(math.ceil(self.total / self.limit), 1)
