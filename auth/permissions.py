"""
auth/permissions.py -- Role-based permission resolution.

A user's effective permissions are the union, over every role the user
holds, of the (resource, action) pairs bound to that role. There is no role
hierarchy and no wildcard: a check matches only an exact (resource, action).

Every call opens its own transaction and re-reads the bindings. Nothing is
cached between calls, so granting or revoking a role takes effect on the
very next check.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from auth.models import Permission, User
from auth.store import CredentialStore


class PermissionResolver:
    def __init__(self, store: CredentialStore) -> None:
        self.store = store

    def has_permission(self, user_id: int, resource: str, action: str) -> bool:
        """True iff some role held by user_id is bound to exactly (resource, action)."""
        with self.store.transaction() as tx:
            return tx.user_has_permission(user_id, resource, action)

    def list_permissions(self, user_id: int) -> list[Permission]:
        """Distinct effective permissions ordered by (resource, action).

        An empty list means "no permissions", not "no such user". Callers
        that need to tell the two apart check existence separately.
        """
        with self.store.transaction() as tx:
            return tx.permissions_for(user_id)

    def list_with_roles(self, user_id: int) -> User | None:
        """Return the user with its role names filled in, or None if the user does not exist."""
        with self.store.transaction() as tx:
            user = tx.get_user(user_id)
            if user is None:
                return None
            user.roles = tx.role_names_for(user_id)
        return user
