"""
auth/directory.py -- Administrative CRUD over user records and their roles.

Authorization is not checked here. Routes gate every call through the guard
pipeline (auth/guards.py) and the PermissionResolver before they reach the
directory. The one rule the directory enforces itself is that a caller can
never delete their own account, whatever permissions they hold.

Role replacement:
  UserUpdate.roles, when not None, replaces the full role set inside the
  same transaction as the field update: delete every binding, then insert
  the new ones. Committed readers see either the old set or the new one.
  Role names are lower-cased before lookup. Unknown names are dropped
  (strict_role_names=False) or rejected with ValidationError
  (strict_role_names=True), which rolls back the whole update.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from auth.errors import NotFoundError, SelfDeletionError, ValidationError
from auth.models import Page, User, UserUpdate
from auth.passwords import PasswordHasher
from auth.permissions import PermissionResolver
from auth.sessions import SessionManager
from auth.store import CredentialStore

logger = logging.getLogger("usergate.auth")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def clamp_pagination(page: int | None, limit: int | None) -> tuple[int, int]:
    """Normalize paging input: page >= 1, limit in [1, MAX_PAGE_SIZE], default DEFAULT_PAGE_SIZE."""
    page = max(page or 1, 1)
    if limit is None:
        limit = DEFAULT_PAGE_SIZE
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    return page, limit


class UserDirectory:
    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        resolver: PermissionResolver,
        sessions: SessionManager,
        strict_role_names: bool = False,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.resolver = resolver
        self.sessions = sessions
        self.strict_role_names = strict_role_names

    def list(self, page: int | None = 1, limit: int | None = DEFAULT_PAGE_SIZE) -> Page[User]:
        """Return one page of users, most recently created first."""
        page, limit = clamp_pagination(page, limit)
        with self.store.transaction() as tx:
            total = tx.count_users()
            users = tx.list_users(limit=limit, offset=(page - 1) * limit)
        return Page(items=users, page=page, limit=limit, total=total)

    def get(self, user_id: int) -> User:
        """Return the user with its roles. Raises NotFoundError."""
        user = self.resolver.list_with_roles(user_id)
        if user is None:
            raise NotFoundError()
        return user

    def update(self, user_id: int, update: UserUpdate) -> User:
        """Apply a partial update and return the refreshed user. Raises NotFoundError."""
        role_names = None
        if update.roles is not None:
            role_names = list(dict.fromkeys(name.strip().lower() for name in update.roles))

        password_hash = self.hasher.hash(update.password) if update.password else None

        with self.store.transaction() as tx:
            if not tx.update_user(user_id, update, password_hash=password_hash):
                raise NotFoundError()

            if role_names is not None:
                role_ids = tx.role_ids_by_name(role_names)
                unknown = [name for name in role_names if name not in role_ids]
                if unknown:
                    if self.strict_role_names:
                        raise ValidationError("Unknown role name(s).", detail=", ".join(unknown))
                    logger.info("Dropping unknown role name(s) %s for user_id=%s", unknown, user_id)
                tx.revoke_all_roles(user_id)
                for name in role_names:
                    if name in role_ids:
                        tx.grant_role(user_id, role_ids[name])

            # A deactivated account or a changed password ends every open session.
            if update.is_active is False or password_hash is not None:
                self.sessions.revoke_all(tx, user_id)

        logger.info("Updated user_id=%s", user_id)
        return self.get(user_id)

    def delete(self, user_id: int, caller_id: int) -> None:
        """Delete a user and everything that references it. Raises SelfDeletionError, NotFoundError."""
        if user_id == caller_id:
            raise SelfDeletionError()
        with self.store.transaction() as tx:
            tx.revoke_all_roles(user_id)
            tx.delete_sessions_for(user_id)
            tx.delete_login_audits_for(user_id)
            if not tx.delete_user(user_id):
                # Rolls back the dependent deletes above as well.
                raise NotFoundError()
        logger.info("Deleted user_id=%s (by user_id=%s)", user_id, caller_id)
