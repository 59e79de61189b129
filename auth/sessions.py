"""
auth/sessions.py -- Opaque session tokens backed by the sessions table.

State machine per session:  Issued -> Active -> {Expired | Revoked}

Nothing but the actif flag and date_expiration is stored. "Expired" and
"Revoked" are derived on every check, never written by a sweep. validate()
joins the session to its user and re-reads both on each call, so a user
deactivated after login is locked out on the very next request even though
the token has not expired.

Token format: secrets.token_urlsafe(32) -- 32 random bytes, 256 bits of
entropy, URL-safe base64. The token carries no structure; it is only a
lookup key. A duplicate token is a broken random source, not bad luck, so
the unique-constraint violation is logged and surfaced as InternalError
rather than retried.

issue() and revoke() take an open Transaction so they join the caller's
unit of work (login, logout). validate() opens its own short transaction.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from auth.errors import InternalError
from auth.models import IssuedSession, UserIdentity
from auth.store import CredentialStore, Transaction, to_iso

logger = logging.getLogger("usergate.auth")

_TOKEN_BYTES = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Issues, validates and revokes session tokens."""

    def __init__(
        self,
        store: CredentialStore,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.ttl = ttl
        self._clock = clock

    def issue(self, tx: Transaction, user_id: int) -> IssuedSession:
        """Create a new active session for user_id inside tx."""
        token = secrets.token_urlsafe(_TOKEN_BYTES)
        expires_at = to_iso(self._clock() + self.ttl)
        try:
            tx.insert_session(user_id, token, expires_at)
        except IntegrityError as exc:
            # Token collision or a user deleted since lookup; the driver message is not inspected.
            logger.error("Could not persist a new session for user_id=%s", user_id)
            raise InternalError() from exc
        return IssuedSession(token=token, expires_at=expires_at)

    def validate(self, token: str) -> UserIdentity | None:
        """Return the owner's identity if token names an active, unexpired session of an active user."""
        if not token:
            return None
        now = to_iso(self._clock())
        with self.store.transaction() as tx:
            return tx.find_identity_by_token(token, now)

    def revoke(self, tx: Transaction, token: str) -> bool:
        """Deactivate the session for token. False when no active session matched."""
        return tx.deactivate_session(token)

    def revoke_all(self, tx: Transaction, user_id: int) -> int:
        """Deactivate every active session of user_id and return how many were closed."""
        count = tx.deactivate_sessions_for(user_id)
        if count:
            logger.info("Revoked %d session(s) for user_id=%s", count, user_id)
        return count
