"""
auth/authenticator.py -- Registration, login and logout as atomic units.

Each public method runs inside exactly one store transaction.

Login outcomes and their audit rows (message text is stored verbatim):
  unknown e-mail      -> "Email inexistant"      user_id NULL   -> InvalidCredentialsError
  account disabled    -> "Compte désactivé"      user_id set    -> AccountDisabledError
  wrong password      -> "Mot de passe invalide" user_id set    -> InvalidCredentialsError
  success             -> "Connexion réussie"     user_id set    -> LoginResult

A failed attempt is a successful observation, not a storage error: its audit
row must be committed. login() therefore decides the outcome inside the
transaction, lets the transaction commit, and only then raises the business
error. Only unexpected faults roll the audit row back.

Unknown e-mail and wrong password raise the same InvalidCredentialsError so
clients cannot enumerate accounts. A disabled account is reported
distinctly on purpose. When the e-mail is unknown a dummy bcrypt comparison
still runs, so response time does not leak the difference either.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import AccountDisabledError, AuthError, EmailTakenError, InternalError, InvalidCredentialsError
from auth.models import LoginAudit, LoginResult, User, UserIdentity
from auth.passwords import PasswordHasher
from auth.sessions import SessionManager
from auth.store import CredentialStore

logger = logging.getLogger("usergate.auth")

MSG_UNKNOWN_EMAIL = "Email inexistant"
MSG_ACCOUNT_DISABLED = "Compte désactivé"
MSG_BAD_PASSWORD = "Mot de passe invalide"
MSG_LOGIN_OK = "Connexion réussie"
MSG_LOGOUT_OK = "Déconnexion réussie"

LOGIN_HISTORY_LIMIT = 50


class Authenticator:
    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        sessions: SessionManager,
        default_role: str = "user",
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.sessions = sessions
        self.default_role = default_role

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        given_name: str | None = None,
        family_name: str | None = None,
    ) -> User:
        """Create a user holding the default role.

        The e-mail check inside the transaction is only a fast path; the
        unique constraint on utilisateurs.email settles concurrent races.
        Insert and role binding commit together or not at all.
        """
        password_hash = self.hasher.hash(password)
        with self.store.transaction() as tx:
            if tx.email_exists(email):
                raise EmailTakenError()
            try:
                user_id = tx.insert_user(
                    User(
                        email=email,
                        password_hash=password_hash,
                        given_name=given_name,
                        family_name=family_name,
                    )
                )
            except IntegrityError as exc:
                raise EmailTakenError() from exc

            role_ids = tx.role_ids_by_name([self.default_role])
            if self.default_role not in role_ids:
                logger.error("Default role %r is missing from the roles table", self.default_role)
                raise InternalError()
            tx.grant_role(user_id, role_ids[self.default_role])

            user = tx.get_user(user_id)
            user.roles = [self.default_role]

        logger.info("Registered user_id=%s", user_id)
        return user

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(
        self,
        email: str,
        password: str,
        source_address: str | None = None,
        client_agent: str | None = None,
    ) -> LoginResult:
        """Check credentials, open a session and audit the attempt."""
        failure: AuthError | None = None
        result: LoginResult | None = None

        with self.store.transaction() as tx:
            user = tx.get_user_by_email(email)
            audit = LoginAudit(
                email=email,
                success=False,
                message=MSG_UNKNOWN_EMAIL,
                source_address=source_address,
                client_agent=client_agent,
            )

            if user is None:
                self.hasher.verify_dummy(password)
                failure = InvalidCredentialsError()
            else:
                audit.user_id = user.id
                if not user.is_active:
                    audit.message = MSG_ACCOUNT_DISABLED
                    failure = AccountDisabledError()
                elif not self.hasher.verify(password, user.password_hash):
                    audit.message = MSG_BAD_PASSWORD
                    failure = InvalidCredentialsError()
                else:
                    issued = self.sessions.issue(tx, user.id)
                    audit.success = True
                    audit.message = MSG_LOGIN_OK
                    result = LoginResult(
                        token=issued.token,
                        expires_at=issued.expires_at,
                        user=UserIdentity(
                            user_id=user.id,
                            email=user.email,
                            given_name=user.given_name,
                            family_name=user.family_name,
                        ),
                    )

            tx.insert_login_audit(audit)

        if failure is not None:
            logger.warning("Login failed (%s) from %s", audit.message, source_address or "unknown")
            raise failure
        logger.info("Login succeeded for user_id=%s from %s", audit.user_id, source_address or "unknown")
        return result

    def logout(
        self,
        token: str,
        user_id: int,
        email: str,
        source_address: str | None = None,
        client_agent: str | None = None,
    ) -> bool:
        """Revoke the session behind token and audit it.

        Idempotent: logging out an already inactive token succeeds but
        writes no audit row. Returns whether a session was revoked.
        """
        with self.store.transaction() as tx:
            revoked = self.sessions.revoke(tx, token)
            if revoked:
                tx.insert_login_audit(
                    LoginAudit(
                        user_id=user_id,
                        email=email,
                        success=True,
                        message=MSG_LOGOUT_OK,
                        source_address=source_address,
                        client_agent=client_agent,
                    )
                )
        if revoked:
            logger.info("Logout for user_id=%s", user_id)
        return revoked

    # ------------------------------------------------------------------
    # Audit history
    # ------------------------------------------------------------------

    def login_history(self, user_id: int, limit: int = LOGIN_HISTORY_LIMIT) -> list[LoginAudit]:
        """Most recent authentication events for user_id, newest first."""
        with self.store.transaction() as tx:
            return tx.recent_login_audits(user_id, limit)
