"""Unit tests for auth/authenticator.py -- register, login, logout and audit trail.

Covers:
- register() hashes the password, grants the default role, rejects duplicates
- login() issues a session on success and audits every attempt
- failed attempts are audited even though the call raises
- unknown e-mail and wrong password raise the same error; disabled is distinct
- logout() revokes the token once and audits it once
- login_history() returns newest first, capped at the limit
"""

import pytest
from sqlalchemy import text
from conftest import make_user

from auth.authenticator import (
    MSG_ACCOUNT_DISABLED,
    MSG_BAD_PASSWORD,
    MSG_LOGIN_OK,
    MSG_LOGOUT_OK,
    MSG_UNKNOWN_EMAIL,
)
from auth.errors import AccountDisabledError, EmailTakenError, InvalidCredentialsError
from auth.models import LoginAudit, UserUpdate


def _audits(services, email):
    """All attempts recorded against email, oldest first, read straight from logs_connexion."""
    with services.store.transaction() as tx:
        rows = tx.conn.execute(
            text("SELECT * FROM logs_connexion WHERE email_tentative = :email ORDER BY id"),
            {"email": email},
        ).fetchall()
    return [
        LoginAudit(
            id=row.id,
            user_id=row.utilisateur_id,
            email=row.email_tentative,
            success=bool(row.succes),
            message=row.message,
            source_address=row.adresse_ip,
            client_agent=row.user_agent,
            created_at=row.date_heure,
        )
        for row in rows
    ]


class TestRegister:
    def test_creates_user_with_default_role(self, services):
        user = services.authenticator.register(
            email="ada@example.com", password="pw-123", given_name="Ada", family_name="Lovelace"
        )
        assert user.id is not None
        assert user.roles == ["user"]
        assert user.is_active is True
        assert user.created_at
        assert services.permissions.list_with_roles(user.id).roles == ["user"]

    def test_password_is_stored_hashed(self, services):
        user = services.authenticator.register(email="ada@example.com", password="pw-123")
        with services.store.transaction() as tx:
            stored = tx.get_user(user.id).password_hash
        assert stored != "pw-123"
        assert services.hasher.verify("pw-123", stored)

    def test_duplicate_email_is_rejected(self, services):
        services.authenticator.register(email="ada@example.com", password="pw-123")
        with pytest.raises(EmailTakenError):
            services.authenticator.register(email="ada@example.com", password="other")
        with services.store.transaction() as tx:
            assert tx.count_users() == 1

    def test_email_comparison_is_case_sensitive(self, services):
        services.authenticator.register(email="ada@example.com", password="pw-123")
        other = services.authenticator.register(email="Ada@example.com", password="pw-123")
        assert other.email == "Ada@example.com"


class TestLogin:
    def test_success_returns_token_and_identity(self, services):
        user = make_user(services, "ada@example.com", "pw-123", given_name="Ada")
        result = services.authenticator.login("ada@example.com", "pw-123", source_address="10.0.0.1")
        assert result.user.user_id == user.id
        assert result.user.given_name == "Ada"
        assert services.sessions.validate(result.token).user_id == user.id

        [entry] = _audits(services, "ada@example.com")
        assert entry.success is True
        assert entry.message == MSG_LOGIN_OK
        assert entry.user_id == user.id
        assert entry.source_address == "10.0.0.1"

    def test_unknown_email_is_audited_without_user(self, services):
        with pytest.raises(InvalidCredentialsError):
            services.authenticator.login("ghost@example.com", "pw", client_agent="curl/8")
        [entry] = _audits(services, "ghost@example.com")
        assert entry.success is False
        assert entry.message == MSG_UNKNOWN_EMAIL
        assert entry.user_id is None
        assert entry.client_agent == "curl/8"

    def test_wrong_password_is_audited(self, services):
        user = make_user(services, "ada@example.com", "pw-123")
        with pytest.raises(InvalidCredentialsError):
            services.authenticator.login("ada@example.com", "nope")
        [entry] = _audits(services, "ada@example.com")
        assert entry.message == MSG_BAD_PASSWORD
        assert entry.user_id == user.id

    def test_unknown_email_and_wrong_password_are_indistinguishable(self, services):
        make_user(services, "ada@example.com", "pw-123")
        with pytest.raises(InvalidCredentialsError) as unknown:
            services.authenticator.login("ghost@example.com", "pw-123")
        with pytest.raises(InvalidCredentialsError) as wrong:
            services.authenticator.login("ada@example.com", "nope")
        assert unknown.value.message == wrong.value.message
        assert unknown.value.code == wrong.value.code

    def test_disabled_account_is_refused_even_with_right_password(self, services):
        user = make_user(services, "ada@example.com", "pw-123")
        services.directory.update(user.id, UserUpdate(is_active=False))
        with pytest.raises(AccountDisabledError):
            services.authenticator.login("ada@example.com", "pw-123")
        [entry] = _audits(services, "ada@example.com")
        assert entry.message == MSG_ACCOUNT_DISABLED
        assert entry.success is False


class TestLogout:
    def test_logout_revokes_and_audits_once(self, services):
        user = make_user(services, "ada@example.com", "pw-123")
        token = services.authenticator.login("ada@example.com", "pw-123").token

        assert services.authenticator.logout(token, user.id, user.email) is True
        assert services.sessions.validate(token) is None
        # Second call is a no-op.
        assert services.authenticator.logout(token, user.id, user.email) is False

        messages = [e.message for e in _audits(services, "ada@example.com")]
        assert messages == [MSG_LOGIN_OK, MSG_LOGOUT_OK]

    def test_logout_leaves_other_sessions_alone(self, services):
        user = make_user(services, "ada@example.com", "pw-123")
        first = services.authenticator.login("ada@example.com", "pw-123").token
        second = services.authenticator.login("ada@example.com", "pw-123").token
        services.authenticator.logout(first, user.id, user.email)
        assert services.sessions.validate(second) is not None


class TestLoginHistory:
    def test_newest_first(self, services):
        user = make_user(services, "ada@example.com", "pw-123")
        with pytest.raises(InvalidCredentialsError):
            services.authenticator.login("ada@example.com", "wrong")
        services.authenticator.login("ada@example.com", "pw-123")

        history = services.authenticator.login_history(user.id)
        assert [e.message for e in history] == [MSG_LOGIN_OK, MSG_BAD_PASSWORD]

    def test_limit_caps_the_result(self, services):
        user = make_user(services, "ada@example.com", "pw-123")
        for _ in range(4):
            services.authenticator.login("ada@example.com", "pw-123")
        assert len(services.authenticator.login_history(user.id, limit=3)) == 3

    def test_unknown_email_attempts_are_not_attached_to_anyone(self, services):
        user = make_user(services, "ada@example.com", "pw-123")
        with pytest.raises(InvalidCredentialsError):
            services.authenticator.login("ghost@example.com", "pw-123")
        assert services.authenticator.login_history(user.id) == []
