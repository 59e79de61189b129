"""Unit tests for auth/guards.py -- the request guard pipeline.

Covers:
- bearer_token rejects missing, non-Bearer and empty headers
- active_session attaches the identity or rejects with InvalidTokenError
- permission() rejects with PermissionDeniedError when the role set lacks the pair
- run_guards stops at the first rejection
"""

import pytest
from conftest import bearer, make_user

from auth.errors import AuthenticationError, InvalidTokenError, PermissionDeniedError
from auth.guards import (
    AUTHENTICATED,
    GuardContext,
    Proceed,
    Reject,
    active_session,
    authorized,
    bearer_token,
    run_guards,
)


def _context(services, authorization):
    return GuardContext(
        authorization=authorization,
        sessions=services.sessions,
        permissions=services.permissions,
    )


def _login(services, email, roles=None):
    make_user(services, email, "pw-123", roles=roles)
    return services.authenticator.login(email, "pw-123").token


class TestBearerToken:
    @pytest.mark.parametrize("header", [None, "", "Basic abc", "bearer abc", "Bearer ", "Bearer    "])
    def test_rejects_malformed_header(self, services, header):
        outcome = bearer_token(_context(services, header))
        assert isinstance(outcome, Reject)
        assert type(outcome.error) is AuthenticationError

    def test_extracts_token(self, services):
        outcome = bearer_token(_context(services, "Bearer abc.def"))
        assert isinstance(outcome, Proceed)
        assert outcome.context.token == "abc.def"


class TestActiveSession:
    def test_unknown_token(self, services):
        ctx = _context(services, "Bearer nope")
        outcome = active_session(bearer_token(ctx).context)
        assert isinstance(outcome, Reject)
        assert isinstance(outcome.error, InvalidTokenError)

    def test_live_token_sets_identity(self, services):
        token = _login(services, "ada@example.com")
        ctx = run_guards(_context(services, bearer(token)["Authorization"]), AUTHENTICATED)
        assert ctx.identity.email == "ada@example.com"
        assert ctx.token == token


class TestPermissionGuard:
    def test_missing_permission_is_403(self, services):
        token = _login(services, "plain@example.com")
        with pytest.raises(PermissionDeniedError):
            run_guards(_context(services, f"Bearer {token}"), authorized("users", "read"))

    def test_granted_permission_passes(self, services):
        token = _login(services, "mod@example.com", roles=["moderator"])
        ctx = run_guards(_context(services, f"Bearer {token}"), authorized("users", "write"))
        assert ctx.identity is not None

    def test_authentication_is_checked_before_permission(self, services):
        """A bad token yields 401 even on a permission-guarded route."""
        with pytest.raises(InvalidTokenError):
            run_guards(_context(services, "Bearer nope"), authorized("users", "read"))
