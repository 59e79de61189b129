"""
tests/conftest.py -- Shared test fixtures for UserGate.

This module provides:
  - settings / store / services: a fresh in-memory credential store per test
    for unit tests of the auth services
  - make_user(): register an account and optionally replace its roles
  - _patch_lifespan(): wires a pre-built AuthServices into app.state,
    bypassing the real startup
  - api_client: TestClient plus an admin bearer token for HTTP tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the API fixture because TestClient runs route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process. Unit tests call the services
from the test thread only, so plain :memory: is enough there.

The env vars must be set before any core/auth/api import: api.main reads
get_settings() at import time.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import NamedTuple

# CRITICAL: Set before any core/auth/api import so the cached Settings
# singleton picks them up. BCRYPT_ROUNDS=4 keeps hashing fast in tests.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite:///file:usergate_default?mode=memory&cache=shared&uri=true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User, UserUpdate
from auth.services import AuthServices, build_services
from auth.store import CredentialStore
from core.config import Settings

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-pass-123"

# ---------------------------------------------------------------------------
# Service-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(debug=True, bcrypt_rounds=4, database_url="sqlite:///:memory:")


@pytest.fixture
def store(settings: Settings) -> Generator[CredentialStore, None, None]:
    """Fresh in-memory CredentialStore with the reference roles seeded."""
    s = CredentialStore(settings.database_url)
    yield s
    s.close()


@pytest.fixture
def services(store: CredentialStore, settings: Settings) -> AuthServices:
    return build_services(store, settings)


def make_user(
    services: AuthServices,
    email: str,
    password: str = "password-123",
    roles: list[str] | None = None,
    **names: str,
) -> User:
    """Register a user, then replace its roles if roles is given."""
    user = services.authenticator.register(email=email, password=password, **names)
    if roles is not None:
        user = services.directory.update(user.id, UserUpdate(roles=roles))
    return user


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


class ApiContext(NamedTuple):
    client: TestClient
    token: str
    admin_id: int
    services: AuthServices


def _patch_lifespan(services: AuthServices):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test services into app.state so TestClient routes
    see the isolated test DB rather than the configured one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.services = services
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request: pytest.FixtureRequest) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for HTTP integration tests.

    One TestClient per test module for speed; the database name is derived
    from the module name so modules never share rows. An admin account
    (roles user + admin) is created and logged in before the client starts.
    """
    db_name = request.module.__name__.replace(".", "_")
    url = f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true"
    settings = Settings(debug=True, bcrypt_rounds=4, database_url=url)
    store = CredentialStore(url)
    services = build_services(store, settings)

    admin = make_user(services, ADMIN_EMAIL, ADMIN_PASSWORD, roles=["user", "admin"])
    token = services.authenticator.login(ADMIN_EMAIL, ADMIN_PASSWORD).token

    app.router.lifespan_context = _patch_lifespan(services)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client=client, token=token, admin_id=admin.id, services=services)

    store.close()
