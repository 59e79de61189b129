"""
auth/services.py -- Wiring of the auth components around one store handle.

build_services() is the only place the components are constructed. Entry
points (api/main.py lifespan, main.py CLI, tests) create a CredentialStore
and call it; every component then receives that same handle explicitly.

Layer rule: may import core.config.Settings (core/ is the kernel).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from auth.authenticator import Authenticator
from auth.directory import UserDirectory
from auth.passwords import PasswordHasher
from auth.permissions import PermissionResolver
from auth.sessions import SessionManager
from auth.store import CredentialStore
from core.config import Settings


@dataclass
class AuthServices:
    store: CredentialStore
    hasher: PasswordHasher
    sessions: SessionManager
    permissions: PermissionResolver
    authenticator: Authenticator
    directory: UserDirectory


def build_services(store: CredentialStore, settings: Settings) -> AuthServices:
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    sessions = SessionManager(store, ttl=timedelta(hours=settings.session_ttl_hours))
    permissions = PermissionResolver(store)
    authenticator = Authenticator(store, hasher, sessions, default_role=settings.default_role)
    directory = UserDirectory(
        store,
        hasher,
        permissions,
        sessions,
        strict_role_names=settings.strict_role_names,
    )
    return AuthServices(
        store=store,
        hasher=hasher,
        sessions=sessions,
        permissions=permissions,
        authenticator=authenticator,
        directory=directory,
    )
