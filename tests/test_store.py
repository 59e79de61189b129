"""Unit tests for auth/store.py -- engine ownership and reference data.

Covers:
- a CredentialStore is always built from an explicit database URL
- reference roles and permissions are seeded once and survive a reopen
- update_user() writes NULL only for the cleared nullable columns
"""

import pytest
from sqlalchemy import text

from auth.models import User, UserUpdate
from auth.store import CredentialStore


def test_database_url_is_required():
    with pytest.raises(TypeError):
        CredentialStore()


def test_reopening_does_not_duplicate_reference_data(tmp_path):
    url = f"sqlite:///{tmp_path / 'seed.db'}"
    CredentialStore(url).close()
    store = CredentialStore(url)
    try:
        with store.transaction() as tx:
            roles = tx.conn.execute(text("SELECT COUNT(*) FROM roles")).scalar()
            perms = tx.conn.execute(text("SELECT COUNT(*) FROM permissions")).scalar()
            bindings = tx.conn.execute(text("SELECT COUNT(*) FROM role_permissions")).scalar()
    finally:
        store.close()
    assert (roles, perms, bindings) == (3, 3, 5)


def test_update_user_clears_only_named_columns(store):
    with store.transaction() as tx:
        uid = tx.insert_user(User(email="ada@example.com", password_hash="x", given_name="Ada", family_name="L"))
        assert tx.update_user(uid, UserUpdate(cleared=frozenset({"given_name", "password"})))
        user = tx.get_user(uid)
    assert user.given_name is None
    assert user.family_name == "L"
    assert user.password_hash == "x"
