"""Unit tests for auth/directory.py -- user administration.

Covers:
- list() pagination math, ordering and clamping of page/limit
- get() / update() / delete() raise NotFoundError for unknown ids
- update() applies only provided fields and replaces the full role set
- unknown role names are dropped, or rejected in strict mode with a rollback
- deactivation and password change end every open session
- delete() cascades to roles, sessions and audit rows; self-deletion is refused
"""

import pytest
from conftest import make_user

from auth.directory import MAX_PAGE_SIZE, UserDirectory, clamp_pagination
from auth.errors import NotFoundError, SelfDeletionError, ValidationError
from auth.models import UserUpdate


class TestClampPagination:
    @pytest.mark.parametrize(
        "page,limit,expected",
        [
            (None, None, (1, 20)),
            (0, 10, (1, 10)),
            (-3, 10, (1, 10)),
            (2, 0, (2, 1)),
            (1, 500, (1, MAX_PAGE_SIZE)),
        ],
    )
    def test_clamps(self, page, limit, expected):
        assert clamp_pagination(page, limit) == expected


class TestList:
    def test_pages_through_users_newest_first(self, services):
        ids = [make_user(services, f"u{i:02d}@example.com").id for i in range(25)]

        page = services.directory.list(page=2, limit=10)
        assert page.total == 25
        assert page.total_pages == 3
        assert len(page.items) == 10
        assert [u.id for u in page.items] == sorted(ids, reverse=True)[10:20]

        last = services.directory.list(page=3, limit=10)
        assert len(last.items) == 5

    def test_limit_is_capped(self, services):
        for i in range(3):
            make_user(services, f"u{i}@example.com")
        page = services.directory.list(page=1, limit=500)
        assert page.limit == MAX_PAGE_SIZE
        assert len(page.items) == 3

    def test_empty_directory_has_one_page(self, services):
        page = services.directory.list()
        assert page.items == []
        assert page.total == 0
        assert page.total_pages == 1

    def test_page_past_the_end_is_empty(self, services):
        make_user(services, "only@example.com")
        assert services.directory.list(page=5, limit=10).items == []


class TestGetAndUpdate:
    def test_get_unknown_user(self, services):
        with pytest.raises(NotFoundError):
            services.directory.get(404)

    def test_update_changes_only_provided_fields(self, services):
        user = make_user(services, "ada@example.com", given_name="Ada", family_name="Lovelace")
        updated = services.directory.update(user.id, UserUpdate(family_name="Byron"))
        assert updated.family_name == "Byron"
        assert updated.given_name == "Ada"
        assert updated.is_active is True
        assert updated.roles == ["user"]
        assert updated.updated_at is not None

    def test_cleared_names_are_set_to_null(self, services):
        user = make_user(services, "ada@example.com", given_name="Ada", family_name="Lovelace")
        updated = services.directory.update(user.id, UserUpdate(cleared=frozenset({"family_name"})))
        assert updated.family_name is None
        assert updated.given_name == "Ada"

    def test_cleared_non_nullable_field_is_ignored(self, services):
        user = make_user(services, "ada@example.com")
        updated = services.directory.update(user.id, UserUpdate(cleared=frozenset({"is_active"})))
        assert updated.is_active is True

    def test_update_unknown_user(self, services):
        with pytest.raises(NotFoundError):
            services.directory.update(404, UserUpdate(given_name="x"))

    def test_roles_replace_the_full_set(self, services):
        user = make_user(services, "ada@example.com")
        updated = services.directory.update(user.id, UserUpdate(roles=["Admin", "moderator", "admin"]))
        assert updated.roles == ["admin", "moderator"]

    def test_empty_roles_list_removes_all_permissions(self, services):
        user = make_user(services, "ada@example.com", roles=["admin"])
        updated = services.directory.update(user.id, UserUpdate(roles=[]))
        assert updated.roles == []
        assert services.permissions.list_permissions(user.id) == []

    def test_unknown_role_names_are_dropped(self, services):
        user = make_user(services, "ada@example.com")
        updated = services.directory.update(user.id, UserUpdate(roles=["moderator", "superhero"]))
        assert updated.roles == ["moderator"]

    def test_strict_mode_rejects_unknown_roles_and_rolls_back(self, services):
        strict = UserDirectory(
            services.store,
            services.hasher,
            services.permissions,
            services.sessions,
            strict_role_names=True,
        )
        user = make_user(services, "ada@example.com", given_name="Ada")
        with pytest.raises(ValidationError) as exc_info:
            strict.update(user.id, UserUpdate(given_name="Changed", roles=["superhero"]))
        assert exc_info.value.detail == "superhero"

        unchanged = services.directory.get(user.id)
        assert unchanged.given_name == "Ada"
        assert unchanged.roles == ["user"]

    def test_deactivation_revokes_sessions(self, services):
        user = make_user(services, "ada@example.com", "pw-123")
        token = services.authenticator.login("ada@example.com", "pw-123").token
        services.directory.update(user.id, UserUpdate(is_active=False))
        assert services.sessions.validate(token) is None

        # Reactivation does not resurrect the closed session.
        services.directory.update(user.id, UserUpdate(is_active=True))
        assert services.sessions.validate(token) is None

    def test_password_change_rehashes_and_revokes_sessions(self, services):
        user = make_user(services, "ada@example.com", "old-pass")
        token = services.authenticator.login("ada@example.com", "old-pass").token
        services.directory.update(user.id, UserUpdate(password="new-pass"))

        assert services.sessions.validate(token) is None
        assert services.authenticator.login("ada@example.com", "new-pass").token

    def test_name_change_keeps_sessions(self, services):
        user = make_user(services, "ada@example.com", "pw-123")
        token = services.authenticator.login("ada@example.com", "pw-123").token
        services.directory.update(user.id, UserUpdate(given_name="Augusta"))
        assert services.sessions.validate(token).given_name == "Augusta"


class TestDelete:
    def test_cascades_to_dependent_rows(self, services):
        admin = make_user(services, "root@example.com", roles=["admin"])
        victim = make_user(services, "ada@example.com", "pw-123", roles=["moderator"])
        token = services.authenticator.login("ada@example.com", "pw-123").token

        services.directory.delete(victim.id, caller_id=admin.id)

        with pytest.raises(NotFoundError):
            services.directory.get(victim.id)
        assert services.sessions.validate(token) is None
        assert services.authenticator.login_history(victim.id) == []
        assert services.permissions.list_permissions(victim.id) == []

    def test_email_can_be_reused_after_delete(self, services):
        admin = make_user(services, "root@example.com", roles=["admin"])
        victim = make_user(services, "ada@example.com")
        services.directory.delete(victim.id, caller_id=admin.id)
        again = make_user(services, "ada@example.com")
        assert again.email == "ada@example.com"
        assert again.roles == ["user"]

    def test_self_deletion_is_refused(self, services):
        admin = make_user(services, "root@example.com", roles=["admin"])
        with pytest.raises(SelfDeletionError):
            services.directory.delete(admin.id, caller_id=admin.id)
        assert services.directory.get(admin.id).email == "root@example.com"

    def test_unknown_user(self, services):
        admin = make_user(services, "root@example.com", roles=["admin"])
        with pytest.raises(NotFoundError):
            services.directory.delete(404, caller_id=admin.id)
