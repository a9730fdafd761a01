"""Tests for UserManager"""
import pytest

from models import GameMode, Role, UserRole
from schemas import UserRoleSubmit
from core.capabilities import Capabilities
from core.exceptions import Forbidden, UserNotFound, ValidationError
from core.user_manager import UserManager


@pytest.fixture
def god(make_user, capabilities_for):
    return capabilities_for(make_user(1, "admin", roles=[Role.god]))


@pytest.fixture
def news(make_user, capabilities_for):
    return capabilities_for(make_user(2, "news", roles=[Role.news]))


def _stored_roles(db, user_id):
    return sorted(
        (role.role_id, role.game_mode, role.alumni)
        for role in db.query(UserRole).filter(UserRole.user_id == user_id)
    )


class TestAddUser:
    def test_resolves_by_name(self, db, content, god, make_user):
        make_user(50, "Peppy")

        result = UserManager.add_user(db, content, god, "peppy")

        assert (result.id, result.name, result.roles) == (50, "Peppy", [])
        assert content.user_calls == [("peppy", True, False, False)]

    def test_keeps_existing_roles(self, db, content, god, make_user):
        make_user(50, "peppy", roles=[(Role.captain, GameMode.osu)])

        result = UserManager.add_user(db, content, god, "peppy")

        assert [(r.role_id, r.game_mode) for r in result.roles] == [(Role.captain, GameMode.osu)]

    def test_unknown_name(self, db, content, god):
        with pytest.raises(ValidationError):
            UserManager.add_user(db, content, god, "nobody")

    def test_requires_god(self, db, content, news, make_user):
        make_user(50, "peppy")

        with pytest.raises(Forbidden):
            UserManager.add_user(db, content, news, "peppy")

        assert content.user_calls == []


class TestSetRoles:
    def test_replaces_role_rows(self, db, god, make_user):
        make_user(50, "peppy", roles=[Role.news, (Role.captain, GameMode.osu)])

        result = UserManager.set_roles(db, god, 50, [
            UserRoleSubmit(role_id=Role.captain, game_mode=GameMode.mania),
            UserRoleSubmit(role_id=Role.metadata, alumni=True),
        ])

        assert _stored_roles(db, 50) == [
            (Role.captain, GameMode.mania, False),
            (Role.metadata, None, True),
        ]
        assert [(r.role_id, r.game_mode, r.alumni) for r in result.roles] == [
            (Role.captain, GameMode.mania, False),
            (Role.metadata, None, True),
        ]

    def test_granted_roles_become_capabilities(self, db, god, make_user):
        user = make_user(50, "peppy")

        UserManager.set_roles(db, god, 50, [UserRoleSubmit(role_id=Role.captain)])

        db.expire_all()
        capabilities = Capabilities.from_roles(user.id, user.roles)
        assert capabilities.has_captain(GameMode.taiko)

    def test_empty_list_clears(self, db, god, make_user):
        make_user(50, "peppy", roles=[Role.news])

        result = UserManager.set_roles(db, god, 50, [])

        assert result.roles == []
        assert _stored_roles(db, 50) == []

    def test_only_captain_takes_a_game_mode(self, db, god, make_user):
        make_user(50, "peppy", roles=[Role.news])

        with pytest.raises(ValidationError):
            UserManager.set_roles(db, god, 50, [UserRoleSubmit(role_id=Role.news, game_mode=GameMode.osu)])

        assert _stored_roles(db, 50) == [(Role.news, None, False)]

    def test_duplicate_roles(self, db, god, make_user):
        make_user(50, "peppy")

        with pytest.raises(ValidationError):
            UserManager.set_roles(db, god, 50, [
                UserRoleSubmit(role_id=Role.captain, game_mode=GameMode.osu),
                UserRoleSubmit(role_id=Role.captain, game_mode=GameMode.osu, alumni=True),
            ])

    def test_unknown_user(self, db, god):
        with pytest.raises(UserNotFound):
            UserManager.set_roles(db, god, 999, [UserRoleSubmit(role_id=Role.news)])

    def test_requires_god(self, db, news, make_user):
        make_user(50, "peppy")

        with pytest.raises(Forbidden):
            UserManager.set_roles(db, news, 50, [UserRoleSubmit(role_id=Role.god)])

        assert _stored_roles(db, 50) == []


class TestListUsersWithRoles:
    def test_only_users_with_role_rows(self, db, make_user):
        make_user(10, "zed", roles=[(Role.captain, GameMode.osu, True)])
        make_user(11, "amy", roles=[Role.news, Role.developer])
        make_user(12, "nobody")

        result = UserManager.list_users_with_roles(db)

        assert [u.name for u in result] == ["amy", "zed"]
        assert [r.role_id for r in result[0].roles] == [Role.news, Role.developer]
        assert result[1].roles[0].alumni is True
