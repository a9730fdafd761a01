"""
User Manager: staff accounts and their roles

Responsibilities:
1. Add a user by osu! username so roles can be granted to them
2. List every user holding a role row
3. Replace a user's role rows (admins only)

Role rows are the only input to Capabilities; nothing else writes them.
"""
from sqlalchemy.orm import Session, selectinload
from typing import List
import logging

from models import Role, User, UserRole
from schemas import UserRoleSubmit, UserWithRolesResponse
from core.capabilities import Capabilities
from core.exceptions import Forbidden, UserNotFound, ValidationError
from database import transactional
from services.osu_client import ContentProvider

logger = logging.getLogger(__name__)


class UserManager:
    """Role administration"""

    @staticmethod
    @transactional
    def add_user(
        db: Session,
        content: ContentProvider,
        capabilities: Capabilities,
        name: str,
    ) -> UserWithRolesResponse:
        """
        Resolve a user by name and store them (admins only)

        Existing role rows are left untouched.

        Raises:
            Forbidden, ValidationError
        """
        if not capabilities.has_god():
            raise Forbidden("Must be an admin")

        user = content.create_or_refresh_user(db, name, by_name=True)
        if user is None:
            raise ValidationError("Invalid username")

        logger.info(f"Added user {user.id} ({user.name})")
        return _with_roles(db, user.id)

    @staticmethod
    def list_users_with_roles(db: Session) -> List[UserWithRolesResponse]:
        users = (
            db.query(User)
            .options(selectinload(User.roles))
            .filter(User.roles.any())
            .order_by(User.name, User.id)
            .all()
        )
        return [_to_response(user) for user in users]

    @staticmethod
    @transactional
    def set_roles(
        db: Session,
        capabilities: Capabilities,
        user_id: int,
        roles: List[UserRoleSubmit],
    ) -> UserWithRolesResponse:
        """
        Replace a user's role rows (admins only); empty list clears them

        Only captain rows may name a game mode. A captain row without a mode
        covers every mode.

        Raises:
            Forbidden, ValidationError, UserNotFound
        """
        if not capabilities.has_god():
            raise Forbidden("Must be an admin")

        keys = set()
        for role in roles:
            if role.game_mode is not None and role.role_id != Role.captain:
                raise ValidationError(f"Role {Role(role.role_id).name} can't be scoped to a game mode")

            key = (int(role.role_id), None if role.game_mode is None else int(role.game_mode))
            if key in keys:
                raise ValidationError(f"Duplicate role {Role(role.role_id).name}")
            keys.add(key)

        if db.get(User, user_id) is None:
            raise UserNotFound(user_id)

        db.query(UserRole).filter(UserRole.user_id == user_id).delete(synchronize_session=False)
        db.add_all([
            UserRole(
                user_id=user_id,
                role_id=int(role.role_id),
                game_mode=None if role.game_mode is None else int(role.game_mode),
                alumni=role.alumni,
            )
            for role in roles
        ])
        db.flush()

        logger.info(f"User {user_id} roles set to {sorted(keys, key=_role_sort_key)}")
        return _with_roles(db, user_id)


def _role_sort_key(key):
    role_id, game_mode = key
    return role_id, -1 if game_mode is None else game_mode


def _with_roles(db: Session, user_id: int) -> UserWithRolesResponse:
    db.expire_all()
    user = (
        db.query(User)
        .options(selectinload(User.roles))
        .filter(User.id == user_id)
        .one()
    )
    return _to_response(user)


def _to_response(user: User) -> UserWithRolesResponse:
    response = UserWithRolesResponse.model_validate(user)
    response.roles.sort(key=lambda role: _role_sort_key((role.role_id, role.game_mode)))
    return response
