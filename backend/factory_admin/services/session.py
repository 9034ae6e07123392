"""Request session resolution: verified user id -> user, role and live permission set.

The role pointer on a user row is handed to the rest of the code as an explicit
variant built by ``role_reference``:

    Resolved(role)      role object loaded, matches ``role_id``, permissions loaded
    Unresolved(role_id) only the key is usable (never loaded, expired, stale, dangling)

``SessionResolver`` forces every ``Unresolved`` through an explicit re-fetch
before any authorization decision; a pointer that cannot be turned into a role
is an authentication failure (``RoleNotFound``), never an empty permission set.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Union
from flask import current_app
from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from factory_admin import get_db
from factory_admin.errors import RoleMissing, RoleNotFound, SessionInvalid
from factory_admin.models.authz import Permission, Role, User
from factory_admin.services.roles import permission_matches
from factory_admin.utils import clock


@dataclass(frozen=True)
class Unresolved:
    role_id: int


@dataclass(frozen=True)
class Resolved:
    role: Role


RoleRef = Union[Unresolved, Resolved]


def role_reference(user: User) -> Optional[RoleRef]:
    """Tag the user's role pointer. None means the user has no role assigned at all."""
    if user.role_id is None:
        return None
    if 'role' in inspect(user).unloaded:
        return Unresolved(user.role_id)
    role = user.role
    if role is None:
        return Unresolved(user.role_id)
    state = inspect(role)
    if state.deleted or state.detached or {'id', 'permissions'} & state.unloaded:
        return Unresolved(user.role_id)
    if role.id != user.role_id:
        # relationship still points at the previous role after a role_id change
        return Unresolved(user.role_id)
    return Resolved(role)


@dataclass
class AuthSession:
    user: User
    role: Role
    permissions: List[Permission] = field(default_factory=list)

    @property
    def role_name(self) -> str:
        return self.role.name

    def permission_names(self) -> List[str]:
        return sorted(p.name for p in self.permissions)

    def has_permission(self, name_or_id) -> bool:
        return any(permission_matches(p, name_or_id) for p in self.permissions)

    def has_role(self, *names: str) -> bool:
        return self.role.name in names


def load_user(db, user_id: int) -> Optional[User]:
    """Single fetch of user -> role -> permissions."""
    stmt = (
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.role).selectinload(Role.permissions))
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalar_one_or_none()


def effective_permissions(role: Role) -> List[Permission]:
    """Active permissions of an active role; an inactive role grants nothing."""
    if not role.is_active:
        return []
    return [p for p in role.permissions if p.is_active]


class SessionResolver:
    def __init__(self, db=None):
        self.db = db or get_db()

    def resolve(self, user_id: int) -> AuthSession:
        user = load_user(self.db, user_id)
        if user is None or not user.is_active:
            raise SessionInvalid()
        role = self.resolve_role(user)
        session = AuthSession(user=user, role=role, permissions=effective_permissions(role))
        self._touch_last_login(user)
        return session

    def resolve_role(self, user: User) -> Role:
        ref = role_reference(user)
        if ref is None:
            raise RoleMissing()
        if isinstance(ref, Resolved):
            return ref.role
        current_app.logger.info('Role reference of user %s unresolved; re-fetching role %s', user.id, ref.role_id)
        role = self.db.get(
            Role,
            ref.role_id,
            options=[selectinload(Role.permissions)],
            populate_existing=True,
        )
        if role is None:
            current_app.logger.warning('User %s references missing role %s', user.id, ref.role_id)
            raise RoleNotFound()
        return role

    def _touch_last_login(self, user: User):
        user.last_login = clock.utcnow()
        try:
            self.db.commit()
        except SQLAlchemyError:
            # best effort; the request proceeds with the already resolved session
            self.db.rollback()
            current_app.logger.warning('Could not persist last_login for user %s', user.id, exc_info=True)


__all__ = [
    'Unresolved', 'Resolved', 'RoleRef', 'role_reference', 'AuthSession',
    'load_user', 'effective_permissions', 'SessionResolver',
]
