from __future__ import annotations
from typing import Any, Dict, Optional
from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from factory_admin import get_db
from factory_admin.errors import DuplicateKey, InvalidReference, NotFound, ValidationError
from factory_admin.models.authz import Role, User
from factory_admin.services.authentication import check_password_policy
from factory_admin.services.roles import actor_id
from factory_admin.utils.filters import bool_field

PROFILE_FIELDS = ('first_name', 'last_name', 'email', 'employee_id', 'phone', 'department', 'position')
REQUIRED_FIELDS = ('first_name', 'last_name', 'email', 'password', 'role')


class UserAdmin:
    """Administrative user management; credentials themselves live in AuthenticationGate."""

    def __init__(self, db=None):
        self.db = db or get_db()

    def get(self, user_id) -> User:
        stmt = (
            select(User)
            .where(User.id == user_id)
            .options(selectinload(User.role).selectinload(Role.permissions))
        )
        user = self.db.execute(stmt).scalar_one_or_none()
        if user is None:
            raise NotFound('User not found')
        return user

    def _role(self, role_id) -> Role:
        try:
            role = self.db.get(Role, int(role_id))
        except (TypeError, ValueError):
            role = None
        if role is None:
            raise InvalidReference('Invalid role selected')
        return role

    def _check_unique(self, user: Optional[User], email: Optional[str], employee_id: Optional[str]):
        own_id = user.id if user is not None else None
        if email:
            other = self.db.execute(select(User).where(User.email == email.strip())).scalar_one_or_none()
            if other is not None and other.id != own_id:
                raise DuplicateKey('email', 'User with this email already exists')
        if employee_id and employee_id.strip():
            other = self.db.execute(select(User).where(User.employee_id == employee_id.strip())).scalar_one_or_none()
            if other is not None and other.id != own_id:
                raise DuplicateKey('employee_id', 'Employee ID already exists')

    def register(self, data: Dict[str, Any], actor=None) -> User:
        if any(not data.get(f) for f in REQUIRED_FIELDS):
            raise ValidationError('Please provide all required fields')
        self._check_unique(None, data['email'], data.get('employee_id'))
        role = self._role(data['role'])
        check_password_policy(data['password'])
        user = User(**{k: data[k] for k in PROFILE_FIELDS if k in data})
        user.role = role
        user.set_password(data['password'])
        user.created_by = actor_id(actor)
        self.db.add(user)
        self.db.commit()
        current_app.logger.info('User %s registered with role %s', user.id, role.name)
        return user

    def update(self, user_id, patch: Dict[str, Any], actor=None) -> User:
        user = self.get(user_id)
        is_active = bool_field(patch['is_active'], 'is_active') if 'is_active' in patch else None
        if is_active is False and user.id == actor_id(actor):
            raise ValidationError('You cannot deactivate your own account')
        self._check_unique(user, patch.get('email'), patch.get('employee_id'))
        role = self._role(patch['role']) if patch.get('role') is not None else None
        for key in PROFILE_FIELDS:
            if key in patch:
                setattr(user, key, patch[key])
        if is_active is not None:
            user.is_active = is_active
        if role is not None:
            user.role = role
        user.updated_by = actor_id(actor)
        self.db.commit()
        return user

    def delete(self, user_id, actor=None) -> User:
        user = self.get(user_id)
        if user.id == actor_id(actor):
            raise ValidationError('You cannot delete your own account')
        self.db.delete(user)
        self.db.commit()
        current_app.logger.info('User %s deleted', user.id)
        return user

    def toggle_status(self, user_id, actor=None) -> User:
        user = self.get(user_id)
        if user.id == actor_id(actor):
            raise ValidationError('You cannot deactivate your own account')
        user.is_active = not user.is_active
        user.updated_by = actor_id(actor)
        self.db.commit()
        return user

    def stats(self) -> Dict[str, Any]:
        total = self.db.scalar(select(func.count()).select_from(User)) or 0
        active = self.db.scalar(select(func.count()).select_from(User).where(User.is_active.is_(True))) or 0
        by_role = self.db.execute(
            select(Role.name, Role.display_name, func.count(User.id))
            .join(User, User.role_id == Role.id)
            .group_by(Role.id, Role.name, Role.display_name)
            .order_by(func.count(User.id).desc(), Role.name.asc())
        ).all()
        by_department = self.db.execute(
            select(User.department, func.count(User.id))
            .where(User.department.is_not(None))
            .group_by(User.department)
            .order_by(func.count(User.id).desc(), User.department.asc())
            .limit(10)
        ).all()
        return {
            'total': total,
            'active': active,
            'inactive': total - active,
            'by_role': [{'role': name, 'display_name': display, 'count': count} for name, display, count in by_role],
            'by_department': [{'department': dept, 'count': count} for dept, count in by_department],
        }


__all__ = ['UserAdmin', 'PROFILE_FIELDS']
