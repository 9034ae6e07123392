from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional
from flask import current_app
from sqlalchemy import func, or_, select
from sqlalchemy.orm import selectinload

from factory_admin import get_db
from factory_admin.errors import Conflict, DuplicateKey, Forbidden, InvalidReference, NotFound, ValidationError
from factory_admin.models.authz import Permission, Role, User, normalize_role_name
from factory_admin.utils.filters import apply_filters, bool_field, parse_bool
from factory_admin.utils.sorting import apply_multi_sort

ROLE_FIELDS = ('name', 'display_name', 'description', 'color', 'priority', 'is_active', 'permissions')

ROLE_SORT_FIELDS = {
    'name': Role.name,
    'display_name': Role.display_name,
    'priority': Role.priority,
    'created_at': Role.created_at,
}

ROLE_FILTERS = {
    'search': {
        'op': lambda q, v: q.filter(or_(
            Role.name.ilike(f'%{v}%'), Role.display_name.ilike(f'%{v}%'), Role.description.ilike(f'%{v}%')
        )),
    },
    'is_active': {'coerce': parse_bool, 'op': lambda q, v: q.filter(Role.is_active.is_(v))},
}


def permission_matches(permission: Permission, name_or_id) -> bool:
    """A permission is identified either by its name or by its id (int or numeric string)."""
    if permission.name == name_or_id:
        return True
    return str(permission.id) == str(name_or_id)


def actor_id(actor) -> Optional[int]:
    return getattr(actor, 'id', None)


def _as_ids(values: Iterable[Any]) -> List[int]:
    if isinstance(values, (str, bytes)) or not isinstance(values, (list, tuple, set)):
        raise ValidationError('permissions must be a list of permission ids')
    ids = []
    for v in values:
        try:
            ids.append(int(v))
        except (TypeError, ValueError):
            raise InvalidReference('One or more permissions are invalid')
    return ids


class RoleRegistry:
    """Role lifecycle, hierarchy and role -> permission assignment."""

    def __init__(self, db=None):
        self.db = db or get_db()

    # --- lookups ---
    def get(self, role_id) -> Role:
        stmt = select(Role).where(Role.id == role_id).options(selectinload(Role.permissions))
        role = self.db.execute(stmt).scalar_one_or_none()
        if role is None:
            raise NotFound('Role not found')
        return role

    def find_by_name(self, name: str) -> Optional[Role]:
        return self.db.execute(select(Role).where(Role.name == normalize_role_name(name))).scalar_one_or_none()

    def list(self, filters: Dict[str, Any], sort: Optional[str] = None):
        """Filtered, sorted role query (search, is_active); the caller paginates."""
        q = self.db.query(Role).options(selectinload(Role.permissions))
        q = apply_filters(q, ROLE_FILTERS, filters)
        return apply_multi_sort(q, sort, ROLE_SORT_FIELDS, Role.id, default=[Role.priority.desc()])

    def hierarchy(self) -> List[Role]:
        stmt = (
            select(Role)
            .where(Role.is_active.is_(True))
            .options(selectinload(Role.permissions))
            .order_by(Role.priority.desc(), Role.created_at.asc(), Role.id.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def user_count(self, role: Role) -> int:
        return self.db.scalar(select(func.count()).select_from(User).where(User.role_id == role.id)) or 0

    @staticmethod
    def has_permission(role: Role, name_or_id) -> bool:
        return any(permission_matches(p, name_or_id) for p in role.permissions)

    # --- mutations ---
    def resolve_permissions(self, values) -> List[Permission]:
        """Map requested ids onto active permissions; all-or-nothing."""
        requested = set(_as_ids(values))
        if not requested:
            return []
        stmt = select(Permission).where(Permission.id.in_(requested), Permission.is_active.is_(True))
        found = list(self.db.execute(stmt).scalars().all())
        if len(found) != len(requested):
            raise InvalidReference('One or more permissions are invalid')
        return sorted(found, key=lambda p: p.id)

    def create(self, data: Dict[str, Any], actor=None, system: bool = False) -> Role:
        if not data.get('name') or not data.get('display_name'):
            raise ValidationError('Role name and display name are required')
        name = normalize_role_name(data['name'])
        if self.find_by_name(name) is not None:
            raise DuplicateKey('name', 'Role with this name already exists')
        permissions = self.resolve_permissions(data.get('permissions') or [])
        role = Role(
            name=name,
            display_name=data['display_name'],
            description=data.get('description'),
            color=data.get('color'),
            priority=data.get('priority', 0),
            is_system_role=system,
            created_by=actor_id(actor),
        )
        role.permissions = permissions
        self.db.add(role)
        self.db.commit()
        current_app.logger.info('Role %s created with %d permission(s)', role.name, len(permissions))
        return role

    def update(self, role_id, patch: Dict[str, Any], actor=None) -> Role:
        role = self.get(role_id)
        is_active = bool_field(patch['is_active'], 'is_active') if 'is_active' in patch else None
        if role.is_system_role and ('permissions' in patch or is_active is False):
            raise Forbidden('System role permissions and active state cannot be modified')
        changes: Dict[str, Any] = {}
        if 'name' in patch:
            name = normalize_role_name(patch['name'])
            if name != role.name:
                other = self.find_by_name(name)
                if other is not None and other.id != role.id:
                    raise DuplicateKey('name', 'Role with this name already exists')
            changes['name'] = name
        if 'display_name' in patch and not patch['display_name']:
            raise ValidationError('Display name is required')
        if 'permissions' in patch:
            changes['permissions'] = self.resolve_permissions(patch['permissions'] or [])
        for key in ('display_name', 'description', 'color', 'priority'):
            if key in patch:
                changes[key] = patch[key]
        if 'is_active' in patch:
            changes['is_active'] = is_active
        for key, value in changes.items():
            setattr(role, key, value)
        role.updated_by = actor_id(actor)
        self.db.commit()
        return role

    def delete(self, role_id) -> Role:
        role = self.get(role_id)
        if role.is_system_role:
            raise Forbidden('System roles cannot be deleted')
        count = self.user_count(role)
        if count > 0:
            raise Conflict(f'Cannot delete role. {count} user(s) are assigned to this role.')
        self.db.delete(role)
        self.db.commit()
        current_app.logger.info('Role %s deleted', role.name)
        return role

    def add_permission(self, role_id, permission_id, actor=None) -> Role:
        role = self.get(role_id)
        if role.is_system_role:
            raise Forbidden('System role permissions cannot be modified')
        permission = self.resolve_permissions([permission_id])[0]
        if not any(p.id == permission.id for p in role.permissions):
            role.permissions.append(permission)
            role.updated_by = actor_id(actor)
            self.db.commit()
        return role

    def remove_permission(self, role_id, permission_id, actor=None) -> Role:
        role = self.get(role_id)
        if role.is_system_role:
            raise Forbidden('System role permissions cannot be modified')
        kept = [p for p in role.permissions if str(p.id) != str(permission_id)]
        if len(kept) != len(role.permissions):
            role.permissions = kept
            role.updated_by = actor_id(actor)
            self.db.commit()
        return role


__all__ = ['RoleRegistry', 'permission_matches', 'actor_id', 'ROLE_FIELDS']
