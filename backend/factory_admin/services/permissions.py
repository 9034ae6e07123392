from __future__ import annotations
from collections import OrderedDict
from typing import Any, Dict, List, Optional
from flask import current_app
from sqlalchemy import func, select

from factory_admin import get_db
from factory_admin.constants.permissions import CATEGORIES, permission_name
from factory_admin.errors import Conflict, DuplicateKey, NotFound, ValidationError
from factory_admin.models.authz import Permission, role_permissions
from factory_admin.services.roles import actor_id
from factory_admin.utils.filters import bool_field

PERMISSION_FIELDS = ('display_name', 'description', 'category', 'action', 'resource', 'priority', 'is_active')
REQUIRED_FIELDS = ('display_name', 'category', 'action', 'resource')


class PermissionCatalog:
    """Named, categorized permissions. The name is always derived from action + resource."""

    def __init__(self, db=None):
        self.db = db or get_db()

    def get(self, permission_id) -> Permission:
        permission = self.db.get(Permission, permission_id)
        if permission is None:
            raise NotFound('Permission not found')
        return permission

    def by_name(self, name: str) -> Optional[Permission]:
        return self.db.execute(select(Permission).where(Permission.name == name)).scalar_one_or_none()

    def active(self) -> List[Permission]:
        stmt = (
            select(Permission)
            .where(Permission.is_active.is_(True))
            .order_by(Permission.category.asc(), Permission.display_name.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def find_by_category(self, category: str) -> List[Permission]:
        if category not in CATEGORIES:
            raise ValidationError('Invalid permission category')
        stmt = (
            select(Permission)
            .where(Permission.category == category, Permission.is_active.is_(True))
            .order_by(Permission.priority.desc(), Permission.display_name.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def grouped(self, permissions: Optional[List[Permission]] = None) -> Dict[str, List[Permission]]:
        """category -> permissions, categories ascending; defaults to every active permission."""
        groups: Dict[str, List[Permission]] = OrderedDict()
        rows = self.active() if permissions is None else permissions
        for p in sorted(rows, key=lambda p: p.category):
            groups.setdefault(p.category, []).append(p)
        return groups

    def exists(self, action: str, resource: str) -> Optional[Permission]:
        name = permission_name((action or '').strip(), (resource or '').strip())
        stmt = select(Permission).where(Permission.name == name, Permission.is_active.is_(True))
        return self.db.execute(stmt).scalar_one_or_none()

    def role_count(self, permission: Permission) -> int:
        stmt = select(func.count()).select_from(role_permissions).where(role_permissions.c.permission_id == permission.id)
        return self.db.scalar(stmt) or 0

    def _build(self, data: Dict[str, Any], actor=None, system: bool = False) -> Permission:
        missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}")
        return Permission(
            display_name=data['display_name'],
            description=data.get('description'),
            category=data['category'],
            action=data['action'],
            resource=data['resource'],
            priority=data.get('priority', 0),
            is_system_permission=system,
            created_by=actor_id(actor),
        )

    def create(self, data: Dict[str, Any], actor=None, system: bool = False) -> Permission:
        permission = self._build(data, actor, system)
        if self.by_name(permission.name) is not None:
            raise DuplicateKey('name', 'Permission with this name already exists')
        self.db.add(permission)
        self.db.commit()
        current_app.logger.info('Permission %s created', permission.name)
        return permission

    def find_or_create(self, data: Dict[str, Any], actor=None, system: bool = False) -> Permission:
        """Return the permission named by data's action/resource, creating it when absent."""
        name = permission_name((data.get('action') or '').strip(), (data.get('resource') or '').strip())
        existing = self.by_name(name)
        if existing is not None:
            return existing
        return self.create(data, actor, system)

    def update(self, permission_id, patch: Dict[str, Any], actor=None) -> Permission:
        permission = self.get(permission_id)
        if 'is_active' in patch:
            patch = dict(patch, is_active=bool_field(patch['is_active'], 'is_active'))
        for key in REQUIRED_FIELDS:
            if key in patch and not patch[key]:
                raise ValidationError(f'{key} cannot be empty')
        action = (patch.get('action') or permission.action).strip().lower()
        resource = (patch.get('resource') or permission.resource).strip().lower()
        name = permission_name(action, resource)
        if name != permission.name:
            other = self.by_name(name)
            if other is not None and other.id != permission.id:
                raise DuplicateKey('name', 'Permission with this name already exists')
        for key in PERMISSION_FIELDS:
            if key in patch:
                setattr(permission, key, patch[key])
        permission.updated_by = actor_id(actor)
        self.db.commit()
        return permission

    def delete(self, permission_id) -> Permission:
        permission = self.get(permission_id)
        if permission.is_system_permission:
            raise Conflict('System permissions cannot be deleted')
        count = self.role_count(permission)
        if count > 0:
            raise Conflict(f'Cannot delete permission. {count} role(s) are using this permission.')
        self.db.delete(permission)
        self.db.commit()
        current_app.logger.info('Permission %s deleted', permission.name)
        return permission


__all__ = ['PermissionCatalog', 'PERMISSION_FIELDS']
