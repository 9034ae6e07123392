from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from factory_admin.utils.clock import as_utc


def _iso(dt: Optional[datetime]) -> Optional[str]:
    dt = as_utc(dt)
    return dt.isoformat().replace('+00:00', 'Z') if dt else None


def permission_json(p) -> Dict[str, Any]:
    return {
        'id': p.id,
        'name': p.name,
        'display_name': p.display_name,
        'description': p.description,
        'category': p.category,
        'action': p.action,
        'resource': p.resource,
        'priority': p.priority,
        'is_active': p.is_active,
        'is_system_permission': p.is_system_permission,
        'created_at': _iso(p.created_at),
        'updated_at': _iso(p.updated_at),
    }


def role_json(r, permissions: Optional[Iterable] = None, with_permissions: bool = True) -> Dict[str, Any]:
    data = {
        'id': r.id,
        'name': r.name,
        'display_name': r.display_name,
        'description': r.description,
        'priority': r.priority,
        'color': r.color,
        'is_active': r.is_active,
        'is_system_role': r.is_system_role,
        'created_at': _iso(r.created_at),
        'updated_at': _iso(r.updated_at),
    }
    if with_permissions:
        perms = r.permissions if permissions is None else permissions
        data['permissions'] = [
            {'id': p.id, 'name': p.name, 'display_name': p.display_name, 'category': p.category}
            for p in perms
        ]
    return data


def user_json(u, role=None, permissions: Optional[Iterable] = None, with_role_permissions: bool = False) -> Dict[str, Any]:
    """Public user shape; password hash and lockout counters never leave the server."""
    role = role if role is not None else u.role
    return {
        'id': u.id,
        'first_name': u.first_name,
        'last_name': u.last_name,
        'full_name': u.full_name,
        'email': u.email,
        'employee_id': u.employee_id,
        'phone': u.phone,
        'department': u.department,
        'position': u.position,
        'role': role_json(role, permissions, with_permissions=with_role_permissions) if role is not None else None,
        'is_active': u.is_active,
        'last_login': _iso(u.last_login),
        'created_at': _iso(u.created_at),
        'updated_at': _iso(u.updated_at),
    }


def audit_json(a) -> Dict[str, Any]:
    return {
        'id': a.id,
        'actor_user_id': a.actor_user_id,
        'action': a.action,
        'entity': a.entity,
        'entity_id': a.entity_id,
        'role': a.role_snapshot,
        'meta': a.meta or {},
        'created_at': _iso(a.created_at),
    }
