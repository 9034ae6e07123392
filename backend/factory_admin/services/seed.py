"""Idempotent bootstrap of the default permission catalog, system roles and first admin.

Functions here only stage and flush; the caller owns the commit so a dry run
can roll everything back.
"""
from __future__ import annotations
from typing import Dict, Optional, Tuple
from flask import current_app
from sqlalchemy import select

from factory_admin.constants.permissions import DEFAULT_PERMISSIONS, ROLE_PRESETS, permission_name
from factory_admin.models.authz import Permission, Role, User


def ensure_permissions(session) -> Tuple[Dict[str, Permission], int]:
    existing = {p.name: p for p in session.execute(select(Permission)).scalars().all()}
    created = 0
    for spec in DEFAULT_PERMISSIONS:
        name = permission_name(spec['action'], spec['resource'])
        if name in existing:
            continue
        perm = Permission(
            display_name=spec['display_name'],
            description=spec['description'],
            category=spec['category'],
            action=spec['action'],
            resource=spec['resource'],
            is_system_permission=True,
        )
        session.add(perm)
        existing[name] = perm
        created += 1
    session.flush()
    return existing, created


def ensure_roles(session, permissions: Dict[str, Permission]) -> Tuple[Dict[str, Role], int]:
    existing = {r.name: r for r in session.execute(select(Role)).scalars().all()}
    created = 0
    for name, preset in ROLE_PRESETS.items():
        role = existing.get(name)
        if role is None:
            role = Role(
                name=name,
                display_name=preset['display_name'],
                description=preset['description'],
                color=preset['color'],
                priority=preset['priority'],
                is_system_role=True,
            )
            session.add(role)
            existing[name] = role
            created += 1
        wanted = set(permissions) if '*' in preset['permissions'] else set(preset['permissions'])
        have = {p.name for p in role.permissions}
        for perm_name in sorted(wanted - have):
            perm = permissions.get(perm_name)
            if perm is None:
                current_app.logger.warning('Role %s references missing permission %s', name, perm_name)
                continue
            role.permissions.append(perm)
    session.flush()
    return existing, created


def ensure_admin(session, roles: Dict[str, Role], email: str, password: str) -> Optional[User]:
    role = roles.get('super-admin')
    if role is None:
        current_app.logger.warning('super-admin role missing; skipping admin user creation')
        return None
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is not None:
        return None
    user = User(first_name='System', last_name='Administrator', email=email, department='Administration')
    user.set_password(password)
    user.role = role
    session.add(user)
    session.flush()
    current_app.logger.info('Created initial admin user %s', email)
    return user


def seed_defaults(session, admin_email: Optional[str] = None, admin_password: Optional[str] = None):
    permissions, created_p = ensure_permissions(session)
    roles, created_r = ensure_roles(session, permissions)
    admin = None
    if admin_email and admin_password:
        admin = ensure_admin(session, roles, admin_email, admin_password)
    return {'permissions_created': created_p, 'roles_created': created_r, 'admin': admin, 'roles': roles}


def role_permission_map(session) -> Dict[str, list]:
    return {
        role.name: sorted(p.name for p in role.permissions)
        for role in session.execute(select(Role).order_by(Role.priority.desc(), Role.id)).scalars().all()
    }


__all__ = ['ensure_permissions', 'ensure_roles', 'ensure_admin', 'seed_defaults', 'role_permission_map']
