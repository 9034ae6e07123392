"""Central definitions of permission categories, actions and the default catalog.

Permission names are always ``{action}_{resource}``; never rename one silently,
routes reference them by name. Add new entries here and re-run the seed script.
"""
from __future__ import annotations
from typing import Dict, List

CATEGORIES = (
    'user_management',
    'role_management',
    'permission_management',
    'product_management',
    'transaction_management',
    'expense_management',
    'report_management',
    'system_settings',
    'audit_logs',
)

ACTIONS = ('create', 'read', 'update', 'delete', 'manage', 'view')

CRUD = ('create', 'read', 'update', 'delete')

# category -> (resource, actions)
CATALOG_LAYOUT = {
    'user_management': ('user', CRUD),
    'role_management': ('role', CRUD),
    'permission_management': ('permission', CRUD),
    'product_management': ('product', CRUD),
    'transaction_management': ('transaction', CRUD),
    'expense_management': ('expense', CRUD),
    'report_management': ('report', ('read', 'create')),
    'system_settings': ('system', ('manage',)),
    'audit_logs': ('audit_logs', ('view',)),
}

_DISPLAY_VERBS = {
    'create': 'Create', 'read': 'View', 'update': 'Update',
    'delete': 'Delete', 'manage': 'Manage', 'view': 'View',
}


def permission_name(action: str, resource: str) -> str:
    return f"{action}_{resource}".lower()


def build_default_permissions() -> List[Dict[str, object]]:
    out: List[Dict[str, object]] = []
    for category, (resource, actions) in CATALOG_LAYOUT.items():
        for action in actions:
            verb = _DISPLAY_VERBS[action]
            noun = resource.replace('_', ' ').title() + ('s' if action == 'read' else '')
            out.append({
                'action': action,
                'resource': resource,
                'category': category,
                'display_name': f"{verb} {noun}",
                'description': f"{verb} {resource.replace('_', ' ')} records",
                'is_system_permission': True,
            })
    return out


DEFAULT_PERMISSIONS = build_default_permissions()

ROLE_PRESETS: Dict[str, Dict[str, object]] = {
    'super-admin': {
        'display_name': 'Super Administrator',
        'description': 'Full system access with all permissions',
        'color': '#DC2626',
        'priority': 100,
        'permissions': ['*'],
    },
    'admin': {
        'display_name': 'Administrator',
        'description': 'Administrative access with most permissions',
        'color': '#7C3AED',
        'priority': 90,
        'permissions': [
            'create_user', 'read_user', 'update_user', 'delete_user',
            'read_role', 'update_role',
            'read_permission',
            'create_product', 'read_product', 'update_product', 'delete_product',
            'create_transaction', 'read_transaction', 'update_transaction', 'delete_transaction',
            'create_expense', 'read_expense', 'update_expense', 'delete_expense',
            'read_report', 'create_report',
            'view_audit_logs',
        ],
    },
    'manager': {
        'display_name': 'Manager',
        'description': 'Management access with limited administrative permissions',
        'color': '#059669',
        'priority': 80,
        'permissions': [
            'read_user', 'update_user',
            'read_role',
            'create_product', 'read_product', 'update_product',
            'create_transaction', 'read_transaction', 'update_transaction',
            'create_expense', 'read_expense', 'update_expense',
            'read_report',
        ],
    },
    'employee': {
        'display_name': 'Employee',
        'description': 'Basic employee access with limited permissions',
        'color': '#2563EB',
        'priority': 70,
        'permissions': [
            'read_user',
            'read_product',
            'create_transaction', 'read_transaction', 'update_transaction',
            'create_expense', 'read_expense', 'update_expense',
            'read_report',
        ],
    },
}
