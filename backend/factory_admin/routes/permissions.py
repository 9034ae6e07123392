from flask import Blueprint, request

from factory_admin.decorators.audit import audit_log
from factory_admin.decorators.auth import current_session, require_permission
from factory_admin.services.permissions import PERMISSION_FIELDS, PermissionCatalog
from factory_admin.utils.payload import json_body, read_fields
from factory_admin.utils.serialize import permission_json

perms_bp = Blueprint('permissions', __name__)


@perms_bp.get('')
@require_permission('read_permission')
def list_permissions():
    catalog = PermissionCatalog()
    category = request.args.get('category')
    rows = catalog.find_by_category(category) if category else catalog.active()
    grouped = {cat: [permission_json(p) for p in perms] for cat, perms in catalog.grouped(rows).items()}
    return {
        'success': True,
        'count': len(rows),
        'data': [permission_json(p) for p in rows],
        'grouped': grouped,
    }


@perms_bp.get('/<int:permission_id>')
@require_permission('read_permission')
def get_permission(permission_id):
    catalog = PermissionCatalog()
    permission = catalog.get(permission_id)
    data = permission_json(permission)
    data['role_count'] = catalog.role_count(permission)
    return {'success': True, 'data': data}


@perms_bp.post('')
@require_permission('create_permission')
@audit_log('PERMISSION.CREATE', entity='Permission', entity_id_key='id', meta_keys=['name'])
def create_permission():
    data = read_fields(json_body(), PERMISSION_FIELDS)
    permission = PermissionCatalog().create(data, actor=current_session().user)
    return {'success': True, 'data': permission_json(permission)}, 201


@perms_bp.put('/<int:permission_id>')
@require_permission('update_permission')
@audit_log('PERMISSION.UPDATE', entity='Permission', entity_id_arg='permission_id', meta_keys=['name'])
def update_permission(permission_id):
    data = read_fields(json_body(), PERMISSION_FIELDS)
    permission = PermissionCatalog().update(permission_id, data, actor=current_session().user)
    return {'success': True, 'data': permission_json(permission)}


@perms_bp.delete('/<int:permission_id>')
@require_permission('delete_permission')
@audit_log('PERMISSION.DELETE', entity='Permission', entity_id_arg='permission_id', meta_keys=['name'])
def delete_permission(permission_id):
    permission = PermissionCatalog().delete(permission_id)
    return {'success': True, 'message': 'Permission deleted successfully', 'data': {'name': permission.name}}
