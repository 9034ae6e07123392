from flask import Blueprint, request

from factory_admin.decorators.audit import audit_log
from factory_admin.decorators.auth import current_session, require_permission
from factory_admin.services.roles import ROLE_FIELDS, RoleRegistry
from factory_admin.utils.listing import apply_pagination, build_list_payload
from factory_admin.utils.payload import json_body, read_fields
from factory_admin.utils.serialize import role_json

roles_bp = Blueprint('roles', __name__)

def _role_snapshot(args, kwargs):
    return role_json(RoleRegistry().get(kwargs['role_id']), with_permissions=False)


def _actor():
    return current_session().user


@roles_bp.get('')
@require_permission('read_role')
def list_roles():
    filters = {'search': request.args.get('search'), 'is_active': request.args.get('isActive', request.args.get('is_active'))}
    q = RoleRegistry().list(filters, request.args.get('sort'))
    q, total, limit, offset = apply_pagination(q)
    rows = [role_json(r) for r in q.all()]
    return build_list_payload(rows, total, limit, offset)


@roles_bp.get('/hierarchy')
@require_permission('read_role')
def role_hierarchy():
    rows = [role_json(r) for r in RoleRegistry().hierarchy()]
    return {'success': True, 'count': len(rows), 'data': rows}


@roles_bp.get('/<int:role_id>')
@require_permission('read_role')
def get_role(role_id):
    registry = RoleRegistry()
    role = registry.get(role_id)
    data = role_json(role)
    data['user_count'] = registry.user_count(role)
    return {'success': True, 'data': data}


@roles_bp.post('')
@require_permission('create_role')
@audit_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['name'])
def create_role():
    data = read_fields(json_body(), ROLE_FIELDS)
    role = RoleRegistry().create(data, actor=_actor())
    return {'success': True, 'data': role_json(role)}, 201


@roles_bp.put('/<int:role_id>')
@require_permission('update_role')
@audit_log('ROLE.UPDATE', entity='Role', entity_id_arg='role_id',
           diff_keys=['name', 'display_name', 'description', 'color', 'priority', 'is_active'],
           pre_fetch=_role_snapshot)
def update_role(role_id):
    data = read_fields(json_body(), ROLE_FIELDS)
    role = RoleRegistry().update(role_id, data, actor=_actor())
    return {'success': True, 'data': role_json(role)}


@roles_bp.delete('/<int:role_id>')
@require_permission('delete_role')
@audit_log('ROLE.DELETE', entity='Role', entity_id_arg='role_id', meta_keys=['name'])
def delete_role(role_id):
    role = RoleRegistry().delete(role_id)
    return {'success': True, 'message': 'Role deleted successfully', 'data': {'name': role.name}}


@roles_bp.post('/<int:role_id>/permissions/<int:permission_id>')
@require_permission('update_role')
@audit_log('ROLE.PERMISSION.ADD', entity='Role', entity_id_arg='role_id',
           meta_builder=lambda data, rv, args, kwargs: {'permission_id': kwargs.get('permission_id')})
def add_role_permission(role_id, permission_id):
    role = RoleRegistry().add_permission(role_id, permission_id, actor=_actor())
    return {'success': True, 'data': role_json(role)}


@roles_bp.delete('/<int:role_id>/permissions/<int:permission_id>')
@require_permission('update_role')
@audit_log('ROLE.PERMISSION.REMOVE', entity='Role', entity_id_arg='role_id',
           meta_builder=lambda data, rv, args, kwargs: {'permission_id': kwargs.get('permission_id')})
def remove_role_permission(role_id, permission_id):
    role = RoleRegistry().remove_permission(role_id, permission_id, actor=_actor())
    return {'success': True, 'data': role_json(role)}
