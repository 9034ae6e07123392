from flask import Blueprint, request
from sqlalchemy import or_
from sqlalchemy.orm import selectinload

from factory_admin import get_db
from factory_admin.decorators.audit import audit_log
from factory_admin.decorators.auth import current_session, require_permission
from factory_admin.models.authz import User
from factory_admin.services.users import PROFILE_FIELDS, UserAdmin
from factory_admin.utils.filters import apply_filters, parse_bool
from factory_admin.utils.listing import apply_pagination, build_list_payload
from factory_admin.utils.payload import json_body, read_fields
from factory_admin.utils.serialize import user_json
from factory_admin.utils.sorting import apply_multi_sort

users_bp = Blueprint('users', __name__)

USER_SORT_FIELDS = {
    'first_name': User.first_name,
    'last_name': User.last_name,
    'email': User.email,
    'department': User.department,
    'created_at': User.created_at,
    'last_login': User.last_login,
}

USER_FILTERS = {
    'search': {
        'op': lambda q, v: q.filter(or_(
            User.first_name.ilike(f'%{v}%'), User.last_name.ilike(f'%{v}%'),
            User.email.ilike(f'%{v}%'), User.employee_id.ilike(f'%{v}%'),
        )),
    },
    'role': {'coerce': int, 'op': lambda q, v: q.filter(User.role_id == v)},
    'department': {'op': lambda q, v: q.filter(User.department == v)},
    'is_active': {'coerce': parse_bool, 'op': lambda q, v: q.filter(User.is_active.is_(v))},
}


def _actor():
    return current_session().user


@users_bp.get('')
@require_permission('read_user')
def list_users():
    q = get_db().query(User).options(selectinload(User.role))
    params = {
        'search': request.args.get('search'),
        'role': request.args.get('role'),
        'department': request.args.get('department'),
        'is_active': request.args.get('isActive', request.args.get('is_active')),
    }
    q = apply_filters(q, USER_FILTERS, params)
    q = apply_multi_sort(q, request.args.get('sort'), USER_SORT_FIELDS, User.id, default=[User.created_at.desc()])
    q, total, limit, offset = apply_pagination(q)
    rows = [user_json(u) for u in q.all()]
    return build_list_payload(rows, total, limit, offset)


@users_bp.get('/stats')
@require_permission('read_user')
def user_stats():
    return {'success': True, 'data': UserAdmin().stats()}


@users_bp.get('/<int:user_id>')
@require_permission('read_user')
def get_user(user_id):
    user = UserAdmin().get(user_id)
    return {'success': True, 'data': user_json(user, with_role_permissions=True)}


@users_bp.put('/<int:user_id>')
@require_permission('update_user')
@audit_log('USER.UPDATE', entity='User', entity_id_arg='user_id',
           meta_builder=lambda data, rv, args, kwargs: {'fields': sorted(read_fields(json_body(), PROFILE_FIELDS + ('role', 'is_active')))})
def update_user(user_id):
    data = read_fields(json_body(), PROFILE_FIELDS + ('role', 'is_active'))
    user = UserAdmin().update(user_id, data, actor=_actor())
    return {'success': True, 'data': user_json(user)}


@users_bp.delete('/<int:user_id>')
@require_permission('delete_user')
@audit_log('USER.DELETE', entity='User', entity_id_arg='user_id', meta_keys=['email'])
def delete_user(user_id):
    user = UserAdmin().delete(user_id, actor=_actor())
    return {'success': True, 'message': 'User deleted successfully', 'data': {'email': user.email}}


@users_bp.patch('/<int:user_id>/toggle-status')
@require_permission('update_user')
@audit_log('USER.TOGGLE_STATUS', entity='User', entity_id_arg='user_id', meta_keys=['is_active'])
def toggle_user_status(user_id):
    user = UserAdmin().toggle_status(user_id, actor=_actor())
    state = 'activated' if user.is_active else 'deactivated'
    return {'success': True, 'message': f'User {state} successfully', 'data': user_json(user)}
