from flask import Blueprint, make_response

from factory_admin.decorators.audit import audit_log
from factory_admin.decorators.auth import current_session, protect, require_permission
from factory_admin.services.authentication import AuthenticationGate
from factory_admin.services.tokens import TokenService
from factory_admin.services.users import PROFILE_FIELDS, UserAdmin
from factory_admin.utils.payload import json_body, read_fields
from factory_admin.utils.serialize import user_json

auth_bp = Blueprint('auth', __name__)


def _token_response(user, token, status=200):
    resp = make_response({'success': True, 'token': token, 'user': user_json(user)}, status)
    return TokenService().attach(resp, token)


@auth_bp.post('/login')
def login():
    data = json_body()
    user, token = AuthenticationGate().login(data.get('email'), data.get('password'))
    return _token_response(user, token)


@auth_bp.post('/logout')
@protect
def logout():
    resp = make_response({'success': True, 'message': 'User logged out successfully'})
    return TokenService().detach(resp)


@auth_bp.get('/me')
@protect
def me():
    session = current_session()
    return {
        'success': True,
        'data': user_json(session.user, role=session.role, permissions=session.permissions, with_role_permissions=True),
    }


@auth_bp.put('/updatepassword')
@protect
def update_password():
    data = read_fields(json_body(), ('current_password', 'new_password'))
    user = current_session().user
    token = AuthenticationGate().change_password(user, data.get('current_password'), data.get('new_password'))
    return _token_response(user, token)


@auth_bp.post('/forgotpassword')
def forgot_password():
    message = AuthenticationGate().forgot_password(json_body().get('email'))
    return {'success': True, 'message': message}


@auth_bp.post('/register')
@require_permission('create_user')
@audit_log('USER.CREATE', entity='User', entity_id_key='id', meta_keys=['email'])
def register():
    data = read_fields(json_body(), PROFILE_FIELDS + ('password', 'role'))
    user = UserAdmin().register(data, actor=current_session().user)
    return {'success': True, 'message': 'User registered successfully', 'data': user_json(user)}, 201
