from sqlalchemy import update
from sqlalchemy.orm import lazyload

from factory_admin import get_db
from factory_admin.models.authz import Permission, Role, User
from factory_admin.services import session as session_mod
from factory_admin.services.session import Resolved, SessionResolver, Unresolved, role_reference
from tests.test_utils_seed import auth_headers, ensure_permission, ensure_role, ensure_user


def _pointer_only(db, user_id):
    # clean identity map: user row loaded, role relationship never fetched
    db.expunge_all()
    return db.get(User, user_id, options=[lazyload(User.role)])


def test_role_reference_variants(seeded, app_instance):
    uid = seeded['users']['manager'].id
    db = get_db()
    loaded = session_mod.load_user(db, uid)
    ref = role_reference(loaded)
    assert isinstance(ref, Resolved)
    assert ref.role.name == 'manager'

    bare = _pointer_only(db, uid)
    ref = role_reference(bare)
    assert isinstance(ref, Unresolved)
    assert ref.role_id == seeded['roles']['manager'].id


def test_role_reference_detects_stale_relationship(seeded):
    db = get_db()
    user = session_mod.load_user(db, seeded['users']['manager'].id)
    user.role_id = seeded['roles']['employee'].id
    ref = role_reference(user)
    assert isinstance(ref, Unresolved)
    assert ref.role_id == seeded['roles']['employee'].id
    db.rollback()


def test_resolver_repairs_pointer_only_reference(seeded, app_instance, monkeypatch):
    uid = seeded['users']['manager'].id
    monkeypatch.setattr(session_mod, 'load_user', _pointer_only)
    with app_instance.app_context():
        auth = SessionResolver().resolve(uid)
    assert auth.role.name == 'manager'
    assert auth.has_permission('update_user')
    assert not auth.has_permission('delete_user')


def test_pointer_only_request_is_not_a_server_error(client, seeded, monkeypatch):
    headers = auth_headers(client, 'manager@factory.test')
    monkeypatch.setattr(session_mod, 'load_user', _pointer_only)
    target = seeded['users']['employee'].id
    resp = client.put(f'/users/{target}', json={'department': 'Assembly'}, headers=headers)
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['data']['department'] == 'Assembly'


def test_pointer_only_denial_is_forbidden(client, seeded, monkeypatch):
    headers = auth_headers(client, 'manager@factory.test')
    monkeypatch.setattr(session_mod, 'load_user', _pointer_only)
    target = seeded['users']['employee'].id
    resp = client.delete(f'/users/{target}', headers=headers)
    assert resp.status_code == 403, resp.get_json()
    assert 'delete_user' in resp.get_json()['message']
    monkeypatch.undo()
    assert get_db().get(User, target) is not None


def test_user_without_role_is_role_missing(client, seeded):
    headers = auth_headers(client, 'employee@factory.test')
    db = get_db()
    db.execute(update(User).where(User.id == seeded['users']['employee'].id).values(role_id=None))
    db.commit()
    resp = client.get('/auth/me', headers=headers)
    assert resp.status_code == 401
    assert resp.get_json()['error']['type'] == 'RoleMissing'


def test_dangling_role_is_role_not_found(client, seeded):
    headers = auth_headers(client, 'employee@factory.test')
    db = get_db()
    # SQLite does not enforce the foreign key here
    db.execute(update(User).where(User.id == seeded['users']['employee'].id).values(role_id=9999))
    db.commit()
    resp = client.get('/users', headers=headers)
    assert resp.status_code == 401
    assert resp.get_json()['error']['type'] == 'RoleNotFound'


def test_deactivated_or_deleted_user_loses_session(client, seeded):
    headers = auth_headers(client, 'employee@factory.test')
    db = get_db()
    user = db.get(User, seeded['users']['employee'].id)
    user.is_active = False
    db.commit()
    resp = client.get('/auth/me', headers=headers)
    assert resp.status_code == 401
    assert resp.get_json()['error']['type'] == 'SessionInvalid'

    headers = auth_headers(client, 'manager@factory.test')
    db.delete(db.get(User, seeded['users']['manager'].id))
    db.commit()
    assert client.get('/auth/me', headers=headers).status_code == 401


def test_permission_changes_apply_without_new_token(client, seeded):
    headers = auth_headers(client, 'employee@factory.test')
    assert client.get('/users', headers=headers).status_code == 200
    db = get_db()
    role = db.get(Role, seeded['roles']['employee'].id)
    role.permissions = [p for p in role.permissions if p.name != 'read_user']
    db.commit()
    assert client.get('/users', headers=headers).status_code == 403


def test_inactive_role_grants_nothing(client, seeded):
    with client.application.app_context():
        ensure_role('night-shift', ['read_user'])
        ensure_user('night@factory.test', ensure_role('night-shift'))
    headers = auth_headers(client, 'night@factory.test')
    assert client.get('/users', headers=headers).status_code == 200
    db = get_db()
    db.query(Role).filter_by(name='night-shift').one().is_active = False
    db.commit()
    me = client.get('/auth/me', headers=headers)
    assert me.status_code == 200
    assert client.get('/users', headers=headers).status_code == 403


def test_inactive_permission_is_not_granted(client, seeded):
    with client.application.app_context():
        ensure_permission('read', 'gauge', category='product_management')
        ensure_user('gauge@factory.test', ensure_role('gauge-reader', ['read_gauge', 'read_user']))
        auth = SessionResolver().resolve(get_db().query(User).filter_by(email='gauge@factory.test').one().id)
        assert auth.has_permission('read_gauge')
        db = get_db()
        db.query(Permission).filter_by(name='read_gauge').one().is_active = False
        db.commit()
        auth = SessionResolver().resolve(auth.user.id)
        assert not auth.has_permission('read_gauge')
        assert auth.has_permission('read_user')


def test_last_login_is_touched(client, seeded):
    headers = auth_headers(client, 'employee@factory.test')
    client.get('/auth/me', headers=headers)
    db = get_db()
    db.expire_all()
    assert db.get(User, seeded['users']['employee'].id).last_login is not None
