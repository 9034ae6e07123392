import pytest

from factory_admin.decorators.auth import current_session, optional_auth, require_permission, require_roles
from tests.test_utils_seed import auth_headers


@pytest.fixture()
def guarded_app(app_instance):
    @app_instance.get('/_probe/leadership')
    @require_roles('super-admin', 'admin')
    def leadership_only():
        return {'success': True, 'role': current_session().role_name}

    @app_instance.get('/_probe/maybe')
    @optional_auth
    def maybe_user():
        session = current_session()
        return {'success': True, 'user': session.user.email if session else None}

    @app_instance.get('/_probe/by-id/<int:pid>')
    def by_id(pid):
        # permission may also be named by id
        return require_permission(str(pid))(lambda: {'success': True})()

    return app_instance


def test_manager_can_update_but_not_delete(client, seeded):
    headers = auth_headers(client, 'manager@factory.test')
    target = seeded['users']['employee'].id
    upd = client.put(f'/users/{target}', json={'position': 'Line Lead'}, headers=headers)
    assert upd.status_code == 200, upd.get_json()
    deny = client.delete(f'/users/{target}', headers=headers)
    assert deny.status_code == 403
    assert deny.get_json()['message'] == "Permission 'delete_user' is required to access this route"


def test_super_admin_passes_every_permission(client, seeded):
    headers = auth_headers(client, 'root@factory.test')
    assert client.get('/audit/logs', headers=headers).status_code == 200
    assert client.get('/permissions', headers=headers).status_code == 200
    assert client.get('/roles/hierarchy', headers=headers).status_code == 200


def test_require_roles(guarded_app, seeded):
    client = guarded_app.test_client()
    ok = client.get('/_probe/leadership', headers=auth_headers(client, 'admin@factory.test'))
    assert ok.status_code == 200
    assert ok.get_json()['role'] == 'admin'
    deny = client.get('/_probe/leadership', headers=auth_headers(client, 'manager@factory.test'))
    assert deny.status_code == 403
    assert "'manager'" in deny.get_json()['message']
    assert client.get('/_probe/leadership').status_code == 401


def test_optional_auth_tolerates_bad_tokens(guarded_app, seeded):
    client = guarded_app.test_client()
    anon = client.get('/_probe/maybe')
    assert anon.status_code == 200
    assert anon.get_json()['user'] is None
    junk = client.get('/_probe/maybe', headers={'Authorization': 'Bearer junk'})
    assert junk.status_code == 200
    assert junk.get_json()['user'] is None
    known = client.get('/_probe/maybe', headers=auth_headers(client, 'employee@factory.test'))
    assert known.get_json()['user'] == 'employee@factory.test'


def test_permission_can_be_named_by_id(guarded_app, seeded):
    client = guarded_app.test_client()
    manager_perm = next(p for p in seeded['roles']['manager'].permissions if p.name == 'update_user')
    admin_only = next(p for p in seeded['roles']['admin'].permissions if p.name == 'delete_user')
    headers = auth_headers(client, 'manager@factory.test')
    assert client.get(f'/_probe/by-id/{manager_perm.id}', headers=headers).status_code == 200
    assert client.get(f'/_probe/by-id/{admin_only.id}', headers=headers).status_code == 403


def test_employee_cannot_touch_roles(client, seeded):
    headers = auth_headers(client, 'employee@factory.test')
    assert client.get('/roles', headers=headers).status_code == 403
    assert client.post('/roles', json={'name': 'x', 'displayName': 'X'}, headers=headers).status_code == 403
