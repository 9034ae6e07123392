import pytest

from factory_admin import get_db
from factory_admin.models.audit import AuditLog
from factory_admin.errors import ValidationError
from factory_admin.models.authz import Permission, Role
from factory_admin.services.roles import RoleRegistry
from tests.test_utils_seed import auth_headers, ensure_role, ensure_user


def _perm_id(name):
    return get_db().query(Permission).filter_by(name=name).one().id


def test_list_roles_paginated(client, seeded):
    headers = auth_headers(client, 'root@factory.test')
    resp = client.get('/roles?limit=2', headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['success'] is True
    assert body['pagination'] == {'total': 4, 'limit': 2, 'offset': 0, 'returned': 2}
    assert [r['name'] for r in body['data']] == ['super-admin', 'admin']

    searched = client.get('/roles?search=manag', headers=headers).get_json()
    assert [r['name'] for r in searched['data']] == ['manager']
    assert client.get('/roles?sort=bogus', headers=headers).status_code == 400
    assert client.get('/roles?limit=abc', headers=headers).status_code == 400


def test_create_role_normalizes_name(client, seeded):
    headers = auth_headers(client, 'root@factory.test')
    resp = client.post('/roles', json={
        'name': '  Shift Lead ', 'displayName': 'Shift Lead', 'priority': 40,
        'permissions': [_perm_id('read_user'), _perm_id('read_product')],
    }, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    data = resp.get_json()['data']
    assert data['name'] == 'shift-lead'
    assert data['color'] == '#3B82F6'
    assert data['is_system_role'] is False
    assert sorted(p['name'] for p in data['permissions']) == ['read_product', 'read_user']

    dup = client.post('/roles', json={'name': 'shift lead', 'displayName': 'Again'}, headers=headers)
    assert dup.status_code == 400
    assert dup.get_json()['error']['type'] == 'DuplicateKey'

    entry = get_db().query(AuditLog).filter_by(action='ROLE.CREATE').one()
    assert entry.entity_id == str(data['id'])
    assert entry.meta == {'name': 'shift-lead'}


def test_create_role_with_unknown_permission_persists_nothing(client, seeded):
    headers = auth_headers(client, 'root@factory.test')
    resp = client.post('/roles', json={
        'name': 'ghost', 'displayName': 'Ghost', 'permissions': [_perm_id('read_user'), 99999],
    }, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['type'] == 'InvalidReference'
    assert get_db().query(Role).filter_by(name='ghost').one_or_none() is None


def test_create_role_validation(client, seeded):
    headers = auth_headers(client, 'root@factory.test')
    assert client.post('/roles', json={'name': 'x'}, headers=headers).status_code == 400
    bad_color = client.post('/roles', json={'name': 'x', 'displayName': 'X', 'color': 'blue'}, headers=headers)
    assert bad_color.status_code == 400
    negative = client.post('/roles', json={'name': 'x', 'displayName': 'X', 'priority': -1}, headers=headers)
    assert negative.status_code == 400
    assert get_db().query(Role).filter_by(name='x').one_or_none() is None


def test_system_role_protections(client, seeded):
    headers = auth_headers(client, 'root@factory.test')
    manager_id = seeded['roles']['manager'].id
    perms = client.put(f'/roles/{manager_id}', json={'permissions': [_perm_id('read_user')]}, headers=headers)
    assert perms.status_code == 403
    deactivate = client.put(f'/roles/{manager_id}', json={'isActive': False}, headers=headers)
    assert deactivate.status_code == 403
    add = client.post(f"/roles/{manager_id}/permissions/{_perm_id('delete_user')}", headers=headers)
    assert add.status_code == 403
    assert client.delete(f'/roles/{manager_id}', headers=headers).status_code == 403

    relabel = client.put(f'/roles/{manager_id}', json={'displayName': 'Floor Manager', 'color': '#111111'}, headers=headers)
    assert relabel.status_code == 200
    assert relabel.get_json()['data']['display_name'] == 'Floor Manager'
    still = get_db().get(Role, manager_id)
    assert still.is_active is True
    assert len(still.permissions) == 13


def test_update_role_records_diff(client, seeded):
    headers = auth_headers(client, 'root@factory.test')
    role = ensure_role('packer', ['read_product'], priority=10)
    resp = client.put(f'/roles/{role.id}', json={'priority': 20, 'permissions': []}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['data']['permissions'] == []
    entry = get_db().query(AuditLog).filter_by(action='ROLE.UPDATE').one()
    assert entry.meta['changes'] == {'priority': {'before': 10, 'after': 20}}


def test_delete_role_in_use_conflicts(client, seeded):
    headers = auth_headers(client, 'root@factory.test')
    role = ensure_role('welder', ['read_product'])
    for i in range(3):
        ensure_user(f'welder{i}@factory.test', role)
    resp = client.delete(f'/roles/{role.id}', headers=headers)
    assert resp.status_code == 400
    body = resp.get_json()
    assert body['error']['type'] == 'Conflict'
    assert body['message'] == 'Cannot delete role. 3 user(s) are assigned to this role.'
    assert get_db().get(Role, role.id) is not None

    empty = ensure_role('spare')
    assert client.delete(f'/roles/{empty.id}', headers=headers).status_code == 200
    assert client.get(f'/roles/{empty.id}', headers=headers).status_code == 404


def test_hierarchy_order_and_active_only(client, seeded):
    headers = auth_headers(client, 'root@factory.test')
    ensure_role('inspector', priority=75)
    ensure_role('trainee', priority=5)
    ensure_role('retired', priority=95, is_active=False)
    resp = client.get('/roles/hierarchy', headers=headers)
    names = [r['name'] for r in resp.get_json()['data']]
    assert names == ['super-admin', 'admin', 'manager', 'inspector', 'employee', 'trainee']


def test_add_and_remove_role_permission(client, seeded):
    headers = auth_headers(client, 'root@factory.test')
    role = ensure_role('painter')
    pid = _perm_id('read_product')
    added = client.post(f'/roles/{role.id}/permissions/{pid}', headers=headers)
    assert added.status_code == 200
    assert [p['name'] for p in added.get_json()['data']['permissions']] == ['read_product']
    again = client.post(f'/roles/{role.id}/permissions/{pid}', headers=headers)
    assert len(again.get_json()['data']['permissions']) == 1
    missing = client.post(f'/roles/{role.id}/permissions/99999', headers=headers)
    assert missing.status_code == 400
    removed = client.delete(f'/roles/{role.id}/permissions/{pid}', headers=headers)
    assert removed.get_json()['data']['permissions'] == []


def test_get_role_reports_user_count(client, seeded):
    headers = auth_headers(client, 'root@factory.test')
    resp = client.get(f"/roles/{seeded['roles']['manager'].id}", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['data']['user_count'] == 1
    assert client.get('/roles/4242', headers=headers).status_code == 404


def test_registry_list_filters_and_sorts(app_instance, seeded):
    with app_instance.app_context():
        ensure_role('retired', priority=5, is_active=False)
        registry = RoleRegistry()
        by_name = registry.list({}, 'name').all()
        assert [r.name for r in by_name] == ['admin', 'employee', 'manager', 'retired', 'super-admin']
        inactive = registry.list({'is_active': 'false'}).all()
        assert [r.name for r in inactive] == ['retired']
        with pytest.raises(ValidationError):
            registry.list({'is_active': 'maybe'})


def test_system_role_cannot_be_deactivated_by_falsy_values(client, seeded):
    headers = auth_headers(client, 'root@factory.test')
    manager_id = seeded['roles']['manager'].id
    for value in (0, 'false', 'off'):
        resp = client.put(f'/roles/{manager_id}', json={'isActive': value}, headers=headers)
        assert resp.status_code == 403, value
    for value in (None, 'maybe', [False]):
        resp = client.put(f'/roles/{manager_id}', json={'isActive': value}, headers=headers)
        assert resp.status_code == 400, value
    db = get_db()
    db.expire_all()
    assert db.get(Role, manager_id).is_active is True


def test_role_is_active_accepts_string_flags(client, seeded):
    headers = auth_headers(client, 'root@factory.test')
    role = ensure_role('sander', priority=4)
    resp = client.put(f'/roles/{role.id}', json={'isActive': 'false'}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['data']['is_active'] is False
    resp = client.put(f'/roles/{role.id}', json={'is_active': 1}, headers=headers)
    assert resp.get_json()['data']['is_active'] is True
