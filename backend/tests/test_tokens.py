from datetime import timedelta
import pytest

from factory_admin.errors import InvalidToken, Unauthenticated
from factory_admin.services.tokens import TokenService

def _tamper(token: str) -> str:
    header, payload, _sig = token.split('.')
    return f'{header}.{payload}.AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA'

def test_issue_and_verify_round_trip(app_instance):
    with app_instance.app_context():
        tokens = TokenService()
        assert tokens.verify(tokens.issue(42)) == 42

def test_expired_token_rejected(app_instance):
    with app_instance.app_context():
        tokens = TokenService()
        stale = tokens.issue(7, expires_delta=timedelta(seconds=-30))
        with pytest.raises(InvalidToken):
            tokens.verify(stale)

@pytest.mark.parametrize('bad', ['', None, 'not-a-jwt', 'a.b.c'])
def test_malformed_tokens_rejected(app_instance, bad):
    with app_instance.app_context():
        with pytest.raises(InvalidToken):
            TokenService().verify(bad)

def test_tampered_signature_rejected(app_instance):
    with app_instance.app_context():
        tokens = TokenService()
        with pytest.raises(InvalidToken):
            tokens.verify(_tamper(tokens.issue(5)))

def test_non_numeric_identity_rejected(app_instance):
    from flask_jwt_extended import create_access_token
    with app_instance.app_context():
        with pytest.raises(InvalidToken):
            TokenService().verify(create_access_token(identity='someone'))

def test_header_wins_over_cookie(seeded, app_instance):
    employee = seeded['users']['employee'].id
    manager = seeded['users']['manager'].id
    with app_instance.app_context():
        tokens = TokenService()
        header_token, cookie_token = tokens.issue(employee), tokens.issue(manager)
    both = {'Authorization': f'Bearer {header_token}', 'Cookie': f'token={cookie_token}'}
    with app_instance.test_request_context('/', headers=both):
        assert TokenService().request_identity() == employee
    with app_instance.test_request_context('/', headers={'Cookie': f'token={cookie_token}'}):
        assert TokenService().request_identity() == manager
    with app_instance.test_request_context('/', headers={'Authorization': 'Basic abc'}):
        with pytest.raises(Unauthenticated):
            TokenService().request_identity()
    garbage_header = {'Authorization': 'Bearer garbage', 'Cookie': f'token={cookie_token}'}
    with app_instance.test_request_context('/', headers=garbage_header):
        with pytest.raises(InvalidToken):
            TokenService().request_identity()

def test_valid_header_beats_garbage_cookie(seeded, app_instance):
    with app_instance.app_context():
        token = TokenService().issue(seeded['users']['employee'].id)
    client = app_instance.test_client(use_cookies=False)
    resp = client.get('/auth/me', headers={'Authorization': f'Bearer {token}', 'Cookie': 'token=garbage'})
    assert resp.status_code == 200

def test_tampered_and_expired_tokens_get_same_401(seeded, app_instance):
    uid = seeded['users']['employee'].id
    with app_instance.app_context():
        tokens = TokenService()
        expired = tokens.issue(uid, expires_delta=timedelta(seconds=-30))
        forged = _tamper(tokens.issue(uid))
    client = app_instance.test_client(use_cookies=False)
    a = client.get('/auth/me', headers={'Authorization': f'Bearer {expired}'})
    b = client.get('/auth/me', headers={'Authorization': f'Bearer {forged}'})
    assert a.status_code == b.status_code == 401
    assert a.get_json()['message'] == b.get_json()['message'] == 'Not authorized to access this route'
