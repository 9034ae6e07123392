from __future__ import annotations
from datetime import timedelta
from typing import Any, Optional
from flask import current_app
from flask_jwt_extended import (
    create_access_token,
    decode_token,
    get_jwt_identity,
    set_access_cookies,
    unset_access_cookies,
    verify_jwt_in_request,
)
from flask_jwt_extended.exceptions import JWTExtendedException, NoAuthorizationError
from jwt.exceptions import PyJWTError

from factory_admin.errors import InvalidToken, Unauthenticated


def _user_id(identity: Any) -> int:
    try:
        return int(identity)
    except (TypeError, ValueError):
        raise InvalidToken()


class TokenService:
    """Signed, expiring bearer tokens whose only application claim is the user id.

    Tokens travel either as ``Authorization: Bearer <token>`` or in the HTTP-only
    cookie configured by ``JWT_ACCESS_COOKIE_NAME``. ``JWT_TOKEN_LOCATION`` lists
    headers before cookies, so the header wins when both exist.
    """

    def issue(self, user_id: int, expires_delta: Optional[timedelta] = None) -> str:
        if expires_delta is None:
            return create_access_token(identity=str(user_id))
        return create_access_token(identity=str(user_id), expires_delta=expires_delta)

    def verify(self, token: Optional[str]) -> int:
        if not token:
            raise InvalidToken()
        try:
            claims = decode_token(token)
        except (PyJWTError, JWTExtendedException) as e:
            current_app.logger.debug('Token rejected: %s', e.__class__.__name__)
            raise InvalidToken(original=e)
        return _user_id(claims.get(current_app.config.get('JWT_IDENTITY_CLAIM', 'sub')))

    def request_identity(self) -> int:
        """User id carried by the current request's token."""
        try:
            verify_jwt_in_request()
        except NoAuthorizationError:
            raise Unauthenticated()
        except (PyJWTError, JWTExtendedException) as e:
            current_app.logger.debug('Token rejected: %s', e.__class__.__name__)
            raise InvalidToken(original=e)
        return _user_id(get_jwt_identity())

    def attach(self, response, token: str):
        set_access_cookies(response, token)
        return response

    def detach(self, response):
        unset_access_cookies(response)
        return response


__all__ = ['TokenService']
