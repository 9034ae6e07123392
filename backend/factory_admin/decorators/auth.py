from functools import wraps
from typing import Optional
from flask import current_app, g
from sqlalchemy.exc import SQLAlchemyError

from factory_admin import get_db
from factory_admin.errors import ApiError, Forbidden
from factory_admin.services.session import AuthSession, SessionResolver
from factory_admin.services.tokens import TokenService


def authenticate() -> AuthSession:
    """Resolve the request's token into an AuthSession, cached on ``g`` for the request."""
    cached = g.get('auth_session')
    if cached is not None:
        return cached
    user_id = TokenService().request_identity()
    g.auth_session = SessionResolver().resolve(user_id)
    return g.auth_session


def current_session() -> Optional[AuthSession]:
    return g.get('auth_session')


def protect(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        authenticate()
        return fn(*args, **kwargs)
    return wrapper


def require_roles(*names: str):
    allowed = {n.strip().lower() for n in names}

    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            session = authenticate()
            if session.role_name not in allowed:
                raise Forbidden(f"User role '{session.role_name}' is not authorized to access this route")
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_permission(name: str):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            session = authenticate()
            if not session.has_permission(name):
                current_app.logger.info('User %s denied: missing %s', session.user.id, name)
                raise Forbidden(f"Permission '{name}' is required to access this route")
            return fn(*args, **kwargs)
        return wrapper
    return outer


def optional_auth(fn):
    """Attach a session when the request carries a usable token; never fail the request."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            authenticate()
        except ApiError as e:
            current_app.logger.debug('Optional auth ignored: %s', e.kind)
            g.auth_session = None
        except SQLAlchemyError:
            current_app.logger.warning('Optional auth failed on store access', exc_info=True)
            get_db().rollback()
            g.auth_session = None
        return fn(*args, **kwargs)
    return wrapper


__all__ = ['authenticate', 'current_session', 'protect', 'require_roles', 'require_permission', 'optional_auth']
