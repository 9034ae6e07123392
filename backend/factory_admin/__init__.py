from flask import Flask, g
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from datetime import timedelta
from typing import Optional, Dict, Any
import os

from .config.security import (
    DEFAULT_TOKEN_HOURS,
    DEFAULT_MAX_LOGIN_ATTEMPTS,
    DEFAULT_LOCK_MINUTES,
    DEFAULT_PASSWORD_MIN_LENGTH,
    TOKEN_COOKIE_NAME,
)

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _env_flag(name: str, default: str = '0') -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes', 'on')


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(hours=int(os.getenv('JWT_EXPIRE_HOURS', DEFAULT_TOKEN_HOURS)))
    # Bearer header first, then the HTTP-only cookie
    app.config['JWT_TOKEN_LOCATION'] = ['headers', 'cookies']
    app.config['JWT_ACCESS_COOKIE_NAME'] = TOKEN_COOKIE_NAME
    app.config['JWT_COOKIE_CSRF_PROTECT'] = False
    app.config['JWT_COOKIE_SAMESITE'] = 'Strict'
    app.config['JWT_COOKIE_SECURE'] = _env_flag('COOKIE_SECURE')
    app.config['LOGIN_MAX_ATTEMPTS'] = int(os.getenv('LOGIN_MAX_ATTEMPTS', DEFAULT_MAX_LOGIN_ATTEMPTS))
    app.config['LOGIN_LOCK_MINUTES'] = int(os.getenv('LOGIN_LOCK_MINUTES', DEFAULT_LOCK_MINUTES))
    app.config['PASSWORD_MIN_LENGTH'] = int(os.getenv('PASSWORD_MIN_LENGTH', DEFAULT_PASSWORD_MIN_LENGTH))
    app.config['EXPOSE_ERROR_DETAIL'] = _env_flag('EXPOSE_ERROR_DETAIL')
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .routes.auth import auth_bp
    from .routes.roles import roles_bp
    from .routes.permissions import perms_bp
    from .routes.users import users_bp
    from .routes.audit import audit_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(roles_bp, url_prefix='/roles')
    app.register_blueprint(perms_bp, url_prefix='/permissions')
    app.register_blueprint(users_bp, url_prefix='/users')
    app.register_blueprint(audit_bp, url_prefix='/audit')

    @app.before_request
    def _reset_auth_session():
        # g may outlive a request when an app context is already pushed
        g.auth_session = None

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        from .errors import StoreError, duplicate_key_from_integrity
        _rollback_quietly()
        if isinstance(e, SQLAlchemyError):
            dup = duplicate_key_from_integrity(e)
            if dup is not None:
                e = dup
            else:
                app.logger.exception('Store failure')
                e = StoreError(original=e)
        if isinstance(e, HTTPException):
            if e.code and e.code >= 500:
                app.logger.error('Request failed with %s: %s', e.code, e.description)
            return _error_payload(e.code, e.name, getattr(e, 'kind', e.name), e.description, e), e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return _error_payload(500, 'Internal Server Error', 'ServerError', 'Unexpected error', e), 500

    def _error_payload(status, title, kind, detail, exc):
        payload = {
            'success': False,
            'message': detail,
            'error': {
                'status': status,
                'title': title,
                'type': kind,
                'detail': detail,
            }
        }
        if app.config.get('EXPOSE_ERROR_DETAIL'):
            original = getattr(exc, 'original', None) or exc
            payload['error']['debug'] = repr(original)
        return payload

    return app


def _rollback_quietly():
    if SessionLocal is None:
        return
    try:
        SessionLocal().rollback()
    except SQLAlchemyError:
        # session unusable; discard it so the next request starts clean
        SessionLocal.remove()


def get_db():
    return SessionLocal()
