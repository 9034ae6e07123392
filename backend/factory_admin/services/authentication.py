from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional, Tuple
from flask import current_app
from sqlalchemy import select

from factory_admin import get_db
from factory_admin.errors import AccountDeactivated, AccountLocked, InvalidCredentials, ValidationError
from factory_admin.models.authz import User
from factory_admin.services.audit import add_audit
from factory_admin.services.tokens import TokenService
from factory_admin.utils import clock

FORGOT_PASSWORD_MESSAGE = 'If an account exists for this email, password reset instructions will be sent.'


def check_password_policy(raw: Optional[str], label: str = 'Password'):
    min_length = current_app.config['PASSWORD_MIN_LENGTH']
    if not raw or len(raw) < min_length:
        raise ValidationError(f'{label} must be at least {min_length} characters long')


class AuthenticationGate:
    """Credential checks, failed-attempt lockout and password changes."""

    def __init__(self, db=None, tokens: Optional[TokenService] = None):
        self.db = db or get_db()
        self.tokens = tokens or TokenService()

    def login(self, email: Optional[str], password: Optional[str]) -> Tuple[User, str]:
        if not email or not password or not isinstance(email, str):
            raise ValidationError('Please provide email and password')
        user = self.db.execute(select(User).where(User.email == email.strip())).scalar_one_or_none()
        if user is None:
            current_app.logger.warning('Login failed: unknown email')
            raise InvalidCredentials()
        if not user.is_active:
            raise AccountDeactivated()
        now = clock.utcnow()
        if user.is_locked(now):
            raise AccountLocked()
        if not user.verify_password(password):
            self._register_failure(user, now)
            raise InvalidCredentials()
        if user.login_attempts or user.lock_until is not None:
            user.login_attempts = 0
            user.lock_until = None
        add_audit('AUTH.LOGIN', 'User', user.id, actor_user_id=user.id)
        self.db.commit()
        current_app.logger.info('User %s logged in', user.id)
        return user, self.tokens.issue(user.id)

    def _register_failure(self, user: User, now: datetime):
        if user.lock_until is not None and not user.is_locked(now):
            # previous lock has run out: this failure opens a new window
            user.login_attempts = 1
            user.lock_until = None
        else:
            user.login_attempts = (user.login_attempts or 0) + 1
        current_app.logger.warning('Login failed for user %s (attempt %d)', user.id, user.login_attempts)
        max_attempts = current_app.config['LOGIN_MAX_ATTEMPTS']
        if user.login_attempts >= max_attempts and user.lock_until is None:
            user.lock_until = now + timedelta(minutes=current_app.config['LOGIN_LOCK_MINUTES'])
            current_app.logger.warning('User %s locked after %d failed login attempts', user.id, user.login_attempts)
            add_audit('AUTH.LOCKED', 'User', user.id, {'attempts': user.login_attempts}, actor_user_id=0)
        self.db.commit()

    def change_password(self, user: User, current: Optional[str], new: Optional[str]) -> str:
        if not current or not new:
            raise ValidationError('Please provide current and new password')
        if not user.verify_password(current):
            raise InvalidCredentials('Current password is incorrect')
        check_password_policy(new, 'New password')
        user.set_password(new)
        user.updated_by = user.id
        add_audit('AUTH.PASSWORD.CHANGE', 'User', user.id)
        self.db.commit()
        return self.tokens.issue(user.id)

    def forgot_password(self, email: Optional[str]) -> str:
        if not email:
            raise ValidationError('Please provide email address')
        # identical answer whether or not the account exists
        current_app.logger.info('Password reset requested')
        return FORGOT_PASSWORD_MESSAGE


__all__ = ['AuthenticationGate', 'check_password_policy', 'FORGOT_PASSWORD_MESSAGE']
