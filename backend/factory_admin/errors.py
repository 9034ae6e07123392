"""Error taxonomy for the admin API.

Every error is a werkzeug HTTPException so the app-wide handler in
``create_app`` renders one JSON shape for all of them. ``kind`` is the stable
machine-readable name placed in ``error.type``.

Credential and token failures deliberately share one message each; callers
must not be able to tell an unknown email from a wrong password, or an
expired token from a forged one.
"""
from __future__ import annotations
import re
from typing import Optional
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError


class ApiError(HTTPException):
    code = 400
    kind = 'Error'
    description = 'Request failed'

    def __init__(self, description: Optional[str] = None, original: Optional[BaseException] = None):
        super().__init__(description or self.description)
        self.original = original


# --- 400 ---
class ValidationError(ApiError):
    code = 400
    kind = 'ValidationError'
    description = 'Validation Error'


class DuplicateKey(ApiError):
    code = 400
    kind = 'DuplicateKey'

    def __init__(self, field: str, description: Optional[str] = None):
        self.field = field
        super().__init__(description or f'{field} already exists')


class InvalidReference(ApiError):
    code = 400
    kind = 'InvalidReference'
    description = 'One or more references are invalid'


class Conflict(ApiError):
    code = 400
    kind = 'Conflict'
    description = 'Operation conflicts with existing references'


# --- 401 ---
class InvalidCredentials(ApiError):
    code = 401
    kind = 'InvalidCredentials'
    description = 'Invalid credentials'


class AccountDeactivated(ApiError):
    code = 401
    kind = 'AccountDeactivated'
    description = 'Account is deactivated. Please contact administrator.'


class AccountLocked(ApiError):
    code = 401
    kind = 'AccountLocked'
    description = 'Account is temporarily locked due to too many failed login attempts. Please try again later.'


class Unauthenticated(ApiError):
    code = 401
    kind = 'Unauthenticated'
    description = 'Not authorized to access this route'


class InvalidToken(ApiError):
    code = 401
    kind = 'InvalidToken'
    description = 'Not authorized to access this route'


class SessionInvalid(ApiError):
    code = 401
    kind = 'SessionInvalid'
    description = 'No active user found for this token'


class RoleMissing(ApiError):
    code = 401
    kind = 'RoleMissing'
    description = 'User role not found'


class RoleNotFound(ApiError):
    code = 401
    kind = 'RoleNotFound'
    description = 'User role could not be resolved'


# --- 403 / 404 ---
class Forbidden(ApiError):
    code = 403
    kind = 'Forbidden'
    description = 'You do not have access to this resource'


class NotFound(ApiError):
    code = 404
    kind = 'NotFound'
    description = 'Resource not found'


# --- 500 ---
class StoreError(ApiError):
    code = 500
    kind = 'StoreError'
    description = 'Server Error'


_UNIQUE_PATTERNS = (
    re.compile(r'UNIQUE constraint failed: \w+\.(\w+)'),  # sqlite
    re.compile(r'Key \((\w+)\)=.* already exists'),  # postgres
    re.compile(r"Duplicate entry .* for key '(?:\w+\.)?(?:ix_\w+?_)?(\w+)'"),  # mysql
)


def duplicate_key_from_integrity(exc: BaseException) -> Optional[DuplicateKey]:
    """Translate a unique-constraint IntegrityError into DuplicateKey, else None."""
    if not isinstance(exc, IntegrityError):
        return None
    text = str(exc.orig) if exc.orig is not None else str(exc)
    for pattern in _UNIQUE_PATTERNS:
        m = pattern.search(text)
        if m:
            return DuplicateKey(m.group(1))
    return None


__all__ = [
    'ApiError', 'ValidationError', 'DuplicateKey', 'InvalidReference', 'Conflict',
    'InvalidCredentials', 'AccountDeactivated', 'AccountLocked', 'Unauthenticated',
    'InvalidToken', 'SessionInvalid', 'RoleMissing', 'RoleNotFound', 'Forbidden',
    'NotFound', 'StoreError', 'duplicate_key_from_integrity',
]
