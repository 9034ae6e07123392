"""Defaults for authentication & lockout policy.

Each value can be overridden through the environment (see create_app) or the
config dict passed to create_app.
"""
DEFAULT_TOKEN_HOURS = 24
DEFAULT_MAX_LOGIN_ATTEMPTS = 5
DEFAULT_LOCK_MINUTES = 120
DEFAULT_PASSWORD_MIN_LENGTH = 6
TOKEN_COOKIE_NAME = 'token'
