"""Configuration for the token authentication service."""

import os
import re
from datetime import timedelta
from typing import Any, Dict, Optional

from .exceptions import ConfigurationError

ACCESS_TOKEN_SECRET = os.environ.get('ACCESS_TOKEN_SECRET')
"""Key used to sign and verify access tokens."""

REFRESH_TOKEN_SECRET = os.environ.get('REFRESH_TOKEN_SECRET')
"""Key used to sign and verify refresh tokens. Must differ from the above."""

ACCESS_TOKEN_EXPIRES = os.environ.get('ACCESS_TOKEN_EXPIRES', '15m')
"""Lifetime of an access token, e.g. ``900``, ``15m``, ``1h``."""

REFRESH_TOKEN_EXPIRES = os.environ.get('REFRESH_TOKEN_EXPIRES', '7d')
"""Lifetime of a refresh token and of the cookie that carries it."""

CLIENT_ORIGIN = os.environ.get('CLIENT_ORIGIN', 'http://localhost:5173')
"""The only cross-origin caller allowed to send credentials."""

HOST = os.environ.get('HOST', '127.0.0.1')
PORT = int(os.environ.get('PORT', '4000'))

REFRESH_COOKIE_NAME = os.environ.get('REFRESH_COOKIE_NAME', 'refreshToken')
REFRESH_COOKIE_PATH = os.environ.get('REFRESH_COOKIE_PATH', '/refresh-token')
"""The refresh cookie is only sent to this path."""

COOKIE_DOMAIN = os.environ.get('COOKIE_DOMAIN')
"""Domain attribute of the refresh cookie; unset means host-only."""

SECURE = os.environ.get('SECURE', '').lower() not in ['false', 'no']
"""Set ``SECURE=false`` to drop the Secure cookie attribute in local dev."""

COOKIE_SAMESITE = os.environ.get('COOKIE_SAMESITE', 'strict')

DATABASE_URL = os.environ.get('DATABASE_URL')
"""If set, credentials are looked up in this database."""

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

SETTINGS = (
    'ACCESS_TOKEN_SECRET', 'REFRESH_TOKEN_SECRET',
    'ACCESS_TOKEN_EXPIRES', 'REFRESH_TOKEN_EXPIRES',
    'CLIENT_ORIGIN', 'HOST', 'PORT',
    'REFRESH_COOKIE_NAME', 'REFRESH_COOKIE_PATH', 'COOKIE_DOMAIN',
    'SECURE', 'COOKIE_SAMESITE', 'DATABASE_URL', 'LOG_LEVEL',
)

_UNITS = {
    's': 'seconds',
    'm': 'minutes',
    'h': 'hours',
    'd': 'days',
    'w': 'weeks',
}
_TTL = re.compile(r'^\s*(\d+)\s*([smhdw]?)\s*$')


def settings(**overrides: Any) -> Dict[str, Any]:
    """Effective settings: module values with ``overrides`` applied."""
    unknown = set(overrides) - set(SETTINGS)
    if unknown:
        raise ConfigurationError(f'Unknown settings: {sorted(unknown)}')
    values = {key: globals()[key] for key in SETTINGS}
    values.update(overrides)
    return values


def parse_ttl(value: Any) -> timedelta:
    """
    Parse a token lifetime.

    Accepts a :class:`timedelta`, a number of seconds, or a string such as
    ``'30s'``, ``'15m'``, ``'1h'``, ``'7d'``, ``'2w'``. A bare number is
    seconds. Anything else raises :class:`.ConfigurationError`; there is no
    fallback to a default.
    """
    if isinstance(value, timedelta):
        ttl = value
    elif isinstance(value, int) and not isinstance(value, bool):
        ttl = timedelta(seconds=value)
    elif isinstance(value, str):
        match = _TTL.match(value)
        if not match:
            raise ConfigurationError(f'Malformed token lifetime: {value!r}')
        amount, unit = match.groups()
        ttl = timedelta(**{_UNITS[unit or 's']: int(amount)})
    else:
        raise ConfigurationError(f'Malformed token lifetime: {value!r}')

    if ttl <= timedelta(0):
        raise ConfigurationError(f'Token lifetime must be positive: {value!r}')
    return ttl


def require_secret(name: str, value: Optional[str]) -> str:
    """Return ``value`` or fail if the secret is unset."""
    if hasattr(value, 'get_secret_value'):
        value = value.get_secret_value()
    if not value:
        raise ConfigurationError(f'{name} needs to be set.')
    return value
