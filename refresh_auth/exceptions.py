"""Exceptions raised while issuing, verifying and renewing tokens."""

from typing import Optional


class AuthError(Exception):
    """Base class for failures reported to callers as "unauthorized"."""

    reason = 'Unauthorized'
    status_code = 401

    def __init__(self, reason: str = '') -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class InvalidCredentials(AuthError):
    """Identifier or secret did not match a known credential."""

    reason = 'Invalid credentials'


class MissingToken(AuthError):
    """No bearer token was presented."""

    reason = 'Missing access token'


class InvalidOrExpiredToken(AuthError):
    """The access token failed verification, for whatever cause."""

    reason = 'Access token expired or invalid'


class NoRefreshToken(AuthError):
    """The refresh cookie was not sent."""

    reason = 'No refresh token'


class InvalidRefreshToken(AuthError):
    """The refresh token failed verification, for whatever cause."""

    reason = 'Invalid refresh token'


class RefreshCycleFailed(AuthError):
    """
    Client-side: a refresh attempt failed and the session is over.

    Every request waiting on the same refresh cycle receives the same
    instance. The underlying error is available as ``cause``. Because the
    instance is raised once in each waiting task, its ``__traceback__``
    accumulates frames from all of them; use ``cause`` for the failure itself.
    """

    reason = 'Session refresh failed'

    def __init__(self, reason: str = '', cause: Optional[Exception] = None) -> None:
        super().__init__(reason)
        self.cause = cause


class TokenError(Exception):
    """Verification failure inside the token codec."""


class InvalidSignature(TokenError):
    """Signature does not match the key, or the token is for another use."""


class ExpiredToken(TokenError):
    """The token was valid but its expiry has passed."""


class MalformedToken(TokenError):
    """The token could not be decoded or lacks required claims."""


class ConfigurationError(ValueError):
    """Settings are missing or unusable."""
