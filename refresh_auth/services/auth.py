"""
Issuing, verifying and renewing token pairs.

The service holds no per-session state. A login signs an access token and a
refresh token from the same :class:`.Principal`; a refresh verifies the
refresh token and signs a new access token for the principal as it is in the
user store now. Nothing is recorded server-side, so logging out cannot
invalidate a refresh token that has already been copied: it stays usable
until it expires.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .. import exceptions
from ..domain import Principal
from ..tokens import TokenCodec
from ..userstore import UserStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedTokens:
    """Result of a successful login."""

    access_token: str
    refresh_token: str
    principal: Principal


@dataclass(frozen=True)
class RenewedAccess:
    """Result of a successful refresh."""

    access_token: str
    principal: Principal


class AuthService:
    """Login, refresh and access-token verification."""

    def __init__(self, access: TokenCodec, refresh: TokenCodec,
                 userstore: UserStore) -> None:
        if access.secret == refresh.secret:
            raise exceptions.ConfigurationError(
                'Access and refresh tokens must use different secrets.')
        self.access_codec = access
        self.refresh_codec = refresh
        self.userstore = userstore

    def login(self, identifier: str, secret: str) -> IssuedTokens:
        """
        Check a credential and issue a token pair.

        Raises
        ------
        :class:`.InvalidCredentials`
            Unknown identifier or wrong secret; the two are not told apart.

        """
        principal = self.userstore.authenticate(identifier, secret)
        if principal is None:
            logger.info('Login failed for %s', identifier[:10])
            raise exceptions.InvalidCredentials()

        logger.debug('Login succeeded for user %s', principal.id)
        return IssuedTokens(
            access_token=self.access_codec.issue(principal.model_dump()),
            refresh_token=self.refresh_codec.issue({'id': principal.id}),
            principal=principal,
        )

    def refresh(self, refresh_token: Optional[str]) -> RenewedAccess:
        """
        Issue a new access token from a refresh token.

        The refresh token itself is not rotated.

        Raises
        ------
        :class:`.NoRefreshToken`
            No refresh token was presented.
        :class:`.InvalidRefreshToken`
            Bad signature, expired, malformed, or the user no longer exists.

        """
        if not refresh_token:
            logger.debug('refresh() Failed, no refresh token')
            raise exceptions.NoRefreshToken()
        try:
            payload = self.refresh_codec.verify(refresh_token)
        except exceptions.TokenError as e:
            logger.info('refresh() Failed: %s: %s', type(e).__name__, e)
            raise exceptions.InvalidRefreshToken() from e

        user_id = payload.get('id')
        principal = self.userstore.getuser(user_id) if user_id is not None else None
        if principal is None:
            logger.info('refresh() Failed: user %s does not exist', user_id)
            raise exceptions.InvalidRefreshToken()

        logger.debug('refresh() issued access token for user %s', principal.id)
        return RenewedAccess(
            access_token=self.access_codec.issue(principal.model_dump()),
            principal=principal,
        )

    def verify_access(self, access_token: Optional[str]) -> Principal:
        """
        Get the principal from an access token.

        Raises
        ------
        :class:`.MissingToken`
            No token was presented.
        :class:`.InvalidOrExpiredToken`
            Verification failed for any reason.

        """
        if not access_token:
            raise exceptions.MissingToken()
        try:
            payload = self.access_codec.verify(access_token)
            return Principal(**payload)
        except exceptions.TokenError as e:
            logger.debug('verify_access() Failed: %s: %s', type(e).__name__, e)
            raise exceptions.InvalidOrExpiredToken() from e
        except (TypeError, ValueError) as e:
            logger.debug('verify_access() Failed: bad payload: %s', e)
            raise exceptions.InvalidOrExpiredToken() from e
