import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from ..domain import Principal
from ..exceptions import AuthError
from ..services import AuthService

log = logging.getLogger(__name__)


def unauthorized(error: AuthError) -> HTTPException:
    """The HTTP form of an auth failure. Only the generic reason is sent."""
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                         detail=error.reason,
                         headers={'WWW-Authenticate': 'Bearer'})


def get_auth_service(request: Request) -> AuthService:
    """Gets the :class:`.AuthService` configured on the app."""
    return request.app.extra['AUTH_SERVICE']


async def jwt_header(Authorization: Optional[str] = Header(None)) -> Optional[str]:
    """Gets the token from an ``Authorization: Bearer`` header."""
    if not Authorization:
        return None

    parts = Authorization.split()
    if len(parts) != 2:
        log.debug('Authorization header Failed, not 2 parts')
        return None
    if parts[0].lower() != 'bearer':
        log.debug('Authorization header Failed, lacked bearer')
        return None
    return parts[1]


class AuthorizedPrincipal:
    """Dependency that admits a request only with a valid access token.

    Use it on any route that needs an authenticated caller::

        @router.get('/me')
        async def me(principal: Principal = Depends(require_auth)):
            ...

    The decoded :class:`.Principal` is returned to the route and also set
    as ``request.state.principal``. Every failure, missing token included,
    is a 401 so that clients have one signal to renew on.

    If ``service`` is not given, the one configured on the app is used.
    """

    def __init__(self, service: Optional[AuthService] = None):
        self.service = service

    async def __call__(self, request: Request,
                       token: Optional[str] = Depends(jwt_header)) -> Principal:
        service = self.service or get_auth_service(request)
        try:
            principal = service.verify_access(token)
        except AuthError as ex:
            log.debug('Failed: %s', ex.reason)
            raise unauthorized(ex) from ex
        request.state.principal = principal
        return principal


require_auth = AuthorizedPrincipal()
