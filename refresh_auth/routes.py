"""Login, logout, refresh and the protected profile route."""

import logging
from typing import Literal, Optional, Tuple

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from .domain import LoginRequest, Principal, TokenResponse
from .exceptions import AuthError
from .fastapi.auth import get_auth_service, require_auth, unauthorized
from .services import AuthService

logger = logging.getLogger(__name__)

router = APIRouter()


def cookie_params(request: Request) -> Tuple[str, str, Optional[str], bool,
                                             Literal['lax', 'strict', 'none']]:
    return (
        request.app.extra['REFRESH_COOKIE_NAME'],
        request.app.extra['REFRESH_COOKIE_PATH'],
        request.app.extra.get('COOKIE_DOMAIN'),
        request.app.extra.get('SECURE', True),
        request.app.extra.get('COOKIE_SAMESITE', 'strict'))


def token_response(access_token: str, principal: Principal) -> JSONResponse:
    body = TokenResponse(access_token=access_token, user=principal)
    return JSONResponse(content=body.model_dump(by_alias=True))


@router.post('/login')
def login(credentials: LoginRequest, request: Request,
          service: AuthService = Depends(get_auth_service)) -> Response:
    """Check the credential; return the access token and set the refresh cookie."""
    try:
        issued = service.login(credentials.email, credentials.password)
    except AuthError as e:
        raise unauthorized(e) from e

    cookie_name, path, domain, secure, samesite = cookie_params(request)
    max_age = int(service.refresh_codec.ttl.total_seconds())
    response = token_response(issued.access_token, issued.principal)
    response.set_cookie(cookie_name, issued.refresh_token, max_age=max_age,
                        path=path, domain=domain, secure=secure,
                        httponly=True, samesite=samesite)
    logger.info('User %s logged in', issued.principal.id)
    return response


@router.post('/logout')
async def logout(request: Request) -> Response:
    """Clear the refresh cookie. Succeeds whether or not it was present."""
    cookie_name, path, domain, secure, samesite = cookie_params(request)
    response = JSONResponse(content={'message': 'Logged out'})
    response.delete_cookie(cookie_name, path=path, domain=domain,
                           secure=secure, httponly=True, samesite=samesite)
    return response


@router.get('/refresh-token')
def refresh_token(request: Request,
                  service: AuthService = Depends(get_auth_service)) -> Response:
    """Issue a new access token from the refresh cookie.

    On failure the cookie is left as it is.
    """
    cookie_name, *_ = cookie_params(request)
    try:
        renewed = service.refresh(request.cookies.get(cookie_name))
    except AuthError as e:
        raise unauthorized(e) from e
    return token_response(renewed.access_token, renewed.principal)


@router.get('/me')
async def me(principal: Principal = Depends(require_auth)) -> dict:
    return {'me': principal.model_dump()}
