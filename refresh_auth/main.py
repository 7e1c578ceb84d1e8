import logging
from typing import Any, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from . import config
from .app_logging import setup_logger
from .routes import router
from .services import AuthService
from .tokens import ACCESS, REFRESH, TokenCodec
from .userstore import StaticUserStore, UserStore, UserStoreDB


def create_app(userstore: Optional[UserStore] = None, **overrides: Any) -> FastAPI:
    """
    Build the API.

    Settings come from :mod:`.config`, with ``overrides`` taking precedence.
    Missing secrets, identical secrets and malformed lifetimes raise
    :class:`.ConfigurationError` here rather than on the first request.
    """
    settings = config.settings(**overrides)
    setup_logger(settings['LOG_LEVEL'])
    logger = logging.getLogger(__name__)

    access = TokenCodec(ACCESS,
                        config.require_secret('ACCESS_TOKEN_SECRET',
                                              settings['ACCESS_TOKEN_SECRET']),
                        settings['ACCESS_TOKEN_EXPIRES'])
    refresh = TokenCodec(REFRESH,
                         config.require_secret('REFRESH_TOKEN_SECRET',
                                               settings['REFRESH_TOKEN_SECRET']),
                         settings['REFRESH_TOKEN_EXPIRES'])

    if userstore is None:
        if settings['DATABASE_URL']:
            userstore = UserStoreDB(settings['DATABASE_URL'])
        else:
            logger.warning('No DATABASE_URL; only the demo user can log in.')
            userstore = StaticUserStore()
    service = AuthService(access, refresh, userstore)

    logger.info('ACCESS_TOKEN_EXPIRES: %s', access.ttl)
    logger.info('REFRESH_TOKEN_EXPIRES: %s', refresh.ttl)
    logger.info('REFRESH_COOKIE_PATH: %s', settings['REFRESH_COOKIE_PATH'])
    if not settings['SECURE']:
        logger.warning('SECURE is off. The refresh cookie will be sent over plain HTTP. '
                       'This is for local development only.')

    app = FastAPI(
        AUTH_SERVICE=service,
        REFRESH_COOKIE_NAME=settings['REFRESH_COOKIE_NAME'],
        REFRESH_COOKIE_PATH=settings['REFRESH_COOKIE_PATH'],
        COOKIE_DOMAIN=settings['COOKIE_DOMAIN'],
        SECURE=settings['SECURE'],
        COOKIE_SAMESITE=settings['COOKIE_SAMESITE'],
    )

    if settings['CLIENT_ORIGIN']:
        logger.info('cors origin: %s', settings['CLIENT_ORIGIN'])
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[settings['CLIENT_ORIGIN']],
            allow_credentials=True,
            allow_methods=['*'],
            allow_headers=['*'],
        )

    app.include_router(router)

    @app.middleware('http')
    async def apply_response_headers(request: Request, call_next: Callable) -> Response:
        """Apply response headers to all responses.
           Prevent UI redress attacks.
        """
        response: Response = await call_next(request)
        response.headers['Content-Security-Policy'] = "frame-ancestors 'none'"
        response.headers['X-Frame-Options'] = 'DENY'
        return response

    return app
