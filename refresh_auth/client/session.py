"""
Client session that keeps the access token in memory and renews it once.

:class:`AuthSession` wraps an :class:`httpx.AsyncClient`. The access token
lives only on the session object; the refresh token is an HttpOnly cookie
that the client's cookie jar sends to the refresh route and that this code
never reads.

When a request comes back 401, the session renews the access token and
replays the request once with the new token. If many requests fail at the
same time, only the first one calls the refresh route. The rest wait on a
future each, in a queue, and are released in the order they joined when
that refresh finishes. If the refresh fails, every waiter gets the same
:class:`.RefreshCycleFailed` and the session forgets its token and
principal.

.. code-block:: python

   async with AuthSession(base_url='https://auth.example.org') as session:
       await session.login('jane@example.com', 'pass123')
       response = await session.get('/me')

"""

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Optional

import httpx

from ..domain import Principal, TokenResponse
from ..exceptions import InvalidCredentials, RefreshCycleFailed

logger = logging.getLogger(__name__)


class AuthSession:
    """
    Holds one client session's access token and coordinates its renewal.

    Parameters
    ----------
    base_url : str
        Root of the auth API. Ignored when ``client`` is given.
    client : :class:`httpx.AsyncClient`
        Client to send requests with; its cookie jar carries the refresh
        cookie. Created if not given, and then closed by :meth:`aclose`.
    timeout : float
        Seconds before a request times out. A timed-out refresh is a failed
        refresh.

    """

    def __init__(self, base_url: str = '', client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 10.0, login_path: str = '/login',
                 logout_path: str = '/logout',
                 refresh_path: str = '/refresh-token') -> None:
        self._owns_client = client is None
        self.client = client if client is not None else \
            httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.login_path = login_path
        self.logout_path = logout_path
        self.refresh_path = refresh_path

        self.access_token: Optional[str] = None
        self.principal: Optional[Principal] = None

        # Only the task that sets this flag clears it or writes access_token.
        self._refreshing = False
        self._pending: Deque[asyncio.Future] = deque()

    async def __aenter__(self) -> 'AuthSession':
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    @property
    def refreshing(self) -> bool:
        """True while a refresh cycle is in flight."""
        return self._refreshing

    @property
    def pending(self) -> int:
        """Number of requests waiting on the current refresh cycle."""
        return len(self._pending)

    async def login(self, email: str, password: str) -> Principal:
        """
        Log in and keep the returned access token.

        The refresh cookie set by the server lands in the client's cookie jar.

        Raises
        ------
        :class:`.InvalidCredentials`
            The server rejected the credential.

        """
        response = await self.client.post(self.login_path,
                                          json={'email': email, 'password': password})
        if response.status_code == 401:
            raise InvalidCredentials()
        response.raise_for_status()
        body = TokenResponse.model_validate(response.json())
        self.access_token = body.access_token
        self.principal = body.user
        logger.info('Logged in as user %s', body.user.id)
        return body.user

    async def logout(self) -> None:
        """Clear the refresh cookie on the server and forget the token."""
        try:
            response = await self.client.post(self.logout_path)
            response.raise_for_status()
        finally:
            self._end_session()
        logger.info('Logged out')

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request with the access token, renewing it once on a 401.

        Responses other than 401 are returned as they are, errors included.
        A request is replayed at most once: if the replay is also rejected,
        its 401 response is returned.

        Raises
        ------
        :class:`.RefreshCycleFailed`
            The request was rejected and the token could not be renewed.

        """
        sent_with = self.access_token
        response = await self._send(method, url, sent_with, **kwargs)
        if response.status_code != 401:
            return response

        if self.access_token and self.access_token != sent_with:
            # Renewed while this request was in flight.
            logger.debug('%s %s was rejected; replaying with the renewed token',
                         method, url)
            token = self.access_token
        else:
            logger.debug('%s %s was rejected; renewing access token', method, url)
            token = await self._renewed_token()
        return await self._send(method, url, token, **kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request('GET', url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request('POST', url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request('PUT', url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request('PATCH', url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request('DELETE', url, **kwargs)

    async def _send(self, method: str, url: str, token: Optional[str],
                    **kwargs: Any) -> httpx.Response:
        headers = dict(kwargs.pop('headers', None) or {})
        if token:
            headers['Authorization'] = f'Bearer {token}'
        return await self.client.request(method, url, headers=headers, **kwargs)

    async def _renewed_token(self) -> str:
        """Join the refresh in flight, or start one."""
        if self._refreshing:
            waiter = asyncio.get_running_loop().create_future()
            self._pending.append(waiter)
            logger.debug('Refresh in flight; %d request(s) waiting', len(self._pending))
            return await waiter

        self._refreshing = True
        logger.info('Refreshing access token')
        try:
            token = await self._fetch_access_token()
        except asyncio.CancelledError:
            self._release(failure=RefreshCycleFailed('Refresh was cancelled'))
            raise
        except Exception as e:
            failure = RefreshCycleFailed(cause=e)
            logger.warning('Refresh failed (%s); releasing %d waiting request(s)',
                           type(e).__name__, len(self._pending))
            self._end_session()
            self._release(failure=failure)
            raise failure from e
        finally:
            self._refreshing = False

        logger.info('Access token renewed')
        # Let the queued requests go before the one that started the refresh.
        await asyncio.sleep(0)
        return token

    async def _fetch_access_token(self) -> str:
        """Call the refresh route directly, outside of :meth:`request`."""
        response = await self.client.get(self.refresh_path)
        response.raise_for_status()
        body = TokenResponse.model_validate(response.json())
        self.access_token = body.access_token
        self.principal = body.user
        self._release(token=body.access_token)
        return body.access_token

    def _release(self, token: Optional[str] = None,
                 failure: Optional[RefreshCycleFailed] = None) -> None:
        """Resolve every waiting request, oldest first, and empty the queue."""
        while self._pending:
            waiter = self._pending.popleft()
            if waiter.done():
                continue
            if failure is not None:
                waiter.set_exception(failure)
            else:
                waiter.set_result(token)

    def _end_session(self) -> None:
        self.access_token = None
        self.principal = None
