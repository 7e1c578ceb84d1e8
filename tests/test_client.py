"""Tests for :class:`refresh_auth.client.AuthSession`."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from refresh_auth.client import AuthSession
from refresh_auth.domain import Principal
from refresh_auth.exceptions import InvalidCredentials, RefreshCycleFailed
from refresh_auth.main import create_app

JANE = {'id': 1, 'email': 'jane@example.com', 'name': 'Jane'}


class FakeServer:
    """Scripted API: ``/data`` wants the current token, ``/refresh-token`` mints one.

    Refresh responses are held until ``release_refresh`` is set, so tests
    can pile requests up behind an in-flight refresh.
    """

    def __init__(self, hold_refresh=False, refresh_status=200, reject_all=False):
        self.valid_token = 'token-0'
        self.refresh_calls = 0
        self.refresh_status = refresh_status
        self.refresh_error = None
        self.reject_all = reject_all
        self.requests = []
        self.bodies = []
        self.release_refresh = asyncio.Event()
        self.release_slow = asyncio.Event()
        if not hold_refresh:
            self.release_refresh.set()

    def data_requests(self):
        return [(path, params, auth) for path, params, auth in self.requests
                if path != '/refresh-token']

    async def __call__(self, request):
        auth = request.headers.get('Authorization')
        self.requests.append((request.url.path, dict(request.url.params), auth))
        if request.url.path == '/data':
            self.bodies.append(request.content)

        if request.url.path == '/login':
            return httpx.Response(200, json={'accessToken': self.valid_token,
                                             'user': JANE})
        if request.url.path == '/logout':
            return httpx.Response(200, json={'message': 'Logged out'})
        if request.url.path == '/refresh-token':
            self.refresh_calls += 1
            await self.release_refresh.wait()
            if self.refresh_error is not None:
                raise self.refresh_error
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status,
                                      json={'detail': 'Invalid refresh token'})
            self.valid_token = f'token-{self.refresh_calls}'
            return httpx.Response(200, json={'accessToken': self.valid_token,
                                             'user': JANE})
        if request.url.path == '/boom':
            return httpx.Response(500, json={'detail': 'boom'})
        if request.url.path == '/forbidden':
            return httpx.Response(403, json={'detail': 'Forbidden'})
        if request.url.path == '/slow':
            await self.release_slow.wait()

        if not self.reject_all and auth == f'Bearer {self.valid_token}':
            return httpx.Response(200, json={'ok': True, **dict(request.url.params)})
        return httpx.Response(401, json={'detail': 'Access token expired or invalid'})


def make_session(server):
    client = httpx.AsyncClient(transport=httpx.MockTransport(server),
                               base_url='https://api.test')
    return AuthSession(client=client)


async def until(predicate, timeout=2.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0)
    await asyncio.wait_for(poll(), timeout)


@pytest.mark.asyncio
async def test_attaches_token():
    server = FakeServer()
    session = make_session(server)
    await session.login('jane@example.com', 'pass123')
    assert session.principal == Principal(**JANE)

    res = await session.get('/data')
    assert res.status_code == 200
    assert server.data_requests()[-1][2] == 'Bearer token-0'
    assert server.refresh_calls == 0


@pytest.mark.asyncio
async def test_no_token_sends_no_header():
    server = FakeServer()
    server.reject_all = True
    session = make_session(server)
    await session.get('/data')
    assert server.data_requests()[0][2] is None


@pytest.mark.asyncio
async def test_keeps_caller_headers():
    server = FakeServer()
    session = make_session(server)
    session.access_token = 'token-0'
    res = await session.get('/data', headers={'X-Trace': 'abc'})
    assert res.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize('path, status', [('/boom', 500), ('/forbidden', 403)])
async def test_other_errors_pass_through(path, status):
    server = FakeServer()
    session = make_session(server)
    session.access_token = 'token-0'
    res = await session.get(path)
    assert res.status_code == status
    assert server.refresh_calls == 0


@pytest.mark.asyncio
async def test_renews_and_replays():
    server = FakeServer()
    session = make_session(server)
    session.access_token = 'stale'

    res = await session.get('/data')
    assert res.status_code == 200
    assert server.refresh_calls == 1
    assert session.access_token == 'token-1'
    assert [auth for _, _, auth in server.data_requests()] \
        == ['Bearer stale', 'Bearer token-1']


@pytest.mark.asyncio
async def test_single_flight():
    """Many concurrent 401s share one refresh; all of them are replayed."""
    server = FakeServer(hold_refresh=True)
    session = make_session(server)
    session.access_token = 'stale'
    n = 5

    tasks = [asyncio.create_task(session.get('/data', params={'n': str(i)}))
             for i in range(n)]
    await until(lambda: session.pending == n - 1)
    assert session.refreshing
    assert server.refresh_calls == 1

    server.release_refresh.set()
    responses = await asyncio.gather(*tasks)

    assert [r.status_code for r in responses] == [200] * n
    assert [r.json()['n'] for r in responses] == [str(i) for i in range(n)]
    assert server.refresh_calls == 1
    assert not session.refreshing
    assert session.pending == 0

    replays = [params['n'] for _, params, auth in server.data_requests()
               if auth == 'Bearer token-1']
    assert sorted(replays) == [str(i) for i in range(n)]
    queued = [i for i in replays if i != '0']
    assert queued == ['1', '2', '3', '4'], 'Queued requests replay in join order'


@pytest.mark.asyncio
async def test_refresh_failure_releases_everyone():
    server = FakeServer(hold_refresh=True, refresh_status=401)
    session = make_session(server)
    session.access_token = 'stale'
    session.principal = Principal(**JANE)
    n = 4

    tasks = [asyncio.create_task(session.get('/data')) for _ in range(n)]
    await until(lambda: session.pending == n - 1)
    server.release_refresh.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert all(isinstance(r, RefreshCycleFailed) for r in results)
    assert all(r is results[0] for r in results), 'One failure for the whole batch'
    assert isinstance(results[0].cause, httpx.HTTPStatusError)
    assert server.refresh_calls == 1
    assert len(server.data_requests()) == n, 'Nothing is replayed'
    assert session.access_token is None
    assert session.principal is None
    assert not session.refreshing
    assert session.pending == 0


@pytest.mark.asyncio
async def test_refresh_timeout_is_a_refresh_failure():
    server = FakeServer()
    server.refresh_error = httpx.ReadTimeout('timed out')
    session = make_session(server)
    session.access_token = 'stale'
    with pytest.raises(RefreshCycleFailed) as caught:
        await session.get('/data')
    assert isinstance(caught.value.cause, httpx.ReadTimeout)
    assert isinstance(caught.value.__cause__, httpx.ReadTimeout)


@pytest.mark.asyncio
@pytest.mark.parametrize('error', [
    RuntimeError('client closed'),
    httpx.StreamClosed(),
    httpx.InvalidURL('bad'),
])
async def test_unexpected_refresh_error_releases_waiters(error):
    server = FakeServer(hold_refresh=True)
    session = make_session(server)
    session.access_token = 'stale'

    leader = asyncio.create_task(session.get('/data'))
    await until(lambda: session.refreshing)
    follower = asyncio.create_task(session.get('/data'))
    await until(lambda: session.pending == 1)

    server.refresh_error = error
    server.release_refresh.set()
    results = await asyncio.wait_for(
        asyncio.gather(leader, follower, return_exceptions=True), 1.0)

    assert all(isinstance(r, RefreshCycleFailed) for r in results)
    assert results[0] is results[1]
    assert results[0].cause is error
    assert session.access_token is None
    assert not session.refreshing
    assert session.pending == 0


@pytest.mark.asyncio
@pytest.mark.parametrize('body, expected', [
    ({'json': {'a': 1}}, b'{"a":1}'),
    ({'content': b'raw bytes'}, b'raw bytes'),
    ({'content': 'some text'}, b'some text'),
    ({'data': {'field': 'value'}}, b'field=value'),
])
async def test_replay_resends_body(body, expected):
    server = FakeServer()
    session = make_session(server)
    session.access_token = 'stale'

    res = await session.post('/data', **body)
    assert res.status_code == 200
    assert server.refresh_calls == 1
    assert len(server.bodies) == 2
    assert server.bodies[0] == server.bodies[1]
    assert server.bodies[0].replace(b' ', b'') == expected


@pytest.mark.asyncio
async def test_late_rejection_uses_renewed_token():
    """A 401 that arrives after a finished refresh replays without another one."""
    server = FakeServer()
    session = make_session(server)
    session.access_token = 'stale'

    slow = asyncio.create_task(session.get('/slow'))
    await until(lambda: any(path == '/slow' for path, _, _ in server.requests))
    assert (await session.get('/data')).status_code == 200
    assert session.access_token == 'token-1'

    server.release_slow.set()
    res = await slow
    assert res.status_code == 200
    assert server.refresh_calls == 1
    slow_auth = [auth for path, _, auth in server.requests if path == '/slow']
    assert slow_auth == ['Bearer stale', 'Bearer token-1']


@pytest.mark.asyncio
async def test_replayed_once_only():
    """A server that rejects even fresh tokens does not cause a retry loop."""
    server = FakeServer(reject_all=True)
    session = make_session(server)
    session.access_token = 'stale'

    res = await session.get('/data')
    assert res.status_code == 401
    assert server.refresh_calls == 1
    assert len(server.data_requests()) == 2


@pytest.mark.asyncio
async def test_new_cycle_after_failure():
    server = FakeServer(refresh_status=401)
    session = make_session(server)
    session.access_token = 'stale'
    with pytest.raises(RefreshCycleFailed):
        await session.get('/data')

    server.refresh_status = 200
    res = await session.get('/data')
    assert res.status_code == 200
    assert server.refresh_calls == 2


@pytest.mark.asyncio
async def test_cancelled_refresh_releases_waiters():
    server = FakeServer(hold_refresh=True)
    session = make_session(server)
    session.access_token = 'stale'

    leader = asyncio.create_task(session.get('/data'))
    await until(lambda: session.refreshing)
    follower = asyncio.create_task(session.get('/data'))
    await until(lambda: session.pending == 1)

    leader.cancel()
    with pytest.raises(asyncio.CancelledError):
        await leader
    with pytest.raises(RefreshCycleFailed):
        await follower
    assert not session.refreshing
    assert session.pending == 0


@pytest.mark.asyncio
async def test_login_failure():
    async def handler(request):
        return httpx.Response(401, json={'detail': 'Invalid credentials'})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler),
                               base_url='https://api.test')
    async with AuthSession(client=client) as session:
        with pytest.raises(InvalidCredentials):
            await session.login('jane@example.com', 'wrong')
        assert session.access_token is None


@pytest.mark.asyncio
async def test_logout_forgets_token():
    server = FakeServer()
    session = make_session(server)
    await session.login('jane@example.com', 'pass123')
    await session.logout()
    assert session.access_token is None
    assert session.principal is None
    assert server.requests[-1][0] == '/logout'


@pytest.fixture
def live_app(settings, userstore):
    return create_app(userstore, **settings)


def live_session(app, paths):
    async def record(request):
        paths.append(request.url.path)

    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app),
                               base_url='https://testserver',
                               event_hooks={'request': [record]})
    return AuthSession(client=client)


@pytest.mark.asyncio
async def test_expired_token_renewed_against_app(live_app):
    """Expired access token + valid refresh cookie: one refresh, then success."""
    paths = []
    async with live_session(live_app, paths) as session:
        await session.login('jane@example.com', 'pass123')
        codec = live_app.extra['AUTH_SERVICE'].access_codec
        expired = codec.issue(JANE, now=datetime.now(tz=timezone.utc) - timedelta(hours=1))
        session.access_token = expired

        res = await session.get('/me')
        assert res.status_code == 200
        assert res.json() == {'me': JANE}
        assert paths.count('/refresh-token') == 1
        assert paths == ['/login', '/me', '/refresh-token', '/me']
        assert session.access_token != expired
        await session.client.aclose()


@pytest.mark.asyncio
async def test_logout_ends_session_against_app(live_app):
    paths = []
    async with live_session(live_app, paths) as session:
        await session.login('jane@example.com', 'pass123')
        await session.logout()
        with pytest.raises(RefreshCycleFailed) as caught:
            await session.get('/me')
        assert caught.value.cause.response.json() == {'detail': 'No refresh token'}
        await session.client.aclose()
