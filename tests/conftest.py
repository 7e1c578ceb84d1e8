"""Fixtures shared by the server and client tests."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

from refresh_auth.main import create_app
from refresh_auth.services import AuthService
from refresh_auth.tokens import ACCESS, REFRESH, TokenCodec
from refresh_auth.userstore import StaticUserStore, UserStoreDB, add_user, create_tables

ACCESS_SECRET = 'access-secret-for-tests-0123456789abcdef'
REFRESH_SECRET = 'refresh-secret-for-tests-0123456789abcdef'

BASE_URL = 'https://testserver'


@pytest.fixture
def access_secret():
    return ACCESS_SECRET


@pytest.fixture
def refresh_secret():
    return REFRESH_SECRET


@pytest.fixture
def access_codec(access_secret):
    return TokenCodec(ACCESS, access_secret, timedelta(minutes=15))


@pytest.fixture
def refresh_codec(refresh_secret):
    return TokenCodec(REFRESH, refresh_secret, timedelta(days=7))


@pytest.fixture
def userstore():
    return StaticUserStore()


@pytest.fixture
def service(access_codec, refresh_codec, userstore):
    return AuthService(access_codec, refresh_codec, userstore)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'users.db'}")
    create_tables(engine)
    add_user(engine, 'jane@example.com', 'Jane', 'pass123', user_id=1)
    yield engine
    engine.dispose()


@pytest.fixture
def db_userstore(engine):
    return UserStoreDB(engine)


@pytest.fixture
def settings(access_secret, refresh_secret):
    return {
        'ACCESS_TOKEN_SECRET': access_secret,
        'REFRESH_TOKEN_SECRET': refresh_secret,
        'ACCESS_TOKEN_EXPIRES': '15m',
        'REFRESH_TOKEN_EXPIRES': '7d',
        'CLIENT_ORIGIN': 'https://app.example.org',
        'DATABASE_URL': None,
    }


@pytest.fixture
def app(settings, userstore):
    return create_app(userstore, **settings)


@pytest.fixture
def client(app):
    with TestClient(app, base_url=BASE_URL) as client:
        yield client
