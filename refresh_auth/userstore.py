"""Lookup of credentials and principals."""

import logging
import secrets
from typing import Iterable, Optional, Protocol, Union

from sqlalchemy import Column, Integer, MetaData, String, Table, text
from sqlalchemy.engine import Engine

from .domain import Credential, Principal
from .passwords import check_password, hash_password

log = logging.getLogger(__name__)

DEMO_USER = Principal(id=1, email='jane@example.com', name='Jane')
DEMO_SECRET = 'pass123'


class UserStore(Protocol):
    """What the auth service needs from a credential store."""

    def getuser(self, user_id: int) -> Optional[Principal]:
        """Gets a principal by user_id"""

    def authenticate(self, identifier: str, secret: str) -> Optional[Principal]:
        """Gets the principal whose credential matches exactly, or ``None``."""


class StaticUserStore:
    """Read-only credential records held in memory.

    With no arguments this holds the single demo user.
    """

    def __init__(self, records: Optional[Iterable[tuple]] = None):
        if records is None:
            records = [(Credential(identifier=DEMO_USER.email,
                                   secret=DEMO_SECRET), DEMO_USER)]
        self._by_identifier = {}
        self._by_id = {}
        for credential, principal in records:
            self._by_identifier[credential.identifier] = (credential, principal)
            self._by_id[principal.id] = principal

    def getuser(self, user_id: int) -> Optional[Principal]:
        return self._by_id.get(user_id)

    def authenticate(self, identifier: str, secret: str) -> Optional[Principal]:
        found = self._by_identifier.get(identifier)
        if not found:
            log.debug('no credential for identifier %s', identifier[:10])
            return None
        credential, principal = found
        if not secrets.compare_digest(credential.secret.encode('utf-8'),
                                      secret.encode('utf-8')):
            return None
        return principal


metadata = MetaData()

users = Table(
    'users', metadata,
    Column('user_id', Integer, primary_key=True),
    Column('email', String(255), nullable=False, unique=True),
    Column('name', String(255), nullable=False, default=''),
    Column('password_hash', String(255), nullable=False),
)


def create_tables(engine: Engine) -> None:
    metadata.create_all(bind=engine)


def add_user(engine: Engine, email: str, name: str, password: str,
             user_id: Optional[int] = None) -> Principal:
    """Insert a credential row and return its principal."""
    values = {'email': email, 'name': name,
              'password_hash': hash_password(password)}
    if user_id is not None:
        values['user_id'] = user_id
    with engine.begin() as conn:
        result = conn.execute(users.insert().values(**values))
        new_id = result.inserted_primary_key[0]
    return Principal(id=new_id, email=email, name=name)


class UserStoreDB:
    """Credential store backed by the ``users`` table.

    Rows are read on every call, there is no cache. A profile change is
    visible to the next login or refresh, and deleting a row stops any
    refresh token issued for that user from minting access tokens.
    """

    def __init__(self, engine: Union[Engine, str]):
        if isinstance(engine, str):
            from sqlalchemy import create_engine
            engine = create_engine(engine)
        self.engine = engine

    def getuser(self, user_id: int) -> Optional[Principal]:
        """Gets a principal by user_id"""
        query = """SELECT user_id, email, name FROM users
        WHERE users.user_id = :userid"""
        with self.engine.connect() as conn:
            row = conn.execute(text(query), {'userid': user_id}).mappings().first()
        if not row:
            log.debug('no user found in DB for user_id %s', user_id)
            return None
        return Principal(id=row['user_id'], email=row['email'], name=row['name'])

    def authenticate(self, identifier: str, secret: str) -> Optional[Principal]:
        query = """SELECT user_id, email, name, password_hash FROM users
        WHERE users.email = :email"""
        with self.engine.connect() as conn:
            row = conn.execute(text(query), {'email': identifier}).mappings().first()
        if not row:
            log.debug('no user found in DB for email %s', identifier[:10])
            return None
        if not check_password(secret, row['password_hash']):
            return None
        return Principal(id=row['user_id'], email=row['email'], name=row['name'])
