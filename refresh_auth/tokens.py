"""Functions for signing and verifying access and refresh tokens."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from . import exceptions
from .config import parse_ttl, require_secret

logger = logging.getLogger(__name__)

ALGORITHM = 'HS256'

ACCESS = 'access'
REFRESH = 'refresh'

RESERVED_CLAIMS = ('exp', 'iat', 'typ')


def issue(payload: Dict[str, Any], ttl: timedelta, secret: str,
          kind: str = ACCESS, now: Optional[datetime] = None) -> str:
    """
    Sign ``payload`` as a token of ``kind`` that expires ``ttl`` from ``now``.

    Parameters
    ----------
    payload : dict
        Claims to embed. Must not use the reserved claims ``exp``, ``iat`` or
        ``typ``.
    ttl : :class:`timedelta`
        Lifetime of the token.
    secret : str
        Signing key.
    kind : str
        Either ``'access'`` or ``'refresh'``; checked again on verification.
    now : :class:`datetime`
        Issuance time. Defaults to the current UTC time.

    Returns
    -------
    str
        Compact JWT.

    """
    clash = set(payload) & set(RESERVED_CLAIMS)
    if clash:
        raise ValueError(f'Payload uses reserved claims: {sorted(clash)}')
    if now is None:
        now = datetime.now(tz=timezone.utc)
    claims = dict(payload)
    claims.update({
        'typ': kind,
        'iat': int(now.timestamp()),
        'exp': int((now + ttl).timestamp()),
    })
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def verify(token: str, secret: str, kind: str = ACCESS) -> Dict[str, Any]:
    """
    Check the signature and expiry of ``token`` and return its payload.

    The reserved claims are stripped from the result.

    Raises
    ------
    :class:`.InvalidSignature`
        Wrong key, or the token was issued for another ``kind``.
    :class:`.ExpiredToken`
        Signature is fine but the token has expired.
    :class:`.MalformedToken`
        Not a JWT, or required claims are missing.

    """
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM],
                            options={'require': list(RESERVED_CLAIMS)})
    except jwt.ExpiredSignatureError as e:
        raise exceptions.ExpiredToken('Token has expired') from e
    except jwt.InvalidSignatureError as e:
        raise exceptions.InvalidSignature('Signature verification failed') from e
    except jwt.InvalidTokenError as e:
        raise exceptions.MalformedToken(f'Not a valid token: {e}') from e

    if claims.get('typ') != kind:
        raise exceptions.InvalidSignature(f'Not a {kind} token')
    return {key: value for key, value in claims.items()
            if key not in RESERVED_CLAIMS}


class TokenCodec:
    """Issues and verifies one kind of token with its own key and lifetime."""

    def __init__(self, kind: str, secret: str, ttl: Any) -> None:
        if kind not in (ACCESS, REFRESH):
            raise ValueError(f'Unknown token kind: {kind}')
        self.kind = kind
        self.secret = require_secret(f'{kind} token secret', secret)
        self.ttl = parse_ttl(ttl)

    def issue(self, payload: Dict[str, Any],
              now: Optional[datetime] = None) -> str:
        return issue(payload, self.ttl, self.secret, self.kind, now=now)

    def verify(self, token: str) -> Dict[str, Any]:
        return verify(token, self.secret, self.kind)

    def __repr__(self) -> str:
        return f'TokenCodec(kind={self.kind!r}, ttl={self.ttl!r})'
