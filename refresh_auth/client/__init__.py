"""Client session that renews its access token on demand."""

from .session import AuthSession

__all__ = ('AuthSession',)
