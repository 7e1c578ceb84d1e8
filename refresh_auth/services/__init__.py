"""Service layer."""

from .auth import AuthService, IssuedTokens, RenewedAccess

__all__ = ('AuthService', 'IssuedTokens', 'RenewedAccess')
