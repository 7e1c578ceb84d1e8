"""Access/refresh token authentication with single-flight client renewal."""

__version__ = '0.1.0'
