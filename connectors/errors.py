"""Exception types raised by the ad platform connectors.

Connectors raise these; `MetricsService` catches them and turns them into an
error envelope, so nothing here ever reaches an HTTP response as a 5xx.
"""
from typing import Optional


class ConnectorError(Exception):
    """Base class for connector failures."""


class ProviderFetchError(ConnectorError):
    """A provider call returned a non-2xx status or a body that is not JSON."""

    def __init__(self, platform: str, message: str, status_code: Optional[int] = None):
        self.platform = platform
        self.status_code = status_code
        if status_code is not None:
            message = f'{message} (HTTP {status_code})'
        super().__init__(message)


class CredentialsNotConfiguredError(ConnectorError):
    """OAuth client id/secret for a platform are missing from configuration."""

    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(f'{platform} OAuth credentials not configured')


class TokenExchangeError(ConnectorError):
    """An OAuth token endpoint refused a code or refresh token."""

    def __init__(self, platform: str, message: str):
        self.platform = platform
        super().__init__(message)
