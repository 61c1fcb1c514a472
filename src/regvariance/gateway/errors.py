"""
Errors raised by the reporting API gateway.
"""

from enum import Enum
from typing import Optional

import httpx


class GatewayErrorCode(str, Enum):
    AUTH_FAILED = 'AUTH_FAILED'
    INVALID_RESPONSE = 'INVALID_RESPONSE'
    REQUEST_FAILED = 'REQUEST_FAILED'
    NETWORK_ERROR = 'NETWORK_ERROR'
    TIMEOUT = 'TIMEOUT'
    VALIDATION_ERROR = 'VALIDATION_ERROR'
    NOT_FOUND = 'NOT_FOUND'
    RATE_LIMIT = 'RATE_LIMIT'


class GatewayError(Exception):
    """Any failure talking to the reporting API."""

    def __init__(self, message: str, code: GatewayErrorCode = GatewayErrorCode.REQUEST_FAILED,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code

    def is_retryable(self) -> bool:
        """Network trouble, timeouts, rate limiting and server errors are worth retrying."""
        if self.code in (GatewayErrorCode.NETWORK_ERROR,
                         GatewayErrorCode.TIMEOUT,
                         GatewayErrorCode.RATE_LIMIT):
            return True
        return self.status_code is not None and self.status_code >= 500

    @classmethod
    def from_status(cls, status_code: int) -> 'GatewayError':
        """Map an unexpected HTTP status to an error."""
        if status_code == 401:
            return cls('Authentication failed', GatewayErrorCode.AUTH_FAILED, status_code)
        if status_code == 404:
            return cls('Resource not found', GatewayErrorCode.NOT_FOUND, status_code)
        if status_code == 429:
            return cls('Rate limit exceeded', GatewayErrorCode.RATE_LIMIT, status_code)
        return cls(f"Request failed with status {status_code}",
                   GatewayErrorCode.REQUEST_FAILED, status_code)

    @classmethod
    def from_httpx_error(cls, error: httpx.HTTPError) -> 'GatewayError':
        """Map a transport-level httpx error."""
        if isinstance(error, httpx.TimeoutException):
            return cls('Request timeout', GatewayErrorCode.TIMEOUT)
        if isinstance(error, httpx.HTTPStatusError):
            return cls.from_status(error.response.status_code)
        return cls(f"Network error: {error}", GatewayErrorCode.NETWORK_ERROR)

    def __repr__(self) -> str:
        return f"GatewayError({self.code.value}, {str(self)!r}, status={self.status_code})"
