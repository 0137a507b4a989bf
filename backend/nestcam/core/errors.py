"""
Error taxonomy for the Nest camera bridge.

- ConfigurationError: missing or malformed credentials. Fatal, reported once
  at startup; the bridge core does not start.
- AuthError: the remote service rejected the access token (or the token has
  expired). Aborts only the caller of the failing call.
- NetworkError: transport or HTTP failure. Always recoverable; callers log
  and continue with stale local state.
"""
from typing import Optional


class NestCamError(Exception):
    """Base class for all bridge errors."""
    pass


class ConfigurationError(NestCamError):
    """Raised when credentials or options are missing or malformed."""
    pass


class AuthError(NestCamError):
    """Raised when the remote service rejects the credential or token."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(NestCamError):
    """
    Raised on transport or HTTP failures.

    Attributes:
        status_code: HTTP status when the server answered, None when the
            request never produced a structured response (DNS, timeout,
            connection reset).
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def has_response(self) -> bool:
        """True when the remote side returned a structured (HTTP) response."""
        return self.status_code is not None
