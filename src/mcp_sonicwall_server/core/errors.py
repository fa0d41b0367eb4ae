"""Error taxonomy for the session and retrieval layer."""

from __future__ import annotations


class SonicWallError(Exception):
    """Base class for appliance-facing failures."""


class AuthenticationError(SonicWallError):
    """Credentials were refused, or refused again right after re-authentication."""


class UnsupportedOperationError(SonicWallError):
    """Operation is not available for the configured dialect."""


class UpstreamError(SonicWallError):
    """Unrecoverable upstream failure (network, HTTP status, payload)."""

    def __init__(self, message: str, *, status: int | None = None):
        self.status = status
        super().__init__(message)


class RateLimitedError(UpstreamError):
    """Upstream kept signalling rate limiting after the single retry."""


class UpstreamTimeoutError(UpstreamError):
    """Upstream did not answer within the configured bound."""


class MalformedResponseError(UpstreamError):
    """Upstream answered, but the payload has no recognizable shape."""
