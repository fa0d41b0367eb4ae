"""Bearer credential lifecycle for the appliance API."""

from __future__ import annotations

import base64
import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from .dialects import DialectProfile
from .errors import AuthenticationError, UpstreamError
from .normalize import first_present, utcnow
from .transport import Transport, TransportResponse

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME = 3600
MAX_TOKEN_LIFETIME = 30 * 24 * 3600
AUTH_TIMEOUT = 10.0

_TOKEN_KEYS = ("token", "access_token", "auth_token")
_LIFETIME_KEYS = ("expires_in", "expiry")
_SESSION_ID_KEYS = ("session_id", "sessionId")

_AUTH_ERROR_MESSAGES: Mapping[str, str] = {
    "E_INVALID_LOGIN": "Invalid SonicWall credentials - check username and password",
    "E_ACCOUNT_LOCKED": "SonicWall account locked - check admin account status",
    "E_MAINTENANCE": "SonicWall is in maintenance mode",
}


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class Session:
    credential: str
    expires_at: datetime
    session_id: str | None = None


def _error_code(body: Any) -> str | None:
    if not isinstance(body, Mapping):
        return None
    err = body.get("error")
    if isinstance(err, Mapping) and err.get("code"):
        return str(err["code"])
    code = body.get("code")
    return str(code) if code else None


def _auth_failure(response: TransportResponse, dialect_label: str) -> Exception:
    """Map an auth endpoint failure onto the error taxonomy."""
    code = _error_code(response.body)
    status = response.status
    if code in _AUTH_ERROR_MESSAGES and status in (401, 403, 503):
        msg = _AUTH_ERROR_MESSAGES[code]
        if status == 503:
            return UpstreamError(msg, status=status)
        return AuthenticationError(msg)
    if status == 401:
        return AuthenticationError("Authentication failed: invalid credentials")
    if status == 403:
        return AuthenticationError("Authentication failed: API access forbidden - enable the API on the appliance")
    if status == 404:
        return UpstreamError(f"Authentication endpoint not found - verify the SonicOS {dialect_label} API is enabled", status=status)
    return UpstreamError(f"Authentication failed: HTTP {status}", status=status)


class SessionManager:
    """Acquire, track and refresh the appliance credential.

    One session at a time. A validity check that finds the credential expired,
    or a rejection reported by the retrieval layer, makes the next
    `ensure_session` authenticate again. Concurrent refreshes are allowed and
    the last one wins.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        username: str,
        password: str,
        profile: DialectProfile,
        clock: Callable[[], datetime] = utcnow,
        default_lifetime: int = DEFAULT_TOKEN_LIFETIME,
        auth_timeout: float = AUTH_TIMEOUT,
    ):
        self._transport = transport
        self._username = username
        self._password = password
        self._profile = profile
        self._clock = clock
        self._default_lifetime = default_lifetime
        self._auth_timeout = auth_timeout
        self._session: Session | None = None
        self._rejected = False

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.REJECTED if self._rejected else SessionState.UNAUTHENTICATED
        if self._clock() >= self._session.expires_at:
            return SessionState.EXPIRED
        return SessionState.AUTHENTICATED

    def is_valid(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    async def ensure_session(self) -> Session:
        """Return a valid session, authenticating when needed."""
        if self._session is not None and self.is_valid():
            return self._session
        if self._session is not None:
            logger.info("SonicWall session expired; re-authenticating")
        return await self.authenticate()

    async def authenticate(self) -> Session:
        """POST credentials to the auth endpoint and store the new session."""
        profile = self._profile
        basic = base64.b64encode(f"{self._username}:{self._password}".encode()).decode("ascii")
        response = await self._transport.request(
            "POST",
            profile.endpoints.auth,
            json={"user": self._username, "password": self._password},
            headers={
                "Authorization": f"Basic {basic}",
                "Content-Type": "application/json",
                "X-API-Version": profile.api_version,
            },
            timeout=self._auth_timeout,
        )
        if not response.ok:
            logger.warning("SonicWall authentication failed: HTTP %d", response.status)
            raise _auth_failure(response, f"{profile.dialect.value}.x")

        body = response.body if isinstance(response.body, Mapping) else {}
        token = first_present(body, _TOKEN_KEYS)
        if not token:
            raise AuthenticationError("No authentication token received from SonicWall")

        lifetime = first_present(body, _LIFETIME_KEYS)
        try:
            seconds = float(lifetime) if lifetime is not None else float(self._default_lifetime)
        except (TypeError, ValueError):
            seconds = float(self._default_lifetime)
        if not math.isfinite(seconds) or not 0 <= seconds <= MAX_TOKEN_LIFETIME:
            seconds = float(self._default_lifetime)

        session_id = None
        if profile.carries_session_id:
            sid = first_present(body, _SESSION_ID_KEYS)
            session_id = str(sid) if sid else None

        session = Session(
            credential=str(token),
            expires_at=self._clock() + timedelta(seconds=seconds),
            session_id=session_id,
        )
        self._session = session
        self._rejected = False
        logger.debug("SonicWall session valid until %s", session.expires_at.isoformat())
        return session

    def reject(self) -> None:
        """Upstream refused the credential; treat it like an expired one."""
        self._session = None
        self._rejected = True

    def auth_headers(self, session: Session) -> dict[str, str]:
        """Headers for an authenticated request with `session`."""
        headers = {
            "Authorization": f"Bearer {session.credential}",
            "X-API-Version": self._profile.api_version,
        }
        if self._profile.carries_session_id and session.session_id:
            headers["X-Session-ID"] = session.session_id
        return headers

    async def logout(self) -> None:
        """End the session upstream; local state is always cleared."""
        session = self._session
        self._session = None
        self._rejected = False
        if session is None:
            return
        try:
            response = await self._transport.request(
                "DELETE",
                self._profile.endpoints.auth,
                headers=self.auth_headers(session),
                timeout=self._auth_timeout,
            )
        except UpstreamError as e:
            logger.warning("SonicWall logout failed: %s", e)
            return
        if not response.ok:
            logger.warning("SonicWall logout failed: HTTP %d", response.status)
