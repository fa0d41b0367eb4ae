"""Retrieval client for the appliance API.

Every call goes through the session manager, retries once on a rejected
credential and once on rate limiting, and is bounded by `call_timeout`.
Unrecoverable upstream failures degrade to labelled placeholder data unless
`placeholder_on_failure` is off. Successful results are cached by query
shape; placeholder results never are.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timedelta
from typing import Any, TypeVar

from .cache import TTL_LOGS, TTL_STATS, TTL_THREATS, ResultCache, make_cache_key
from .config import Settings
from .dialects import MAX_LOG_RECORDS, DialectProfile, profile_for
from .engine import LogNormalizer
from .errors import (
    AuthenticationError,
    MalformedResponseError,
    RateLimitedError,
    UnsupportedOperationError,
    UpstreamError,
    UpstreamTimeoutError,
)
from .models import CanonicalEvent, Dialect, EventFilter, FetchResult, SystemStats, ThreatRecord
from .normalize import utcnow
from .placeholders import placeholder_events, placeholder_threats
from .session import SessionManager
from .stats import parse_system_stats, stats_from_events
from .threats import parse_threat_payload
from .transport import HttpxTransport, Transport, TransportResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_AFTER = 5.0
DEFAULT_CALL_TIMEOUT = 60.0
DEFAULT_MAX_BACKOFF = 30.0
STATS_LOOKBACK = timedelta(hours=24)


def _decode(path: str, parse: Callable[[Any], T], body: Any) -> T:
    """Apply a payload parser; conversion failures mean a malformed payload."""
    try:
        return parse(body)
    except (ValueError, TypeError, OverflowError) as e:
        raise MalformedResponseError(f"GET {path} returned an unreadable payload: {e}") from e


def retry_after_seconds(headers: Mapping[str, str], *, cap: float) -> float:
    """Seconds to wait before retrying a 429 (Retry-After, default 5, capped)."""
    raw = headers.get("retry-after")
    try:
        delay = float(raw) if raw is not None else DEFAULT_RETRY_AFTER
    except ValueError:
        delay = DEFAULT_RETRY_AFTER
    if math.isnan(delay):
        delay = DEFAULT_RETRY_AFTER
    return min(max(delay, 0.0), cap)


def log_units(body: Any) -> list[Any]:
    """Extract raw units from a log payload.

    Accepts `{"logs": [...]}`, `{"log_data": [...] | "text"}` and
    `{"raw": "text"}`; text is split into non-blank lines.
    """
    if not isinstance(body, Mapping):
        raise MalformedResponseError("log payload is not an object")
    if isinstance(body.get("logs"), list):
        return list(body["logs"])
    log_data = body.get("log_data")
    if isinstance(log_data, list):
        return list(log_data)
    if isinstance(log_data, str):
        return [line for line in log_data.splitlines() if line.strip()]
    if isinstance(body.get("raw"), str):
        return [line for line in body["raw"].splitlines() if line.strip()]
    raise MalformedResponseError("log payload has no recognizable shape")


class RetrievalClient:
    """Fetch events, threats and statistics for one SonicOS dialect."""

    def __init__(
        self,
        transport: Transport,
        session: SessionManager,
        profile: DialectProfile,
        *,
        normalizer: LogNormalizer | None = None,
        cache: ResultCache | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        call_timeout: float = DEFAULT_CALL_TIMEOUT,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
        ttl_logs: float = TTL_LOGS,
        ttl_threats: float = TTL_THREATS,
        ttl_stats: float = TTL_STATS,
        placeholder_on_failure: bool = True,
    ):
        self._transport = transport
        self._session = session
        self.profile = profile
        self._normalizer = normalizer or LogNormalizer(profile.dialect, clock=clock)
        self.cache = cache or ResultCache()
        self._clock = clock
        self._sleep = sleep
        self.call_timeout = call_timeout
        self.max_backoff = max_backoff
        self._ttl_logs = ttl_logs
        self._ttl_threats = ttl_threats
        self._ttl_stats = ttl_stats
        self.placeholder_on_failure = placeholder_on_failure

    @classmethod
    def from_settings(cls, settings: Settings, *, transport: Transport | None = None) -> RetrievalClient:
        """Wire transport, session manager and cache from configuration."""
        profile = profile_for(settings.dialect)
        transport = transport or HttpxTransport(
            settings.base_url,
            verify=settings.verify_tls,
            timeout=settings.request_timeout,
        )
        session = SessionManager(
            transport,
            username=settings.username,
            password=settings.password,
            profile=profile,
            default_lifetime=settings.token_lifetime,
        )
        return cls(
            transport,
            session,
            profile,
            cache=ResultCache(sweep_interval=settings.cache_sweep_interval),
            call_timeout=settings.call_timeout,
            max_backoff=settings.max_backoff,
            ttl_logs=settings.cache_ttl_logs,
            ttl_threats=settings.cache_ttl_threats,
            ttl_stats=settings.cache_ttl_stats,
            placeholder_on_failure=settings.placeholder_on_failure,
        )

    @property
    def dialect(self) -> Dialect:
        return self.profile.dialect

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        """Authenticated request with one re-auth retry and one rate-limit retry."""
        reauthenticated = False
        rate_limited = False
        while True:
            session = await self._session.ensure_session()
            response = await self._transport.request(
                method,
                path,
                params=params,
                headers=self._session.auth_headers(session),
            )

            if response.status == 401:
                if reauthenticated:
                    raise AuthenticationError(
                        "cannot authenticate: credential rejected again after re-authentication"
                    )
                logger.info("SonicWall rejected the session credential; re-authenticating")
                self._session.reject()
                reauthenticated = True
                continue

            if response.status == 429:
                if rate_limited:
                    raise RateLimitedError(f"{method} {path} still rate limited after retry", status=429)
                delay = retry_after_seconds(response.headers, cap=self.max_backoff)
                logger.warning("SonicWall rate limited %s %s; retrying in %.1fs", method, path, delay)
                rate_limited = True
                await self._sleep(delay)
                continue

            if not response.ok:
                raise UpstreamError(f"{method} {path} returned HTTP {response.status}", status=response.status)
            return response

    async def _bounded(self, coro: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self.call_timeout)
        except TimeoutError as e:
            raise UpstreamTimeoutError(f"call exceeded {self.call_timeout:.0f}s") from e

    def _degrade(self, operation: str, error: UpstreamError, placeholder: Callable[[], T]) -> FetchResult[T]:
        if not self.placeholder_on_failure:
            raise error
        logger.warning("SonicWall %s failed (%s); serving placeholder data", operation, error)
        return FetchResult(value=placeholder(), placeholder=True, reason=str(error))

    # --- events -----------------------------------------------------------------

    async def _fetch_events(self, query: EventFilter) -> list[CanonicalEvent]:
        limit = min(query.limit, MAX_LOG_RECORDS)
        params = self.profile.log_query(
            start=query.start_time.isoformat(),
            end=query.end_time.isoformat(),
            limit=limit,
            category=query.category.value if query.category is not None else None,
        )
        response = await self._request("GET", self.profile.endpoints.logs, params=params)
        events = self._normalizer.normalize_batch(log_units(response.body))
        return [e for e in events if query.matches(e)][:limit]

    async def get_events(self, query: EventFilter) -> FetchResult[list[CanonicalEvent]]:
        """Normalized events for `query`, newest first."""
        key = make_cache_key("events", query.model_dump(mode="json"))
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            events = await self._bounded(self._fetch_events(query))
        except UpstreamError as e:
            return self._degrade("event retrieval", e, lambda: self._placeholder_events(query))

        result = FetchResult(value=events)
        self.cache.set(key, result, self._ttl_logs)
        return result

    def _placeholder_events(self, query: EventFilter) -> list[CanonicalEvent]:
        # Sample events ignore the window so callers always see the label.
        events = placeholder_events(self._clock())
        return [e for e in events if query.matches(e, check_window=False)][: query.limit]

    # --- threats ----------------------------------------------------------------

    async def _fetch_threats(self) -> list[ThreatRecord]:
        path = self.profile.endpoints.threats
        response = await self._request("GET", path)
        now = self._clock()
        return _decode(path, lambda body: parse_threat_payload(body, now=now), response.body)

    async def get_threats(self) -> FetchResult[list[ThreatRecord]]:
        """Current security-service detections."""
        key = make_cache_key("threats")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            threats = await self._bounded(self._fetch_threats())
        except UpstreamError as e:
            return self._degrade("threat retrieval", e, lambda: placeholder_threats(self._clock()))

        result = FetchResult(value=threats)
        self.cache.set(key, result, self._ttl_threats)
        return result

    # --- statistics -------------------------------------------------------------

    async def _fetch_stats(self) -> SystemStats:
        endpoints = self.profile.endpoints
        try:
            response = await self._request("GET", endpoints.dashboard)
            return _decode(endpoints.dashboard, parse_system_stats, response.body)
        except UpstreamError as e:
            logger.info("SonicWall dashboard statistics unavailable (%s); trying statistics endpoint", e)
        response = await self._request("GET", endpoints.statistics)
        return _decode(endpoints.statistics, parse_system_stats, response.body)

    async def get_aggregate_stats(self) -> FetchResult[SystemStats]:
        """Dashboard stats, then statistics endpoint, then derived from 24h of events."""
        key = make_cache_key("stats")
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            stats = await self._bounded(self._fetch_stats())
        except UpstreamError as e:
            logger.warning("SonicWall statistics endpoints failed (%s); deriving from events", e)
            now = self._clock()
            window = EventFilter(start_time=now - STATS_LOOKBACK, end_time=now, limit=MAX_LOG_RECORDS)
            events = await self.get_events(window)
            derived = stats_from_events(events.value, placeholder=events.placeholder)
            if events.placeholder:
                return FetchResult(value=derived, placeholder=True, reason=events.reason or str(e))
            result = FetchResult(value=derived)
        else:
            result = FetchResult(value=stats)

        self.cache.set(key, result, self._ttl_stats)
        return result

    # --- system / dialect specific ---------------------------------------------

    async def _get_json(self, path: str) -> Any:
        response = await self._bounded(self._request("GET", path))
        if response.body is None:
            raise MalformedResponseError(f"GET {path} returned an empty body")
        return response.body

    async def get_system_info(self) -> Any:
        return await self._get_json(self.profile.endpoints.system_info)

    async def get_atp_status(self) -> Any:
        """Capture ATP status (8.x) or the security-services report (7.x)."""
        return await self._get_json(self.profile.endpoints.atp)

    async def get_cloud_management_status(self) -> Any:
        path = self.profile.endpoints.cloud_management
        if path is None:
            raise UnsupportedOperationError(
                f"Cloud management status is only available in SonicOS 8.x (configured: {self.dialect.value}.x)"
            )
        return await self._get_json(path)

    async def test_connectivity(self) -> dict[str, Any]:
        """Authenticate and read system info; never raises."""
        try:
            await self._bounded(self._session.authenticate())
            info = await self.get_system_info()
        except Exception as e:
            logger.warning("SonicWall connectivity check failed: %s", e)
            return {"success": False, "message": f"Connection failed: {e}"}

        version = None
        if isinstance(info, Mapping):
            version = info.get("firmware_version")
        return {
            "success": True,
            "message": "Successfully connected to SonicWall device",
            "version": version or f"SonicOS {self.dialect.value}.x",
        }

    async def logout(self) -> None:
        await self._session.logout()

    async def aclose(self) -> None:
        await self.cache.stop_sweeper()
        await self.logout()
        close = getattr(self._transport, "aclose", None)
        if close is not None:
            await close()
