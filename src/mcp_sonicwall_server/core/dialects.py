"""Per-dialect endpoint, header and query-parameter tables."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from .models import Dialect

# Upstream rejects larger pages.
MAX_LOG_RECORDS = 10_000


@dataclass(frozen=True, slots=True)
class Endpoints:
    auth: str
    system_info: str
    system_status: str
    logs: str
    threats: str
    dashboard: str
    statistics: str
    atp: str
    cloud_management: str | None = None


@dataclass(frozen=True, slots=True)
class LogQueryParams:
    """Upstream names of the log query parameters."""

    start: str
    end: str
    category: str
    limit: str


@dataclass(frozen=True, slots=True)
class DialectProfile:
    """Everything that differs between SonicOS 7.x and 8.x on the wire."""

    dialect: Dialect
    endpoints: Endpoints
    api_version: str
    log_params: LogQueryParams
    extra_log_params: Mapping[str, str] = field(default_factory=dict)
    carries_session_id: bool = False

    def log_query(
        self,
        *,
        start: str,
        end: str,
        limit: int,
        category: str | None = None,
    ) -> dict[str, str]:
        """Translate a log query into this dialect's parameter names."""
        p = self.log_params
        query = {p.start: start, p.end: end, p.limit: str(min(limit, MAX_LOG_RECORDS))}
        if category:
            query[p.category] = category
        query.update(self.extra_log_params)
        return query


def _endpoints(base: str, *, atp: str, cloud_management: str | None = None) -> Endpoints:
    return Endpoints(
        auth=f"{base}/auth",
        system_info=f"{base}/reporting/system-info",
        system_status=f"{base}/reporting/system-status",
        logs=f"{base}/reporting/log",
        threats=f"{base}/reporting/security-services",
        dashboard=f"{base}/reporting/dashboard",
        statistics=f"{base}/reporting/statistics",
        atp=atp,
        cloud_management=cloud_management,
    )


SONICOS7 = DialectProfile(
    dialect=Dialect.V7,
    endpoints=_endpoints("/api/sonicos", atp="/api/sonicos/reporting/security-services"),
    api_version="v1",
    log_params=LogQueryParams(start="start-time", end="end-time", category="category", limit="count"),
)

SONICOS8 = DialectProfile(
    dialect=Dialect.V8,
    endpoints=_endpoints(
        "/api/sonicos/v8",
        atp="/api/sonicos/v8/security-services/capture-atp",
        cloud_management="/api/sonicos/v8/cloud-management",
    ),
    api_version="v8",
    log_params=LogQueryParams(start="start_time", end="end_time", category="category", limit="limit"),
    extra_log_params=MappingProxyType({"format": "json", "include_metadata": "true"}),
    carries_session_id=True,
)

_PROFILES: Mapping[Dialect, DialectProfile] = {Dialect.V7: SONICOS7, Dialect.V8: SONICOS8}


def profile_for(dialect: Dialect | str) -> DialectProfile:
    return _PROFILES[Dialect.parse(dialect)]
