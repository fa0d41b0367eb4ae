"""MCP tool implementations.

This module contains the *implementation* behind the exposed MCP tools.
Keep this layer thin: validate inputs, translate them into core calls, and
return JSON-serializable data structures.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict
from typing import Any

from mcp_sonicwall_server.core.client import RetrievalClient
from mcp_sonicwall_server.core.dialects import MAX_LOG_RECORDS
from mcp_sonicwall_server.core.engine import LogNormalizer
from mcp_sonicwall_server.core.log_files import normalize_log_file
from mcp_sonicwall_server.core.models import (
    Action,
    CanonicalEvent,
    Category,
    Dialect,
    EventFilter,
    Severity,
    SystemStats,
    ThreatRecord,
)
from mcp_sonicwall_server.core.stats import port_breakdown
from mcp_sonicwall_server.core.time_window import resolve_time_window

DEFAULT_LIMIT = 100
HARD_LIMIT = 1000
ALL_SEVERITIES = [s.value for s in Severity]
STATS_METRICS = (
    "top_blocked_addresses",
    "top_allowed_addresses",
    "port_summary",
    "threat_summary",
)


def _parse_enum(enum_cls: type, value: str | None, label: str) -> Any:
    if value is None or value.strip() == "" or value.strip().lower() == "all":
        return None
    try:
        return enum_cls(value.strip().lower())
    except ValueError as e:
        valid = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"Unknown {label} '{value}'. Valid values: {valid}.") from e


def _parse_severities(severities: Sequence[str] | None) -> list[Severity] | None:
    """Parse user-supplied severity names into Severity enums."""
    if not severities:
        return None
    out: list[Severity] = []
    for s in severities:
        name = s.strip().lower()
        if not name:
            continue
        try:
            out.append(Severity(name))
        except ValueError as e:
            valid = ", ".join(ALL_SEVERITIES)
            raise ValueError(
                f"Unknown severity '{s}'. Valid values: {valid}. "
                "Tip: severities are case-insensitive (e.g., 'HIGH', 'critical')."
            ) from e
    return out or None


def _resolve_limit(limit: int | None, *, hard_limit: int = HARD_LIMIT) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    if limit <= 0:
        raise ValueError("limit must be > 0")
    return min(limit, hard_limit)


def event_to_dict(event: CanonicalEvent, *, include_raw: bool) -> dict[str, Any]:
    """Convert a CanonicalEvent into a JSON-serializable dict."""
    d: dict[str, Any] = {
        "id": event.id,
        "timestamp": event.timestamp.isoformat(),
        "severity": event.severity.value,
        "category": event.category.value,
        "action": event.action.value,
        "source_address": event.source_address,
        "source_port": event.source_port,
        "dest_address": event.dest_address,
        "dest_port": event.dest_port,
        "protocol": event.protocol.value,
        "rule": event.rule,
        "message": event.message,
    }
    for key in ("cloud_id", "tenant_id", "file_hash", "threat_name", "analysis_duration"):
        val = getattr(event, key)
        if val is not None:
            d[key] = val
    if event.placeholder:
        d["placeholder"] = True
    if include_raw:
        d["raw"] = event.raw
    return d


def threat_to_dict(threat: ThreatRecord) -> dict[str, Any]:
    d = asdict(threat)
    d["timestamp"] = threat.timestamp.isoformat()
    d["severity"] = threat.severity.value
    d["type"] = threat.type.value
    return d


def stats_to_dict(stats: SystemStats) -> dict[str, Any]:
    return asdict(stats)


def _envelope(payload: dict[str, Any], *, placeholder: bool, reason: str | None) -> dict[str, Any]:
    payload["placeholder"] = placeholder
    if placeholder and reason:
        payload["placeholder_reason"] = reason
    return payload


async def get_events_impl(
    client: RetrievalClient,
    *,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
    week: str | None = None,
    month: str | None = None,
    hours_lookback: float | None = None,
    category: str | None = None,
    source_address: str | None = None,
    dest_address: str | None = None,
    port: int | None = None,
    action: str | None = None,
    severities: Sequence[str] | None = None,
    limit: int | None = None,
    include_raw: bool = False,
) -> dict[str, Any]:
    """Implementation for the `get_events` MCP tool.

    Notes
    -----
    - Time window selection precedence:
        1) date/hour/week/month selectors
        2) explicit since/until
        3) fallback to the last `hours_lookback` hours (default 24)
    - Filters are applied after normalization; the limit is hard-capped.
    """
    start, end = resolve_time_window(
        since=since,
        until=until,
        date_=date,
        hour=hour,
        week=week,
        month=month,
        hours_lookback=hours_lookback,
    )
    query = EventFilter(
        start_time=start,
        end_time=end,
        category=_parse_enum(Category, category, "category"),
        source_address=source_address or None,
        dest_address=dest_address or None,
        port=port,
        action=_parse_enum(Action, action, "action"),
        severities=_parse_severities(severities),
        limit=_resolve_limit(limit, hard_limit=MAX_LOG_RECORDS),
    )
    result = await client.get_events(query)
    events = result.value
    return _envelope(
        {
            "count": len(events),
            "window": {"since": start.isoformat(), "until": end.isoformat()},
            "events": [event_to_dict(e, include_raw=include_raw) for e in events],
        },
        placeholder=result.placeholder,
        reason=result.reason,
    )


async def get_threats_impl(
    client: RetrievalClient,
    *,
    severities: Sequence[str] | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Implementation for the `get_threats` MCP tool."""
    wanted = _parse_severities(severities)
    limit_eff = _resolve_limit(limit)
    result = await client.get_threats()
    threats = [t for t in result.value if wanted is None or t.severity.value in {s.value for s in wanted}]
    threats = threats[:limit_eff]
    return _envelope(
        {"count": len(threats), "threats": [threat_to_dict(t) for t in threats]},
        placeholder=result.placeholder,
        reason=result.reason,
    )


async def get_stats_impl(
    client: RetrievalClient,
    *,
    metric: str | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Implementation for the `get_stats` MCP tool.

    Without `metric` the whole aggregate is returned; with one of
    STATS_METRICS only that section, truncated to `limit`.
    """
    if metric is not None and metric not in STATS_METRICS:
        raise ValueError(f"Unknown metric '{metric}'. Valid values: {', '.join(STATS_METRICS)}.")
    limit_eff = _resolve_limit(limit)
    result = await client.get_aggregate_stats()
    stats = stats_to_dict(result.value)
    if metric is None:
        payload: dict[str, Any] = {"stats": stats}
    else:
        data = list(stats[metric][:limit_eff])
        payload = {"metric": metric, "count": len(data), "data": data}
    return _envelope(payload, placeholder=result.placeholder, reason=result.reason)


async def test_connectivity_impl(client: RetrievalClient) -> dict[str, Any]:
    """Implementation for the `test_connectivity` MCP tool."""
    out = await client.test_connectivity()
    out["dialect"] = client.dialect.value
    return out


def normalize_logs_impl(
    *,
    lines: Sequence[str],
    dialect: str = "7",
    include_raw: bool = True,
    include_stats: bool = False,
) -> dict[str, Any]:
    """Implementation for the `normalize_logs` MCP tool (no appliance access)."""
    if isinstance(lines, str):
        raise ValueError("lines must be a list of strings, not a single string.")
    if len(lines) > MAX_LOG_RECORDS:
        raise ValueError(f"At most {MAX_LOG_RECORDS} lines can be normalized per call.")
    normalizer = LogNormalizer(Dialect.parse(dialect))
    events = normalizer.normalize_batch(lines)
    out: dict[str, Any] = {
        "dialect": normalizer.dialect.value,
        "count": len(events),
        "events": [event_to_dict(e, include_raw=include_raw) for e in events],
    }
    if include_stats:
        out["parsing_stats"] = asdict(normalizer.parsing_stats(list(lines)))
    return out


async def normalize_log_file_impl(
    *,
    log_path: str,
    dialect: str = "7",
    severities: Sequence[str] | None = None,
    limit: int | None = None,
    include_raw: bool = False,
    include_ports: bool = False,
) -> dict[str, Any]:
    """Implementation for the `normalize_log_file` MCP tool."""
    wanted = _parse_severities(severities)
    limit_eff = _resolve_limit(limit)
    events = await normalize_log_file(log_path, Dialect.parse(dialect))
    if wanted is not None:
        events = [e for e in events if e.severity in wanted]
    out: dict[str, Any] = {
        "count": min(len(events), limit_eff),
        "total": len(events),
        "events": [event_to_dict(e, include_raw=include_raw) for e in events[:limit_eff]],
    }
    if include_ports:
        out["ports"] = port_breakdown(events)
    return out
