"""Aggregate connection statistics.

Reads the appliance's dashboard/statistics payloads, or derives the same
numbers from normalized events when those endpoints are unavailable.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .errors import MalformedResponseError
from .models import (
    Action,
    AddressCount,
    CanonicalEvent,
    PortCount,
    SystemStats,
    ThreatCount,
    ThreatRecord,
)
from .normalize import first_present

TOP_N = 10

_STAT_KEYS = (
    "total_connections",
    "connection_count",
    "blocked_connections",
    "denied_connections",
    "allowed_connections",
    "permitted_connections",
)

_WELL_KNOWN_PORTS: Mapping[int, str] = {
    22: "ssh",
    23: "telnet",
    25: "smtp",
    53: "dns",
    80: "http",
    123: "ntp",
    443: "https",
    445: "smb",
    3389: "rdp",
}


def service_name(port: int) -> str:
    return _WELL_KNOWN_PORTS.get(port, "unknown")


def _count(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def _list(data: Mapping[str, Any], keys: tuple[str, ...]) -> list[Mapping[str, Any]]:
    val = first_present(data, keys)
    if not isinstance(val, list):
        return []
    return [i for i in val if isinstance(i, Mapping)]


def parse_system_stats(body: Any) -> SystemStats:
    """Normalize a dashboard or statistics payload."""
    if not isinstance(body, Mapping) or not any(k in body for k in _STAT_KEYS):
        raise MalformedResponseError("statistics payload has no recognizable shape")

    def addresses(keys: tuple[str, ...]) -> tuple[AddressCount, ...]:
        return tuple(
            AddressCount(
                address=str(first_present(i, ("ip", "address")) or "unknown"),
                count=_count(first_present(i, ("count", "connections"))),
            )
            for i in _list(body, keys)
        )

    return SystemStats(
        total_connections=_count(first_present(body, ("total_connections", "connection_count"))),
        blocked_connections=_count(first_present(body, ("blocked_connections", "denied_connections"))),
        allowed_connections=_count(first_present(body, ("allowed_connections", "permitted_connections"))),
        top_blocked_addresses=addresses(("top_blocked_ips", "blocked_sources")),
        top_allowed_addresses=addresses(("top_allowed_ips", "active_sources")),
        port_summary=tuple(
            PortCount(
                port=_count(i.get("port")),
                protocol=str(i.get("protocol") or "TCP"),
                count=_count(first_present(i, ("count", "connections"))),
            )
            for i in _list(body, ("port_summary", "service_summary"))
        ),
        threat_summary=tuple(
            ThreatCount(
                type=str(first_present(i, ("type", "category")) or "unknown"),
                count=_count(first_present(i, ("count", "detections"))),
            )
            for i in _list(body, ("threat_summary", "security_events"))
        ),
    )


def is_blocked(event: CanonicalEvent) -> bool:
    return event.action is not Action.ALLOW


def top_addresses(events: Iterable[CanonicalEvent], *, limit: int = TOP_N) -> tuple[AddressCount, ...]:
    """Most frequent source addresses, ties broken by first appearance."""
    counts = Counter(e.source_address for e in events)
    return tuple(AddressCount(address=a, count=c) for a, c in counts.most_common(limit))


def port_summary(events: Iterable[CanonicalEvent], *, limit: int = TOP_N) -> tuple[PortCount, ...]:
    counts = Counter((e.dest_port, e.protocol.value) for e in events if e.dest_port is not None)
    return tuple(PortCount(port=p, protocol=proto, count=c) for (p, proto), c in counts.most_common(limit))


def threat_summary(threats: Iterable[ThreatRecord], *, limit: int = TOP_N) -> tuple[ThreatCount, ...]:
    counts = Counter(t.type.value for t in threats)
    return tuple(ThreatCount(type=t, count=c) for t, c in counts.most_common(limit))


def stats_from_events(
    events: Sequence[CanonicalEvent],
    *,
    threats: Iterable[ThreatRecord] = (),
    limit: int = TOP_N,
    placeholder: bool = False,
) -> SystemStats:
    """Derive aggregate statistics from normalized events."""
    blocked = [e for e in events if is_blocked(e)]
    allowed = [e for e in events if not is_blocked(e)]
    return SystemStats(
        total_connections=len(events),
        blocked_connections=len(blocked),
        allowed_connections=len(allowed),
        top_blocked_addresses=top_addresses(blocked, limit=limit),
        top_allowed_addresses=top_addresses(allowed, limit=limit),
        port_summary=port_summary(events, limit=limit),
        threat_summary=threat_summary(threats, limit=limit),
        placeholder=placeholder,
    )


def port_breakdown(events: Iterable[CanonicalEvent], *, limit: int = TOP_N) -> list[dict[str, Any]]:
    """Per destination port: totals, allowed/blocked split, block rate and service name."""
    rows: dict[tuple[int, str], dict[str, Any]] = {}
    for e in events:
        if e.dest_port is None:
            continue
        key = (e.dest_port, e.protocol.value)
        row = rows.setdefault(
            key,
            {"port": e.dest_port, "protocol": e.protocol.value, "count": 0, "allowed": 0, "blocked": 0},
        )
        row["count"] += 1
        row["blocked" if is_blocked(e) else "allowed"] += 1

    out = sorted(rows.values(), key=lambda r: r["count"], reverse=True)[:limit]
    for row in out:
        row["service"] = service_name(row["port"])
        row["block_rate"] = round(row["blocked"] * 100 / row["count"])
    return out
