from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest
from conftest import (
    GARBAGE_LINE,
    NOW,
    V7_SYSLOG_LINE,
    FakeClock,
    FakeMonotonic,
    FakeTransport,
    SleepRecorder,
    ok,
    status,
)
from pydantic import ValidationError

from mcp_sonicwall_server.core.client import RetrievalClient, _decode, log_units, retry_after_seconds
from mcp_sonicwall_server.core.dialects import SONICOS7
from mcp_sonicwall_server.core.errors import (
    AuthenticationError,
    MalformedResponseError,
    UnsupportedOperationError,
    UpstreamError,
)
from mcp_sonicwall_server.core.models import Dialect, EventFilter, ThreatSeverity
from mcp_sonicwall_server.core.session import SessionManager
from mcp_sonicwall_server.core.transport import TransportResponse

V7_LOGS = "/api/sonicos/reporting/log"
V8_LOGS = "/api/sonicos/v8/reporting/log"
MINIMAL_LINES = [
    "2024-01-15T10:33:00Z fw01 DENY SRC=192.0.2.10 DST=10.0.0.9 PROTO=TCP SPT=51000 DPT=3389",
    "2024-01-15T10:34:00Z fw01 ALLOW SRC=10.0.0.9 DST=93.184.216.34 PROTO=TCP SPT=40000 DPT=443",
    "2024-01-15T10:35:00Z fw01 DENY SRC=192.0.2.10 DST=10.0.0.9 PROTO=TCP SPT=51001 DPT=22",
]

MakeClient = Callable[..., RetrievalClient]


def _today(**kwargs: object) -> EventFilter:
    return EventFilter(start_time=datetime(2024, 1, 15, tzinfo=UTC), end_time=NOW, **kwargs)  # type: ignore[arg-type]


def rate_limited(retry_after: str | None = None) -> TransportResponse:
    return TransportResponse(status=429, headers={"retry-after": retry_after} if retry_after else {})


def test_retry_after_seconds() -> None:
    assert retry_after_seconds({"retry-after": "2"}, cap=30) == 2.0
    assert retry_after_seconds({"retry-after": "120"}, cap=30) == 30.0
    assert retry_after_seconds({"retry-after": "soon"}, cap=30) == 5.0
    assert retry_after_seconds({}, cap=3) == 3.0
    assert retry_after_seconds({"retry-after": "nan"}, cap=30) == 5.0
    assert retry_after_seconds({"retry-after": "inf"}, cap=30) == 30.0


def test_log_units_shapes() -> None:
    assert log_units({"logs": ["a", {"id": 1}]}) == ["a", {"id": 1}]
    assert log_units({"log_data": "a\n\nb\n"}) == ["a", "b"]
    assert log_units({"raw": "x"}) == ["x"]
    assert log_units({"logs": []}) == []
    with pytest.raises(MalformedResponseError):
        log_units("not an object")
    with pytest.raises(MalformedResponseError):
        log_units({"unexpected": 1})


def test_decode_wraps_conversion_errors() -> None:
    assert _decode("/x", int, "7") == 7
    with pytest.raises(MalformedResponseError, match="unreadable payload"):
        _decode("/x", int, "\u00b2")


@pytest.mark.asyncio
async def test_get_events_v7(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", V7_LOGS, ok({"logs": [V7_SYSLOG_LINE, GARBAGE_LINE]}))
    client = make_client(Dialect.V7)

    result = await client.get_events(_today())

    assert not result.placeholder
    assert len(result.value) == 2
    call = transport.calls_to("GET", V7_LOGS)[0]
    assert call.params == {
        "start-time": "2024-01-15T00:00:00+00:00",
        "end-time": "2024-01-15T12:00:00+00:00",
        "count": "1000",
    }
    assert call.headers["Authorization"] == "Bearer tok-1"
    assert "X-Session-ID" not in call.headers


@pytest.mark.asyncio
async def test_get_events_v8_params_and_session_header(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", V8_LOGS, ok({"log_data": "\n".join(MINIMAL_LINES)}))
    client = make_client(Dialect.V8)

    result = await client.get_events(_today(category="firewall", limit=50_000))

    assert len(result.value) == 3
    call = transport.calls_to("GET", V8_LOGS)[0]
    assert call.params == {
        "start_time": "2024-01-15T00:00:00+00:00",
        "end_time": "2024-01-15T12:00:00+00:00",
        "limit": "10000",
        "category": "firewall",
        "format": "json",
        "include_metadata": "true",
    }
    assert call.headers["X-Session-ID"] == "sess-1"
    assert call.headers["X-API-Version"] == "v8"


@pytest.mark.asyncio
async def test_get_events_applies_local_filters(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", V7_LOGS, ok({"logs": MINIMAL_LINES}))
    client = make_client()

    result = await client.get_events(_today(source_address="192.0.2.10", port=22))

    assert [e.dest_port for e in result.value] == [22]


def test_invalid_window_rejected_before_any_call(transport: FakeTransport) -> None:
    with pytest.raises(ValidationError):
        EventFilter(start_time=NOW, end_time=NOW - timedelta(hours=1))
    assert transport.calls == []


@pytest.mark.asyncio
async def test_reauthenticates_once_on_rejected_credential(
    make_client: MakeClient,
    transport: FakeTransport,
    clock: FakeClock,
) -> None:
    transport.add("GET", V7_LOGS, ok({"logs": []}), status(401), ok({"logs": [V7_SYSLOG_LINE]}))
    client = make_client()
    await client.get_events(_today(limit=1))
    clock.advance(3600)

    result = await client.get_events(_today())

    assert not result.placeholder
    assert len(result.value) == 1
    assert len(transport.calls_to("GET", V7_LOGS)) == 3
    assert len(transport.calls_to("POST", "/api/sonicos/auth")) == 3


@pytest.mark.asyncio
async def test_second_rejection_is_fatal(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", V7_LOGS, status(401))
    client = make_client()

    with pytest.raises(AuthenticationError, match="cannot authenticate"):
        await client.get_events(_today())

    assert len(transport.calls_to("GET", V7_LOGS)) == 2
    assert len(transport.calls_to("POST", "/api/sonicos/auth")) == 2


@pytest.mark.asyncio
async def test_rate_limit_waits_once_then_retries(
    make_client: MakeClient,
    transport: FakeTransport,
    sleeper: SleepRecorder,
) -> None:
    transport.add("GET", V7_LOGS, rate_limited("2"), ok({"logs": [V7_SYSLOG_LINE]}))
    client = make_client()

    result = await client.get_events(_today())

    assert not result.placeholder
    assert sleeper.delays == [2.0]


@pytest.mark.asyncio
async def test_backoff_is_capped(make_client: MakeClient, transport: FakeTransport, sleeper: SleepRecorder) -> None:
    transport.add("GET", V7_LOGS, rate_limited("600"), ok({"logs": []}))
    await make_client(max_backoff=10.0).get_events(_today())
    assert sleeper.delays == [10.0]


@pytest.mark.asyncio
async def test_second_rate_limit_degrades_to_placeholder(
    make_client: MakeClient,
    transport: FakeTransport,
    sleeper: SleepRecorder,
) -> None:
    transport.add("GET", V7_LOGS, rate_limited())
    client = make_client()

    result = await client.get_events(_today())

    assert result.placeholder
    assert "rate limited" in (result.reason or "")
    assert sleeper.delays == [5.0]
    assert result.value
    assert all(e.placeholder and "[placeholder]" in e.message for e in result.value)


@pytest.mark.asyncio
async def test_placeholder_results_are_not_cached(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", V7_LOGS, status(500), ok({"logs": [V7_SYSLOG_LINE]}))
    client = make_client()

    first = await client.get_events(_today())
    second = await client.get_events(_today())
    third = await client.get_events(_today())

    assert first.placeholder
    assert not second.placeholder
    assert third is second
    assert len(transport.calls_to("GET", V7_LOGS)) == 2


@pytest.mark.asyncio
async def test_cache_expiry_refetches(
    make_client: MakeClient,
    transport: FakeTransport,
    monotonic: FakeMonotonic,
) -> None:
    transport.add("GET", V7_LOGS, ok({"logs": [V7_SYSLOG_LINE]}))
    client = make_client(ttl_logs=120.0)

    await client.get_events(_today())
    monotonic.advance(121)
    await client.get_events(_today())

    assert len(transport.calls_to("GET", V7_LOGS)) == 2


@pytest.mark.asyncio
async def test_placeholder_events_ignore_window_but_honor_filters(
    make_client: MakeClient,
    transport: FakeTransport,
) -> None:
    transport.add("GET", V7_LOGS, status(500))
    past = EventFilter(
        start_time=datetime(2020, 1, 1, tzinfo=UTC),
        end_time=datetime(2020, 1, 2, tzinfo=UTC),
        category="firewall",
    )

    result = await make_client().get_events(past)

    assert result.placeholder
    assert [e.id for e in result.value] == ["placeholder-log-1"]


@pytest.mark.asyncio
async def test_failure_raises_when_placeholders_disabled(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", V7_LOGS, status(502))
    client = make_client(placeholder_on_failure=False)

    with pytest.raises(UpstreamError) as exc_info:
        await client.get_events(_today())
    assert exc_info.value.status == 502


@pytest.mark.asyncio
async def test_malformed_payload_degrades(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", V7_LOGS, ok("<html>maintenance</html>"))
    result = await make_client().get_events(_today())
    assert result.placeholder
    assert "recognizable" in (result.reason or "") or "not an object" in (result.reason or "")


@pytest.mark.asyncio
async def test_empty_log_list_is_real_data(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", V7_LOGS, ok({"logs": []}))
    result = await make_client().get_events(_today())
    assert not result.placeholder
    assert result.value == []


@pytest.mark.asyncio
async def test_unconvertible_log_values_still_yield_events(make_client: MakeClient, transport: FakeTransport) -> None:
    logs = [
        {"timestamp": "2024-01-15T10:00:00Z", "dst_port": "\u00b3", "severity": float("inf")},
        '{"timestamp": "2024-01-15T10:01:00Z", "src_port": "\u00b2", "protocol": "' + "9" * 5000 + '"}',
    ]
    transport.add("GET", V7_LOGS, ok({"logs": logs}))

    result = await make_client().get_events(_today())

    assert not result.placeholder
    assert len(result.value) == 2
    assert all(e.source_port is None and e.dest_port is None for e in result.value)


class SlowTransport(FakeTransport):
    async def request(self, method: str, path: str, **kwargs: object) -> TransportResponse:
        if method == "GET":
            await asyncio.sleep(1)
        return await super().request(method, path, **kwargs)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_call_timeout_degrades(clock: FakeClock, sleeper: SleepRecorder) -> None:
    transport = SlowTransport()
    transport.add("POST", SONICOS7.endpoints.auth, ok({"token": "t"}))
    session = SessionManager(transport, username="u", password="p", profile=SONICOS7, clock=clock)
    client = RetrievalClient(transport, session, SONICOS7, clock=clock, sleep=sleeper, call_timeout=0.01)

    result = await client.get_events(_today())

    assert result.placeholder
    assert "exceeded" in (result.reason or "")


@pytest.mark.asyncio
async def test_get_threats(make_client: MakeClient, transport: FakeTransport) -> None:
    body = {
        "threats": [
            {
                "id": "t1",
                "timestamp": "2024-01-15T10:00:00Z",
                "severity": "critical",
                "type": "Trojan",
                "source_ip": "198.51.100.5",
                "dest_ip": "10.0.0.4",
                "description": "Trojan.Generic",
                "action": "quarantined",
            }
        ]
    }
    transport.add("GET", "/api/sonicos/reporting/security-services", ok(body))

    result = await make_client().get_threats()

    assert not result.placeholder
    threat = result.value[0]
    assert threat.id == "t1"
    assert threat.type.value == "malware"
    assert threat.blocked


@pytest.mark.asyncio
async def test_get_threats_tolerates_unconvertible_values(make_client: MakeClient, transport: FakeTransport) -> None:
    body = {"threats": [{"severity": "\u00b2", "timestamp": float("inf"), "source_ip": "198.51.100.5"}]}
    transport.add("GET", "/api/sonicos/reporting/security-services", ok(body))

    result = await make_client().get_threats()

    assert not result.placeholder
    (threat,) = result.value
    assert threat.severity is ThreatSeverity.LOW
    assert threat.timestamp == NOW


@pytest.mark.asyncio
async def test_get_threats_placeholder(make_client: MakeClient) -> None:
    result = await make_client().get_threats()
    assert result.placeholder
    assert len(result.value) == 2
    assert all(t.placeholder for t in result.value)


@pytest.mark.asyncio
async def test_stats_from_dashboard(make_client: MakeClient, transport: FakeTransport) -> None:
    body = {
        "total_connections": 10,
        "blocked_connections": 4,
        "allowed_connections": 6,
        "top_blocked_ips": [{"ip": "192.0.2.10", "count": 3}],
    }
    transport.add("GET", "/api/sonicos/reporting/dashboard", ok(body))

    result = await make_client().get_aggregate_stats()

    assert not result.placeholder
    assert result.value.total_connections == 10
    assert result.value.top_blocked_addresses[0].address == "192.0.2.10"


@pytest.mark.asyncio
async def test_stats_with_non_finite_counts(make_client: MakeClient, transport: FakeTransport) -> None:
    body = {
        "total_connections": float("inf"),
        "blocked_connections": float("nan"),
        "allowed_connections": 7,
        "top_blocked_ips": [{"ip": "192.0.2.10", "count": float("-inf")}],
    }
    transport.add("GET", "/api/sonicos/reporting/dashboard", ok(body))

    result = await make_client().get_aggregate_stats()

    assert not result.placeholder
    stats = result.value
    assert (stats.total_connections, stats.blocked_connections, stats.allowed_connections) == (0, 0, 7)
    assert stats.top_blocked_addresses[0].count == 0
    assert transport.calls_to("GET", "/api/sonicos/reporting/statistics") == []


@pytest.mark.asyncio
async def test_stats_fall_back_to_statistics_endpoint(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", "/api/sonicos/reporting/statistics", ok({"connection_count": 7, "denied_connections": 2}))

    result = await make_client().get_aggregate_stats()

    assert result.value.total_connections == 7
    assert result.value.blocked_connections == 2


@pytest.mark.asyncio
async def test_stats_derived_from_events(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", V7_LOGS, ok({"logs": MINIMAL_LINES}))

    result = await make_client().get_aggregate_stats()

    stats = result.value
    assert not result.placeholder
    assert (stats.total_connections, stats.blocked_connections, stats.allowed_connections) == (3, 2, 1)
    assert stats.top_blocked_addresses[0].address == "192.0.2.10"
    assert stats.top_blocked_addresses[0].count == 2


@pytest.mark.asyncio
async def test_stats_placeholder_when_everything_fails(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", V7_LOGS, status(500))
    client = make_client()

    result = await client.get_aggregate_stats()

    assert result.placeholder
    assert result.value.placeholder
    assert len(client.cache) == 0


@pytest.mark.asyncio
async def test_cloud_management_is_v8_only(make_client: MakeClient, transport: FakeTransport) -> None:
    with pytest.raises(UnsupportedOperationError, match="8.x"):
        await make_client(Dialect.V7).get_cloud_management_status()

    transport.add("GET", "/api/sonicos/v8/cloud-management", ok({"connected": True}))
    assert await make_client(Dialect.V8).get_cloud_management_status() == {"connected": True}


@pytest.mark.asyncio
async def test_atp_status_paths(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", "/api/sonicos/v8/security-services/capture-atp", ok({"enabled": True}))
    assert await make_client(Dialect.V8).get_atp_status() == {"enabled": True}


@pytest.mark.asyncio
async def test_connectivity_success(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", "/api/sonicos/reporting/system-info", ok({"firmware_version": "SonicOS 7.0.1"}))

    out = await make_client().test_connectivity()

    assert out == {
        "success": True,
        "message": "Successfully connected to SonicWall device",
        "version": "SonicOS 7.0.1",
    }


@pytest.mark.asyncio
async def test_connectivity_failure_never_raises(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("POST", "/api/sonicos/auth", status(401))
    out = await make_client(authenticate=False).test_connectivity()
    assert out["success"] is False
    assert out["message"].startswith("Connection failed:")


@pytest.mark.asyncio
async def test_aclose_logs_out(make_client: MakeClient, transport: FakeTransport) -> None:
    transport.add("GET", V7_LOGS, ok({"logs": []}))
    transport.add("DELETE", "/api/sonicos/auth", ok())
    client = make_client()
    await client.get_events(_today())

    await client.aclose()

    assert len(transport.calls_to("DELETE", "/api/sonicos/auth")) == 1
