from __future__ import annotations

from collections import defaultdict, deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from mcp_sonicwall_server.core.cache import ResultCache
from mcp_sonicwall_server.core.client import RetrievalClient
from mcp_sonicwall_server.core.dialects import profile_for
from mcp_sonicwall_server.core.models import Dialect
from mcp_sonicwall_server.core.session import SessionManager
from mcp_sonicwall_server.core.transport import TransportResponse

NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=UTC)

V7_SYSLOG_LINE = (
    'Jan 15 10:30:00 fw01 id=firewall sn=C0EAE4 time="2024-01-15 10:30:00 UTC" fw=203.0.113.1 '
    'pri=1 c=3 m="Suspicious payload observed" src=10.0.0.5:51515:X0 dst=198.51.100.7:443:X1 proto=tcp/https'
)
V8_CAPTURE_CLEAN_LINE = (
    "2024-01-15T10:30:00Z fw02 CAPTURE analysis_time=42 file_type=pdf "
    'threat_name="None" src=10.0.0.5 dst=198.51.100.7 disposition=clean'
)
GARBAGE_LINE = "%%% corrupted frame 10.1.2.3 -> 172.16.0.9 ??? checksum mismatch"


@dataclass
class Call:
    method: str
    path: str
    params: Mapping[str, str] | None = None
    json: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    timeout: float | None = None


class FakeTransport:
    """Scripted transport: per-route response queues, the last response repeats."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], deque[TransportResponse | Exception]] = defaultdict(deque)
        self.calls: list[Call] = []

    def add(self, method: str, path: str, *responses: TransportResponse | Exception) -> None:
        self.routes[(method, path)].extend(responses)

    def calls_to(self, method: str, path: str) -> list[Call]:
        return [c for c in self.calls if c.method == method and c.path == path]

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> TransportResponse:
        self.calls.append(Call(method, path, dict(params) if params else None, json, dict(headers or {}), timeout))
        queue = self.routes.get((method, path))
        if not queue:
            return TransportResponse(status=404, body={"error": "not found"})
        item = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item


class FakeClock:
    """Settable wall clock."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def ok(body: Any = None, **headers: str) -> TransportResponse:
    return TransportResponse(status=200, body=body, headers=headers)


def status(code: int, body: Any = None, **headers: str) -> TransportResponse:
    return TransportResponse(status=code, body=body, headers=headers)


def auth_ok(token: str = "tok-1", *, session_id: str | None = None, expires_in: int = 3600) -> TransportResponse:
    body: dict[str, Any] = {"token": token, "expires_in": expires_in}
    if session_id is not None:
        body["session_id"] = session_id
    return ok(body)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_client(
    transport: FakeTransport,
    clock: FakeClock,
    monotonic: FakeMonotonic,
    sleeper: SleepRecorder,
) -> Callable[..., RetrievalClient]:
    """Build a client for a dialect; authentication succeeds unless scripted otherwise."""

    def _make(dialect: Dialect | str = Dialect.V7, *, authenticate: bool = True, **kwargs: Any) -> RetrievalClient:
        profile = profile_for(dialect)
        if authenticate:
            sid = "sess-1" if profile.carries_session_id else None
            transport.add("POST", profile.endpoints.auth, auth_ok(session_id=sid))
        session = SessionManager(transport, username="admin", password="secret", profile=profile, clock=clock)
        return RetrievalClient(
            transport,
            session,
            profile,
            cache=ResultCache(clock=monotonic),
            clock=clock,
            sleep=sleeper,
            **kwargs,
        )

    return _make


@pytest.fixture
def write_log() -> Callable[[Path, list[str]], None]:
    def _write(path: Path, lines: list[str]) -> None:
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    return _write
