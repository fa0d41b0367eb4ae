"""Core data models for SonicWall event normalization."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

T = TypeVar("T")

UNKNOWN_ADDRESS = "unknown"
UNSPECIFIED_RULE = "unspecified"
DEFAULT_EVENT_LIMIT = 1000


class Dialect(str, Enum):
    """SonicOS API/log generation the appliance speaks."""

    V7 = "7"
    V8 = "8"

    @classmethod
    def parse(cls, value: str | Dialect) -> Dialect:
        """Accept '7', 'v7', '7.x', 'sonicos7' and the like."""
        if isinstance(value, Dialect):
            return value
        text = str(value).strip().lower().removeprefix("sonicos").strip()
        text = text.removeprefix("v").removesuffix(".x")
        try:
            return cls(text)
        except ValueError as e:
            raise ValueError(f"Unsupported SonicOS version '{value}'. Allowed: 7, 8") from e


class Severity(str, Enum):
    """Normalized event severity, totally ordered via `rank`."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFO: 0,
}


class ThreatSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Category(str, Enum):
    FIREWALL = "firewall"
    VPN = "vpn"
    IPS = "ips"
    ANTIVIRUS = "antivirus"
    SYSTEM = "system"


class Action(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    DROP = "drop"
    RESET = "reset"


class Protocol(str, Enum):
    TCP = "TCP"
    UDP = "UDP"
    ICMP = "ICMP"
    OTHER = "OTHER"


class ThreatType(str, Enum):
    MALWARE = "malware"
    INTRUSION = "intrusion"
    BOTNET = "botnet"
    SPAM = "spam"
    SUSPICIOUS = "suspicious"


@dataclass(frozen=True, slots=True)
class CanonicalEvent:
    """Normalized firewall event produced by the parsers.

    `raw` always holds the original payload so every derived field can be
    audited against it.
    """

    id: str
    timestamp: datetime  # always tz-aware UTC
    severity: Severity
    category: Category
    action: Action
    source_address: str
    dest_address: str
    protocol: Protocol
    rule: str
    message: str
    raw: str
    source_port: int | None = None
    dest_port: int | None = None
    # SonicOS 8.x extensions
    cloud_id: str | None = None
    tenant_id: str | None = None
    file_hash: str | None = None
    threat_name: str | None = None
    analysis_duration: int | None = None
    placeholder: bool = False


@dataclass(frozen=True, slots=True)
class ThreatRecord:
    """Normalized security-service detection."""

    id: str
    timestamp: datetime
    severity: ThreatSeverity
    type: ThreatType
    source_address: str
    dest_address: str
    description: str
    action: str
    blocked: bool
    placeholder: bool = False


@dataclass(frozen=True, slots=True)
class AddressCount:
    address: str
    count: int


@dataclass(frozen=True, slots=True)
class PortCount:
    port: int
    protocol: str
    count: int


@dataclass(frozen=True, slots=True)
class ThreatCount:
    type: str
    count: int


@dataclass(frozen=True, slots=True)
class SystemStats:
    """Aggregate connection statistics for the appliance."""

    total_connections: int
    blocked_connections: int
    allowed_connections: int
    top_blocked_addresses: tuple[AddressCount, ...] = ()
    top_allowed_addresses: tuple[AddressCount, ...] = ()
    port_summary: tuple[PortCount, ...] = ()
    threat_summary: tuple[ThreatCount, ...] = ()
    placeholder: bool = False


@dataclass(frozen=True, slots=True)
class FetchResult(Generic[T]):
    """Retrieval outcome; `placeholder` marks synthetic data served during an outage."""

    value: T
    placeholder: bool = False
    reason: str | None = None


class EventFilter(BaseModel):
    """Validated event query: window, optional field filters and a limit."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    start_time: datetime
    end_time: datetime
    category: Category | None = None
    source_address: str | None = None
    dest_address: str | None = None
    port: int | None = Field(default=None, ge=0, le=65535)
    action: Action | None = None
    severities: tuple[Severity, ...] | None = None
    limit: int = Field(default=DEFAULT_EVENT_LIMIT, gt=0)

    @field_validator("start_time", "end_time")
    @classmethod
    def _as_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)

    @model_validator(mode="after")
    def _check_window(self) -> EventFilter:
        if self.end_time < self.start_time:
            raise ValueError("end_time must be >= start_time")
        return self

    def matches(self, event: CanonicalEvent, *, check_window: bool = True) -> bool:
        """Local post-filter applied after normalization."""
        if check_window and not self.start_time <= event.timestamp <= self.end_time:
            return False
        if self.category is not None and event.category is not self.category:
            return False
        if self.source_address and event.source_address != self.source_address:
            return False
        if self.dest_address and event.dest_address != self.dest_address:
            return False
        if self.port is not None and self.port not in (event.source_port, event.dest_port):
            return False
        if self.action is not None and event.action is not self.action:
            return False
        if self.severities and event.severity not in self.severities:
            return False
        return True
