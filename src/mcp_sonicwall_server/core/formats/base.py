"""Parser interface and the canonical event builder."""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Any, Protocol

from ..models import (
    UNKNOWN_ADDRESS,
    UNSPECIFIED_RULE,
    Action,
    CanonicalEvent,
    Category,
    Severity,
)
from ..models import Protocol as NetProtocol
from ..normalize import extract_action

UNPARSED_MESSAGE = "Unparsed entry"

SYSLOG_TS = r"(?P<ts>[A-Z][a-z]{2}\s+\d{1,2}\s+\d{2}:\d{2}:\d{2})"
ISO_TS = r"(?P<ts>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?)"

# "src=10.0.0.5:51515:X0" -> address, optional port, optional interface
ENDPOINT = r"(?P<{0}>[^\s:]+)(?::(?P<{0}_port>\d+))?(?::\S*)?"


def endpoint(name: str) -> str:
    """Regex fragment for a SonicOS 'addr[:port[:iface]]' value."""
    return ENDPOINT.format(name)


def kv_value(line: str, key: str) -> str | None:
    """Look up an optional `key=value` or `key="value"` pair anywhere in the line."""
    m = re.search(rf'\b{re.escape(key)}=(?:"(?P<q>[^"]*)"|(?P<v>[^\s"]+))', line)
    if not m:
        return None
    val = m.group("q") if m.group("q") is not None else m.group("v")
    return val or None


class EventParser(Protocol):
    """Parser interface: return a CanonicalEvent if the line matches, else None."""

    name: str

    def parse(self, line: str, received_at: datetime) -> CanonicalEvent | None:
        """Parse one raw line; `received_at` is the batch ingestion time."""
        ...


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


def build_event(
    *,
    raw: str,
    received_at: datetime,
    event_id: Any = None,
    timestamp: datetime | None = None,
    severity: Severity | None = None,
    category: Category | None = None,
    action: Action | None = None,
    source_address: str | None = None,
    dest_address: str | None = None,
    source_port: int | None = None,
    dest_port: int | None = None,
    protocol: NetProtocol | None = None,
    rule: Any = None,
    message: str | None = None,
    cloud_id: str | None = None,
    tenant_id: str | None = None,
    file_hash: str | None = None,
    threat_name: str | None = None,
    analysis_duration: int | None = None,
) -> CanonicalEvent:
    """Fill in canonical defaults for whatever a parser could extract.

    A missing action is inferred from the message and defaults to deny.
    """
    return CanonicalEvent(
        id=str(event_id) if event_id not in (None, "") else generate_id(),
        timestamp=timestamp or received_at,
        severity=severity or Severity.INFO,
        category=category or Category.SYSTEM,
        action=action or extract_action(message or ""),
        source_address=source_address or UNKNOWN_ADDRESS,
        dest_address=dest_address or UNKNOWN_ADDRESS,
        source_port=source_port,
        dest_port=dest_port,
        protocol=protocol or NetProtocol.OTHER,
        rule=str(rule) if rule not in (None, "") else UNSPECIFIED_RULE,
        message=message or UNPARSED_MESSAGE,
        raw=raw,
        cloud_id=cloud_id or None,
        tenant_id=tenant_id or None,
        file_hash=file_hash or None,
        threat_name=threat_name or None,
        analysis_duration=analysis_duration,
    )
