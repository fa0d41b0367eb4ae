"""Labelled sample data served while the appliance is unreachable.

Every item carries `placeholder=True` and its raw/description text says so, so
it can never be mistaken for real telemetry.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from .models import (
    Action,
    CanonicalEvent,
    Category,
    Protocol,
    Severity,
    ThreatRecord,
    ThreatSeverity,
    ThreatType,
)

PLACEHOLDER_LABEL = "[placeholder]"


def placeholder_events(now: datetime) -> list[CanonicalEvent]:
    """Two sample events, newest first."""
    return [
        CanonicalEvent(
            id="placeholder-log-2",
            timestamp=now - timedelta(minutes=30),
            severity=Severity.MEDIUM,
            category=Category.IPS,
            action=Action.DROP,
            source_address="203.0.113.10",
            source_port=80,
            dest_address="192.168.1.50",
            dest_port=22,
            protocol=Protocol.TCP,
            rule="IPS Rule 101",
            message=f"{PLACEHOLDER_LABEL} Potential SSH brute force attack detected",
            raw=f"{PLACEHOLDER_LABEL} sample log entry 2",
            placeholder=True,
        ),
        CanonicalEvent(
            id="placeholder-log-1",
            timestamp=now - timedelta(hours=1),
            severity=Severity.HIGH,
            category=Category.FIREWALL,
            action=Action.DENY,
            source_address="192.168.1.100",
            source_port=54321,
            dest_address="8.8.8.8",
            dest_port=53,
            protocol=Protocol.UDP,
            rule="Default Deny",
            message=f"{PLACEHOLDER_LABEL} Connection blocked by firewall rule",
            raw=f"{PLACEHOLDER_LABEL} sample log entry 1",
            placeholder=True,
        ),
    ]


def placeholder_threats(now: datetime) -> list[ThreatRecord]:
    return [
        ThreatRecord(
            id="placeholder-threat-1",
            timestamp=now - timedelta(minutes=15),
            severity=ThreatSeverity.CRITICAL,
            type=ThreatType.MALWARE,
            source_address="198.51.100.5",
            dest_address="192.168.1.25",
            description=f"{PLACEHOLDER_LABEL} Trojan.Win32.Generic detected in network traffic",
            action="quarantined",
            blocked=True,
            placeholder=True,
        ),
        ThreatRecord(
            id="placeholder-threat-2",
            timestamp=now - timedelta(minutes=10),
            severity=ThreatSeverity.HIGH,
            type=ThreatType.INTRUSION,
            source_address="203.0.113.20",
            dest_address="192.168.1.10",
            description=f"{PLACEHOLDER_LABEL} SQL injection attempt detected",
            action="blocked",
            blocked=True,
            placeholder=True,
        ),
    ]
