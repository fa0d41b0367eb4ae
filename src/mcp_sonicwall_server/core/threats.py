"""Threat payload normalization.

Security-service detections arrive in three shapes: a flat `threats` list,
per-service buckets under `security_services`, or intrusion counters under
`statistics`.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from .errors import MalformedResponseError
from .formats.base import generate_id
from .models import UNKNOWN_ADDRESS, ThreatRecord, ThreatSeverity, ThreatType
from .normalize import first_present, normalize_threat_severity, normalize_threat_type, parse_timestamp


def _address(obj: Mapping[str, Any], keys: tuple[str, ...]) -> str:
    val = first_present(obj, keys)
    return str(val) if val is not None else UNKNOWN_ADDRESS


def _timestamp(obj: Mapping[str, Any], keys: tuple[str, ...], now: datetime) -> datetime:
    return parse_timestamp(first_present(obj, keys), now=now) or now


def _items(container: Any, key: str) -> list[Mapping[str, Any]]:
    if not isinstance(container, Mapping):
        return []
    items = container.get(key)
    if not isinstance(items, list):
        return []
    return [i for i in items if isinstance(i, Mapping)]


def parse_threat(obj: Mapping[str, Any], *, now: datetime) -> ThreatRecord:
    """Normalize one record from a flat `threats` list."""
    action = first_present(obj, ("action", "disposition")) or "blocked"
    threat_id = first_present(obj, ("id", "threat_id"))
    return ThreatRecord(
        id=str(threat_id) if threat_id is not None else generate_id(),
        timestamp=_timestamp(obj, ("timestamp", "detection_time"), now),
        severity=normalize_threat_severity(first_present(obj, ("severity", "priority"))),
        type=normalize_threat_type(first_present(obj, ("type", "threat_type"))),
        source_address=_address(obj, ("source_ip", "src_ip")),
        dest_address=_address(obj, ("dest_ip", "dst_ip")),
        description=str(first_present(obj, ("description", "threat_description")) or "Unknown threat"),
        action=str(action),
        blocked=obj.get("blocked") is not False and str(action).lower() != "allow",
    )


def _service_threat(
    obj: Mapping[str, Any],
    *,
    now: datetime,
    threat_type: ThreatType,
    default_severity: str,
    source_keys: tuple[str, ...],
    dest_keys: tuple[str, ...],
    description_keys: tuple[str, ...],
    default_description: str,
    default_action: str,
) -> ThreatRecord:
    return ThreatRecord(
        id=generate_id(),
        timestamp=_timestamp(obj, ("timestamp",), now),
        severity=normalize_threat_severity(obj.get("severity") or default_severity),
        type=threat_type,
        source_address=_address(obj, source_keys),
        dest_address=_address(obj, dest_keys),
        description=str(first_present(obj, description_keys) or default_description),
        action=str(obj.get("action") or default_action),
        blocked=obj.get("blocked") is not False,
    )


def threats_from_security_services(services: Mapping[str, Any], *, now: datetime) -> list[ThreatRecord]:
    threats: list[ThreatRecord] = []
    for d in _items(services.get("gateway_antivirus"), "detections"):
        threats.append(
            _service_threat(
                d,
                now=now,
                threat_type=ThreatType.MALWARE,
                default_severity="high",
                source_keys=("source_ip", "client_ip"),
                dest_keys=("dest_ip", "server_ip"),
                description_keys=("virus_name", "malware_name"),
                default_description="Malware detected",
                default_action="quarantined",
            )
        )
    for e in _items(services.get("intrusion_prevention"), "events"):
        threats.append(
            _service_threat(
                e,
                now=now,
                threat_type=ThreatType.INTRUSION,
                default_severity="high",
                source_keys=("source_ip", "attacker_ip"),
                dest_keys=("dest_ip", "victim_ip"),
                description_keys=("signature", "attack_type"),
                default_description="Intrusion attempt detected",
                default_action="blocked",
            )
        )
    for d in _items(services.get("anti_spyware"), "detections"):
        threats.append(
            _service_threat(
                d,
                now=now,
                threat_type=ThreatType.SUSPICIOUS,
                default_severity="medium",
                source_keys=("source_ip",),
                dest_keys=("dest_ip",),
                description_keys=("spyware_name", "threat_name"),
                default_description="Spyware detected",
                default_action="blocked",
            )
        )
    return threats


def threats_from_statistics(stats: Mapping[str, Any], *, now: datetime) -> list[ThreatRecord]:
    return [
        ThreatRecord(
            id=generate_id(),
            timestamp=now,
            severity=ThreatSeverity.HIGH,
            type=ThreatType.INTRUSION,
            source_address=_address(a, ("source_ip",)),
            dest_address=_address(a, ("target_ip", "dest_ip")),
            description=str(a.get("signature") or "Intrusion attempt"),
            action="blocked",
            blocked=True,
        )
        for a in _items(stats, "intrusion_attempts")
    ]


def parse_threat_payload(body: Any, *, now: datetime) -> list[ThreatRecord]:
    """Normalize a threats response body; unknown shapes are malformed."""
    if isinstance(body, Mapping):
        if isinstance(body.get("threats"), list):
            return [parse_threat(t, now=now) for t in body["threats"] if isinstance(t, Mapping)]
        if isinstance(body.get("security_services"), Mapping):
            return threats_from_security_services(body["security_services"], now=now)
        if isinstance(body.get("statistics"), Mapping):
            return threats_from_statistics(body["statistics"], now=now)
    raise MalformedResponseError("threat payload has no recognizable shape")
