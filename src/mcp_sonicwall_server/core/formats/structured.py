"""Structured (JSON) record parser with per-dialect field mapping tables."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..models import CanonicalEvent, Dialect
from ..normalize import (
    first_present,
    normalize_action,
    normalize_category,
    normalize_protocol,
    normalize_severity,
    parse_duration,
    parse_port,
    parse_timestamp,
)
from .base import build_event


@dataclass(frozen=True, slots=True)
class FieldMap:
    """Source keys (in lookup order) for each canonical field."""

    id: tuple[str, ...] = ("id", "log_id")
    timestamp: tuple[str, ...] = ("timestamp", "time", "@timestamp")
    severity: tuple[str, ...] = ("severity", "priority", "pri")
    category: tuple[str, ...] = ("category", "log_type")
    action: tuple[str, ...] = ("action", "disposition")
    source_address: tuple[str, ...] = ("source_ip", "src_ip", "srcIP")
    source_port: tuple[str, ...] = ("source_port", "src_port", "srcPort")
    dest_address: tuple[str, ...] = ("dest_ip", "dst_ip", "destIP")
    dest_port: tuple[str, ...] = ("dest_port", "dst_port", "destPort")
    protocol: tuple[str, ...] = ("protocol", "proto")
    rule: tuple[str, ...] = ("rule", "rule_name", "policy")
    message: tuple[str, ...] = ("message", "description", "event_description")
    cloud_id: tuple[str, ...] = ()
    tenant_id: tuple[str, ...] = ()
    file_hash: tuple[str, ...] = ()
    threat_name: tuple[str, ...] = ()
    analysis_duration: tuple[str, ...] = ()


V7_FIELDS = FieldMap()

V8_FIELDS = FieldMap(
    id=("id", "log_id", "event_id"),
    source_address=("source_ip", "src_ip", "srcIP", "src_addr"),
    dest_address=("dest_ip", "dst_ip", "destIP", "dst_addr"),
    cloud_id=("cloud_id", "cloudId"),
    tenant_id=("tenant_id", "tenantId"),
    file_hash=("file_hash", "fileHash", "sha256"),
    threat_name=("threat_name", "threatName"),
    analysis_duration=("analysis_time", "analysis_duration"),
)

_FIELD_MAPS: Mapping[Dialect, FieldMap] = {Dialect.V7: V7_FIELDS, Dialect.V8: V8_FIELDS}


def fields_for(dialect: Dialect) -> FieldMap:
    return _FIELD_MAPS[dialect]


def compact_json(obj: Mapping[str, Any]) -> str:
    """Serialize an object unit the way it is kept in `raw`."""
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False, default=str)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True, slots=True)
class StructuredParser:
    """Parse JSON objects (API records or JSON log lines)."""

    fields: FieldMap = field(default_factory=FieldMap)
    name: str = "structured_json"

    def parse(self, line: str, received_at: datetime) -> CanonicalEvent | None:
        """Parse a line holding one JSON object."""
        s = line.strip()
        if not s.startswith("{"):
            return None
        try:
            obj = json.loads(s)
        except json.JSONDecodeError:
            return None
        if not isinstance(obj, dict):
            return None
        return self.parse_object(obj, received_at, raw=line)

    def parse_object(
        self,
        obj: Mapping[str, Any],
        received_at: datetime,
        *,
        raw: str | None = None,
    ) -> CanonicalEvent:
        """Map a structured record onto the canonical event."""
        f = self.fields

        def get(keys: tuple[str, ...]) -> Any:
            return first_present(obj, keys) if keys else None

        severity_val = get(f.severity)
        category_val = get(f.category)
        action_val = get(f.action)
        protocol_val = get(f.protocol)

        return build_event(
            raw=raw if raw is not None else compact_json(obj),
            received_at=received_at,
            event_id=get(f.id),
            timestamp=parse_timestamp(get(f.timestamp), now=received_at),
            severity=normalize_severity(severity_val) if severity_val is not None else None,
            category=normalize_category(category_val) if category_val is not None else None,
            action=normalize_action(action_val) if action_val is not None else None,
            source_address=_text(get(f.source_address)),
            source_port=parse_port(get(f.source_port)),
            dest_address=_text(get(f.dest_address)),
            dest_port=parse_port(get(f.dest_port)),
            protocol=normalize_protocol(protocol_val) if protocol_val is not None else None,
            rule=get(f.rule),
            message=_text(get(f.message)),
            cloud_id=_text(get(f.cloud_id)),
            tenant_id=_text(get(f.tenant_id)),
            file_hash=_text(get(f.file_hash)),
            threat_name=_text(get(f.threat_name)),
            analysis_duration=parse_duration(get(f.analysis_duration)),
        )
