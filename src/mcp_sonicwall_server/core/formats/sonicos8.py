"""SonicOS 8.x syslog parsers (Capture ATP, ATP and the enhanced structured line)."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from ..models import Action, CanonicalEvent, Category, Severity
from ..normalize import normalize_action, normalize_severity, parse_duration, parse_port, parse_timestamp
from .base import ISO_TS, build_event, endpoint, kv_value
from .sonicos7 import STRUCTURED_BODY, structured_fields


@dataclass(frozen=True, slots=True)
class CaptureAtpParser:
    """Parse Capture ATP sandbox verdicts.

    Example:
        2024-01-15T10:30:00Z fw01 CAPTURE analysis_time=42 file_type=exe threat_name="Trojan.X"
        src=10.0.0.5 dst=198.51.100.7 disposition=malicious
    """

    name: str = "sonicos8_capture_atp"

    _re = re.compile(
        rf"^{ISO_TS}\s+.*?\bCAPTURE\b"
        r".*?\banalysis_time=(?P<duration>\d+)"
        r".*?\bfile_type=(?P<ftype>\w+)"
        r'.*?\bthreat_name="(?P<threat>[^"]*)"'
        rf".*?\bsrc={endpoint('src')}"
        rf".*?\bdst={endpoint('dst')}"
        r".*?\bdisposition=(?P<disp>\w+)"
    )

    def parse(self, line: str, received_at: datetime) -> CanonicalEvent | None:
        m = self._re.match(line.strip())
        if not m:
            return None
        disposition = m.group("disp").lower()
        threat = m.group("threat")
        return build_event(
            raw=line,
            received_at=received_at,
            timestamp=parse_timestamp(m.group("ts"), now=received_at),
            severity=Severity.CRITICAL if disposition == "malicious" else Severity.MEDIUM,
            category=Category.ANTIVIRUS,
            action=Action.ALLOW if disposition == "clean" else Action.DENY,
            source_address=m.group("src"),
            source_port=parse_port(m.group("src_port")),
            dest_address=m.group("dst"),
            dest_port=parse_port(m.group("dst_port")),
            message=f"Capture ATP analysis: {threat} ({m.group('ftype')}) - {m.group('disp')}",
            file_hash=kv_value(line, "file_hash"),
            threat_name=threat or None,
            analysis_duration=parse_duration(m.group("duration")),
            cloud_id=kv_value(line, "cloud_id"),
            tenant_id=kv_value(line, "tenant_id"),
        )


@dataclass(frozen=True, slots=True)
class AtpParser:
    """Parse Advanced Threat Protection detections."""

    name: str = "sonicos8_atp"

    _re = re.compile(
        rf"^{ISO_TS}\s+.*?\bATP\b"
        r".*?\bthreat_type=(?P<ttype>\w+)"
        r".*?\bseverity=(?P<sev>\w+)"
        rf".*?\bsrc={endpoint('src')}"
        rf".*?\bdst={endpoint('dst')}"
        r".*?\bverdict=(?P<verdict>\w+)"
        r'.*?\bmsg="(?P<msg>[^"]*)"'
    )

    _ALLOW_VERDICTS = frozenset({"allow", "clean"})

    def parse(self, line: str, received_at: datetime) -> CanonicalEvent | None:
        m = self._re.match(line.strip())
        if not m:
            return None
        verdict = m.group("verdict")
        return build_event(
            raw=line,
            received_at=received_at,
            timestamp=parse_timestamp(m.group("ts"), now=received_at),
            severity=normalize_severity(m.group("sev")),
            category=Category.ANTIVIRUS,
            action=Action.ALLOW if verdict.lower() in self._ALLOW_VERDICTS else Action.DENY,
            source_address=m.group("src"),
            source_port=parse_port(m.group("src_port")),
            dest_address=m.group("dst"),
            dest_port=parse_port(m.group("dst_port")),
            message=f"ATP {m.group('ttype')} threat: {m.group('msg')} (verdict: {verdict})",
            file_hash=kv_value(line, "file_hash"),
            cloud_id=kv_value(line, "cloud_id"),
            tenant_id=kv_value(line, "tenant_id"),
        )


@dataclass(frozen=True, slots=True)
class EnhancedSyslogParser:
    """Parse the 8.x structured line: 7.x body, ISO header, cloud/tenant ids."""

    name: str = "sonicos8_syslog"

    _re = re.compile(rf"^{ISO_TS}{STRUCTURED_BODY}")

    def parse(self, line: str, received_at: datetime) -> CanonicalEvent | None:
        m = self._re.match(line.strip())
        if not m:
            return None
        action = kv_value(line, "fw_action")
        return build_event(
            **structured_fields(m, line, received_at),
            action=normalize_action(action) if action else None,
            cloud_id=kv_value(line, "cloud_id"),
            tenant_id=kv_value(line, "tenant_id"),
        )
