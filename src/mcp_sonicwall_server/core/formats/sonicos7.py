"""SonicOS 7.x syslog parsers (VPN, IPS and the general structured line)."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from ..models import Action, CanonicalEvent, Category
from ..normalize import (
    category_from_code,
    normalize_action,
    normalize_protocol,
    parse_port,
    parse_timestamp,
    severity_from_priority,
)
from .base import SYSLOG_TS, build_event, endpoint, kv_value


@dataclass(frozen=True, slots=True)
class VpnParser:
    """Parse VPN tunnel/authentication lines.

    Example:
        Jan 15 10:30:00 fw01 VPN user="alice" src=203.0.113.9 dst=10.0.0.1 result=success msg="Tunnel up"
    """

    name: str = "sonicos7_vpn"

    _re = re.compile(
        rf"^{SYSLOG_TS}\s+.*?\bVPN\b"
        r'.*?\buser="(?P<user>[^"]*)"'
        rf".*?\bsrc={endpoint('src')}"
        rf".*?\bdst={endpoint('dst')}"
        r".*?\bresult=(?P<result>\w+)"
        r'.*?\bmsg="(?P<msg>[^"]*)"'
    )

    def parse(self, line: str, received_at: datetime) -> CanonicalEvent | None:
        m = self._re.match(line.strip())
        if not m:
            return None
        result = m.group("result")
        return build_event(
            raw=line,
            received_at=received_at,
            timestamp=parse_timestamp(m.group("ts"), now=received_at),
            category=Category.VPN,
            action=Action.ALLOW if result.lower() == "success" else Action.DENY,
            source_address=m.group("src"),
            source_port=parse_port(m.group("src_port")),
            dest_address=m.group("dst"),
            dest_port=parse_port(m.group("dst_port")),
            message=f"VPN {result} for user {m.group('user')}: {m.group('msg')}",
        )


@dataclass(frozen=True, slots=True)
class IpsParser:
    """Parse intrusion prevention lines; IPS hits are always dropped."""

    name: str = "sonicos7_ips"

    _re = re.compile(
        rf"^{SYSLOG_TS}\s+.*?\bIPS\b"
        r".*?\bpri=(?P<pri>\d+)"
        rf".*?\bsrc={endpoint('src')}"
        rf".*?\bdst={endpoint('dst')}"
        r'.*?\bsig=(?P<sig>[^\s"]+)'
        r'.*?\bmsg="(?P<msg>[^"]*)"'
    )

    def parse(self, line: str, received_at: datetime) -> CanonicalEvent | None:
        m = self._re.match(line.strip())
        if not m:
            return None
        return build_event(
            raw=line,
            received_at=received_at,
            timestamp=parse_timestamp(m.group("ts"), now=received_at),
            severity=severity_from_priority(int(m.group("pri"))),
            category=Category.IPS,
            action=Action.DROP,
            source_address=m.group("src"),
            source_port=parse_port(m.group("src_port")),
            dest_address=m.group("dst"),
            dest_port=parse_port(m.group("dst_port")),
            rule=kv_value(line, "rule"),
            message=f"IPS signature {m.group('sig')}: {m.group('msg')}",
        )


# id=firewall sn=C0EAE4 time="2024-01-15 10:30:00 UTC" fw=... pri=1 c=3 m="..." src=... dst=... proto=tcp/https
STRUCTURED_BODY = (
    r"\s+(?P<host>\S+)\s+id=(?P<id>\w+)\s+sn=(?P<sn>\S*)\s+"
    r'time="(?P<time>[^"]*)"'
    r".*?\bfw=(?P<fw>\S+)"
    r".*?\bpri=(?P<pri>\d+)"
    r".*?\bc=(?P<c>\d+)"
    r'.*?\bm="(?P<msg>[^"]*)"'
    rf".*?\bsrc={endpoint('src')}"
    rf".*?\bdst={endpoint('dst')}"
    r".*?\bproto=(?P<proto>[\w/]+)"
)


def structured_fields(m: re.Match[str], line: str, received_at: datetime) -> dict:
    """Shared extraction for the 7.x and 8.x structured syslog bodies."""
    ts = parse_timestamp(m.group("time"), now=received_at) or parse_timestamp(m.group("ts"), now=received_at)
    return {
        "raw": line,
        "received_at": received_at,
        "timestamp": ts,
        "severity": severity_from_priority(int(m.group("pri"))),
        "category": category_from_code(int(m.group("c"))),
        "source_address": m.group("src"),
        "source_port": parse_port(m.group("src_port")),
        "dest_address": m.group("dst"),
        "dest_port": parse_port(m.group("dst_port")),
        "protocol": normalize_protocol(m.group("proto")),
        "rule": kv_value(line, "rule"),
        "message": m.group("msg"),
    }


@dataclass(frozen=True, slots=True)
class StructuredSyslogParser:
    """Parse the general SonicOS 7.x `id=... sn=... time="..."` syslog line.

    The quoted `time` field wins over the year-less syslog header. The action
    is read from an explicit `fw_action` field when present, otherwise it is
    inferred from the message text.
    """

    name: str = "sonicos7_syslog"

    _re = re.compile(rf"^{SYSLOG_TS}{STRUCTURED_BODY}")

    def parse(self, line: str, received_at: datetime) -> CanonicalEvent | None:
        m = self._re.match(line.strip())
        if not m:
            return None
        action = kv_value(line, "fw_action")
        return build_event(
            **structured_fields(m, line, received_at),
            action=normalize_action(action) if action else None,
        )
