"""Minimal ALLOW/DENY traffic line parser shared by both dialects."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from ..models import Action, CanonicalEvent, Category, Severity
from ..normalize import normalize_protocol, parse_port, parse_timestamp
from .base import ISO_TS, build_event

_PAST_TENSE = {
    Action.ALLOW: "allowed",
    Action.DENY: "denied",
    Action.DROP: "dropped",
    Action.RESET: "reset",
}

_BODY = (
    r".*?\b(?P<action>ALLOW|DENY|DROP|RESET)\b"
    r".*?\bSRC=(?P<src>\d{1,3}(?:\.\d{1,3}){3})"
    r".*?\bDST=(?P<dst>\d{1,3}(?:\.\d{1,3}){3})"
    r".*?\bPROTO=(?P<proto>\w+)"
    r"(?:.*?\bSPT=(?P<spt>\d+))?"
    r"(?:.*?\bDPT=(?P<dpt>\d+))?"
)


@dataclass(frozen=True, slots=True)
class MinimalTrafficParser:
    """Parse '<ISO ts> ... DENY ... SRC=a DST=b PROTO=p [SPT=n] [DPT=n]' lines.

    With `anchored=True` (8.x) the timestamp must open the line; 7.x exports
    may carry a syslog prefix in front of it.
    """

    anchored: bool = False
    name: str = "minimal_traffic"

    _anchored_re = re.compile(rf"^{ISO_TS}\s+{_BODY}", re.IGNORECASE)
    _loose_re = re.compile(rf"{ISO_TS}\s+{_BODY}", re.IGNORECASE)

    def parse(self, line: str, received_at: datetime) -> CanonicalEvent | None:
        s = line.strip()
        m = self._anchored_re.match(s) if self.anchored else self._loose_re.search(s)
        if not m:
            return None

        action = Action(m.group("action").lower())
        src = m.group("src")
        dst = m.group("dst")
        return build_event(
            raw=line,
            received_at=received_at,
            timestamp=parse_timestamp(m.group("ts"), now=received_at),
            severity=Severity.MEDIUM if action in (Action.DENY, Action.DROP) else Severity.INFO,
            category=Category.FIREWALL,
            action=action,
            source_address=src,
            source_port=parse_port(m.group("spt")),
            dest_address=dst,
            dest_port=parse_port(m.group("dpt")),
            protocol=normalize_protocol(m.group("proto")),
            message=f"Traffic {_PAST_TENSE[action]} from {src} to {dst}",
        )
