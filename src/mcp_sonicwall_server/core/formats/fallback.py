"""Best-effort extraction for lines no dialect pattern recognizes."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from ..models import Action, CanonicalEvent
from .base import build_event

FALLBACK_PREFIX = "Unparsed log entry: "
MESSAGE_EXCERPT = 100

_OCTET = r"(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)"
_IPV4_RE = re.compile(rf"(?<![\d.]){_OCTET}(?:\.{_OCTET}){{3}}(?![\d.]*\d)")
_ACTION_RE = re.compile(r"\b(ALLOW|DENY|DROP|RESET|BLOCK)(?:S|ED|PED)?\b", re.IGNORECASE)

# Restrictive keywords win when several appear in one line.
_ACTION_PRECEDENCE: tuple[tuple[str, Action], ...] = (
    ("deny", Action.DENY),
    ("block", Action.DENY),
    ("drop", Action.DROP),
    ("reset", Action.RESET),
    ("allow", Action.ALLOW),
)


def fallback_action(text: str) -> Action:
    found = {m.group(1).lower() for m in _ACTION_RE.finditer(text)}
    for keyword, action in _ACTION_PRECEDENCE:
        if keyword in found:
            return action
    return Action.DENY


def fallback_message(text: str) -> str:
    s = text.strip()
    excerpt = s[:MESSAGE_EXCERPT]
    if len(s) > MESSAGE_EXCERPT:
        excerpt += "..."
    return FALLBACK_PREFIX + excerpt


@dataclass(frozen=True, slots=True)
class FallbackParser:
    """Never fails: first two IPv4 addresses, an action keyword, an excerpt."""

    name: str = "fallback"

    def parse(self, line: str, received_at: datetime) -> CanonicalEvent:
        addresses = _IPV4_RE.findall(line)
        return build_event(
            raw=line,
            received_at=received_at,
            action=fallback_action(line),
            source_address=addresses[0] if addresses else None,
            dest_address=addresses[1] if len(addresses) > 1 else None,
            message=fallback_message(line),
        )
