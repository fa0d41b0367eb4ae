"""Timestamp and field normalization helpers.

Pure, table-driven conversions from the many encodings SonicOS uses into the
canonical enums. Every function degrades to a default instead of raising.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from .models import Action, Category, Protocol, Severity, ThreatSeverity, ThreatType

_EPOCH_MS_THRESHOLD = 10**11
_SYSLOG_TS_RE = re.compile(r"^(?P<mon>[A-Z][a-z]{2})\s+(?P<day>\d{1,2})\s+(?P<time>\d{2}:\d{2}:\d{2})$")
_TZ_SUFFIXES = (" UTC", " GMT", " Z")
_WALLCLOCK_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y/%m/%d %H:%M:%S", "%m/%d/%Y %H:%M:%S")

# syslog priority 0..7
_PRIORITY_SEVERITY: Mapping[int, Severity] = {
    0: Severity.CRITICAL,
    1: Severity.CRITICAL,
    2: Severity.CRITICAL,
    3: Severity.HIGH,
    4: Severity.HIGH,
    5: Severity.MEDIUM,
    6: Severity.MEDIUM,
    7: Severity.LOW,
}

_SEVERITY_KEYWORDS: Mapping[str, Severity] = {
    "critical": Severity.CRITICAL,
    "crit": Severity.CRITICAL,
    "emergency": Severity.CRITICAL,
    "emerg": Severity.CRITICAL,
    "alert": Severity.CRITICAL,
    "high": Severity.HIGH,
    "error": Severity.HIGH,
    "err": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "med": Severity.MEDIUM,
    "warning": Severity.MEDIUM,
    "warn": Severity.MEDIUM,
    "low": Severity.LOW,
    "notice": Severity.LOW,
}

_CATEGORY_CODES: Mapping[int, Category] = {
    1: Category.FIREWALL,
    2: Category.VPN,
    3: Category.IPS,
    4: Category.ANTIVIRUS,
    5: Category.SYSTEM,
    6: Category.SYSTEM,  # admin/management
    256: Category.FIREWALL,  # connection events
    257: Category.FIREWALL,  # rule matching
    512: Category.VPN,
    768: Category.IPS,
    1024: Category.ANTIVIRUS,
}

# (whole tokens, substrings) per category, checked in order
_CATEGORY_KEYWORDS: tuple[tuple[Category, frozenset[str], tuple[str, ...]], ...] = (
    (Category.FIREWALL, frozenset({"fw"}), ("firewall",)),
    (Category.VPN, frozenset({"vpn"}), ("vpn",)),
    (Category.IPS, frozenset({"ips", "ids"}), ("intrusion",)),
    (Category.ANTIVIRUS, frozenset({"av", "gav", "atp"}), ("antivirus", "anti-virus", "malware", "capture")),
)

# Whole words only; restrictive actions are checked first so "not allowed"
# never reads as allow.
_ACTION_PATTERNS: tuple[tuple[Action, re.Pattern[str]], ...] = (
    (
        Action.DENY,
        re.compile(
            r"\b(?:deny|denie[sd]|block(?:s|ed)?|reject(?:s|ed)?|disallow(?:s|ed)?"
            r"|not\s+(?:allow(?:ed)?|permit(?:ted)?))\b"
        ),
    ),
    (Action.DROP, re.compile(r"\bdrop(?:s|ped)?\b")),
    (Action.RESET, re.compile(r"\bresets?\b")),
    (Action.ALLOW, re.compile(r"\b(?:allow(?:s|ed)?|permit(?:s|ted)?|accept(?:s|ed)?)\b")),
)

_PROTOCOL_NUMBERS: Mapping[int, Protocol] = {1: Protocol.ICMP, 6: Protocol.TCP, 17: Protocol.UDP}

_THREAT_TYPE_KEYWORDS: tuple[tuple[ThreatType, tuple[str, ...]], ...] = (
    (ThreatType.MALWARE, ("malware", "virus", "trojan")),
    (ThreatType.INTRUSION, ("intrusion", "ips")),
    (ThreatType.BOTNET, ("botnet", "bot")),
    (ThreatType.SPAM, ("spam",)),
)

_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")


def utcnow() -> datetime:
    """Default wall clock for the engine and session manager."""
    return datetime.now(UTC)


def to_utc(ts: datetime) -> datetime:
    """Return a tz-aware UTC datetime (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def _parse_epoch(value: float) -> datetime | None:
    if value < 0:
        return None
    seconds = value / 1000.0 if value >= _EPOCH_MS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_syslog_ts(text: str, *, now: datetime) -> datetime | None:
    """Parse 'Mmm dd HH:MM:SS' assuming the current year."""
    m = _SYSLOG_TS_RE.match(text)
    if not m:
        return None
    try:
        naive = datetime.strptime(f"{m.group('mon')} {int(m.group('day'))} {m.group('time')}", "%b %d %H:%M:%S")
        ts = naive.replace(year=now.year, tzinfo=UTC)
    except ValueError:
        # Feb 29 outside a leap year
        return None
    if ts > now + timedelta(days=1):
        ts = ts.replace(year=now.year - 1)
    return ts


def parse_timestamp(value: Any, *, now: datetime | None = None) -> datetime | None:
    """Parse any SonicOS timestamp encoding into UTC, or None.

    Accepts datetimes, epoch seconds or milliseconds (ints, floats, digit
    strings), ISO-8601 with or without offset, 'YYYY-MM-DD HH:MM:SS [UTC]' and
    RFC3164 'Mmm dd HH:MM:SS'.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, (int, float)):
        return _parse_epoch(float(value))
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if text.isdecimal():
        return _parse_epoch(float(text))

    for suffix in _TZ_SUFFIXES:
        if text.endswith(suffix):
            text = text[: -len(suffix)].rstrip()
            break

    try:
        return to_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass

    for fmt in _WALLCLOCK_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=UTC)
        except ValueError:
            continue

    return _parse_syslog_ts(text, now=now or utcnow())


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdecimal():
        try:
            return int(value.strip())
        except ValueError:
            # longer than the int string conversion limit
            return None
    return None


def severity_from_priority(priority: int) -> Severity:
    """Map a syslog priority code (0=emergency .. 7=debug) to a severity bucket."""
    return _PRIORITY_SEVERITY.get(priority, Severity.INFO)


def normalize_severity(value: Any) -> Severity:
    """Normalize a numeric priority or a severity keyword."""
    code = _as_int(value)
    if code is not None:
        return severity_from_priority(code)
    if not isinstance(value, str):
        return Severity.INFO
    return _SEVERITY_KEYWORDS.get(value.strip().lower(), Severity.INFO)


def normalize_threat_severity(value: Any) -> ThreatSeverity:
    """Like `normalize_severity`, but threats have no 'info' bucket."""
    sev = normalize_severity(value)
    if sev is Severity.INFO:
        return ThreatSeverity.LOW
    return ThreatSeverity(sev.value)


def category_from_code(code: int) -> Category:
    return _CATEGORY_CODES.get(code, Category.SYSTEM)


def normalize_category(value: Any) -> Category:
    """Normalize a numeric category code or a category keyword."""
    code = _as_int(value)
    if code is not None:
        return category_from_code(code)
    if not isinstance(value, str):
        return Category.SYSTEM

    text = value.strip().lower()
    tokens = set(_TOKEN_SPLIT_RE.split(text))
    for category, words, fragments in _CATEGORY_KEYWORDS:
        if tokens & words or any(f in text for f in fragments):
            return category
    return Category.SYSTEM


def extract_action(text: Any) -> Action:
    """Infer an action from free text; anything ambiguous is a deny."""
    if not isinstance(text, str):
        return Action.DENY
    lowered = text.lower()
    for action, pattern in _ACTION_PATTERNS:
        if pattern.search(lowered):
            return action
    return Action.DENY


def normalize_action(value: Any) -> Action:
    """Normalize an explicit action/disposition field (fail-closed)."""
    if isinstance(value, Action):
        return value
    return extract_action(value)


def normalize_protocol(value: Any) -> Protocol:
    """Normalize 'tcp', 'TCP/https', 6, '17' and friends."""
    number = _as_int(value)
    if number is not None:
        return _PROTOCOL_NUMBERS.get(number, Protocol.OTHER)
    if not isinstance(value, str):
        return Protocol.OTHER
    head = value.strip().split("/", 1)[0].upper()
    try:
        proto = Protocol(head)
    except ValueError:
        return Protocol.OTHER
    return proto


def parse_port(value: Any) -> int | None:
    """Coerce a port from int or string; invalid values mean 'absent'."""
    port = _as_int(value)
    if port is None or not 0 <= port <= 65535:
        return None
    return port


def normalize_threat_type(value: Any) -> ThreatType:
    text = str(value).lower() if value is not None else ""
    for threat_type, keywords in _THREAT_TYPE_KEYWORDS:
        if any(k in text for k in keywords):
            return threat_type
    return ThreatType.SUSPICIOUS


def first_present(obj: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    """Return the first non-empty value among `keys`."""
    for key in keys:
        val = obj.get(key)
        if val is not None and val != "":
            return val
    return None


def parse_duration(value: Any) -> int | None:
    """Non-negative integer duration (seconds), or None."""
    number = _as_int(value)
    if number is None or number < 0:
        return None
    return number
