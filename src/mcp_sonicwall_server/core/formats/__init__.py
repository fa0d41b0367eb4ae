"""SonicOS log formats.

Contains parsers for the 7.x and 8.x syslog dialects, structured JSON records
and the best-effort fallback extractor.
"""

from __future__ import annotations

from .base import EventParser, build_event, kv_value
from .composite import CompositeParser
from .fallback import FallbackParser
from .minimal import MinimalTrafficParser
from .sonicos7 import IpsParser, StructuredSyslogParser, VpnParser
from .sonicos8 import AtpParser, CaptureAtpParser, EnhancedSyslogParser
from .structured import V7_FIELDS, V8_FIELDS, FieldMap, StructuredParser, compact_json, fields_for

__all__ = [
    "AtpParser",
    "CaptureAtpParser",
    "CompositeParser",
    "EnhancedSyslogParser",
    "EventParser",
    "FallbackParser",
    "FieldMap",
    "IpsParser",
    "MinimalTrafficParser",
    "StructuredParser",
    "StructuredSyslogParser",
    "V7_FIELDS",
    "V8_FIELDS",
    "VpnParser",
    "build_event",
    "compact_json",
    "fields_for",
    "kv_value",
]
