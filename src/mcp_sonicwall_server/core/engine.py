"""Normalization engine.

Runs every raw unit through the dialect's parser chain (most specific pattern
first, first match wins) and degrades to the fallback extractor, so a batch of
N units always produces N canonical events.
"""

from __future__ import annotations

import dataclasses
import logging
from collections import Counter
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .formats import (
    AtpParser,
    CaptureAtpParser,
    CompositeParser,
    EnhancedSyslogParser,
    EventParser,
    FallbackParser,
    IpsParser,
    MinimalTrafficParser,
    StructuredParser,
    StructuredSyslogParser,
    VpnParser,
    compact_json,
    fields_for,
)
from .models import CanonicalEvent, Dialect
from .normalize import utcnow

logger = logging.getLogger(__name__)


def parsers_for(dialect: Dialect) -> tuple[EventParser, ...]:
    """Parser chain for a dialect, in precedence order.

    JSON objects are tried before any textual pattern.
    """
    structured = StructuredParser(fields=fields_for(dialect))
    if dialect is Dialect.V8:
        return (
            structured,
            CaptureAtpParser(),
            AtpParser(),
            EnhancedSyslogParser(),
            MinimalTrafficParser(anchored=True),
        )
    return (
        structured,
        VpnParser(),
        IpsParser(),
        StructuredSyslogParser(),
        MinimalTrafficParser(),
    )


@dataclass(slots=True)
class ParsingStats:
    """How a batch was classified."""

    total: int = 0
    matched: int = 0
    fallback: int = 0
    by_category: dict[str, int] = field(default_factory=dict)
    by_action: dict[str, int] = field(default_factory=dict)
    by_parser: dict[str, int] = field(default_factory=dict)


class LogNormalizer:
    """Turn raw SonicOS log units into canonical events for one dialect."""

    def __init__(self, dialect: Dialect | str, *, clock: Callable[[], datetime] = utcnow):
        self.dialect = Dialect.parse(dialect)
        self._clock = clock
        self._structured = StructuredParser(fields=fields_for(self.dialect))
        self._chain = CompositeParser(parsers=parsers_for(self.dialect))
        self._fallback = FallbackParser()

    @property
    def parser_names(self) -> list[str]:
        return [p.name for p in self._chain.parsers] + [self._fallback.name]

    def classify(self, unit: Any, received_at: datetime | None = None) -> tuple[str, CanonicalEvent]:
        """Return the name of the parser that handled `unit` and its event."""
        received_at = received_at or self._clock()
        try:
            if isinstance(unit, Mapping):
                return self._structured.name, self._structured.parse_object(unit, received_at)
            hit = self._chain.match(_unit_text(unit), received_at)
        except (ValueError, TypeError, OverflowError) as e:
            logger.debug("Parser rejected a malformed unit (%s); using fallback", e)
            hit = None
        if hit is not None:
            return hit
        return self._fallback.name, self._fallback.parse(_unit_text(unit), received_at)

    def normalize(self, unit: Any, received_at: datetime | None = None) -> CanonicalEvent:
        """Normalize one raw unit; never fails on malformed input."""
        return self.classify(unit, received_at)[1]

    def normalize_batch(self, units: Iterable[Any]) -> list[CanonicalEvent]:
        """Normalize a batch; newest first, ties keep input order.

        All units share one ingestion time. Colliding source ids get a
        `-N` suffix so ids are unique within the batch.
        """
        received_at = self._clock()
        events = [self.normalize(u, received_at) for u in units]
        events = _dedupe_ids(events)
        return sorted(events, key=lambda e: e.timestamp, reverse=True)

    def parsing_stats(self, units: Sequence[Any]) -> ParsingStats:
        received_at = self._clock()
        parsers: Counter[str] = Counter()
        categories: Counter[str] = Counter()
        actions: Counter[str] = Counter()
        for unit in units:
            name, event = self.classify(unit, received_at)
            parsers[name] += 1
            categories[event.category.value] += 1
            actions[event.action.value] += 1

        fallback = parsers.get(self._fallback.name, 0)
        stats = ParsingStats(
            total=len(units),
            matched=len(units) - fallback,
            fallback=fallback,
            by_category=dict(categories),
            by_action=dict(actions),
            by_parser=dict(parsers),
        )
        if fallback:
            logger.debug("%d of %d units fell back to best-effort extraction", fallback, len(units))
        return stats


def _unit_text(unit: Any) -> str:
    if isinstance(unit, str):
        return unit
    if isinstance(unit, Mapping):
        try:
            return compact_json(unit)
        except (TypeError, ValueError):
            return str(unit)
    return str(unit)


def _dedupe_ids(events: list[CanonicalEvent]) -> list[CanonicalEvent]:
    seen: set[str] = set()
    out: list[CanonicalEvent] = []
    for e in events:
        if e.id in seen:
            n = 2
            while f"{e.id}-{n}" in seen:
                n += 1
            e = dataclasses.replace(e, id=f"{e.id}-{n}")
        seen.add(e.id)
        out.append(e)
    return out
