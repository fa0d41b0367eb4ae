"""Parser composition utilities."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from ..models import CanonicalEvent
from .base import EventParser


@dataclass(frozen=True, slots=True)
class CompositeParser:
    """Try parsers in order and return the first successful parse."""

    parsers: Sequence[EventParser]
    name: str = "composite"

    def match(self, line: str, received_at: datetime) -> tuple[str, CanonicalEvent] | None:
        """Return (parser name, event) from the first parser that accepts the line."""
        for p in self.parsers:
            out = p.parse(line, received_at)
            if out is not None:
                return p.name, out
        return None

    def parse(self, line: str, received_at: datetime) -> CanonicalEvent | None:
        """Return the first successful parse from the configured parsers."""
        hit = self.match(line, received_at)
        return hit[1] if hit is not None else None
