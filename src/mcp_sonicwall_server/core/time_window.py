"""Query windows for appliance log requests.

Calendar selectors (a day, an hour, an ISO week or a month) map to half-open
UTC ranges. Without a selector the window is built from since/until and the
lookback, ending now when no upper bound is given.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from .normalize import to_utc, utcnow

DEFAULT_LOOKBACK_HOURS = 24

Window = tuple[datetime, datetime]


def parse_iso_dt(s: str) -> datetime:
    """Parse an ISO8601 bound; naive values are taken as UTC."""
    try:
        dt = datetime.fromisoformat(s.strip())
    except ValueError as e:
        raise ValueError(f"Invalid ISO8601 timestamp '{s}'") from e
    return to_utc(dt)


def _strict(s: str, fmt: str, example: str, label: str) -> datetime:
    try:
        return datetime.strptime(s.strip(), fmt).replace(tzinfo=UTC)
    except ValueError as e:
        raise ValueError(f"{label} must look like {example}") from e


def range_for_date(s: str) -> Window:
    start = _strict(s, "%Y-%m-%d", "YYYY-MM-DD (e.g., 2024-01-15)", "date")
    return start, start + timedelta(days=1)


def range_for_hour(s: str) -> Window:
    start = _strict(s, "%Y-%m-%dT%H", "YYYY-MM-DDTHH (e.g., 2024-01-15T10)", "hour")
    return start, start + timedelta(hours=1)


def range_for_week(s: str) -> Window:
    """ISO week, Monday 00:00 to the following Monday."""
    start = _strict(f"{s.strip()}-1", "%G-W%V-%u", "YYYY-Www (e.g., 2024-W03)", "week")
    return start, start + timedelta(days=7)


def range_for_month(s: str) -> Window:
    start = _strict(s, "%Y-%m", "YYYY-MM (e.g., 2024-01)", "month")
    # Day 28 plus four days always lands in the next month.
    nxt = (start.replace(day=28) + timedelta(days=4)).replace(day=1)
    return start, nxt


_SELECTORS: tuple[tuple[str, Callable[[str], Window]], ...] = (
    ("date", range_for_date),
    ("hour", range_for_hour),
    ("week", range_for_week),
    ("month", range_for_month),
)


def resolve_time_window(
    *,
    since: str | None = None,
    until: str | None = None,
    date_: str | None = None,
    hour: str | None = None,
    week: str | None = None,
    month: str | None = None,
    hours_lookback: float | None = None,
    now: datetime | None = None,
) -> Window:
    """Resolve a closed UTC window.

    The first selector given wins and explicit bounds are ignored. Otherwise a
    missing bound is filled from `now` and the lookback (default 24 hours).
    """
    given = {"date": date_, "hour": hour, "week": week, "month": month}
    for name, to_range in _SELECTORS:
        if given[name]:
            return to_range(given[name])

    lookback = DEFAULT_LOOKBACK_HOURS if hours_lookback is None else hours_lookback
    if lookback < 0:
        raise ValueError("hours_lookback must be >= 0")

    end = parse_iso_dt(until) if until else (now or utcnow())
    start = parse_iso_dt(since) if since else end - timedelta(hours=lookback)
    if start > end:
        raise ValueError("since must be <= until")
    return start, end
