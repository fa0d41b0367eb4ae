from __future__ import annotations

from datetime import UTC, datetime

import pytest

from mcp_sonicwall_server.core.time_window import (
    parse_iso_dt,
    range_for_date,
    range_for_hour,
    range_for_month,
    range_for_week,
    resolve_time_window,
)

NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=UTC)


def test_parse_iso_dt_assumes_utc() -> None:
    assert parse_iso_dt("2024-01-15T10:00:00") == datetime(2024, 1, 15, 10, tzinfo=UTC)
    assert parse_iso_dt("2024-01-15T12:00:00+02:00") == datetime(2024, 1, 15, 10, tzinfo=UTC)


def test_selectors() -> None:
    assert range_for_date("2024-01-15") == (datetime(2024, 1, 15, tzinfo=UTC), datetime(2024, 1, 16, tzinfo=UTC))
    assert range_for_hour("2024-01-15T10") == (
        datetime(2024, 1, 15, 10, tzinfo=UTC),
        datetime(2024, 1, 15, 11, tzinfo=UTC),
    )
    assert range_for_week("2024-W03")[0] == datetime(2024, 1, 15, tzinfo=UTC)
    assert range_for_month("2023-12") == (datetime(2023, 12, 1, tzinfo=UTC), datetime(2024, 1, 1, tzinfo=UTC))


@pytest.mark.parametrize(
    ("func", "value"),
    [(range_for_hour, "2024-01-15 10"), (range_for_week, "2024-03"), (range_for_month, "2024-W03")],
)
def test_selector_format_errors(func, value: str) -> None:
    with pytest.raises(ValueError):
        func(value)


def test_selector_overrides_since_until() -> None:
    start, end = resolve_time_window(since="2024-01-01T00:00:00Z", until="2024-01-02T00:00:00Z", date_="2024-01-15")
    assert (start, end) == (datetime(2024, 1, 15, tzinfo=UTC), datetime(2024, 1, 16, tzinfo=UTC))


def test_default_lookback() -> None:
    start, end = resolve_time_window(now=NOW)
    assert end == NOW
    assert start == datetime(2024, 1, 14, 12, tzinfo=UTC)


def test_since_only_ends_now() -> None:
    start, end = resolve_time_window(since="2024-01-15T08:00:00Z", now=NOW)
    assert (start, end) == (datetime(2024, 1, 15, 8, tzinfo=UTC), NOW)


def test_lookback_from_until() -> None:
    start, end = resolve_time_window(until="2024-01-15T06:00:00Z", hours_lookback=2, now=NOW)
    assert (start, end) == (datetime(2024, 1, 15, 4, tzinfo=UTC), datetime(2024, 1, 15, 6, tzinfo=UTC))


def test_inverted_window_rejected() -> None:
    with pytest.raises(ValueError, match="since must be <= until"):
        resolve_time_window(since="2024-01-15T10:00:00Z", until="2024-01-15T09:00:00Z")


def test_negative_lookback_rejected() -> None:
    with pytest.raises(ValueError):
        resolve_time_window(hours_lookback=-1, now=NOW)
