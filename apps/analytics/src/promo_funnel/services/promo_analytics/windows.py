"""Date window helpers shared by aggregate and reporting queries."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import Column


def window_start(value: date | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def window_end(value: date | datetime | None) -> datetime | None:
    """Return the exclusive upper bound; a plain date covers the whole day."""

    if value is None:
        return None
    if isinstance(value, datetime):
        bound = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return bound + timedelta(microseconds=1)
    return datetime.combine(value + timedelta(days=1), time.min, tzinfo=timezone.utc)


def window_conditions(column: Column, date_from: date | datetime | None, date_to: date | datetime | None) -> list:
    conditions = []
    start = window_start(date_from)
    end = window_end(date_to)
    if start is not None:
        conditions.append(column >= start)
    if end is not None:
        conditions.append(column < end)
    return conditions


__all__ = ["window_conditions", "window_end", "window_start"]
