from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Local wall clock (timezone-aware)."""

    def now(self) -> datetime:
        return datetime.now().astimezone()


class FixedClock:
    """Deterministic clock for tests and replays."""

    def __init__(self, moment: datetime):
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, **delta) -> None:
        self.moment = self.moment + timedelta(**delta)


def today(clock: Clock) -> str:
    return clock.now().date().isoformat()


def iso_now(clock: Clock) -> str:
    return clock.now().isoformat()


def parse_iso(value) -> datetime | None:
    """Parse an ISO timestamp as stored in records; ``None`` if unusable.

    Naive values (and the trailing ``Z`` some exports carry) are read as UTC.
    """
    if not value:
        return None
    s = str(value).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        try:
            dt = datetime.combine(date.fromisoformat(s), datetime.min.time())
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def age_in_days(value, clock: Clock) -> float | None:
    dt = parse_iso(value)
    if dt is None:
        return None
    return (clock.now() - dt).total_seconds() / 86400.0
