"""
grove.engine.calendar — Dual-Calendar Date Formatting
======================================================

Audit records and notifications carry two human-readable dates derived
once, at write time, from a single instant:

* ``hebrew_date``    — e.g. ``כ״ד בטבת תשפ״ד`` (Hebrew calendar, gematria)
* ``gregorian_date`` — e.g. ``05/01/2024`` (``DD/MM/YYYY``)

plus a ``relative_time`` string (``לפני 5 דקות``) computed on every read.

Services only depend on the :class:`CalendarFormatter` protocol, so tests
can pass fixed instants (or a stub formatter) and the audit logic stays
calendar-agnostic.  Both dates use the *civil* date in the deployment
timezone; the Hebrew day is not advanced at sunset.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol
from zoneinfo import ZoneInfo

from pyluach import dates as hebcal

DEFAULT_TIMEZONE = "Asia/Jerusalem"


def ensure_utc(instant: datetime) -> datetime:
    """Return *instant* as an aware UTC datetime.

    Naive values (SQLite drops tzinfo on the way back) are taken as UTC.
    """
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


class CalendarFormatter(Protocol):
    def hebrew_date(self, instant: datetime) -> str: ...

    def gregorian_date(self, instant: datetime) -> str: ...

    def relative_time(self, instant: datetime, now: datetime | None = None) -> str: ...


@dataclass(frozen=True, slots=True)
class DateStamp:
    """An instant and the two calendar strings derived from it."""

    timestamp: datetime
    hebrew_date: str
    gregorian_date: str


def stamp(calendar: CalendarFormatter, instant: datetime | None = None) -> DateStamp:
    """Derive both date strings from one instant (``now`` by default)."""
    instant = ensure_utc(instant or datetime.now(UTC))
    return DateStamp(
        timestamp=instant,
        hebrew_date=calendar.hebrew_date(instant),
        gregorian_date=calendar.gregorian_date(instant),
    )


class HebrewCivilCalendar:
    """Default :class:`CalendarFormatter` for a Hebrew-locale deployment."""

    def __init__(self, timezone: str = DEFAULT_TIMEZONE) -> None:
        self._tz = ZoneInfo(timezone)

    @property
    def timezone(self) -> ZoneInfo:
        return self._tz

    def _local(self, instant: datetime) -> datetime:
        return ensure_utc(instant).astimezone(self._tz)

    def hebrew_date(self, instant: datetime) -> str:
        hd = hebcal.HebrewDate.from_pydate(self._local(instant).date())
        return f"{hd.hebrew_day()} ב{hd.month_name(hebrew=True)} {hd.hebrew_year()}"

    def gregorian_date(self, instant: datetime) -> str:
        return self._local(instant).strftime("%d/%m/%Y")

    def relative_time(self, instant: datetime, now: datetime | None = None) -> str:
        now = ensure_utc(now or datetime.now(UTC))
        seconds = int((now - ensure_utc(instant)).total_seconds())
        return hebrew_relative_time(seconds)


# ---------------------------------------------------------------------------
# Relative time
# ---------------------------------------------------------------------------
# (singular, plural template): minute, hour, day, week, month, year
_UNITS: tuple[tuple[str, str], ...] = (
    ("לפני דקה", "לפני {n} דקות"),
    ("לפני שעה", "לפני {n} שעות"),
    ("לפני יום", "לפני {n} ימים"),
    ("לפני שבוע", "לפני {n} שבועות"),
    ("לפני חודש", "לפני {n} חודשים"),
    ("לפני שנה", "לפני {n} שנים"),
)


def hebrew_relative_time(seconds: int) -> str:
    """Format an elapsed duration the way the site displays it.

    Future instants (clock skew) read as "just now".
    """
    if seconds < 60:
        return "לפני רגע"

    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    weeks = days // 7
    months = days // 30

    if minutes < 60:
        n, unit = minutes, _UNITS[0]
    elif hours < 24:
        n, unit = hours, _UNITS[1]
    elif days < 7:
        n, unit = days, _UNITS[2]
    elif months < 1:
        n, unit = weeks, _UNITS[3]
    elif months < 12:
        n, unit = months, _UNITS[4]
    else:
        n, unit = months // 12, _UNITS[5]

    singular, plural = unit
    return singular if n == 1 else plural.format(n=n)
