"""
Expansion of recurring events into occurrences.

Each occurrence is computed from the original start, so a monthly event
on the 31st lands on the last day of shorter months and returns to the
31st afterwards (Jan 31, Feb 28, Mar 31, ...).

Usage:
    for start, end in occurrences(event, window_start, window_end):
        ...
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Iterator

from dateutil.relativedelta import relativedelta
from django.utils import timezone

from planner.models import RecurrencePattern

if TYPE_CHECKING:
    from planner.models import Event

# Upper bound on occurrences produced for one event in one window
MAX_OCCURRENCES = 1000


def shift(start: datetime, pattern: str, periods: int) -> datetime:
    """start moved forward by periods of pattern; months clamp to their last day."""
    if pattern == RecurrencePattern.DAILY:
        return start + timedelta(days=periods)
    if pattern == RecurrencePattern.WEEKLY:
        return start + timedelta(weeks=periods)
    if pattern == RecurrencePattern.MONTHLY:
        return start + relativedelta(months=periods)
    raise ValueError(f"Unknown recurrence pattern: {pattern}")


def _first_period(start: datetime, duration: timedelta, pattern: str, window_start: datetime) -> int:
    """Lowest period index whose occurrence may still end after window_start."""
    if window_start <= start + duration:
        return 0
    gap = window_start - start - duration
    if pattern == RecurrencePattern.DAILY:
        return gap.days
    if pattern == RecurrencePattern.WEEKLY:
        return gap.days // 7
    # Months are at least 28 days long
    return gap.days // 31


def occurrences(
    event: Event,
    window_start: datetime,
    window_end: datetime,
) -> Iterator[tuple[datetime, datetime]]:
    """
    (start, end) pairs of event overlapping [window_start, window_end).

    A non-recurring event yields itself when it overlaps the window.
    Recurring events stop after the last occurrence starting on or before
    ``recurrence_end`` (compared in the current timezone).
    """
    duration = event.end_time - event.start_time

    if not event.is_recurring:
        if event.start_time < window_end and event.end_time > window_start:
            yield event.start_time, event.end_time
        return

    last_day: date | None = event.recurrence_end
    period = _first_period(event.start_time, duration, event.recurrence_pattern, window_start)
    produced = 0
    while produced < MAX_OCCURRENCES:
        start = shift(event.start_time, event.recurrence_pattern, period)
        if start >= window_end:
            return
        if last_day is not None and timezone.localdate(start) > last_day:
            return
        end = start + duration
        if end > window_start:
            yield start, end
            produced += 1
        period += 1
