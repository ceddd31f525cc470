"""
Recurrence Expander

Turns a recurrence pattern plus the first occurrence's window into the
series of windows it describes.

- `dateutil.rrule` walks daily and weekly series
- `dateutil.relativedelta` walks monthly series so that short months clamp
  to their last day (Jan 31 -> Feb 28 -> Mar 31) instead of being skipped

Arithmetic happens in the anchor's time zone, so every window keeps the
anchor's wall-clock time of day and duration.
"""
from datetime import date, datetime
from itertools import count
from typing import Iterator, Optional

from dateutil.relativedelta import relativedelta
from dateutil.rrule import DAILY, MO, WEEKLY, rrule

from ..exceptions import InvalidPattern, InvalidTimeRange
from ..models.occurrence import RecurrenceFrequency, RecurrencePattern, TimeWindow

DEFAULT_MAX_OCCURRENCES = 52


def weekday_index(moment: datetime) -> int:
    """Weekday of a datetime as 0=Sunday .. 6=Saturday"""
    return (moment.weekday() + 1) % 7


def _to_rrule_weekday(index: int) -> int:
    # rrule counts 0=Monday .. 6=Sunday
    return (index - 1) % 7


def validate_pattern(pattern: RecurrencePattern, anchor: TimeWindow) -> None:
    """
    Check a pattern against the window that starts its series.

    Raises:
        InvalidPattern: malformed pattern, or one the anchor itself does not satisfy
        InvalidTimeRange: anchor does not end after it starts
    """
    if not anchor.is_positive:
        raise InvalidTimeRange("End time must be after start time")

    if not isinstance(pattern.frequency, RecurrenceFrequency):
        raise InvalidPattern(f"Unknown recurrence frequency: {pattern.frequency!r}")

    interval = pattern.interval
    if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
        raise InvalidPattern(f"Recurrence interval must be a positive integer, got {interval!r}")

    for day in pattern.days_of_week or []:
        if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
            raise InvalidPattern(f"Invalid weekday index {day!r} (expected 0=Sunday .. 6=Saturday)")

    if pattern.frequency == RecurrenceFrequency.WEEKLY and pattern.days_of_week:
        anchor_day = weekday_index(anchor.start)
        if anchor_day not in pattern.days_of_week:
            raise InvalidPattern(
                f"First occurrence falls on weekday {anchor_day}, "
                f"which is not one of the pattern's days {sorted(set(pattern.days_of_week))}"
            )

    if pattern.end_date is not None and pattern.end_date < anchor.start.date():
        raise InvalidPattern(
            f"Recurrence end date {pattern.end_date.isoformat()} is before the first occurrence"
        )


def _iter_starts(pattern: RecurrencePattern, dtstart: datetime) -> Iterator[datetime]:
    """Unbounded, lazily generated series start times (anchor first)"""
    if pattern.frequency == RecurrenceFrequency.MONTHLY:
        # Offsets are always taken from the anchor so clamping never drifts
        for k in count():
            yield dtstart + relativedelta(months=k * pattern.interval)
        return

    if pattern.frequency == RecurrenceFrequency.DAILY:
        rule = rrule(DAILY, interval=pattern.interval, dtstart=dtstart)
    else:
        byweekday = None
        if pattern.days_of_week:
            byweekday = [_to_rrule_weekday(d) for d in sorted(set(pattern.days_of_week))]
        rule = rrule(
            WEEKLY,
            interval=pattern.interval,
            dtstart=dtstart,
            byweekday=byweekday,
            wkst=MO,
        )

    # rrule drops sub-second precision
    for start in rule:
        yield start.replace(microsecond=dtstart.microsecond)


def expand(
    pattern: RecurrencePattern,
    anchor: TimeWindow,
    max_occurrences: Optional[int] = None,
    horizon: Optional[datetime] = None,
) -> Iterator[TimeWindow]:
    """
    Expand a recurrence pattern into time windows.

    The series always starts with the anchor window and ends at whichever
    comes first: the pattern's end_date (inclusive, on the window's calendar
    date in the anchor's time zone), max_occurrences windows, or the first
    window starting after horizon. With neither bound given the series stops
    after DEFAULT_MAX_OCCURRENCES windows, so the result is always finite.

    Validation happens eagerly; the windows themselves are generated lazily
    and calling expand again with the same inputs restarts the series.

    Raises:
        InvalidPattern: see validate_pattern
        InvalidTimeRange: anchor does not end after it starts
    """
    validate_pattern(pattern, anchor)

    if max_occurrences is None and horizon is None:
        max_occurrences = DEFAULT_MAX_OCCURRENCES
    if max_occurrences is not None and max_occurrences < 1:
        raise ValueError("max_occurrences must be at least 1")

    return _expand(pattern, anchor, max_occurrences, horizon)


def _expand(
    pattern: RecurrencePattern,
    anchor: TimeWindow,
    max_occurrences: Optional[int],
    horizon: Optional[datetime],
) -> Iterator[TimeWindow]:
    duration = anchor.duration
    end_date: Optional[date] = pattern.end_date
    emitted = 0

    for start in _iter_starts(pattern, anchor.start):
        if max_occurrences is not None and emitted >= max_occurrences:
            return
        if end_date is not None and start.date() > end_date:
            return
        if horizon is not None and start > horizon:
            return
        yield TimeWindow(start, start + duration)
        emitted += 1
