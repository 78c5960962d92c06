"""Recurrence engine - expands a recurrence rule into its next occurrence.

Pure functions, no I/O. A rule is anything carrying ``frequency``,
``interval``, ``by_day``, ``start_date``, ``end_date`` and ``exceptions``
(the ``RecurrenceRule`` model and the ``RecurrenceRuleCreate`` schema both
qualify).
"""

from datetime import date, datetime, timezone, tzinfo

from dateutil import rrule

from rally.errors import WakeUpValidationError
from rally.models.wakeup_call import Frequency


_FREQUENCIES = {
    Frequency.DAILY.value: rrule.DAILY,
    Frequency.WEEKLY.value: rrule.WEEKLY,
    Frequency.MONTHLY.value: rrule.MONTHLY,
    Frequency.YEARLY.value: rrule.YEARLY,
}

# Weekday indices follow the JavaScript convention used by clients: 0 = Sunday
_WEEKDAYS = [rrule.SU, rrule.MO, rrule.TU, rrule.WE, rrule.TH, rrule.FR, rrule.SA]


def _frequency_value(frequency) -> str:
    return frequency.value if isinstance(frequency, Frequency) else str(frequency)


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def validate_rule(rule) -> None:
    """Reject malformed rules before anything is persisted."""
    frequency = _frequency_value(rule.frequency)
    if frequency not in _FREQUENCIES:
        raise WakeUpValidationError(f"Unsupported frequency: {frequency}")
    if rule.interval is None or rule.interval < 1:
        raise WakeUpValidationError("Recurrence interval must be a positive integer")
    for day in rule.by_day or []:
        if not 0 <= day <= 6:
            raise WakeUpValidationError("Days must be between 0 and 6")
    if rule.start_date is None or rule.start_date.tzinfo is None:
        raise WakeUpValidationError("Recurrence start date must be timezone-aware")
    if rule.end_date is not None:
        if rule.end_date.tzinfo is None:
            raise WakeUpValidationError("Recurrence end date must be timezone-aware")
        if rule.end_date < rule.start_date:
            raise WakeUpValidationError("Recurrence end date must not precede its start date")
    for value in rule.exceptions or []:
        try:
            _as_date(value)
        except ValueError:
            raise WakeUpValidationError(f"Invalid exception date: {value}")


def build_rrule(rule, tz: tzinfo | None = None) -> rrule.rrule:
    """Build the dateutil rrule for a rule, anchored at its start date.

    When ``tz`` is given the series is expanded in that zone so the wall-clock
    time of day survives DST changes.
    """
    frequency = _frequency_value(rule.frequency)
    dtstart = rule.start_date.astimezone(tz) if tz is not None else rule.start_date
    until = rule.end_date.astimezone(dtstart.tzinfo) if rule.end_date is not None else None

    byweekday = None
    if frequency == Frequency.WEEKLY.value:
        days = sorted(set(rule.by_day or [])) or range(7)
        byweekday = [_WEEKDAYS[day] for day in days]

    return rrule.rrule(
        _FREQUENCIES[frequency],
        dtstart=dtstart,
        interval=rule.interval,
        byweekday=byweekday,
        until=until,
        wkst=rrule.SU,
    )


def next_occurrence(rule, after: datetime, tz: tzinfo | None = None) -> datetime | None:
    """Earliest occurrence strictly after ``after``, or None once the series is exhausted.

    Occurrences never precede the start date, never pass the end date and
    never fall on an exception date. Returned in UTC.
    """
    if after.tzinfo is None:
        raise WakeUpValidationError("Reference time must be timezone-aware")
    if rule.end_date is not None and after >= rule.end_date:
        return None

    series = build_rrule(rule, tz)
    skipped = {_as_date(value) for value in rule.exceptions or []}

    candidate = series.after(after, inc=False)
    while candidate is not None and candidate.date() in skipped:
        candidate = series.after(candidate, inc=False)

    if candidate is None:
        return None
    return candidate.astimezone(timezone.utc)


def upcoming_occurrences(rule, after: datetime, count: int, tz: tzinfo | None = None) -> list[datetime]:
    """The next ``count`` occurrences after ``after`` (fewer if the series ends)."""
    occurrences = []
    cursor = after
    while len(occurrences) < count:
        cursor = next_occurrence(rule, cursor, tz)
        if cursor is None:
            break
        occurrences.append(cursor)
    return occurrences
