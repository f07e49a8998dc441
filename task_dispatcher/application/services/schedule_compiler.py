"""
Schedule definition compiler.

Turns a recurrence string into a normalized ScheduleSpec. Accepted forms:

- ``rate(N unit)`` with unit second/minute/hour/day/week (singular or plural)
- ``cron(min hour day-of-month month day-of-week year)``, EventBridge syntax
- ``min hour day-of-month month day-of-week``, classic crontab
- ``at(YYYY-MM-DDThh:mm:ss)``, a single instant

Cron expressions are evaluated in UTC. Compilation has no side effects.
"""

import re
from datetime import UTC, datetime, timedelta

import structlog
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger

from ...domain.entities import CronExpression, Interval, OneTime, Recurrence, ScheduleSpec
from ...domain.errors import InvalidScheduleError
from ..dtos import ScheduleDefinition

logger = structlog.get_logger()

DEFAULT_HORIZON = timedelta(days=366)

_RATE_RE = re.compile(r"^rate\(\s*(\d+)\s+([A-Za-z]+)\s*\)$", re.IGNORECASE)
_CRON_RE = re.compile(r"^cron\((.*)\)$", re.IGNORECASE)
_AT_RE = re.compile(r"^at\((.*)\)$", re.IGNORECASE)

_RATE_UNITS: dict[str, timedelta] = {
    "second": timedelta(seconds=1),
    "minute": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
}

_DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

# Sunday's number in each dialect
_EVENTBRIDGE_SUNDAY = 1
_CRONTAB_SUNDAY = 0


def compile_schedule(
    definition: ScheduleDefinition,
    reference_time: datetime,
    horizon: timedelta = DEFAULT_HORIZON,
) -> ScheduleSpec:
    """
    Compile a schedule definition into a ScheduleSpec.

    Args:
        definition: Human-authored schedule
        reference_time: Instant the schedule is compiled at (rate anchor)
        horizon: The schedule must fire at least once within this window

    Raises:
        InvalidScheduleError: If the recurrence is malformed or never fires
            within the horizon
    """
    if reference_time.tzinfo is None:
        raise ValueError("reference_time must be timezone-aware")
    reference_time = reference_time.astimezone(UTC)

    recurrence = parse_recurrence(definition.recurrence, reference_time)

    first = recurrence.next_after(reference_time)
    if first is None or first > reference_time + horizon:
        raise InvalidScheduleError(
            definition.recurrence,
            f"no occurrence within {horizon.days} days of {reference_time.isoformat()}",
        )

    logger.debug(
        "Compiled schedule",
        schedule=definition.name,
        recurrence=to_expression(recurrence),
        first_due=first.isoformat(),
    )
    return ScheduleSpec(
        name=definition.name,
        recurrence=recurrence,
        task_ref=definition.task,
        enabled=definition.enabled,
        parameters=dict(definition.parameters),
    )


def parse_recurrence(expression: str, reference_time: datetime) -> Recurrence:
    """Parse a recurrence string. Raises InvalidScheduleError."""
    text = expression.strip()
    try:
        if match := _RATE_RE.match(text):
            return _parse_rate(int(match.group(1)), match.group(2), reference_time)
        if match := _CRON_RE.match(text):
            return _parse_eventbridge_cron(match.group(1))
        if match := _AT_RE.match(text):
            return _parse_at(match.group(1))
        if len(text.split()) == 5:
            return _parse_crontab(text)
    except ValueError as e:
        raise InvalidScheduleError(expression, str(e)) from e
    raise InvalidScheduleError(expression, "unrecognised recurrence syntax")


def to_expression(recurrence: Recurrence) -> str:
    """Render a recurrence back to its platform expression."""
    match recurrence:
        case Interval(every=every):
            seconds = int(every.total_seconds())
            for unit in ("day", "hour", "minute", "second"):
                size = int(_RATE_UNITS[unit].total_seconds())
                if seconds % size == 0:
                    count = seconds // size
                    return f"rate({count} {unit}{'' if count == 1 else 's'})"
            raise ValueError(f"Interval {every} is not a whole number of seconds")
        case CronExpression(expression=expression):
            return expression
        case OneTime(at=at):
            return f"at({at.strftime('%Y-%m-%dT%H:%M:%S')})"
        case _:
            raise TypeError(f"Unsupported recurrence: {recurrence!r}")


def _parse_rate(count: int, unit: str, reference_time: datetime) -> Interval:
    unit = unit.lower()
    if unit.endswith("s"):
        unit = unit[:-1]
    if unit not in _RATE_UNITS:
        raise ValueError(f"unknown rate unit {unit!r}")
    if count < 1:
        raise ValueError("rate value must be at least 1")
    return Interval(every=_RATE_UNITS[unit] * count, anchor=reference_time)


def _parse_eventbridge_cron(body: str) -> CronExpression:
    fields = body.split()
    if len(fields) != 6:
        raise ValueError(f"cron() takes 6 fields, got {len(fields)}")
    minute, hour, day, month, day_of_week, year = fields

    if (day == "?") == (day_of_week == "?"):
        raise ValueError("exactly one of day-of-month or day-of-week must be '?'")
    if "W" in day.upper():
        raise ValueError("'W' (nearest weekday) is not supported")
    if "#" in day_of_week or "L" in day_of_week.upper():
        raise ValueError("'#' and 'L' are not supported in day-of-week")

    day = "last" if day.upper() == "L" else day
    trigger = CronTrigger(
        minute=minute,
        hour=hour,
        day=_any(day),
        month=_any(month).lower(),
        day_of_week=_translate_day_of_week(day_of_week, _EVENTBRIDGE_SUNDAY),
        year=_any(year),
        timezone=UTC,
    )
    return CronExpression(expression=f"cron({' '.join(fields)})", trigger=trigger)


def _parse_crontab(text: str) -> CronExpression:
    minute, hour, day, month, day_of_week = text.split()
    fields = {"minute": minute, "hour": hour, "month": month.lower(), "timezone": UTC}
    day_of_week = _translate_day_of_week(day_of_week, _CRONTAB_SUNDAY)

    # crontab fires when either day field matches if both are restricted
    if day != "*" and day_of_week != "*":
        trigger = OrTrigger(
            [
                CronTrigger(day=day, **fields),
                CronTrigger(day_of_week=day_of_week, **fields),
            ]
        )
    else:
        trigger = CronTrigger(day=day, day_of_week=day_of_week, **fields)
    return CronExpression(expression=" ".join(text.split()), trigger=trigger)


def _parse_at(body: str) -> OneTime:
    at = datetime.fromisoformat(body.strip())
    if at.tzinfo is None:
        at = at.replace(tzinfo=UTC)
    return OneTime(at=at.astimezone(UTC))


def _any(value: str) -> str:
    return "*" if value == "?" else value


def _translate_day_of_week(value: str, sunday: int) -> str:
    """
    Expand a day-of-week field into APScheduler day names.

    Cron dialects number days from Sunday (EventBridge 1-7, crontab 0-7)
    while APScheduler numbers them from Monday, so numeric ranges are
    expanded into explicit names.
    """
    if value in ("*", "?"):
        return "*"

    days: list[str] = []
    for token in value.lower().split(","):
        base, _, step_text = token.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"invalid step in day-of-week {token!r}")

        if base == "*":
            first, last = sunday, sunday + 6
        elif "-" in base:
            start, end = base.split("-", 1)
            first, last = _day_number(start, sunday), _day_number(end, sunday)
        else:
            first = _day_number(base, sunday)
            last = sunday + 6 if step_text else first

        if first > last:
            raise ValueError(f"descending day-of-week range {token!r}")
        for number in range(first, last + 1, step):
            name = _DAY_NAMES[(number - sunday) % 7]
            if name not in days:
                days.append(name)

    return ",".join(days)


def _day_number(token: str, sunday: int) -> int:
    if token in _DAY_NAMES:
        return _DAY_NAMES.index(token) + sunday
    number = int(token)
    # crontab also accepts 7 for Sunday
    upper = sunday + 7 if sunday == _CRONTAB_SUNDAY else sunday + 6
    if not sunday <= number <= upper:
        raise ValueError(f"day-of-week {number} out of range")
    return number
