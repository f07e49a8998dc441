"""
Schedule entities.

A recurrence turns any reference instant into the next strictly later
instant. All instants are timezone-aware and normalised to UTC.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from apscheduler.triggers.base import BaseTrigger


class Recurrence(ABC):
    """Ordered sequence of due instants."""

    @abstractmethod
    def next_after(self, instant: datetime) -> datetime | None:
        """Return the first due instant strictly after ``instant``, or None."""
        ...

    def latest_due(self, after: datetime, now: datetime) -> tuple[datetime | None, int]:
        """
        Find the latest due instant in the window ``(after, now]``.

        Returns:
            Tuple of (latest instant or None, number of instants in the window)
        """
        latest: datetime | None = None
        count = 0
        instant = self.next_after(after)
        while instant is not None and instant <= now:
            latest = instant
            count += 1
            instant = self.next_after(instant)
        return latest, count


@dataclass(frozen=True)
class Interval(Recurrence):
    """Fixed-rate recurrence; first firing is one period after the anchor."""

    every: timedelta
    anchor: datetime

    def next_after(self, instant: datetime) -> datetime:
        first = self.anchor + self.every
        if instant < first:
            return first
        steps = (instant - self.anchor) // self.every + 1
        return self.anchor + self.every * steps

    def latest_due(self, after: datetime, now: datetime) -> tuple[datetime | None, int]:
        first = self.next_after(after)
        if first > now:
            return None, 0
        first_step = (first - self.anchor) // self.every
        last_step = (now - self.anchor) // self.every
        return self.anchor + self.every * last_step, last_step - first_step + 1


@dataclass(frozen=True)
class CronExpression(Recurrence):
    """Cron-style recurrence evaluated by APScheduler cron triggers in UTC."""

    expression: str
    trigger: BaseTrigger = field(compare=False, repr=False)

    def next_after(self, instant: datetime) -> datetime | None:
        fire_time = self.trigger.get_next_fire_time(instant, instant)
        if fire_time is None:
            return None
        return fire_time.astimezone(UTC)


@dataclass(frozen=True)
class OneTime(Recurrence):
    """Single instant."""

    at: datetime

    def next_after(self, instant: datetime) -> datetime | None:
        return self.at if self.at > instant else None


@dataclass(frozen=True)
class ScheduleSpec:
    """Normalized recurrence bound to the task it runs."""

    name: str
    recurrence: Recurrence
    task_ref: str
    enabled: bool = True
    parameters: dict[str, str] = field(default_factory=dict, compare=False)
