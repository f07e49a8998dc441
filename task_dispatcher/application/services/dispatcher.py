"""
Dispatcher: evaluates schedules against a clock and emits dispatch events.

Each schedule keeps a cursor, the latest instant already considered. A tick
emits at most one event per schedule for the window ``(cursor, now]`` and
moves the cursor to the emitted instant, so a due instant is never emitted
twice and a backlog collapses into a single catch-up event.
"""

from dataclasses import dataclass, replace
from datetime import UTC, datetime

import structlog

from ...domain.entities import DispatchEvent, ScheduleSpec

logger = structlog.get_logger()


@dataclass
class _ScheduleState:
    spec: ScheduleSpec
    cursor: datetime


class Dispatcher:
    """Produces DispatchEvents at each schedule's due instants."""

    def __init__(self) -> None:
        self._states: dict[str, _ScheduleState] = {}

    # -- Schedule management ---------------------------------------------------

    def load(self, specs: list[ScheduleSpec], reference_time: datetime) -> None:
        """Register schedules; nothing due at or before ``reference_time`` fires."""
        for spec in specs:
            self.add(spec, reference_time)
        logger.info("Schedules loaded", count=len(self._states))

    def add(self, spec: ScheduleSpec, reference_time: datetime) -> None:
        if spec.name in self._states:
            raise ValueError(f"Schedule already registered: {spec.name}")
        self._states[spec.name] = _ScheduleState(spec=spec, cursor=_utc(reference_time))

    def remove(self, name: str) -> bool:
        return self._states.pop(name, None) is not None

    def get(self, name: str) -> ScheduleSpec | None:
        state = self._states.get(name)
        return state.spec if state else None

    @property
    def schedules(self) -> list[ScheduleSpec]:
        return [state.spec for state in self._states.values()]

    def disable(self, name: str) -> None:
        """Stop emitting for a schedule. In-flight invocations are unaffected."""
        state = self._require(name)
        state.spec = replace(state.spec, enabled=False)
        logger.info("Schedule disabled", schedule=name)

    def enable(self, name: str, now: datetime) -> None:
        """Resume a schedule; instants missed while disabled are not replayed."""
        state = self._require(name)
        if state.spec.enabled:
            return
        state.spec = replace(state.spec, enabled=True)
        state.cursor = max(state.cursor, _utc(now))
        logger.info("Schedule enabled", schedule=name, resume_after=state.cursor.isoformat())

    # -- Clock -----------------------------------------------------------------

    def tick(self, now: datetime) -> list[DispatchEvent]:
        """
        Emit events whose due instant is <= now and not yet emitted.

        Args:
            now: Current instant (timezone-aware)

        Returns:
            Events ordered by fired_at, then schedule name
        """
        now = _utc(now)
        events: list[DispatchEvent] = []

        for name, state in self._states.items():
            if not state.spec.enabled or now <= state.cursor:
                continue

            latest, count = state.spec.recurrence.latest_due(state.cursor, now)
            if latest is None:
                continue

            state.cursor = latest
            events.append(DispatchEvent(schedule_ref=name, fired_at=latest, missed=count - 1))
            if count > 1:
                logger.warning(
                    "Collapsed missed instants into one catch-up event",
                    schedule=name,
                    missed=count - 1,
                    fired_at=latest.isoformat(),
                )
            if state.spec.recurrence.next_after(latest) is None:
                logger.info("Schedule exhausted", schedule=name)

        events.sort(key=lambda e: (e.fired_at, e.schedule_ref))
        if events:
            logger.info("Dispatch events due", count=len(events), now=now.isoformat())
        return events

    def next_due(self) -> datetime | None:
        """Earliest upcoming instant across enabled schedules."""
        upcoming = [
            state.spec.recurrence.next_after(state.cursor)
            for state in self._states.values()
            if state.spec.enabled
        ]
        upcoming = [instant for instant in upcoming if instant is not None]
        return min(upcoming) if upcoming else None

    def _require(self, name: str) -> _ScheduleState:
        try:
            return self._states[name]
        except KeyError:
            raise KeyError(f"Unknown schedule: {name}") from None


def _utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        raise ValueError("Dispatcher instants must be timezone-aware")
    return instant.astimezone(UTC)
