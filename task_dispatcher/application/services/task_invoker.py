"""
Application service that invokes task units for dispatch events.

This service:
- Guards each firing against duplicate delivery (IdempotencyPort)
- Runs the task unit, retrying failed attempts with exponential backoff
- Records every attempt in the outcome log (OutcomeRecorder)

A firing that exhausts the retry ceiling ends in a terminal failure and is
not re-queued; the schedule's next natural instant is a fresh firing.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

import structlog

from ...domain.entities import (
    DispatchEvent,
    InvocationOutcome,
    OutcomeStatus,
    ScheduleSpec,
    TaskRequest,
)
from ...domain.errors import InvocationFailure, UnknownTaskError
from ...domain.ports import IdempotencyPort, OutcomeRecorder, TaskUnit
from ...infrastructure.logging import Timer, set_dispatch_id

logger = structlog.get_logger()


class ScheduleLookup(Protocol):
    def get(self, name: str) -> ScheduleSpec | None: ...


class TaskUnitLookup(Protocol):
    def get(self, task_ref: str) -> TaskUnit: ...


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt ceiling and exponential backoff between attempts."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    timeout: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after ``attempt`` fails."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.backoff_base_seconds,
            multiplier=settings.backoff_multiplier,
            max_delay=settings.backoff_max_seconds,
            timeout=settings.attempt_timeout_seconds,
        )


class TaskInvoker:
    """
    Consumes DispatchEvents and invokes the bound task unit.

    Following hexagonal architecture, schedules, task units, idempotency
    and outcome recording are all injected.
    """

    def __init__(
        self,
        schedules: ScheduleLookup,
        task_units: TaskUnitLookup,
        outcomes: OutcomeRecorder,
        idempotency: IdempotencyPort,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize with injected dependencies.

        Args:
            schedules: Resolves a schedule name to its ScheduleSpec
            task_units: Resolves a task reference to a TaskUnit
            outcomes: Append-only outcome log
            idempotency: Duplicate delivery guard
            policy: Retry policy (defaults to 3 attempts)
            sleep: Awaitable used for backoff delays
        """
        self._schedules = schedules
        self._task_units = task_units
        self._outcomes = outcomes
        self._idempotency = idempotency
        self._policy = policy or RetryPolicy()
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def invoke(self, event: DispatchEvent) -> InvocationOutcome:
        """Invoke the task unit for a firing and return the final outcome."""
        key = self._idempotency.generate_key(event.schedule_ref, event.fired_at)
        set_dispatch_id(key[:16])

        with structlog.contextvars.bound_contextvars(
            schedule=event.schedule_ref,
            fired_at=event.fired_at.isoformat(),
        ):
            existing = self._idempotency.check_and_lock(key)
            if existing:
                logger.info("Skipping duplicate dispatch (idempotent)", status=existing.status)
                outcome = InvocationOutcome.for_event(
                    event,
                    OutcomeStatus.SKIPPED,
                    reason=f"duplicate delivery ({existing.status})",
                )
                self._outcomes.record(outcome)
                return outcome

            try:
                outcome = await self._run(event)
            except BaseException as e:
                # A firing without an outcome stays redeliverable
                self._idempotency.mark_failed(key, type(e).__name__)
                raise

            self._idempotency.mark_completed(key, outcome.to_record())
            return outcome

    async def _run(self, event: DispatchEvent) -> InvocationOutcome:
        spec = self._schedules.get(event.schedule_ref)
        if spec is None:
            return self._terminal(event, f"unknown schedule {event.schedule_ref!r}")
        try:
            unit = self._task_units.get(spec.task_ref)
        except UnknownTaskError as e:
            return self._terminal(event, str(e))

        if event.catch_up:
            logger.info("Running catch-up invocation", missed=event.missed)

        current = event
        while True:
            with Timer() as timer:
                reason = await self._attempt(current, spec, unit)

            if reason is None:
                outcome = InvocationOutcome.for_event(
                    current, OutcomeStatus.SUCCESS, duration_ms=timer.duration_ms
                )
                self._outcomes.record(outcome)
                logger.info(
                    "Task invocation succeeded",
                    task=spec.task_ref,
                    attempt=current.attempt,
                    duration_ms=timer.duration_ms,
                )
                return outcome

            self._outcomes.record(
                InvocationOutcome.for_event(
                    current, OutcomeStatus.FAILURE, reason=reason, duration_ms=timer.duration_ms
                )
            )

            if current.attempt >= self._policy.max_attempts:
                return self._terminal(current, reason)

            delay = self._policy.delay_for(current.attempt)
            logger.info(
                "Task invocation failed, retrying",
                task=spec.task_ref,
                attempt=current.attempt,
                retry_in_seconds=delay,
                reason=reason,
            )
            await self._sleep(delay)
            current = current.next_attempt()

    async def _attempt(
        self,
        event: DispatchEvent,
        spec: ScheduleSpec,
        unit: TaskUnit,
    ) -> str | None:
        """Run one attempt. Returns None on success, else the failure reason."""
        request = TaskRequest(
            task=spec.task_ref,
            schedule=spec.name,
            fired_at=event.fired_at,
            attempt=event.attempt,
            parameters=spec.parameters,
        )
        try:
            if self._policy.timeout is not None:
                result = await asyncio.wait_for(unit.run(request), self._policy.timeout)
            else:
                result = await unit.run(request)
        except asyncio.TimeoutError:
            return f"timed out after {self._policy.timeout}s"
        except InvocationFailure as e:
            return str(e) or "invocation failure"
        except Exception as e:
            # The task unit is opaque; any error it raises fails the attempt
            logger.warning("Task unit raised", error=str(e), exc_info=True)
            return f"{type(e).__name__}: {e}"

        if not result.success:
            return result.detail or "task unit reported failure"
        return None

    def _terminal(self, event: DispatchEvent, reason: str) -> InvocationOutcome:
        outcome = InvocationOutcome.for_event(event, OutcomeStatus.TERMINAL_FAILURE, reason=reason)
        self._outcomes.record(outcome)
        logger.error(
            "Task invocation failed terminally",
            attempt=event.attempt,
            reason=reason,
        )
        return outcome
