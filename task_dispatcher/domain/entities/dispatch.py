from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..errors import TerminalFailure

# Version of the payload shape handed to task units
CONTRACT_VERSION = "1"


class OutcomeStatus(str, Enum):
    """Result of one invocation attempt or of a whole firing."""

    SUCCESS = "success"
    FAILURE = "failure"
    TERMINAL_FAILURE = "terminal_failure"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class DispatchEvent:
    """One firing of a schedule, driving one invocation attempt."""

    schedule_ref: str
    fired_at: datetime
    attempt: int = 1
    missed: int = 0

    def __post_init__(self) -> None:
        if self.attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {self.attempt}")
        if self.fired_at.tzinfo is None:
            raise ValueError("fired_at must be timezone-aware")

    @property
    def catch_up(self) -> bool:
        return self.missed > 0

    def next_attempt(self) -> "DispatchEvent":
        return replace(self, attempt=self.attempt + 1)


@dataclass(frozen=True)
class InvocationOutcome:
    """Recorded result for a dispatch event attempt. Never mutated."""

    schedule_ref: str
    fired_at: datetime
    attempt: int
    status: OutcomeStatus
    completed_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    reason: str | None = None
    duration_ms: float | None = None

    @classmethod
    def for_event(
        cls,
        event: DispatchEvent,
        status: OutcomeStatus,
        reason: str | None = None,
        duration_ms: float | None = None,
    ) -> "InvocationOutcome":
        return cls(
            schedule_ref=event.schedule_ref,
            fired_at=event.fired_at,
            attempt=event.attempt,
            status=status,
            reason=reason,
            duration_ms=duration_ms,
        )

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    def raise_for_status(self) -> None:
        """Raise TerminalFailure if this outcome ended the firing in failure."""
        if self.status == OutcomeStatus.TERMINAL_FAILURE:
            raise TerminalFailure(self)

    def to_record(self) -> dict[str, Any]:
        """Flat structured record for observability sinks."""
        return {
            "schedule": self.schedule_ref,
            "fired_at": self.fired_at.isoformat(),
            "attempt": self.attempt,
            "status": self.status.value,
            "reason": self.reason,
            "completed_at": self.completed_at.isoformat(),
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True)
class TaskRequest:
    """Fixed-shape input handed to a task unit."""

    task: str
    schedule: str
    fired_at: datetime
    attempt: int
    parameters: dict[str, str] = field(default_factory=dict)
    version: str = CONTRACT_VERSION

    def to_payload(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "task": self.task,
            "schedule": self.schedule,
            "fired_at": self.fired_at.isoformat(),
            "attempt": self.attempt,
            "parameters": dict(self.parameters),
        }


@dataclass
class TaskResult:
    """Success/failure signal returned by a task unit."""

    success: bool
    detail: str | None = None
