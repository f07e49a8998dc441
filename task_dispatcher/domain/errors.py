"""Error kinds raised by the dispatch core."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .entities import InvocationOutcome


class DispatchError(Exception):
    """Base class for dispatch errors."""


class InvalidScheduleError(DispatchError):
    """Recurrence is malformed or never fires within the horizon."""

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(f"Invalid schedule {expression!r}: {reason}")
        self.expression = expression
        self.reason = reason


class UnknownTaskError(DispatchError):
    """A schedule references a task with no registered target."""

    def __init__(self, task_ref: str) -> None:
        super().__init__(f"No task unit registered for {task_ref!r}")
        self.task_ref = task_ref


class InvocationFailure(DispatchError):
    """A single attempt failed; the invoker may retry it."""


class TerminalFailure(DispatchError):
    """The retry ceiling was exceeded for one firing."""

    def __init__(self, outcome: "InvocationOutcome") -> None:
        super().__init__(
            f"Schedule {outcome.schedule_ref!r} failed terminally after "
            f"{outcome.attempt} attempt(s): {outcome.reason}"
        )
        self.outcome = outcome
