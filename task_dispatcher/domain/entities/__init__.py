from .dispatch import (
    CONTRACT_VERSION,
    DispatchEvent,
    InvocationOutcome,
    OutcomeStatus,
    TaskRequest,
    TaskResult,
)
from .schedule import CronExpression, Interval, OneTime, Recurrence, ScheduleSpec

__all__ = [
    "CONTRACT_VERSION",
    "CronExpression",
    "DispatchEvent",
    "Interval",
    "InvocationOutcome",
    "OneTime",
    "OutcomeStatus",
    "Recurrence",
    "ScheduleSpec",
    "TaskRequest",
    "TaskResult",
]
