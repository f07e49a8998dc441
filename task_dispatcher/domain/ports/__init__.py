from .idempotency import IdempotencyPort, IdempotencyRecord
from .outcome_recorder import OutcomeRecorder, OutcomeSink
from .task_unit import TaskUnit

__all__ = [
    "IdempotencyPort",
    "IdempotencyRecord",
    "OutcomeRecorder",
    "OutcomeSink",
    "TaskUnit",
]
