from datetime import UTC, datetime

import pytest

from task_dispatcher.application.dtos import ScheduleDefinition
from task_dispatcher.application.services import Dispatcher, RetryPolicy, TaskInvoker
from task_dispatcher.domain.entities import TaskRequest, TaskResult
from task_dispatcher.domain.ports import TaskUnit
from task_dispatcher.infrastructure.adapters import TaskRegistry
from task_dispatcher.infrastructure.idempotency import InMemoryIdempotencyService
from task_dispatcher.infrastructure.outcome_log import InMemoryOutcomeLog


class ScriptedTaskUnit(TaskUnit):
    """Fails the first ``failures`` calls, then succeeds."""

    def __init__(self, failures: int = 0, always_fail: bool = False) -> None:
        self.failures = failures
        self.always_fail = always_fail
        self.requests: list[TaskRequest] = []

    async def run(self, request: TaskRequest) -> TaskResult:
        self.requests.append(request)
        if self.always_fail or len(self.requests) <= self.failures:
            return TaskResult(success=False, detail=f"ledger unavailable ({len(self.requests)})")
        return TaskResult(success=True, detail="Success!")


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def day0() -> datetime:
    return datetime(2024, 1, 1, tzinfo=UTC)


@pytest.fixture
def daily_definition() -> ScheduleDefinition:
    return ScheduleDefinition(
        name="check-author-associations",
        recurrence="rate(1 day)",
        task="checkAssociations",
        parameters={"association_type": "Spatium Author"},
    )


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def scripted_unit_factory():
    return ScriptedTaskUnit


@pytest.fixture
def outcome_log() -> InMemoryOutcomeLog:
    return InMemoryOutcomeLog()


@pytest.fixture
def make_invoker(outcome_log, recording_sleep):
    """Build a TaskInvoker around a dispatcher and a single task unit."""

    def _make(
        dispatcher: Dispatcher,
        unit: TaskUnit,
        task_ref: str = "checkAssociations",
        **policy,
    ) -> TaskInvoker:
        return TaskInvoker(
            schedules=dispatcher,
            task_units=TaskRegistry({task_ref: unit}),
            outcomes=outcome_log,
            idempotency=InMemoryIdempotencyService(ttl_seconds=60),
            policy=RetryPolicy(**policy),
            sleep=recording_sleep,
        )

    return _make
