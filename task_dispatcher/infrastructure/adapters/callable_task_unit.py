from collections.abc import Awaitable, Callable

from ...domain.entities import TaskRequest, TaskResult
from ...domain.ports import TaskUnit

TaskFunction = Callable[[TaskRequest], Awaitable[TaskResult | bool | None]]


class CallableTaskUnit(TaskUnit):
    """
    Runs a local coroutine function as the task unit.

    The function may return a TaskResult, a bool, or None (treated as success).
    """

    def __init__(self, func: TaskFunction) -> None:
        self._func = func

    async def run(self, request: TaskRequest) -> TaskResult:
        result = await self._func(request)
        if isinstance(result, TaskResult):
            return result
        if result is None or result is True:
            return TaskResult(success=True)
        return TaskResult(success=False, detail="task function returned False")
