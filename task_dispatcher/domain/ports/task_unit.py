"""
Outbound port for the unit of work a schedule runs.

The task unit is an opaque collaborator (a Lambda function, an HTTP endpoint,
a local coroutine). It must be idempotent per invocation: the invoker
delivers at least once.
"""

from abc import ABC, abstractmethod

from ..entities import TaskRequest, TaskResult


class TaskUnit(ABC):
    """Interface that task unit adapters implement."""

    @abstractmethod
    async def run(self, request: TaskRequest) -> TaskResult:
        """
        Invoke the unit of work once.

        Args:
            request: Versioned input contract for this attempt

        Returns:
            TaskResult with the success/failure signal

        Raises:
            InvocationFailure: On a transient failure reaching the unit
        """
        ...
