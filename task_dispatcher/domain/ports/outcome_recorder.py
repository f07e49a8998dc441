"""
Outbound ports for outcome recording and observability.

The recorder is the append-only outcome log owned by the invoker; sinks
forward each recorded outcome to an external log or metrics collector.
"""

from abc import ABC, abstractmethod

from ..entities import InvocationOutcome


class OutcomeSink(ABC):
    """Observability sink for outcome records."""

    @abstractmethod
    def emit(self, outcome: InvocationOutcome) -> None:
        """Accept one outcome. Must not block."""
        ...

    async def flush(self) -> None:
        """Push anything buffered. Default: nothing buffered."""
        return None


class OutcomeRecorder(ABC):
    """Append-only outcome log."""

    @abstractmethod
    def record(self, outcome: InvocationOutcome) -> None:
        """Append an outcome atomically."""
        ...

    @abstractmethod
    def records(self, schedule_ref: str | None = None) -> list[InvocationOutcome]:
        """Return retained outcomes in recording order."""
        ...

    @abstractmethod
    async def flush(self) -> None:
        """Flush pending outcomes to every sink."""
        ...
