"""In-memory, append-only outcome log with observability fan-out."""

import threading
from collections import deque
from collections.abc import Iterable

import structlog

from ..domain.entities import InvocationOutcome
from ..domain.ports import OutcomeRecorder, OutcomeSink

logger = structlog.get_logger()

DEFAULT_RETENTION = 1000


class InMemoryOutcomeLog(OutcomeRecorder):
    """
    Bounded append-only log of invocation outcomes.

    Only the most recent ``retention`` outcomes are kept; every recorded
    outcome is forwarded to the configured sinks.
    """

    def __init__(
        self,
        sinks: Iterable[OutcomeSink] = (),
        retention: int = DEFAULT_RETENTION,
    ) -> None:
        self._records: deque[InvocationOutcome] = deque(maxlen=retention)
        self._sinks = list(sinks)
        self._lock = threading.Lock()

    def record(self, outcome: InvocationOutcome) -> None:
        with self._lock:
            self._records.append(outcome)
        for sink in self._sinks:
            try:
                sink.emit(outcome)
            except Exception as e:
                logger.error("Outcome sink emit failed", sink=type(sink).__name__, error=str(e))

    def records(self, schedule_ref: str | None = None) -> list[InvocationOutcome]:
        with self._lock:
            snapshot = list(self._records)
        if schedule_ref is None:
            return snapshot
        return [o for o in snapshot if o.schedule_ref == schedule_ref]

    def latest(self, schedule_ref: str) -> InvocationOutcome | None:
        matching = self.records(schedule_ref)
        return matching[-1] if matching else None

    async def flush(self) -> None:
        for sink in self._sinks:
            try:
                await sink.flush()
            except Exception as e:
                logger.error("Outcome sink flush failed", sink=type(sink).__name__, error=str(e))
