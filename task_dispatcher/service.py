"""
DispatcherService: process-wide dispatch state with explicit init and teardown.

``start`` compiles and loads schedules and begins ticking the Dispatcher on an
APScheduler interval job; ``stop`` shuts the clock down, waits for in-flight
invocations and flushes pending outcomes.
"""

import asyncio
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .application.dtos import ScheduleDefinition
from .application.services import Dispatcher, RetryPolicy, TaskInvoker, compile_schedule
from .config import Settings
from .domain.entities import DispatchEvent, InvocationOutcome, ScheduleSpec
from .domain.errors import InvalidScheduleError
from .domain.ports import IdempotencyPort, OutcomeSink
from .infrastructure.adapters import KinesisOutcomeSink, StructlogOutcomeSink, TaskRegistry
from .infrastructure.idempotency import InMemoryIdempotencyService
from .infrastructure.outcome_log import InMemoryOutcomeLog

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class DispatcherService:
    """Drives the Dispatcher from a clock and runs invocations as asyncio tasks."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        invoker: TaskInvoker,
        registry: TaskRegistry,
        outcomes: InMemoryOutcomeLog,
        tick_interval_seconds: int = 60,
        horizon: timedelta = timedelta(days=366),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.dispatcher = dispatcher
        self.invoker = invoker
        self.registry = registry
        self.outcomes = outcomes
        self._tick_interval = tick_interval_seconds
        self._horizon = horizon
        self._clock = clock
        self._scheduler: AsyncIOScheduler | None = None
        self._in_flight: set[asyncio.Task] = set()
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    # -- Lifecycle -------------------------------------------------------------

    def load(
        self,
        definitions: Iterable[ScheduleDefinition],
        reference_time: datetime | None = None,
    ) -> list[ScheduleSpec]:
        """
        Compile and register schedule definitions.

        A definition that fails to compile, or names an unregistered task,
        is logged and skipped; the rest still load.
        """
        reference_time = reference_time or self._clock()
        loaded: list[ScheduleSpec] = []
        for definition in definitions:
            try:
                spec = compile_schedule(definition, reference_time, self._horizon)
            except InvalidScheduleError as e:
                logger.error("Skipping invalid schedule", schedule=definition.name, error=str(e))
                continue
            if spec.task_ref not in self.registry:
                logger.error(
                    "Skipping schedule with unknown task",
                    schedule=spec.name,
                    task=spec.task_ref,
                )
                continue
            try:
                self.dispatcher.add(spec, reference_time)
            except ValueError as e:
                logger.error("Skipping duplicate schedule", schedule=spec.name, error=str(e))
                continue
            loaded.append(spec)

        logger.info(
            "Schedules loaded",
            loaded=[s.name for s in loaded],
            next_due=_iso(self.dispatcher.next_due()),
        )
        return loaded

    async def start(
        self,
        definitions: Iterable[ScheduleDefinition],
        reference_time: datetime | None = None,
    ) -> None:
        """Load schedules and start the tick job."""
        self.load(definitions, reference_time)

        self._scheduler = AsyncIOScheduler(timezone=UTC)
        self._scheduler.add_job(
            self.tick_job,
            "interval",
            seconds=self._tick_interval,
            id="dispatch_tick",
            max_instances=1,  # Prevent overlapping ticks
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("Dispatcher started", tick_interval=self._tick_interval)

    async def stop(self) -> None:
        """Stop ticking, let in-flight invocations finish, flush outcomes."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        await self.drain()
        await self.outcomes.flush()
        logger.info("Dispatcher shutdown complete")

    # -- Dispatch --------------------------------------------------------------

    async def tick_job(self) -> None:
        """Scheduled job: evaluate due schedules and flush recorded outcomes."""
        try:
            self.run_tick(self._clock())
            await self.outcomes.flush()
        except Exception as e:
            logger.warning("Tick failed, will retry next interval", error=str(e))

    def run_tick(self, now: datetime) -> list[asyncio.Task]:
        """Emit due events and start one invocation task per event."""
        tasks = []
        for event in self.dispatcher.tick(now):
            task = asyncio.create_task(self._invoke_serialised(event))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            tasks.append(task)
        return tasks

    async def drain(self) -> None:
        """Wait for all in-flight invocations."""
        while self._in_flight:
            await asyncio.wait(set(self._in_flight))

    def disable(self, name: str) -> None:
        self.dispatcher.disable(name)

    def enable(self, name: str) -> None:
        self.dispatcher.enable(name, self._clock())

    async def _invoke_serialised(self, event: DispatchEvent) -> InvocationOutcome | None:
        # Firings of one schedule never overlap
        lock = self._locks.setdefault(event.schedule_ref, asyncio.Lock())
        async with lock:
            try:
                return await self.invoker.invoke(event)
            except Exception:
                logger.exception("Invocation crashed", schedule=event.schedule_ref)
                return None


def build_service(
    settings: Settings,
    registry: TaskRegistry | None = None,
    idempotency: IdempotencyPort | None = None,
    sinks: list[OutcomeSink] | None = None,
    clock: Callable[[], datetime] = _utcnow,
) -> DispatcherService:
    """Composition root: wire the dispatcher from settings."""
    if registry is None:
        registry = TaskRegistry.from_targets(
            settings.task_targets,
            region=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
        )
    if sinks is None:
        sinks = [StructlogOutcomeSink()]
        if settings.outcome_stream_name:
            sinks.append(
                KinesisOutcomeSink(
                    settings.outcome_stream_name,
                    region=settings.aws_region,
                    endpoint_url=settings.aws_endpoint_url,
                )
            )

    dispatcher = Dispatcher()
    outcomes = InMemoryOutcomeLog(sinks=sinks, retention=settings.outcome_retention)
    invoker = TaskInvoker(
        schedules=dispatcher,
        task_units=registry,
        outcomes=outcomes,
        idempotency=idempotency
        or InMemoryIdempotencyService(ttl_seconds=settings.idempotency_ttl_seconds),
        policy=RetryPolicy.from_settings(settings),
    )
    return DispatcherService(
        dispatcher=dispatcher,
        invoker=invoker,
        registry=registry,
        outcomes=outcomes,
        tick_interval_seconds=settings.tick_interval_seconds,
        horizon=timedelta(days=settings.horizon_days),
        clock=clock,
    )


def _iso(instant: datetime | None) -> str | None:
    return instant.isoformat() if instant else None
