import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from structlog.testing import capture_logs

from task_dispatcher.domain.entities import InvocationOutcome, OutcomeStatus
from task_dispatcher.domain.ports import OutcomeSink
from task_dispatcher.infrastructure.adapters import KinesisOutcomeSink, StructlogOutcomeSink
from task_dispatcher.infrastructure.outcome_log import InMemoryOutcomeLog

FIRED_AT = datetime(2024, 1, 2, tzinfo=UTC)


def _outcome(schedule: str = "daily", status: OutcomeStatus = OutcomeStatus.SUCCESS, attempt: int = 1):
    return InvocationOutcome(
        schedule_ref=schedule,
        fired_at=FIRED_AT,
        attempt=attempt,
        status=status,
        reason=None if status == OutcomeStatus.SUCCESS else "ledger unavailable",
    )


class ListSink(OutcomeSink):
    def __init__(self) -> None:
        self.emitted: list[InvocationOutcome] = []

    def emit(self, outcome: InvocationOutcome) -> None:
        self.emitted.append(outcome)


class TestInMemoryOutcomeLog:
    def test_records_in_order(self):
        log = InMemoryOutcomeLog()
        first, second = _outcome(attempt=1), _outcome(attempt=2)

        log.record(first)
        log.record(second)

        assert log.records() == [first, second]

    def test_filter_by_schedule(self):
        log = InMemoryOutcomeLog()
        log.record(_outcome("daily"))
        log.record(_outcome("hourly"))
        log.record(_outcome("daily", attempt=2))

        assert [o.attempt for o in log.records("daily")] == [1, 2]
        assert log.latest("daily").attempt == 2
        assert log.latest("weekly") is None

    def test_retention_drops_oldest(self):
        log = InMemoryOutcomeLog(retention=2)
        for attempt in (1, 2, 3):
            log.record(_outcome(attempt=attempt))

        assert [o.attempt for o in log.records()] == [2, 3]

    def test_fans_out_to_sinks(self):
        sink = ListSink()
        log = InMemoryOutcomeLog(sinks=[sink])
        outcome = _outcome()

        log.record(outcome)

        assert sink.emitted == [outcome]

    def test_emit_failure_does_not_propagate(self):
        broken = ListSink()
        broken.emit = MagicMock(side_effect=RuntimeError("collector down"))
        healthy = ListSink()
        log = InMemoryOutcomeLog(sinks=[broken, healthy])
        outcome = _outcome()

        log.record(outcome)

        assert log.records() == [outcome]
        assert healthy.emitted == [outcome]

    @pytest.mark.asyncio
    async def test_flush_failure_does_not_propagate(self):
        broken = ListSink()
        broken.flush = AsyncMock(side_effect=RuntimeError("stream gone"))
        healthy = ListSink()
        healthy.flush = AsyncMock()
        log = InMemoryOutcomeLog(sinks=[broken, healthy])

        await log.flush()

        healthy.flush.assert_awaited_once()


class TestOutcomeRecord:
    def test_flat_record(self):
        record = _outcome(status=OutcomeStatus.FAILURE, attempt=2).to_record()

        assert record["schedule"] == "daily"
        assert record["fired_at"] == "2024-01-02T00:00:00+00:00"
        assert record["attempt"] == 2
        assert record["status"] == "failure"
        assert record["reason"] == "ledger unavailable"


class TestStructlogOutcomeSink:
    @pytest.mark.parametrize(
        "status, level",
        [
            (OutcomeStatus.SUCCESS, "info"),
            (OutcomeStatus.SKIPPED, "info"),
            (OutcomeStatus.FAILURE, "warning"),
            (OutcomeStatus.TERMINAL_FAILURE, "error"),
        ],
    )
    def test_log_level_follows_status(self, status, level):
        with capture_logs() as logs:
            StructlogOutcomeSink().emit(_outcome(status=status))

        assert logs[0]["log_level"] == level
        assert logs[0]["status"] == status.value
        assert logs[0]["schedule"] == "daily"


@pytest.fixture
def kinesis_client():
    client = MagicMock()
    client.put_records = AsyncMock(return_value={"FailedRecordCount": 0, "Records": []})
    with patch("task_dispatcher.infrastructure.adapters.outcome_sinks.get_session") as mock_session:
        mock_session.return_value.create_client.return_value.__aenter__.return_value = client
        yield client


class TestKinesisOutcomeSink:
    @pytest.mark.asyncio
    async def test_emit_buffers_until_flush(self, kinesis_client):
        sink = KinesisOutcomeSink("outcomes")
        sink.emit(_outcome())

        assert sink.pending == 1
        kinesis_client.put_records.assert_not_called()

        await sink.flush()

        assert sink.pending == 0
        kwargs = kinesis_client.put_records.call_args.kwargs
        assert kwargs["StreamName"] == "outcomes"
        (entry,) = kwargs["Records"]
        assert entry["PartitionKey"] == "daily"
        data = json.loads(entry["Data"])
        assert data["event_type"] == "invocation.outcome"
        assert data["payload"]["status"] == "success"

    @pytest.mark.asyncio
    async def test_flush_with_nothing_pending(self, kinesis_client):
        await KinesisOutcomeSink("outcomes").flush()

        kinesis_client.put_records.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_records_stay_buffered(self, kinesis_client):
        kinesis_client.put_records.return_value = {
            "FailedRecordCount": 1,
            "Records": [{"SequenceNumber": "1"}, {"ErrorCode": "ProvisionedThroughputExceededException"}],
        }
        sink = KinesisOutcomeSink("outcomes")
        sink.emit(_outcome("daily"))
        sink.emit(_outcome("hourly"))

        await sink.flush()

        assert sink.pending == 1

    @pytest.mark.asyncio
    async def test_client_error_rebuffers_and_raises(self, kinesis_client):
        kinesis_client.put_records.side_effect = RuntimeError("endpoint unreachable")
        sink = KinesisOutcomeSink("outcomes")
        sink.emit(_outcome())

        with pytest.raises(RuntimeError):
            await sink.flush()

        assert sink.pending == 1
