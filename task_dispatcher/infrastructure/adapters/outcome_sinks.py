"""Observability sinks for invocation outcomes."""

import json

import structlog
from aiobotocore.session import get_session

from ...domain.entities import InvocationOutcome, OutcomeStatus
from ...domain.ports import OutcomeSink

logger = structlog.get_logger()

# Kinesis PutRecords accepts at most 500 records per call
_KINESIS_BATCH_SIZE = 500


class StructlogOutcomeSink(OutcomeSink):
    """Writes one flat structured log line per outcome."""

    def emit(self, outcome: InvocationOutcome) -> None:
        record = outcome.to_record()
        if outcome.status == OutcomeStatus.TERMINAL_FAILURE:
            logger.error("Invocation outcome", **record)
        elif outcome.status == OutcomeStatus.FAILURE:
            logger.warning("Invocation outcome", **record)
        else:
            logger.info("Invocation outcome", **record)


class KinesisOutcomeSink(OutcomeSink):
    """Buffers outcome records and publishes them to a Kinesis stream on flush."""

    def __init__(
        self,
        stream_name: str,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
    ) -> None:
        self._stream_name = stream_name
        self._region = region
        self._endpoint_url = endpoint_url
        self._session = get_session()
        self._pending: list[InvocationOutcome] = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    def emit(self, outcome: InvocationOutcome) -> None:
        self._pending.append(outcome)

    async def flush(self) -> None:
        """Publish buffered outcomes; records that fail stay buffered."""
        if not self._pending:
            return

        batch, self._pending = self._pending, []
        client_kwargs = {"region_name": self._region}
        if self._endpoint_url:
            client_kwargs["endpoint_url"] = self._endpoint_url

        failed: list[InvocationOutcome] = []
        try:
            async with self._session.create_client("kinesis", **client_kwargs) as client:
                for start in range(0, len(batch), _KINESIS_BATCH_SIZE):
                    chunk = batch[start : start + _KINESIS_BATCH_SIZE]
                    response = await client.put_records(
                        StreamName=self._stream_name,
                        Records=[
                            {
                                "Data": json.dumps(
                                    {"event_type": "invocation.outcome", "payload": o.to_record()}
                                ).encode("utf-8"),
                                "PartitionKey": o.schedule_ref,
                            }
                            for o in chunk
                        ],
                    )
                    if response.get("FailedRecordCount", 0):
                        failed.extend(
                            o
                            for o, result in zip(chunk, response.get("Records", []))
                            if result.get("ErrorCode")
                        )
        except Exception:
            self._pending = batch + self._pending
            raise

        if failed:
            self._pending = failed + self._pending
            logger.warning("Some outcome records were rejected", failed=len(failed))

        logger.info(
            "Published outcome records",
            stream=self._stream_name,
            count=len(batch) - len(failed),
        )
