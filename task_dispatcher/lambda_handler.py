"""
Lambda handler for EventBridge scheduled events.

Here the platform's rule is the clock: each scheduled event becomes one
DispatchEvent for the schedule named like the rule (or the only configured
schedule) and is handed to the invoker. Terminal failures are reported in
the response instead of raised, so the platform does not re-queue them.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

import structlog

from .config import settings
from .domain.entities import DispatchEvent, OutcomeStatus
from .infrastructure.logging import configure_logging
from .service import DispatcherService, build_service

configure_logging(settings.service_name)

logger = structlog.get_logger()

# Reused across warm invocations
_service: DispatcherService | None = None


def get_service() -> DispatcherService:
    global _service
    if _service is None:
        _service = build_service(settings)
        _service.load(settings.schedules)
    return _service


def dispatch_event_from_eventbridge(event: dict, schedule_names: list[str]) -> DispatchEvent:
    """
    Map an EventBridge scheduled event to a DispatchEvent.

    Raises:
        ValueError: If the event has no usable time or matches no schedule
    """
    try:
        fired_at = datetime.fromisoformat(event["time"])
    except (KeyError, TypeError) as e:
        raise ValueError("Scheduled event has no 'time'") from e
    if fired_at.tzinfo is None:
        fired_at = fired_at.replace(tzinfo=UTC)

    rule_names = [arn.rsplit("/", 1)[-1] for arn in event.get("resources", [])]
    for rule_name in rule_names:
        if rule_name in schedule_names:
            return DispatchEvent(schedule_ref=rule_name, fired_at=fired_at.astimezone(UTC))

    if len(schedule_names) == 1:
        return DispatchEvent(schedule_ref=schedule_names[0], fired_at=fired_at.astimezone(UTC))

    raise ValueError(f"No schedule matches rules {rule_names}")


def handler(event: dict, context) -> dict:
    """AWS Lambda handler for EventBridge scheduled events."""
    return asyncio.run(handle_event(event, get_service()))


async def handle_event(event: dict, service: DispatcherService) -> dict[str, Any]:
    names = [spec.name for spec in service.dispatcher.schedules]
    try:
        dispatch = dispatch_event_from_eventbridge(event, names)
    except ValueError as e:
        logger.error("Unroutable scheduled event", error=str(e), event_id=event.get("id"))
        return {"statusCode": 400, "error": str(e)}

    spec = service.dispatcher.get(dispatch.schedule_ref)
    if spec is not None and not spec.enabled:
        logger.info("Schedule disabled, ignoring event", schedule=dispatch.schedule_ref)
        return {"statusCode": 200, "skipped": dispatch.schedule_ref}

    outcome = await service.invoker.invoke(dispatch)
    await service.outcomes.flush()

    status_code = 500 if outcome.status == OutcomeStatus.TERMINAL_FAILURE else 200
    return {"statusCode": status_code, "outcome": outcome.to_record()}
