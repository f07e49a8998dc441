from pydantic import Field
from pydantic_settings import BaseSettings

from .application.dtos import ScheduleDefinition


def _default_schedules() -> list[ScheduleDefinition]:
    return [
        ScheduleDefinition(
            name="check-author-associations",
            recurrence="rate(1 day)",
            task="checkAssociations",
            parameters={"association_type": "Spatium Author"},
        )
    ]


class Settings(BaseSettings):
    """Dispatcher settings loaded from environment."""

    # Service
    service_name: str = "task-dispatcher"

    # AWS
    aws_region: str = "us-east-1"
    aws_endpoint_url: str | None = None  # For LocalStack
    outcome_stream_name: str | None = None  # Kinesis sink, disabled when unset

    # Dispatch
    tick_interval_seconds: int = 60
    horizon_days: int = 366  # Schedules must fire at least once within this window

    # Retry policy
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    backoff_max_seconds: float = 60.0
    attempt_timeout_seconds: float | None = 300.0

    # Outcomes
    outcome_retention: int = 1000
    idempotency_ttl_seconds: int = 86400

    # Schedules and where their tasks live ("lambda:<function>" or an http(s) URL)
    schedules: list[ScheduleDefinition] = Field(default_factory=_default_schedules)
    task_targets: dict[str, str] = Field(
        default_factory=lambda: {"checkAssociations": "lambda:checkAssociations"}
    )

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
