"""
Outbound port for idempotency checking.

Guards a firing (schedule + due instant) against duplicate delivery.
Implementations live in the infrastructure layer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass
class IdempotencyRecord:
    """Record of a firing seen by the invoker."""

    key: str
    status: str  # processing, completed, failed
    created_at: datetime
    completed_at: datetime | None = None
    result: dict | None = None
    error: str | None = None


class IdempotencyPort(ABC):
    """Outbound port for idempotency checking."""

    @abstractmethod
    def generate_key(self, schedule_ref: str, fired_at: datetime) -> str:
        """
        Generate a unique idempotency key.

        Args:
            schedule_ref: Schedule name
            fired_at: Due instant of the firing

        Returns:
            Unique key for this firing
        """
        ...

    @abstractmethod
    def check_and_lock(self, key: str) -> IdempotencyRecord | None:
        """
        Check if the firing exists and lock it if not.

        Returns:
            Existing record if found, None if new (and now locked)
        """
        ...

    @abstractmethod
    def mark_completed(self, key: str, result: dict[str, Any]) -> None:
        """Mark the firing as concluded (success or terminal failure)."""
        ...

    @abstractmethod
    def mark_failed(self, key: str, error: str) -> None:
        """Mark the firing as interrupted; a redelivery may retry it."""
        ...

    @abstractmethod
    def release_lock(self, key: str) -> None:
        """Drop the record without concluding it."""
        ...
