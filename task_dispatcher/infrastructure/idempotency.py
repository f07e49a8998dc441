"""Idempotency service for dispatch events.

A firing (schedule + due instant) is invoked at most once per process even
when the platform redelivers the trigger.
"""

import hashlib
import time
from datetime import datetime
from typing import Any

import structlog

from ..domain.ports import IdempotencyPort, IdempotencyRecord

logger = structlog.get_logger()

# Default TTL for idempotency keys (24 hours)
DEFAULT_TTL_SECONDS = 86400

# A firing stuck in "processing" longer than this may be retried
DEFAULT_PROCESSING_TIMEOUT_SECONDS = 900


class InMemoryIdempotencyService(IdempotencyPort):
    """
    In-memory implementation of IdempotencyPort.

    Scoped to one process; a warm Lambda container keeps it across
    invocations, a cold start does not.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        processing_timeout_seconds: int = DEFAULT_PROCESSING_TIMEOUT_SECONDS,
    ) -> None:
        """
        Initialize idempotency service.

        Args:
            ttl_seconds: Time-to-live for idempotency records
            processing_timeout_seconds: Age after which a processing lock is stale
        """
        self._ttl_seconds = ttl_seconds
        self._processing_timeout = processing_timeout_seconds
        self._cache: dict[str, IdempotencyRecord] = {}
        self._expires: dict[str, float] = {}

    def generate_key(self, schedule_ref: str, fired_at: datetime) -> str:
        """
        Generate an idempotency key for a firing.

        Returns:
            SHA256 hash of schedule name + ISO due instant
        """
        key_input = f"{schedule_ref}:{fired_at.isoformat()}"
        return hashlib.sha256(key_input.encode()).hexdigest()

    def check_and_lock(self, key: str) -> IdempotencyRecord | None:
        """
        Check if a firing has been handled and lock it for processing.

        Returns:
            Existing record if already completed/processing, None if new
        """
        self._cleanup_expired()

        existing = self._cache.get(key)

        if existing:
            if existing.status == "completed":
                logger.info("Firing already handled (idempotent)", idempotency_key=key[:16])
                return existing

            if existing.status == "processing":
                age = (datetime.now() - existing.created_at).total_seconds()
                if age <= self._processing_timeout:
                    logger.info("Firing currently being processed", idempotency_key=key[:16])
                    return existing
                logger.warning("Processing timeout, allowing retry", idempotency_key=key[:16])

        record = IdempotencyRecord(
            key=key,
            status="processing",
            created_at=datetime.now(),
        )
        self._cache[key] = record
        self._expires[key] = time.time() + self._ttl_seconds

        logger.debug("Locked firing for processing", idempotency_key=key[:16])
        return None

    def mark_completed(self, key: str, result: dict[str, Any]) -> None:
        if key in self._cache:
            record = self._cache[key]
            self._cache[key] = IdempotencyRecord(
                key=record.key,
                status="completed",
                created_at=record.created_at,
                completed_at=datetime.now(),
                result=result,
            )
            logger.debug("Marked firing as completed", idempotency_key=key[:16])

    def mark_failed(self, key: str, error: str) -> None:
        """Mark a firing as failed (allows retry)."""
        if key in self._cache:
            record = self._cache[key]
            self._cache[key] = IdempotencyRecord(
                key=record.key,
                status="failed",
                created_at=record.created_at,
                completed_at=datetime.now(),
                error=error,
            )
            logger.debug("Marked firing as failed", idempotency_key=key[:16], error=error)

    def release_lock(self, key: str) -> None:
        if key in self._cache:
            del self._cache[key]
            self._expires.pop(key, None)
            logger.debug("Released processing lock", idempotency_key=key[:16])

    def _cleanup_expired(self) -> None:
        """Remove expired records from cache."""
        now = time.time()
        expired = [k for k, v in self._expires.items() if v < now]
        for key in expired:
            del self._cache[key]
            del self._expires[key]
        if expired:
            logger.debug("Cleaned up expired idempotency records", count=len(expired))

