"""Sequential batch processing with per-record failure isolation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from app.config.settings import settings
from app.services.log_sanitizer import sanitize_for_log, sanitize_log_extra
from app.services.pipeline_exceptions import RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecordOutcome(str, Enum):
    PROCESSED = "processed"
    # Permanent failure recorded on the row; counts as processed
    SKIPPED = "skipped"


@dataclass
class BatchResult:
    total_found: int = 0
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: list[str] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None

    @classmethod
    def failed(cls, message: str) -> "BatchResult":
        return cls(success=False, error=message, error_details=[message])

    def to_dict(self, *, max_error_details: Optional[int] = None) -> dict[str, Any]:
        cap = settings.MAX_ERROR_DETAILS if max_error_details is None else max_error_details
        payload: dict[str, Any] = {
            "success": self.success,
            "totalFound": self.total_found,
            "processed": self.processed,
            "skipped": self.skipped,
            "errors": self.errors,
            "errorDetails": self.error_details[:cap],
            "timestamp": datetime.utcnow().isoformat(),
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


class BatchProcessor:
    """Apply a handler to each item in order, isolating failures per item.

    A fixed delay separates consecutive items. A RateLimitError triggers a
    cooldown (its retry_after, capped at max_cooldown_seconds, or the default
    cooldown) and a bounded number of retries of the same item. Any other
    exception is logged and counted, and the loop moves on.
    """

    def __init__(
        self,
        *,
        stage: str,
        delay_seconds: float = 0.0,
        cooldown_seconds: Optional[float] = None,
        max_cooldown_seconds: Optional[float] = None,
        max_rate_limit_retries: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._stage = stage
        self._delay_seconds = delay_seconds
        self._cooldown_seconds = (
            settings.RATE_LIMIT_COOLDOWN_SECONDS if cooldown_seconds is None else cooldown_seconds
        )
        self._max_cooldown_seconds = (
            settings.RATE_LIMIT_MAX_COOLDOWN_SECONDS if max_cooldown_seconds is None else max_cooldown_seconds
        )
        self._max_rate_limit_retries = (
            settings.RATE_LIMIT_MAX_RETRIES if max_rate_limit_retries is None else max_rate_limit_retries
        )
        self._sleep = sleep

    async def run(
        self,
        items: Sequence[T],
        handler: Callable[[T], Awaitable[Optional[RecordOutcome]]],
        *,
        label: Callable[[T], str] = str,
    ) -> BatchResult:
        result = BatchResult(total_found=len(items))

        for index, item in enumerate(items):
            if index > 0 and self._delay_seconds > 0:
                await self._sleep(self._delay_seconds)

            name = label(item)
            try:
                outcome = await self._run_item(item, handler, name)
            except Exception as exc:
                result.errors += 1
                result.error_details.append(sanitize_for_log(f"{name}: {exc}"))
                logger.warning(
                    "Batch record failed",
                    extra=sanitize_log_extra(stage=self._stage, record=name, error=str(exc)),
                )
                continue

            result.processed += 1
            if outcome == RecordOutcome.SKIPPED:
                result.skipped += 1

        logger.info(
            "Batch completed",
            extra=sanitize_log_extra(
                stage=self._stage,
                total=result.total_found,
                processed=result.processed,
                skipped=result.skipped,
                errors=result.errors,
            ),
        )
        return result

    async def _run_item(
        self,
        item: T,
        handler: Callable[[T], Awaitable[Optional[RecordOutcome]]],
        name: str,
    ) -> Optional[RecordOutcome]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_rate_limit_retries + 1),
            wait=self._cooldown_wait,
            retry=retry_if_exception_type(RateLimitError),
            before_sleep=lambda state: self._log_cooldown(state, name),
            sleep=self._sleep,
            reraise=True,
        ):
            with attempt:
                return await handler(item)
        return None

    def _cooldown_wait(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            return min(max(float(retry_after), 0.0), self._max_cooldown_seconds)
        return self._cooldown_seconds

    def _log_cooldown(self, retry_state: RetryCallState, name: str) -> None:
        logger.warning(
            "Rate limited; cooling down before retrying record",
            extra=sanitize_log_extra(
                stage=self._stage,
                record=name,
                cooldown_seconds=self._cooldown_wait(retry_state),
            ),
        )
