from __future__ import annotations

import pytest

from app.services.batch import BatchProcessor, BatchResult, RecordOutcome
from app.services.pipeline_exceptions import RateLimitError, TransientPipelineError


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.mark.asyncio
async def test_one_failing_record_does_not_stop_the_batch() -> None:
    sleep = RecordingSleep()
    processor = BatchProcessor(stage="ingest", delay_seconds=3.0, sleep=sleep)
    seen: list[int] = []

    async def handler(item: int) -> RecordOutcome:
        seen.append(item)
        if item == 3:
            raise TransientPipelineError("upstream 502")
        return RecordOutcome.PROCESSED

    result = await processor.run([1, 2, 3, 4, 5], handler, label=lambda item: f"repo-{item}")

    assert seen == [1, 2, 3, 4, 5]
    assert result.total_found == 5
    assert result.processed == 4
    assert result.errors == 1
    assert result.error_details == ["repo-3: upstream 502"]
    assert sleep.calls == [3.0, 3.0, 3.0, 3.0]


@pytest.mark.asyncio
async def test_skipped_records_count_as_processed() -> None:
    processor = BatchProcessor(stage="ingest", sleep=RecordingSleep())

    async def handler(item: str) -> RecordOutcome:
        return RecordOutcome.SKIPPED if item == "gone" else RecordOutcome.PROCESSED

    result = await processor.run(["ok", "gone"], handler)

    assert result.processed == 2
    assert result.skipped == 1
    assert result.errors == 0


@pytest.mark.asyncio
async def test_rate_limit_cools_down_and_retries_once() -> None:
    sleep = RecordingSleep()
    processor = BatchProcessor(stage="enrich", cooldown_seconds=60, max_rate_limit_retries=1, sleep=sleep)
    attempts: list[str] = []

    async def handler(item: str) -> RecordOutcome:
        attempts.append(item)
        if len(attempts) == 1:
            raise RateLimitError("429")
        return RecordOutcome.PROCESSED

    result = await processor.run(["acme/widget"], handler)

    assert attempts == ["acme/widget", "acme/widget"]
    assert sleep.calls == [60]
    assert result.processed == 1
    assert result.errors == 0


@pytest.mark.asyncio
async def test_rate_limit_twice_counts_one_error_and_honours_retry_after() -> None:
    sleep = RecordingSleep()
    processor = BatchProcessor(stage="enrich", cooldown_seconds=60, max_rate_limit_retries=1, sleep=sleep)
    attempts = 0

    async def handler(item: str) -> RecordOutcome:
        nonlocal attempts
        attempts += 1
        raise RateLimitError("429", retry_after=5)

    result = await processor.run(["acme/widget"], handler)

    assert attempts == 2
    assert sleep.calls == [5.0]
    assert result.processed == 0
    assert result.errors == 1


@pytest.mark.asyncio
async def test_oversized_retry_after_is_capped() -> None:
    sleep = RecordingSleep()
    processor = BatchProcessor(
        stage="enrich", cooldown_seconds=60, max_cooldown_seconds=300, max_rate_limit_retries=1, sleep=sleep
    )
    attempts = 0

    async def handler(item: str) -> RecordOutcome:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RateLimitError("429", retry_after=3600)
        return RecordOutcome.PROCESSED

    result = await processor.run(["acme/widget"], handler)

    assert sleep.calls == [300.0]
    assert result.processed == 1
    assert result.errors == 0


@pytest.mark.asyncio
async def test_transient_errors_are_not_retried() -> None:
    sleep = RecordingSleep()
    processor = BatchProcessor(stage="ingest", sleep=sleep)
    attempts = 0

    async def handler(item: str) -> RecordOutcome:
        nonlocal attempts
        attempts += 1
        raise TransientPipelineError("timeout")

    result = await processor.run(["a"], handler)

    assert attempts == 1
    assert sleep.calls == []
    assert result.errors == 1


def test_batch_result_summary_caps_error_details() -> None:
    result = BatchResult(total_found=12, errors=12, error_details=[f"repo-{i}: boom" for i in range(12)])

    payload = result.to_dict()

    assert payload["success"] is True
    assert payload["totalFound"] == 12
    assert len(payload["errorDetails"]) == 10
    assert "timestamp" in payload
    assert "error" not in payload
    assert BatchResult.failed("db down").to_dict()["error"] == "db down"
