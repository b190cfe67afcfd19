from __future__ import annotations

import asyncio
from typing import Any

from app.jobs.pipeline_jobs import normalize_stage_selector, parse_limit, run_pipeline
from app.orchestrator import ALL_STAGES, PIPELINE_DEFAULT_STAGES, PipelineOrchestrator


class FakeOrchestrator(PipelineOrchestrator):
    def __init__(self) -> None:
        super().__init__(store_factory=lambda: None)
        self.pipeline_calls: list[dict[str, Any]] = []

    async def run_pipeline(self, stages=PIPELINE_DEFAULT_STAGES, *, limit=None):
        self.pipeline_calls.append({"stages": list(stages), "limit": limit})
        return {"success": True, "stages": list(stages)}

    async def run_ingestion(self, limit=None):
        return {"success": True, "processed": 0, "limit": limit}

    def get_status(self):
        return {"success": True, "counts": {"total": 0}}


def test_stage_selector_defaults_filters_and_orders() -> None:
    assert normalize_stage_selector(None, default=PIPELINE_DEFAULT_STAGES) == ["ingest", "enrich"]
    assert normalize_stage_selector("", default=PIPELINE_DEFAULT_STAGES) == ["ingest", "enrich"]
    assert normalize_stage_selector("enrich, ingest,bogus,enrich", default=ALL_STAGES) == ["ingest", "enrich"]
    assert normalize_stage_selector(["REFRESH", "discover"], default=ALL_STAGES) == ["discover", "refresh"]
    assert normalize_stage_selector(["bogus"], default=ALL_STAGES) == list(ALL_STAGES)


def test_parse_limit_accepts_only_positive_integers() -> None:
    assert parse_limit("25") == 25
    assert parse_limit(10) == 10
    assert parse_limit(None) is None
    assert parse_limit("0") is None
    assert parse_limit("-3") is None
    assert parse_limit("lots") is None
    assert parse_limit(True) is None


def test_run_pipeline_job_forwards_normalized_stages_and_limit() -> None:
    orchestrator = FakeOrchestrator()

    asyncio.run(run_pipeline(orchestrator=orchestrator, stages="refresh,ingest", limit="5"))
    asyncio.run(run_pipeline(orchestrator=orchestrator))

    assert orchestrator.pipeline_calls == [
        {"stages": ["ingest", "refresh"], "limit": 5},
        {"stages": ["ingest", "enrich"], "limit": None},
    ]


def test_lambda_handler_dispatches_on_stage(monkeypatch) -> None:
    from app import handler

    fake = FakeOrchestrator()
    monkeypatch.setattr(handler, "orchestrator", fake)

    ingest = handler.lambda_handler({"stage": "ingest", "limit": "3"}, None)
    status = handler.lambda_handler({"stage": "status"}, None)
    pipeline = handler.lambda_handler({"stage": "pipeline", "stages": "enrich"}, None)
    unknown = handler.lambda_handler({"stage": "compact"}, None)

    assert ingest == {"statusCode": 200, "stage": "ingest", "result": {"success": True, "processed": 0, "limit": 3}}
    assert status["result"]["counts"] == {"total": 0}
    assert pipeline["result"]["stages"] == ["enrich"]
    assert unknown["statusCode"] == 400


def test_lambda_handler_migrate_stage_creates_schema(monkeypatch) -> None:
    from app import handler

    calls: list[str] = []

    def fake_init_db() -> list[str]:
        calls.append("init_db")
        return ["repositories"]

    monkeypatch.setattr(handler, "init_db", fake_init_db)

    response = handler.lambda_handler({"stage": "migrate"}, None)

    assert calls == ["init_db"]
    assert response == {"statusCode": 200, "stage": "migrate", "result": {"success": True, "tables": ["repositories"]}}
