"""Scheduled pipeline entrypoints."""

from __future__ import annotations

from typing import Any, Sequence

from app.orchestrator import ALL_STAGES, PIPELINE_DEFAULT_STAGES, PipelineOrchestrator, build_default_orchestrator


def normalize_stage_selector(stages: str | Sequence[str] | None, *, default: Sequence[str]) -> list[str]:
    """Normalize stage selector input into deterministic stage order."""
    if stages is None:
        return list(default)

    if isinstance(stages, str):
        requested = [part.strip().lower() for part in stages.split(",") if part.strip()]
    else:
        requested = [str(part).strip().lower() for part in stages if str(part).strip()]

    if not requested:
        return list(default)

    allowed = set(ALL_STAGES)
    deduped: list[str] = []
    seen: set[str] = set()
    for stage in requested:
        if stage not in allowed or stage in seen:
            continue
        seen.add(stage)
        deduped.append(stage)
    deduped.sort(key=ALL_STAGES.index)
    return deduped or list(default)


def parse_limit(raw: Any) -> int | None:
    """Parse an optional positive batch limit from event payloads/query params."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = int(str(raw).strip())
    except ValueError:
        return None
    return value if value > 0 else None


async def run_pipeline(
    *,
    orchestrator: PipelineOrchestrator | None = None,
    stages: str | Sequence[str] | None = None,
    limit: Any = None,
) -> dict[str, Any]:
    """Run ingestion then enrichment by default."""
    job_orchestrator = orchestrator or build_default_orchestrator()
    selected_stages = normalize_stage_selector(stages, default=PIPELINE_DEFAULT_STAGES)
    return await job_orchestrator.run_pipeline(selected_stages, limit=parse_limit(limit))
