"""Pipeline orchestrator: discovery, ingestion, enrichment and refresh stages."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional, Sequence

from app.config.database import SessionLocal
from app.config.settings import settings
from app.crawlers.base import BaseSource
from app.crawlers.github_client import GitHubClient
from app.crawlers.github_trending import GitHubTrendingSource
from app.crawlers.huggingface_papers import HuggingFacePapersSource
from app.crawlers.ossinsight import OssInsightSource
from app.models.repository import split_languages
from app.services.batch import BatchProcessor, BatchResult, RecordOutcome
from app.services.deduplicator import RepositoryDeduplicator
from app.services.heuristics import (
    determine_deployment_level,
    determine_experience_level,
    determine_usability_level,
)
from app.services.homepage import resolve_homepage
from app.services.images import ImagePipeline
from app.services.log_sanitizer import sanitize_for_log, sanitize_log_extra
from app.services.metadata_fetcher import MetadataFetcher
from app.services.pipeline_exceptions import (
    PermanentPipelineError,
    TransientPipelineError,
)
from app.services.publishing import should_publish
from app.services.repository_store import SQLAlchemyRepositoryStore
from app.services.summarizer import EmptyEnrichment, SummarizerService

logger = logging.getLogger(__name__)

STAGE_DISCOVER = "discover"
STAGE_INGEST = "ingest"
STAGE_ENRICH = "enrich"
STAGE_REFRESH = "refresh"

ALL_STAGES = (STAGE_DISCOVER, STAGE_INGEST, STAGE_ENRICH, STAGE_REFRESH)
PIPELINE_DEFAULT_STAGES = (STAGE_INGEST, STAGE_ENRICH)

SOURCE_FACTORIES: dict[str, Callable[[], BaseSource]] = {
    GitHubTrendingSource.name: GitHubTrendingSource,
    OssInsightSource.name: OssInsightSource,
    HuggingFacePapersSource.name: HuggingFacePapersSource,
}


def _default_store_factory() -> SQLAlchemyRepositoryStore:
    return SQLAlchemyRepositoryStore(SessionLocal())


class PipelineOrchestrator:
    """Coordinates bounded, idempotent batches over repository records."""

    def __init__(
        self,
        *,
        store_factory: Callable[[], Any] = _default_store_factory,
        github_client_factory: Callable[[], Any] = GitHubClient,
        sources: Optional[dict[str, Callable[[], Any]]] = None,
        image_pipeline: Optional[Any] = None,
        summarizer_factory: Optional[Callable[[], Any]] = None,
        screenshot_service: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store_factory = store_factory
        self._github_client_factory = github_client_factory
        self._sources = sources if sources is not None else dict(SOURCE_FACTORIES)
        self._image_pipeline = image_pipeline
        self._summarizer_factory = summarizer_factory or SummarizerService
        self._screenshot_service = screenshot_service
        self._sleep = sleep

    # Discovery

    async def run_discovery(self, source_names: Optional[Sequence[str]] = None) -> dict[str, Any]:
        """Run each source independently and insert unseen candidates."""

        names = list(source_names or self._sources.keys())
        result = BatchResult()
        per_source: dict[str, Any] = {}
        logger.info("Discovery started", extra=sanitize_log_extra(sources=names))

        try:
            store = self._store_factory()
        except Exception as exc:
            logger.exception("Discovery could not open the store")
            return BatchResult.failed(f"store unavailable: {exc}").to_dict()

        try:
            deduplicator = RepositoryDeduplicator(store)
            for name in names:
                factory = self._sources.get(name)
                if factory is None:
                    result.errors += 1
                    result.error_details.append(f"{name}: unknown source")
                    per_source[name] = {"success": False, "error": "unknown source"}
                    continue

                try:
                    candidates = await factory().discover(deduplicator)
                    fresh = [candidate for candidate in candidates if not candidate.exists_in_store]
                    inserted = store.insert_new([candidate.to_record_values() for candidate in fresh])
                except Exception as exc:
                    error = sanitize_for_log(str(exc), key="error")
                    logger.exception("Discovery source failed", extra=sanitize_log_extra(source=name, error=error))
                    result.errors += 1
                    result.error_details.append(f"{name}: {error}")
                    per_source[name] = {"success": False, "error": error}
                    continue

                result.total_found += len(candidates)
                result.processed += inserted
                per_source[name] = {
                    "success": True,
                    "found": len(candidates),
                    "new": len(fresh),
                    "inserted": inserted,
                }
        finally:
            store.close()

        result.success = result.errors < len(names) or not names
        payload = result.to_dict()
        payload["sources"] = per_source
        logger.info("Discovery completed", extra=sanitize_log_extra(sources=per_source))
        return payload

    # Ingestion

    async def run_ingestion(self, limit: Optional[int] = None) -> dict[str, Any]:
        batch_size = limit or settings.INGEST_BATCH_SIZE
        processor = BatchProcessor(stage=STAGE_INGEST, delay_seconds=settings.INGEST_DELAY_SECONDS, sleep=self._sleep)

        async def _run(store: Any) -> BatchResult:
            records = store.pending_ingestion(batch_size)
            if not records:
                return BatchResult()
            async with self._github_client_factory() as client:
                fetcher = MetadataFetcher(client)
                images = self._image_pipeline or ImagePipeline()
                return await processor.run(
                    records,
                    lambda record: self._ingest_record(store, fetcher, images, record),
                    label=lambda record: record.identifier,
                )

        return await self._run_stage(STAGE_INGEST, _run)

    async def _ingest_record(self, store: Any, fetcher: MetadataFetcher, images: Any, record: Any) -> RecordOutcome:
        try:
            metadata = await fetcher.fetch(record.identifier)
        except PermanentPipelineError as exc:
            # Flip the flag anyway so a dead identifier is never fetched again
            store.update(record.id, {"ingested": True})
            logger.info(
                "Repository permanently unavailable; marked ingested",
                extra=sanitize_log_extra(repo=record.identifier, error=str(exc)),
            )
            return RecordOutcome.SKIPPED

        repository_images = await images.extract_images(
            metadata.readme,
            metadata.ref.html_url,
            branch=metadata.default_branch,
        )

        homepage = resolve_homepage(metadata.homepage, metadata.readme)
        if homepage and self._screenshot_service is not None:
            screenshot = await self._screenshot_service.capture_homepage(homepage, metadata.ref.identifier)
            if screenshot is not None:
                repository_images.append(screenshot)

        languages = metadata.languages or []
        values = metadata.to_record_values()
        values.update(
            {
                "homepage": homepage,
                "images": [image.to_dict() for image in repository_images],
                "experience": determine_experience_level(languages, metadata.topics, metadata.description),
                "usability": determine_usability_level(bool(metadata.readme), bool(homepage), metadata.topics),
                "deployment": determine_deployment_level(languages, metadata.topics),
                "ingested": True,
            }
        )
        store.update(record.id, values)
        logger.info(
            "Repository ingested",
            extra=sanitize_log_extra(repo=record.identifier, images=len(repository_images), homepage=homepage),
        )
        return RecordOutcome.PROCESSED

    # Enrichment

    async def run_enrichment(self, limit: Optional[int] = None) -> dict[str, Any]:
        batch_size = limit or settings.ENRICH_BATCH_SIZE
        processor = BatchProcessor(stage=STAGE_ENRICH, delay_seconds=settings.ENRICH_DELAY_SECONDS, sleep=self._sleep)

        async def _run(store: Any) -> BatchResult:
            records = store.pending_enrichment(batch_size)
            if not records:
                return BatchResult()
            summarizer = self._summarizer_factory()
            return await processor.run(
                records,
                lambda record: self._enrich_record(store, summarizer, record),
                label=lambda record: record.identifier,
            )

        return await self._run_stage(STAGE_ENRICH, _run)

    async def _enrich_record(self, store: Any, summarizer: Any, record: Any) -> RecordOutcome:
        languages = split_languages(record.languages)
        outcome = await summarizer.enrich(
            record.readme,
            {
                "identifier": record.identifier,
                "description": record.description,
                "languages": languages,
                "topics": list(record.tags or []),
                "stars": record.stars,
            },
        )

        if isinstance(outcome, EmptyEnrichment):
            if outcome.retryable:
                raise TransientPipelineError(f"Enrichment unusable: {outcome.reason}")
            # Nothing AI-generated; images are the only path to publication
            values = {
                "enriched": True,
                "publish": should_publish(
                    images=record.images,
                    summary=None,
                    content=None,
                    stars=record.stars,
                    languages=languages,
                ),
            }
            store.update(record.id, values, require_ingested=True)
            logger.info(
                "Enrichment skipped",
                extra=sanitize_log_extra(repo=record.identifier, reason=outcome.reason, publish=values["publish"]),
            )
            return RecordOutcome.SKIPPED

        values = {
            "summary": outcome.summary,
            "content": outcome.content,
            "experience": outcome.experience,
            "usability": outcome.usability,
            "deployment": outcome.deployment,
            "enriched": True,
            "publish": should_publish(
                images=record.images,
                summary=outcome.summary,
                content=outcome.content,
                stars=record.stars,
                languages=languages,
            ),
        }
        store.update(record.id, values, require_ingested=True)
        logger.info(
            "Repository enriched",
            extra=sanitize_log_extra(repo=record.identifier, publish=values["publish"]),
        )
        return RecordOutcome.PROCESSED

    # Staleness refresh

    async def run_refresh(self, limit: Optional[int] = None) -> dict[str, Any]:
        batch_size = limit or settings.REFRESH_BATCH_SIZE
        processor = BatchProcessor(stage=STAGE_REFRESH, delay_seconds=settings.REFRESH_DELAY_SECONDS, sleep=self._sleep)

        async def _run(store: Any) -> BatchResult:
            cutoff = datetime.utcnow() - timedelta(hours=settings.REFRESH_STALE_HOURS)
            records = store.stale_published(batch_size, older_than=cutoff)
            if not records:
                return BatchResult()
            async with self._github_client_factory() as client:
                fetcher = MetadataFetcher(client)
                return await processor.run(
                    records,
                    lambda record: self._refresh_record(store, fetcher, record),
                    label=lambda record: record.identifier,
                )

        return await self._run_stage(STAGE_REFRESH, _run)

    async def _refresh_record(self, store: Any, fetcher: MetadataFetcher, record: Any) -> RecordOutcome:
        try:
            counters = await fetcher.fetch_counters(record.identifier)
        except PermanentPipelineError:
            # Push it to the back of the staleness queue, then report the failure
            store.update(record.id, {"updated_at": datetime.utcnow()})
            raise

        counters["updated_at"] = datetime.utcnow()
        store.update(record.id, counters)
        return RecordOutcome.PROCESSED

    # Observability

    def get_status(self) -> dict[str, Any]:
        store = self._store_factory()
        try:
            counts = store.counts()
        finally:
            store.close()

        total = counts.get("total", 0)

        def _percent(value: int) -> float:
            return round(value / total * 100, 2) if total else 0.0

        return {
            "success": True,
            "counts": counts,
            "percentages": {
                "ingested": _percent(counts.get("ingested", 0)),
                "enriched": _percent(counts.get("enriched", 0)),
                "published": _percent(counts.get("published", 0)),
            },
            "nextActions": {
                "shouldRunIngestion": counts.get("needIngestion", 0) > 0,
                "shouldRunEnrichment": counts.get("needEnrichment", 0) > 0,
                "ingestionsNeeded": counts.get("needIngestion", 0),
                "enrichmentsNeeded": counts.get("needEnrichment", 0),
            },
            "timestamp": datetime.utcnow().isoformat(),
        }

    def health(self) -> dict[str, Any]:
        checks: dict[str, Any] = {
            "github": {
                "status": "configured" if settings.GITHUB_TOKEN else "missing_token",
                "hasToken": bool(settings.GITHUB_TOKEN),
            },
            "llm": {
                "status": "configured" if (settings.OPENAI_API_KEY or settings.OPENAI_API_KEYS) else "missing_key",
                "hasKey": bool(settings.OPENAI_API_KEY or settings.OPENAI_API_KEYS),
                "baseUrl": settings.OPENAI_BASE_URL or "https://api.openai.com/v1",
                "model": settings.OPENAI_MODEL,
            },
            "screenshots": {
                "enabled": settings.SCREENSHOT_ENABLED,
                "browserless": bool(settings.BROWSERLESS_URL),
            },
            "storage": {
                "status": "configured" if (settings.SUPABASE_URL and settings.SUPABASE_KEY) else "not_configured",
                "bucket": settings.SUPABASE_BUCKET,
            },
        }

        status = "healthy"
        try:
            store = self._store_factory()
            try:
                store.ping()
            finally:
                store.close()
            checks["database"] = {"status": "connected"}
        except Exception as exc:
            logger.exception("Health check database probe failed")
            checks["database"] = {"status": "error", "error": sanitize_for_log(str(exc), key="error")}
            status = "unhealthy"

        if status == "healthy" and not (checks["github"]["hasToken"] and checks["llm"]["hasKey"]):
            status = "degraded"

        return {
            "success": status != "unhealthy",
            "status": status,
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        }

    # Published catalogue

    def list_repositories(
        self,
        *,
        page: int = 1,
        limit: Optional[int] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        search: Optional[str] = None,
        language: Optional[str] = None,
        experience: Optional[str] = None,
        license: Optional[str] = None,
    ) -> dict[str, Any]:
        """One page of published repositories; `hasMore` means the page was full."""

        page = max(page, 1)
        limit = min(max(limit or settings.API_PAGE_SIZE, 1), settings.API_MAX_PAGE_SIZE)
        store = self._store_factory()
        try:
            records = store.list_published(
                page=page,
                limit=limit,
                sort_by=sort_by,
                sort_order=sort_order,
                search=search,
                language=language,
                experience=experience,
                license=license,
            )
        finally:
            store.close()

        return {
            "success": True,
            "repositories": [record.to_public_dict() for record in records],
            "page": page,
            "limit": limit,
            "hasMore": len(records) == limit,
        }

    def get_catalogue_stats(self) -> dict[str, Any]:
        store = self._store_factory()
        try:
            stats = store.published_stats()
        finally:
            store.close()
        return {"success": True, **stats}

    # Scheduled runs

    async def run_pipeline(
        self,
        stages: Sequence[str] = PIPELINE_DEFAULT_STAGES,
        *,
        limit: Optional[int] = None,
    ) -> dict[str, Any]:
        """Run selected stages in order; one failing stage does not stop the rest."""

        started_at = datetime.utcnow()
        results: dict[str, Any] = {}

        for stage in stages:
            try:
                if stage == STAGE_DISCOVER:
                    results[stage] = await self.run_discovery()
                elif stage == STAGE_INGEST:
                    results[stage] = await self.run_ingestion(limit)
                elif stage == STAGE_ENRICH:
                    results[stage] = await self.run_enrichment(limit)
                elif stage == STAGE_REFRESH:
                    results[stage] = await self.run_refresh(limit)
                else:
                    results[stage] = BatchResult.failed(f"unknown stage: {stage}").to_dict()
            except Exception as exc:
                logger.exception("Pipeline stage crashed", extra=sanitize_log_extra(stage=stage))
                results[stage] = BatchResult.failed(sanitize_for_log(str(exc), key="error")).to_dict()

        return {
            "success": all(result.get("success", False) for result in results.values()),
            "stages": list(stages),
            "results": results,
            "startedAt": started_at.isoformat(),
            "finishedAt": datetime.utcnow().isoformat(),
        }

    async def _run_stage(self, stage: str, runner: Callable[[Any], Awaitable[BatchResult]]) -> dict[str, Any]:
        """Batch-level guard: never raise to the scheduler, always return a summary."""

        logger.info("Pipeline stage started", extra=sanitize_log_extra(stage=stage))
        store = None
        try:
            store = self._store_factory()
            result = await runner(store)
        except Exception as exc:
            error = sanitize_for_log(str(exc), key="error")
            logger.exception("Pipeline stage failed", extra=sanitize_log_extra(stage=stage, error=error))
            result = BatchResult.failed(error)
        finally:
            if store is not None:
                store.close()

        payload = result.to_dict()
        payload["stage"] = stage
        logger.info(
            "Pipeline stage completed",
            extra=sanitize_log_extra(
                stage=stage,
                success=payload["success"],
                processed=payload["processed"],
                errors=payload["errors"],
            ),
        )
        return payload


def build_default_orchestrator() -> PipelineOrchestrator:
    """Wire optional screenshot capture from settings."""

    screenshot_service = None
    if settings.SCREENSHOT_ENABLED:
        from app.services.screenshots import PlaywrightScreenshotProvider, ScreenshotService
        from app.services.storage import SupabaseImageStorage

        storage = SupabaseImageStorage()
        if storage.is_configured:
            screenshot_service = ScreenshotService(provider=PlaywrightScreenshotProvider(), storage=storage)
        else:
            logger.warning("SCREENSHOT_ENABLED but Supabase storage is not configured; screenshots disabled")

    return PipelineOrchestrator(screenshot_service=screenshot_service)
