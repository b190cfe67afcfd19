"""FastAPI application entry point"""

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Dict, Any, Optional
import logging

from app.orchestrator import SOURCE_FACTORIES, build_default_orchestrator
from app.jobs.pipeline_jobs import parse_limit

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Repository Pipeline",
    description="Discovers, ingests, enriches and refreshes open-source repositories",
    version="1.0.0"
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global orchestrator instance
orchestrator = build_default_orchestrator()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Repository Pipeline",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "health": "/api/health",
            "status": "/api/automation/status",
            "pipeline_health": "/api/automation/health",
            "ingest": "POST /api/automation/ingest?limit=50",
            "enrich": "POST /api/automation/enrich?limit=50",
            "update": "POST /api/automation/update?limit=10",
            "discover": "POST /api/discover/{github|ossinsight|papers|all}",
            "repositories": "/api/repositories?page=1&limit=12&sortBy=stars&search=cli",
            "stats": "/api/stats",
        }
    }


@app.get("/api/health")
async def health_check():
    """Liveness check for serverless platforms"""
    return {
        "status": "healthy",
        "service": "repository-pipeline",
        "version": "1.0.0"
    }


@app.get("/api/automation/status")
async def automation_status():
    """Pipeline record counts and the next recommended actions"""
    try:
        return orchestrator.get_status()
    except Exception as e:
        logger.error(f"Status query failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load pipeline status")


@app.get("/api/automation/health")
async def automation_health():
    """Database connectivity plus credential configuration; 503 when unhealthy"""
    result = orchestrator.health()
    return JSONResponse(content=result, status_code=200 if result.get("success") else 503)


@app.post("/api/automation/ingest")
async def automation_ingest(limit: Optional[int] = None):
    """Ingest GitHub metadata for records with ingested=false"""
    logger.info("Ingestion triggered")
    return await orchestrator.run_ingestion(parse_limit(limit))


@app.post("/api/automation/enrich")
async def automation_enrich(limit: Optional[int] = None):
    """Generate AI content for ingested records with enriched=false"""
    logger.info("Enrichment triggered")
    return await orchestrator.run_enrichment(parse_limit(limit))


@app.post("/api/automation/update")
async def automation_update(limit: Optional[int] = None):
    """Refresh popularity counters of stale published records"""
    logger.info("Staleness refresh triggered")
    return await orchestrator.run_refresh(parse_limit(limit))


@app.post("/api/discover/{source}")
async def discover(source: str):
    """Discover candidates from one source, or every source with `all`"""
    if source == "all":
        sources = None
    elif source in SOURCE_FACTORIES:
        sources = [source]
    else:
        raise HTTPException(status_code=404, detail=f"Unknown source: {source}")

    logger.info(f"Discovery triggered for {source}")
    return await orchestrator.run_discovery(sources)


@app.get("/api/repositories")
async def list_repositories(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    sort_by: str = Query("created_at", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    search: Optional[str] = None,
    language: Optional[str] = None,
    experience: Optional[str] = None,
    license: Optional[str] = None,
):
    """Published repositories, newest first unless sortBy/sortOrder say otherwise"""
    try:
        return orchestrator.list_repositories(
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
            search=search,
            language=language,
            experience=experience,
            license=license,
        )
    except Exception as e:
        logger.error(f"Repository listing failed: {e}", exc_info=True)
        return JSONResponse(content={"success": False, "error": "Failed to fetch repositories"}, status_code=500)


@app.get("/api/stats")
async def catalogue_stats():
    """Published repository, star and language totals"""
    try:
        return orchestrator.get_catalogue_stats()
    except Exception as e:
        logger.error(f"Stats query failed: {e}", exc_info=True)
        return JSONResponse(content={"success": False, "error": "Failed to fetch stats"}, status_code=500)


# AWS Lambda handler for HTTP requests through API Gateway
def lambda_handler(event: Dict[str, Any], context: Any):
    from mangum import Mangum
    handler = Mangum(app)
    return handler(event, context)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
