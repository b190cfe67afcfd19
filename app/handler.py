"""
AWS Lambda entrypoint for the repository pipeline

Event-driven handler triggered by EventBridge Scheduler.
No HTTP server logic - just direct stage invocation.
"""

import asyncio
import logging
from typing import Dict, Any, Optional

from app.config.database import init_db
from app.jobs.pipeline_jobs import parse_limit, run_pipeline
from app.orchestrator import build_default_orchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Instantiate orchestrator once per Lambda execution environment
orchestrator = build_default_orchestrator()


def lambda_handler(event: Optional[Dict[str, Any]], context: Any) -> Dict[str, Any]:
    """
    AWS Lambda entrypoint for scheduled pipeline runs.

    Dispatches on `event["stage"]`:
    - {"stage": "discover", "sources": ["github", "papers"]}
    - {"stage": "ingest", "limit": 50}
    - {"stage": "enrich", "limit": 50}
    - {"stage": "refresh"}
    - {"stage": "status"}
    - {"stage": "pipeline", "stages": "ingest,enrich"}
    - {"stage": "migrate"} creates the schema on a fresh database

    Default is "pipeline" if no stage is provided.

    Returns:
        Dictionary with statusCode, stage, and result
    """
    payload = event or {}
    stage = payload.get("stage", "pipeline")
    limit = parse_limit(payload.get("limit"))
    logger.info(f"Lambda invoked with stage: {stage}")

    try:
        if stage == "discover":
            sources = payload.get("sources")
            if isinstance(sources, str):
                sources = [part.strip() for part in sources.split(",") if part.strip()]
            result = asyncio.run(orchestrator.run_discovery(sources or None))

        elif stage == "ingest":
            result = asyncio.run(orchestrator.run_ingestion(limit))

        elif stage == "enrich":
            result = asyncio.run(orchestrator.run_enrichment(limit))

        elif stage == "refresh":
            result = asyncio.run(orchestrator.run_refresh(limit))

        elif stage == "status":
            result = orchestrator.get_status()

        elif stage == "migrate":
            result = {"success": True, "tables": init_db()}

        elif stage == "pipeline":
            result = asyncio.run(
                run_pipeline(orchestrator=orchestrator, stages=payload.get("stages"), limit=limit)
            )

        else:
            error_msg = f"Unknown stage: {stage}"
            logger.error(error_msg)
            return {
                "statusCode": 400,
                "stage": stage,
                "error": error_msg,
            }

        logger.info(f"Stage {stage} completed: success={result.get('success')}")

        return {
            "statusCode": 200,
            "stage": stage,
            "result": result,
        }

    except Exception as e:
        logger.error(f"Lambda execution failed: {e}", exc_info=True)
        return {
            "statusCode": 500,
            "stage": stage,
            "error": str(e),
        }
