from __future__ import annotations

import structlog
from fastapi import APIRouter, BackgroundTasks, Header, HTTPException

from sourcehealth.config import ConfigError, get_settings
from sourcehealth.models.schemas import EndpointStats, RunRequest
from sourcehealth.pipeline.orchestrator import load_summary, run_checks

logger = structlog.get_logger()

router = APIRouter(prefix="/runs")


async def _run_in_background(keyword: str | None) -> None:
    try:
        await run_checks(keyword=keyword)
    except ConfigError as e:
        logger.error("run_aborted", error=str(e))
    except Exception as e:
        logger.exception("run_error", error=str(e))


@router.post("")
async def trigger_run(
    background_tasks: BackgroundTasks,
    payload: RunRequest | None = None,
    x_trigger_secret: str | None = Header(None),
):
    settings = get_settings()

    # Verify trigger secret if configured
    if settings.trigger_secret:
        if x_trigger_secret != settings.trigger_secret:
            raise HTTPException(status_code=401, detail="Invalid trigger secret")

    keyword = payload.keyword if payload else None
    logger.info("run_triggered", keyword=keyword or settings.search_keyword)
    background_tasks.add_task(_run_in_background, keyword)

    return {"status": "accepted"}


@router.get("/latest", response_model=list[EndpointStats])
async def latest_run():
    try:
        return load_summary(get_settings())
    except ConfigError as e:
        raise HTTPException(status_code=503, detail=str(e))
