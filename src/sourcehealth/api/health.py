from __future__ import annotations

from fastapi import APIRouter

from sourcehealth.config import ConfigError, get_settings, load_endpoints
from sourcehealth.models.schemas import HealthResponse
from sourcehealth.storage.history_store import load_history

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health():
    settings = get_settings()
    try:
        total = len(load_endpoints(settings.endpoints_path))
    except ConfigError:
        total = 0
    history = load_history(settings.report_path)
    last_run = history[-1].date if history else None
    return HealthResponse(endpoints_total=total, last_run_date=last_run)
