from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from sourcehealth.config import get_settings
from sourcehealth.utils.logging import setup_logging
from sourcehealth.api.runs import router as runs_router
from sourcehealth.api.health import router as health_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(get_settings().log_level)
    yield


app = FastAPI(title="Source Health", version="0.1.0", lifespan=lifespan)

app.include_router(runs_router)
app.include_router(health_router)
