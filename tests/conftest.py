from __future__ import annotations

import json
import os
import pytest

from httpx import AsyncClient, ASGITransport

# Override settings before importing app
os.environ["SLACK_WEBHOOK_URL"] = ""
os.environ["TRIGGER_SECRET"] = ""
os.environ["RETRY_DELAY_MS"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"

from sourcehealth.main import app
from sourcehealth.config import Settings


SOURCE_URL = "https://src.example.com/api.php/provide/vod"
RETIRED_URL = "https://retired.example.com/api.php/provide/vod"
KEYWORD = "斗罗大陆"


@pytest.fixture
def endpoints_file(tmp_path):
    path = tmp_path / "endpoints.json"
    path.write_text(
        json.dumps([
            {"name": "Main Source", "baseUrl": SOURCE_URL, "id": "main"},
            {"name": "Retired Source", "baseUrl": RETIRED_URL, "enabled": False},
        ], ensure_ascii=False),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def settings(tmp_path, endpoints_file):
    return Settings(
        endpoints_path=endpoints_file,
        report_path=tmp_path / "report.md",
        search_keyword=KEYWORD,
        retry_delay_ms=0,
        max_retry=3,
        slack_webhook_url="",
        trigger_secret="",
    )


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
