from __future__ import annotations

from datetime import datetime, timezone
from functools import partial
from zoneinfo import ZoneInfo

import structlog
import httpx

from sourcehealth.config import Settings, get_settings, load_endpoints
from sourcehealth.models.schemas import Endpoint, EndpointStats, ProbeResult, RunRecord, SearchOutcome
from sourcehealth.pipeline.aggregator import latest_results, merge, summarize
from sourcehealth.pipeline.notifier import notify_critical
from sourcehealth.pipeline.prober import ProbeOptions, probe_endpoint
from sourcehealth.pipeline.renderer import DEFAULT_TITLE, render_report
from sourcehealth.pipeline.scheduler import run_bounded
from sourcehealth.storage.history_store import load_history, save_report

logger = structlog.get_logger()

USER_AGENT = "sourcehealth/0.1 (API health monitor)"


async def probe_all(endpoints: list[Endpoint], options: ProbeOptions, limit: int) -> list[ProbeResult]:
    """Probe every endpoint with at most `limit` in flight. Results follow input order."""
    async with httpx.AsyncClient(
        timeout=options.timeout,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    ) as client:
        tasks = [partial(probe_endpoint, client, ep, options) for ep in endpoints]
        outcomes = await run_bounded(tasks, limit)

    results: list[ProbeResult] = []
    for ep, outcome in zip(endpoints, outcomes):
        if isinstance(outcome, ProbeResult):
            results.append(outcome)
        else:
            logger.error("probe_task_failed", endpoint=ep.name, error=repr(outcome))
            results.append(ProbeResult(
                name=ep.name,
                endpoint_key=ep.key,
                reachable=False,
                search_outcome=SearchOutcome.ERROR,
            ))
    return results


async def run_checks(
    settings: Settings | None = None,
    keyword: str | None = None,
    now: datetime | None = None,
) -> list[EndpointStats]:
    """Run one full check: probe, merge into history, write the report, alert.

    Raises ConfigError before any probing if the endpoint list cannot be loaded.
    """
    settings = settings or get_settings()
    now = now or datetime.now(timezone.utc)
    options = ProbeOptions.from_settings(settings, keyword=keyword)

    endpoints = load_endpoints(settings.endpoints_path)
    history = load_history(settings.report_path)

    logger.info(
        "run_started",
        endpoints=len(endpoints),
        keyword=options.search_keyword,
        concurrency=settings.concurrent_limit,
    )
    results = await probe_all(endpoints, options, settings.concurrent_limit)

    record = RunRecord(date=now.astimezone(timezone.utc).strftime("%Y-%m-%d"), results=results)
    history = merge(history, record, settings.max_days)
    stats = summarize(endpoints, history, results, warn_streak=settings.warn_streak)

    report = render_report(
        stats,
        history,
        keyword=options.search_keyword,
        generated_at=now.astimezone(ZoneInfo(settings.report_timezone)),
        title=settings.yaml_section("report").get("title", DEFAULT_TITLE),
    )
    save_report(settings.report_path, report)

    await notify_critical(stats, options.search_keyword, settings.slack_webhook_url)

    logger.info(
        "run_complete",
        date=record.date,
        up=sum(1 for r in results if r.reachable),
        total=len(results),
        history_days=len(history),
    )
    return stats


def load_summary(settings: Settings | None = None) -> list[EndpointStats]:
    """Recompute stats from the persisted report without probing anything."""
    settings = settings or get_settings()
    endpoints = load_endpoints(settings.endpoints_path)
    history = load_history(settings.report_path)
    return summarize(endpoints, history, latest_results(history), warn_streak=settings.warn_streak)
