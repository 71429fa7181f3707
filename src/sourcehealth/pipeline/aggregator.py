from __future__ import annotations

from typing import Sequence

from sourcehealth.models.schemas import (
    STATUS_ORDER,
    Endpoint,
    EndpointStats,
    EndpointStatus,
    ProbeResult,
    RunRecord,
    SearchOutcome,
)

TREND_LENGTH = 7


def merge(history: Sequence[RunRecord], record: RunRecord, max_days: int) -> list[RunRecord]:
    """Append `record` and keep only the newest `max_days` records."""
    if max_days < 1:
        raise ValueError(f"max_days must be >= 1, got {max_days}")
    merged = [*history, record]
    return merged[-max_days:]


def latest_results(history: Sequence[RunRecord]) -> list[ProbeResult]:
    return list(history[-1].results) if history else []


def _find_latest(latest: Sequence[ProbeResult], key: str) -> ProbeResult | None:
    return next((r for r in latest if r.endpoint_key == key), None)


def _observed(result: ProbeResult | None) -> ProbeResult | None:
    if result is None or result.search_outcome == SearchOutcome.DISABLED:
        return None
    return result


def compute_stats(
    endpoint: Endpoint,
    history: Sequence[RunRecord],
    latest: ProbeResult | None,
    *,
    warn_streak: int,
) -> EndpointStats:
    key = endpoint.key
    # A run that skipped a disabled endpoint says nothing about its health
    per_day = [_observed(day.result_for(key)) for day in history]

    ok_count = sum(1 for r in per_day if r is not None and r.reachable)
    fail_count = sum(1 for r in per_day if r is not None and not r.reachable)
    total = ok_count + fail_count
    success_rate = ok_count / total * 100 if total > 0 else None

    streak = 0
    for r in reversed(per_day):
        if r is None or r.reachable:
            break
        streak += 1

    trend = [None if r is None else r.reachable for r in per_day[-TREND_LENGTH:]]

    if endpoint.disabled:
        status = EndpointStatus.DISABLED
    elif streak >= warn_streak:
        status = EndpointStatus.CRITICAL
    elif latest is not None and latest.reachable:
        status = EndpointStatus.UP
    else:
        status = EndpointStatus.DOWN

    return EndpointStats(
        name=endpoint.name,
        id=endpoint.id,
        base_url=endpoint.base_url,
        disabled=endpoint.disabled,
        ok_count=ok_count,
        fail_count=fail_count,
        streak=streak,
        success_rate=success_rate,
        trend=trend,
        latest_search_outcome=latest.search_outcome if latest is not None else None,
        status=status,
    )


def summarize(
    endpoints: Sequence[Endpoint],
    history: Sequence[RunRecord],
    latest: Sequence[ProbeResult],
    *,
    warn_streak: int,
) -> list[EndpointStats]:
    """Stats for every endpoint, most urgent status first."""
    stats = [
        compute_stats(ep, history, _find_latest(latest, ep.key), warn_streak=warn_streak)
        for ep in endpoints
    ]
    return sorted(stats, key=lambda s: STATUS_ORDER[s.status])
