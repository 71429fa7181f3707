from __future__ import annotations

from typing import Sequence

import structlog
import httpx

from sourcehealth.config import get_settings
from sourcehealth.models.schemas import EndpointStats, EndpointStatus

logger = structlog.get_logger()


def _build_slack_blocks(critical: Sequence[EndpointStats], keyword: str) -> list[dict]:
    """Build Slack Block Kit blocks listing endpoints that keep failing."""
    emoji = get_settings().yaml_section("slack").get("critical_emoji", ":rotating_light:")

    divider = {"type": "divider"}
    noun = "source" if len(critical) == 1 else "sources"

    blocks = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": f"{emoji} {len(critical)} {noun} failing repeatedly",
            },
        },
        divider,
    ]

    for s in critical:
        blocks.append({
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f":link: *{s.name}* <{s.base_url}|{_truncate(s.base_url, 80)}>\n"
                    f"Failed {s.streak} runs in a row | Success rate {s.success_rate_display}"
                ),
            },
        })

    blocks.append(divider)
    blocks.append({
        "type": "context",
        "elements": [
            {
                "type": "mrkdwn",
                "text": f"Search keyword: {keyword}",
            },
        ],
    })
    return blocks


def _truncate(text: str, max_len: int) -> str:
    return text if len(text) <= max_len else text[: max_len - 3] + "..."


async def notify_critical(
    stats: Sequence[EndpointStats],
    keyword: str,
    webhook_url: str | None = None,
) -> str | None:
    """Alert Slack about critical endpoints. Returns the webhook reply if one was sent."""
    webhook_url = get_settings().slack_webhook_url if webhook_url is None else webhook_url
    critical = [s for s in stats if s.status == EndpointStatus.CRITICAL]
    if not critical:
        return None
    if not webhook_url:
        logger.info("slack_not_configured", critical=len(critical))
        return None

    names = ", ".join(s.name for s in critical)
    payload = {
        "text": f"{len(critical)} source(s) failing repeatedly: {names}",
        "blocks": _build_slack_blocks(critical, keyword),
    }

    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            resp = await client.post(webhook_url, json=payload)
    except httpx.HTTPError as e:
        logger.error("slack_error", error=str(e)[:200])
        return None

    if resp.status_code == 200:
        logger.info("slack_sent", critical=len(critical))
        return resp.text  # Webhook returns "ok"
    logger.error("slack_failed", status=resp.status_code, body=resp.text[:200])
    return None
