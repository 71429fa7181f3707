from __future__ import annotations

from datetime import datetime
from typing import Sequence

from sourcehealth.models.schemas import EndpointStats, EndpointStatus, RunRecord, SearchOutcome
from sourcehealth.storage.history_store import history_to_json

DEFAULT_TITLE = "Source API Health Report"

STATUS_ICONS: dict[EndpointStatus, str] = {
    EndpointStatus.CRITICAL: "🚨",
    EndpointStatus.DOWN: "❌",
    EndpointStatus.UP: "✅",
    EndpointStatus.DISABLED: "🚫",
}

SEARCH_LABELS: dict[SearchOutcome, str] = {
    SearchOutcome.MATCH: "✅",
    SearchOutcome.NO_MATCH: "no match",
    SearchOutcome.EMPTY: "no results",
    SearchOutcome.ERROR: "❌",
    SearchOutcome.SKIPPED: "-",
    SearchOutcome.DISABLED: "disabled",
}


def search_label(outcome: SearchOutcome | None) -> str:
    return "-" if outcome is None else SEARCH_LABELS[outcome]


def _cell(text: str) -> str:
    return text.replace("|", "\\|")


def render_table(stats: Sequence[EndpointStats]) -> str:
    lines = [
        "| Status | Name | ID | API | Search | OK | Fail | Success rate | Last 7 runs |",
        "|--------|------|----|-----|--------|---:|-----:|-------------:|-------------|",
    ]
    for s in stats:
        lines.append(
            f"| {STATUS_ICONS[s.status]} | {_cell(s.name)} | {_cell(s.id)} | [Link]({s.base_url}) "
            f"| {search_label(s.latest_search_outcome)} | {s.ok_count} | {s.fail_count} "
            f"| {s.success_rate_display} | {s.trend_display} |"
        )
    return "\n".join(lines) + "\n"


def render_report(
    stats: Sequence[EndpointStats],
    history: Sequence[RunRecord],
    *,
    keyword: str,
    generated_at: datetime,
    title: str = DEFAULT_TITLE,
) -> str:
    """Render the markdown report with the history embedded for the next run."""
    md = f"# {title}\n\n"
    md += f"Last updated: {generated_at.strftime('%Y-%m-%d %H:%M %Z')}\n\n"
    md += f"**Total sources:** {len(stats)} | **Search keyword:** {keyword}\n\n"
    md += render_table(stats)
    md += "\n<details>\n<summary>📜 History data (JSON)</summary>\n\n"
    md += "```json\n" + history_to_json(history) + "\n```\n"
    md += "</details>\n"
    return md
