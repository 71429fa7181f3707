from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Sequence

import structlog
from pydantic import ValidationError

from sourcehealth.models.schemas import RunRecord

logger = structlog.get_logger()

HISTORY_BLOCK_RE = re.compile(r"```json\n([\s\S]+?)\n```")


def history_to_json(history: Sequence[RunRecord]) -> str:
    """Pretty-printed JSON for embedding in the report."""
    data = [record.model_dump(mode="json", by_alias=True) for record in history]
    return json.dumps(data, indent=2, ensure_ascii=False)


def coerce_history(raw: Any) -> list[RunRecord]:
    """
    Best-effort decode of history loaded from a report.
    Skips records that do not validate so one bad entry does not lose the rest.
    """
    if not isinstance(raw, list):
        return []

    history: list[RunRecord] = []
    for i, item in enumerate(raw):
        try:
            history.append(RunRecord.model_validate(item))
        except ValidationError as e:
            logger.warning("history_record_skipped", index=i, error=str(e)[:200])
    return history


def history_from_json(text: str) -> list[RunRecord]:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("history_parse_failed", error=str(e))
        return []
    return coerce_history(raw)


def extract_history(report: str) -> list[RunRecord]:
    """Pull the embedded history out of a rendered report. Empty if there is none."""
    match = HISTORY_BLOCK_RE.search(report)
    if not match:
        return []
    return history_from_json(match.group(1))


def load_history(report_path: Path | str) -> list[RunRecord]:
    path = Path(report_path)
    if not path.exists():
        logger.info("history_not_found", path=str(path))
        return []

    try:
        report = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("history_read_failed", path=str(path), error=str(e))
        return []

    history = extract_history(report)
    logger.info("history_loaded", path=str(path), records=len(history))
    return history


def save_report(report_path: Path | str, content: str) -> None:
    path = Path(report_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    logger.info("report_written", path=str(path), size=len(content))
