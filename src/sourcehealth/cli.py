"""Probe every configured source once and rewrite the markdown report."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections import Counter
from pathlib import Path

import structlog
from pydantic import ValidationError

from sourcehealth.config import ConfigError, Settings, get_settings
from sourcehealth.pipeline.orchestrator import run_checks
from sourcehealth.utils.logging import setup_logging

logger = structlog.get_logger()

# CLI flag -> Settings field
OVERRIDES = {
    "config": "endpoints_path",
    "report": "report_path",
    "concurrency": "concurrent_limit",
    "max_retry": "max_retry",
    "retry_delay_ms": "retry_delay_ms",
    "timeout_ms": "timeout_ms",
    "max_days": "max_days",
    "warn_streak": "warn_streak",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sourcehealth", description=__doc__)
    parser.add_argument("keyword", nargs="?", help="Search keyword (default: SEARCH_KEYWORD)")
    parser.add_argument("--config", type=Path, help="Endpoint config file")
    parser.add_argument("--report", type=Path, help="Report file to read history from and rewrite")
    parser.add_argument("--concurrency", type=_positive_int, help="Max endpoints probed at once")
    parser.add_argument("--max-retry", type=_positive_int, help="Attempts per check")
    parser.add_argument("--retry-delay-ms", type=_non_negative_int, help="Delay between attempts")
    parser.add_argument("--timeout-ms", type=_positive_int, help="Per-attempt timeout")
    parser.add_argument("--max-days", type=_positive_int, help="Runs kept in history")
    parser.add_argument("--warn-streak", type=_positive_int, help="Failures in a row before critical")
    parser.add_argument("--no-search", action="store_true", help="Skip the search test")
    return parser


def _positive_int(value: str) -> int:
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return n


def _non_negative_int(value: str) -> int:
    n = int(value)
    if n < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {value}")
    return n


def settings_from_args(args: argparse.Namespace, base: Settings) -> Settings:
    update = {
        field: getattr(args, flag)
        for flag, field in OVERRIDES.items()
        if getattr(args, flag) is not None
    }
    if args.no_search:
        update["enable_search_test"] = False
    return base.model_copy(update=update)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        base = get_settings()
    except ValidationError as e:
        print(f"Invalid settings:\n{e}", file=sys.stderr)
        return 1
    settings = settings_from_args(args, base)
    setup_logging(settings.log_level)

    try:
        stats = asyncio.run(run_checks(settings, keyword=args.keyword))
    except ConfigError as e:
        logger.error("config_error", error=str(e))
        return 1

    counts = Counter(s.status.value for s in stats)
    print(f"Report written to {settings.report_path}")
    for status in ("critical", "down", "up", "disabled"):
        print(f"  {status}: {counts.get(status, 0)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
