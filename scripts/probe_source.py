#!/usr/bin/env python3
"""Probe a single source URL with the configured retry policy and print the result."""

import argparse
import asyncio

import httpx

from sourcehealth.config import get_settings
from sourcehealth.models.schemas import Endpoint
from sourcehealth.pipeline.prober import ProbeOptions, probe_endpoint
from sourcehealth.utils.logging import setup_logging


async def main(url: str, keyword: str | None):
    settings = get_settings()
    setup_logging(settings.log_level)
    options = ProbeOptions.from_settings(settings, keyword=keyword)

    async with httpx.AsyncClient(follow_redirects=True) as client:
        result = await probe_endpoint(client, Endpoint(name=url, base_url=url), options)

    print(f"Reachable: {result.reachable}")
    print(f"Search ({options.search_keyword}): {result.search_outcome.value}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Probe one source API")
    parser.add_argument("url")
    parser.add_argument("--keyword", default=None)
    args = parser.parse_args()
    asyncio.run(main(args.url, args.keyword))
