#!/usr/bin/env python3
"""Ask a running sourcehealth server to start a check run."""

import argparse
import httpx


def main():
    parser = argparse.ArgumentParser(description="Trigger a check run over HTTP")
    parser.add_argument("--url", default="http://localhost:8000/runs")
    parser.add_argument("--keyword", default=None)
    parser.add_argument("--secret", default="")
    args = parser.parse_args()

    headers = {}
    if args.secret:
        headers["x-trigger-secret"] = args.secret

    payload = {"keyword": args.keyword} if args.keyword else None

    resp = httpx.post(args.url, json=payload, headers=headers)
    print(f"Status: {resp.status_code}")
    print(f"Response: {resp.json()}")


if __name__ == "__main__":
    main()
