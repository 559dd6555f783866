#!/usr/bin/env python3
"""Check the service monitor API and print a status report."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, Optional

import httpx

DEFAULT_API_URL = "http://localhost:8080"
RULE_WIDTH = 60

logger = logging.getLogger("check_services")


class CheckError(RuntimeError):
    pass


@dataclass
class ServiceStatus:
    name: str
    status: str
    uptime: str
    timestamp: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ServiceStatus":
        try:
            return cls(
                name=str(payload["name"]),
                status=str(payload["status"]),
                uptime=str(payload.get("uptime", "")),
                timestamp=payload.get("timestamp"),
            )
        except KeyError as exc:
            raise CheckError(f"service entry missing field {exc}") from exc


def fetch_health(client: httpx.Client, api_url: str) -> dict[str, Any]:
    try:
        response = client.get(f"{api_url}/health", headers={"Accept": "application/json"})
    except httpx.HTTPError as exc:
        raise CheckError(f"Failed to connect to API: {exc}") from exc
    if response.status_code != 200:
        raise CheckError(f"Health check failed with status: {response.status_code}")
    return response.json()


def fetch_services(client: httpx.Client, api_url: str) -> list[ServiceStatus]:
    try:
        response = client.get(f"{api_url}/api/services", headers={"Accept": "application/json"})
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise CheckError(f"Failed to get services: {exc}") from exc
    try:
        payload = response.json()
    except ValueError as exc:
        raise CheckError(f"Failed to parse services: {exc}") from exc
    if not isinstance(payload, list):
        raise CheckError("Failed to parse services: expected a JSON array")
    return [ServiceStatus.from_payload(item) for item in payload]


def render_report(services: list[ServiceStatus], now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    rule = "=" * RULE_WIDTH
    lines = [
        "",
        rule,
        "SERVICE STATUS REPORT",
        rule,
        f"Timestamp: {format_datetime(now)}",
        "",
    ]
    for service in services:
        icon = "✓" if service.status == "running" else "✗"
        lines.append(f"{icon} {service.name:<20} | Status: {service.status:<10} | Uptime: {service.uptime}")
    running = sum(1 for service in services if service.status == "running")
    lines.extend(
        [
            rule,
            "",
            f"Total Services: {len(services)}",
            f"Running: {running} | Not Running: {len(services) - running}",
        ]
    )
    return "\n".join(lines)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Check service status via the monitor API.")
    parser.add_argument(
        "--api-url",
        default=os.environ.get("API_URL") or DEFAULT_API_URL,
        help="Base URL of the monitor API (default: $API_URL or http://localhost:8080)",
    )
    parser.add_argument("--timeout", type=float, default=10.0, help="HTTP timeout in seconds")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s | %(message)s",
        stream=sys.stdout,
    )
    api_url = args.api_url.rstrip("/")
    logger.info("Checking services at %s", api_url)

    try:
        with httpx.Client(timeout=args.timeout) as client:
            fetch_health(client, api_url)
            logger.info("✓ API is healthy")
            services = fetch_services(client, api_url)
    except CheckError as exc:
        logger.error("%s", exc)
        return 1

    print(render_report(services))
    return 0


if __name__ == "__main__":
    sys.exit(main())
