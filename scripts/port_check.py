#!/usr/bin/env python3
"""Check TCP connectivity for the services the monitor depends on."""
from __future__ import annotations

import argparse
import logging
import socket
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Callable, Iterable, Optional

RULE_WIDTH = 70
DIAL_TIMEOUT_SECONDS = 3.0

DEFAULT_TARGETS: list[tuple[str, str, int]] = [
    ("API Server", "localhost", 8080),
    ("PostgreSQL", "localhost", 5432),
    ("Redis", "localhost", 6379),
    ("Kubernetes API", "localhost", 6443),
]

logger = logging.getLogger("port_check")


@dataclass
class PortCheck:
    name: str
    host: str
    port: int
    status: bool
    error: Optional[str] = None


def parse_target(value: str) -> tuple[str, str, int]:
    """Parse ``NAME=HOST:PORT``."""
    name, sep, address = value.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected NAME=HOST:PORT, got {value!r}")
    host, sep, port_raw = address.rpartition(":")
    if not sep or not host:
        raise argparse.ArgumentTypeError(f"expected NAME=HOST:PORT, got {value!r}")
    try:
        port = int(port_raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid port in {value!r}") from exc
    if not 0 < port < 65536:
        raise argparse.ArgumentTypeError(f"port out of range in {value!r}")
    return name.strip(), host.strip("[]"), port


def check_port(host: str, port: int, timeout: float = DIAL_TIMEOUT_SECONDS) -> Optional[str]:
    """Return None when the port accepts a connection, otherwise the error text."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return None
    except OSError as exc:
        return str(exc) or exc.__class__.__name__


def run_checks(
    targets: Iterable[tuple[str, str, int]],
    *,
    timeout: float = DIAL_TIMEOUT_SECONDS,
    delay: float = 0.5,
    dial: Optional[Callable[[str, int, float], Optional[str]]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[PortCheck]:
    dial = dial or check_port
    results: list[PortCheck] = []
    for name, host, port in targets:
        logger.info("Checking %s (%s:%s)...", name, host, port)
        error = dial(host, port, timeout)
        result = PortCheck(name=name, host=host, port=port, status=error is None, error=error)
        if result.status:
            print(f"✓ {name:<20} | {host}:{port} | OPEN")
            logger.info("✓ %s is reachable", name)
        else:
            print(f"✗ {name:<20} | {host}:{port} | CLOSED")
            logger.warning("✗ %s is not reachable: %s", name, error)
        results.append(result)
        if delay > 0:
            sleep(delay)
    return results


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Check TCP port connectivity.")
    parser.add_argument(
        "--target",
        action="append",
        type=parse_target,
        default=None,
        help="NAME=HOST:PORT to check (repeatable; replaces the default list)",
    )
    parser.add_argument("--timeout", type=float, default=DIAL_TIMEOUT_SECONDS, help="Dial timeout in seconds")
    parser.add_argument("--delay", type=float, default=0.5, help="Pause between checks in seconds")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s | %(message)s",
        stream=sys.stderr,
    )

    rule = "=" * RULE_WIDTH
    print("\n" + rule)
    print("PORT CONNECTIVITY CHECK")
    print(rule)
    print(f"Timestamp: {format_datetime(datetime.now(timezone.utc))}\n")

    results = run_checks(args.target or DEFAULT_TARGETS, timeout=args.timeout, delay=args.delay)

    print(rule)
    open_count = sum(1 for result in results if result.status)
    print(f"\nSummary: {open_count}/{len(results)} ports reachable")
    return 0 if open_count == len(results) else 1


if __name__ == "__main__":
    sys.exit(main())
