#!/usr/bin/env python3
"""Print a one-shot report of local OS and runtime information."""
from __future__ import annotations

import argparse
import logging
import platform
import socket
import sys
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Optional

import psutil

SCRIPT_ROOT = Path(__file__).resolve().parents[1]
if str(SCRIPT_ROOT) not in sys.path:
    sys.path.insert(0, str(SCRIPT_ROOT))

from servicemon.durations import format_span  # noqa: E402
from servicemon.events import EventLogger, configure_logging  # noqa: E402

RULE_WIDTH = 60


@dataclass
class SystemInfo:
    hostname: str
    os: str
    arch: str
    cpus: int
    python_version: str
    memory_mb: int
    uptime_seconds: Optional[float]


def collect(now: Optional[float] = None) -> SystemInfo:
    now = time.time() if now is None else now
    memory = psutil.Process().memory_info().rss // (1024 * 1024)
    try:
        uptime: Optional[float] = max(now - psutil.boot_time(), 0.0)
    except (OSError, RuntimeError):
        uptime = None
    return SystemInfo(
        hostname=socket.gethostname(),
        os=platform.system().lower(),
        arch=platform.machine(),
        cpus=psutil.cpu_count() or 0,
        python_version=platform.python_version(),
        memory_mb=int(memory),
        uptime_seconds=uptime,
    )


def render_report(info: SystemInfo, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    rule = "=" * RULE_WIDTH
    lines = [
        "",
        rule,
        "SYSTEM INFORMATION",
        rule,
        f"Timestamp:        {format_datetime(now)}",
        f"Hostname:         {info.hostname}",
        f"Operating System: {info.os}",
        f"Architecture:     {info.arch}",
        f"CPUs:             {info.cpus}",
        f"Python Version:   {info.python_version}",
        f"Memory Usage:     {info.memory_mb} MB",
    ]
    if info.uptime_seconds:
        lines.append(f"System Uptime:    {format_span(info.uptime_seconds)}")
    lines.append(rule)
    return "\n".join(lines)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Show local system information.")
    parser.add_argument("--text-logs", action="store_true", help="Log as plain text instead of JSON")
    args = parser.parse_args(argv)

    configure_logging("INFO", json_output=not args.text_logs)
    events = EventLogger(logging.getLogger("system_info"))

    info = collect()
    print(render_report(info))

    fields = asdict(info)
    if info.uptime_seconds is not None:
        fields["uptime"] = format_span(info.uptime_seconds)
    events.emit("info", "System information collected", fields)
    return 0


if __name__ == "__main__":
    sys.exit(main())
