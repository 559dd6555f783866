"""CLI entrypoint for the service monitor API."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from pydantic import ValidationError

from .api import create_app
from .config import MonitorSettings, load_seed
from .events import EventLogger, configure_logging
from .registry import ProcessClock, RegistryError, ServiceRegistry
from .server import ServerLifecycle


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve service status over HTTP.")
    parser.add_argument("--host", help="Listen host (overrides MONITOR_API_HOST)")
    parser.add_argument("--port", type=int, help="Listen port (overrides MONITOR_API_PORT)")
    parser.add_argument("--log-level", help="Log level (overrides MONITOR_LOG_LEVEL)")
    parser.add_argument("--seed", help="Path to a JSON service seed file (overrides MONITOR_SEED_PATH)")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> MonitorSettings:
    overrides = {}
    if args.host:
        overrides["api_host"] = args.host
    if args.port is not None:
        overrides["api_port"] = args.port
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.seed:
        overrides["seed_path"] = args.seed
    return MonitorSettings(**overrides)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    # The clock starts before anything else so uptime covers startup.
    clock = ProcessClock()

    try:
        settings = build_settings(args)
    except ValidationError as exc:
        configure_logging()
        logging.getLogger(__name__).critical("Invalid configuration: %s", exc)
        sys.exit(1)

    configure_logging(settings.log_level, json_output=settings.log_json)
    logger = logging.getLogger(__name__)
    events = EventLogger(logging.getLogger("servicemon"))

    events.emit("info", "Starting Service Monitor API", {"version": settings.version})

    seed = load_seed(settings, logger)
    try:
        registry = ServiceRegistry(seed, clock)
    except RegistryError as exc:
        events.emit("fatal", "Invalid service seed", {"error": str(exc)})
        sys.exit(1)
    events.emit("info", "Service registry loaded", {"service_count": len(registry), "services": registry.names()})

    app = create_app(registry, settings, events, clock)
    lifecycle = ServerLifecycle(app, settings, events)
    sys.exit(lifecycle.run())


if __name__ == "__main__":
    main()
