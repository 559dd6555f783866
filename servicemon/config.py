"""Settings loader for the service monitor API."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .registry import DEFAULT_SEED, ServiceSeed


class MonitorSettings(BaseSettings):
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8080)
    version: str = Field(default="1.0.0")
    welcome_message: str = Field(default="Welcome to Service Monitor API")

    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)

    # Seconds. Fixed defaults mirror the deployed server configuration.
    read_timeout: float = Field(default=15.0)
    write_timeout: float = Field(default=15.0)
    idle_timeout: float = Field(default=60.0)
    shutdown_grace: float = Field(default=30.0)

    seed_path: Optional[Path] = Field(default=None)
    seed_inline: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("api_port")
    @classmethod
    def validate_port(cls, value: int) -> int:
        # 0 asks the OS for an ephemeral port.
        if value < 0 or value > 65535:
            raise ValueError("api_port must be between 0 and 65535")
        return value

    @field_validator("read_timeout", "write_timeout", "idle_timeout", "shutdown_grace")
    @classmethod
    def validate_positive_float(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        candidate = value.strip().upper()
        if candidate == "WARN":
            candidate = "WARNING"
        if candidate not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return candidate

    @property
    def listen_address(self) -> str:
        return f"{self.api_host}:{self.api_port}"


def _normalize_seed_payload(payload: Any) -> Iterable[Dict[str, Any]]:
    if isinstance(payload, list):
        for item in payload:
            if isinstance(item, dict):
                yield dict(item)
    elif isinstance(payload, dict):
        if "name" in payload and not isinstance(payload.get("name"), dict):
            yield dict(payload)
        else:
            for name, value in payload.items():
                if isinstance(value, dict):
                    candidate = dict(value)
                    candidate.setdefault("name", name)
                    yield candidate


def load_seed(settings: MonitorSettings, logger: logging.Logger) -> List[ServiceSeed]:
    """Collect the registry seed from inline JSON and/or a seed file.

    Falls back to the built-in seed set when nothing valid is configured.
    """
    sources: list[tuple[str, Any]] = []

    inline = settings.seed_inline
    if inline:
        try:
            sources.append(("env:MONITOR_SEED_INLINE", json.loads(inline)))
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse MONITOR_SEED_INLINE JSON: %s", exc)

    path = settings.seed_path
    if path:
        resolved = Path(path).expanduser()
        if resolved.exists():
            try:
                with resolved.open("r", encoding="utf-8") as handle:
                    sources.append((f"file:{resolved}", json.load(handle)))
            except json.JSONDecodeError as exc:
                logger.error("Failed to parse seed file %s: %s", resolved, exc)
            except OSError as exc:
                logger.error("Unable to read seed file %s: %s", resolved, exc)
        else:
            logger.warning("Seed file %s does not exist", resolved)

    entries: List[ServiceSeed] = []
    seen: set[str] = set()

    for source, payload in sources:
        for candidate in _normalize_seed_payload(payload):
            try:
                entry = ServiceSeed.model_validate(candidate)
            except ValidationError as exc:
                logger.error("Invalid service entry from %s: %s", source, exc)
                continue

            if entry.name in seen:
                logger.debug("Skipping duplicate service seed entry %s (%s)", entry.name, source)
                continue

            seen.add(entry.name)
            entries.append(entry)

    if not entries:
        if sources:
            logger.warning("No valid service entries configured; using built-in seed")
        return list(DEFAULT_SEED)
    return entries


__all__ = ["MonitorSettings", "load_seed"]
