"""In-memory service registry backing the status endpoints."""
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, field_validator

from .durations import format_uptime


class RegistryError(Exception):
    """Raised when the registry cannot be built from its seed."""


class ServiceStatus(str, Enum):
    RUNNING = "running"
    DEGRADED = "degraded"
    STOPPED = "stopped"


class ProcessClock:
    """Process start time, captured once and read-only afterwards."""

    def __init__(
        self,
        *,
        wall: Callable[[], datetime] | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._monotonic = monotonic
        self.started_at: datetime = wall() if wall is not None else datetime.now(timezone.utc)
        self._started_mono: float = self._monotonic()

    def now(self) -> datetime:
        # Derived from the monotonic reading so wall clock steps never move it backwards.
        return self.started_at + timedelta(seconds=self.elapsed())

    def elapsed(self) -> float:
        return max(self._monotonic() - self._started_mono, 0.0)

    def uptime(self) -> str:
        return format_uptime(self.elapsed())


class ServiceSeed(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    status: ServiceStatus = Field(default=ServiceStatus.RUNNING)
    uptime: Optional[str] = Field(default=None, max_length=64)
    observed_at: Optional[datetime] = Field(default=None)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if "/" in value or value != value.strip():
            raise ValueError("service name must not contain '/' or surrounding whitespace")
        return value

    @field_validator("uptime")
    @classmethod
    def blank_uptime_is_live(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        candidate = value.strip()
        return candidate or None

    @property
    def live(self) -> bool:
        return self.uptime is None


@dataclass(frozen=True)
class ServiceRecord:
    name: str
    status: ServiceStatus
    uptime: str
    timestamp: datetime


DEFAULT_SEED: tuple[ServiceSeed, ...] = (
    ServiceSeed(name="api-server"),
    ServiceSeed(name="database", uptime="48h30m"),
    ServiceSeed(name="cache", uptime="24h15m"),
)


class ServiceRegistry:
    """Maps service names to status records.

    Built once from an ordered seed and never mutated afterwards, so
    concurrent readers need no locking. Live entries (seeded without an
    uptime) report the process uptime; every record is stamped on read unless
    its seed pins ``observed_at``.
    """

    def __init__(self, seed: Iterable[ServiceSeed], clock: ProcessClock) -> None:
        self.clock = clock
        entries: Dict[str, ServiceSeed] = {}
        for entry in seed:
            if entry.name in entries:
                raise RegistryError(f"Duplicate service name in seed: {entry.name}")
            entries[entry.name] = entry
        self._entries = entries

    def __len__(self) -> int:
        return len(self._entries)

    def names(self) -> List[str]:
        return list(self._entries)

    def _materialize(self, entry: ServiceSeed) -> ServiceRecord:
        if entry.live:
            uptime = self.clock.uptime()
        else:
            uptime = entry.uptime or ""
        return ServiceRecord(
            name=entry.name,
            status=entry.status,
            uptime=uptime,
            timestamp=entry.observed_at or self.clock.now(),
        )

    def get(self, name: str) -> Optional[ServiceRecord]:
        entry = self._entries.get(name)
        if entry is None:
            return None
        return self._materialize(entry)

    def list(self) -> List[ServiceRecord]:
        return [self._materialize(entry) for entry in self._entries.values()]


__all__ = [
    "DEFAULT_SEED",
    "ProcessClock",
    "RegistryError",
    "ServiceRecord",
    "ServiceRegistry",
    "ServiceSeed",
    "ServiceStatus",
]
