"""Data models for vitals."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Source(Enum):
    """Metric endpoints polled each cycle, valued by endpoint name."""

    CPU = "cpu"
    MEMORY = "mem"
    DISK = "fs"
    PROCESSES = "processlist"


class Status(Enum):
    """Aggregate connectivity status shown in the panel badge."""

    CHECKING = "checking"
    ONLINE = "online"
    OFFLINE = "offline"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(slots=True, frozen=True)
class CpuMetrics:
    total: float | None = None
    user: float | None = None
    system: float | None = None
    iowait: float | None = None


@dataclass(slots=True, frozen=True)
class MemoryMetrics:
    percent: float | None = None
    used: float | None = None  # Bytes
    total: float | None = None
    available: float | None = None


@dataclass(slots=True, frozen=True)
class DiskMetrics:
    percent: float | None = None
    used: float | None = None  # Bytes
    total: float | None = None
    mount: str | None = None


@dataclass(slots=True, frozen=True)
class ProcessEntry:
    """Immutable snapshot of one normalized process."""

    name: str
    pid: int | str | None = None
    cpu_percent: float | None = None  # 0.0 - 100.0
    memory_percent: float | None = None
    command: str | None = None


@dataclass(slots=True, frozen=True)
class MetricSnapshot:
    """Canonical reconciled state at one poll instant.

    ``None`` in any numeric field means the source did not supply a
    recognizable value this cycle, not zero.
    """

    cpu: CpuMetrics = field(default_factory=CpuMetrics)
    memory: MemoryMetrics = field(default_factory=MemoryMetrics)
    disk: DiskMetrics = field(default_factory=DiskMetrics)
    processes: tuple[ProcessEntry, ...] = ()
    captured_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class PollOutcome:
    """Which sources settled successfully in one cycle."""

    succeeded: frozenset[Source] = frozenset()

    @property
    def any_succeeded(self) -> bool:
        return bool(self.succeeded)

    @property
    def status(self) -> Status:
        return Status.ONLINE if self.succeeded else Status.OFFLINE


EMPTY_SNAPSHOT = MetricSnapshot()
