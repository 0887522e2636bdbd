"""Reconcile raw metric endpoint responses into the canonical schema.

Upstream agents disagree on field names (``percent`` vs ``used_percent`` vs
``mem_percent`` and so on). The alias tables below list, per canonical
field, the raw keys to try in priority order. New aliases are added to the
tables; the mapping functions never branch on a particular agent.
"""

import logging
import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime
from typing import Any

from vitals.models import (
    CpuMetrics,
    DiskMetrics,
    MemoryMetrics,
    MetricSnapshot,
    PollOutcome,
    ProcessEntry,
    Source,
)

logger = logging.getLogger(__name__)

TOP_PROCESSES = 4

CPU_FIELDS: dict[str, tuple[str, ...]] = {
    "total": ("total", "cpu_percent", "total_percent"),
    "user": ("user", "user_percent"),
    "system": ("system", "system_percent"),
    "iowait": ("iowait", "iowait_percent"),
}

MEMORY_FIELDS: dict[str, tuple[str, ...]] = {
    "percent": ("percent", "used_percent", "mem_percent"),
    "used": ("used", "used_memory"),
    "total": ("total", "total_memory"),
    "available": ("available", "available_memory"),
}

DISK_FIELDS: dict[str, tuple[str, ...]] = {
    "percent": ("percent", "used_percent"),
    "used": ("used", "used_bytes"),
    "total": ("size", "total", "total_bytes"),
    "mount": ("mnt_point", "mountpoint", "device_name"),
}

PROCESS_FIELDS: dict[str, tuple[str, ...]] = {
    "pid": ("pid", "PID"),
    "name": ("name", "command", "cmdline"),
    "cpu_percent": ("cpu_percent", "cpu"),
    "memory_percent": ("memory_percent", "mem_percent", "mem"),
    "command": ("cmdline", "command"),
}

# Keys under which a list-shaped source may be wrapped.
DISK_LIST_KEYS = ("filesystems", "fs", "mounts")
PROCESS_LIST_KEYS = ("processlist", "processes")

ROOT_MOUNT = "/"
MOUNT_KEYS = ("mnt_point", "mountpoint")


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # JSON integers beyond float range.
        return False


def pick_number(*candidates: Any) -> float | None:
    """Return the first finite numeric candidate, or None."""
    for value in candidates:
        if _is_number(value):
            return value
    return None


def pick_bytes(*candidates: Any) -> float | None:
    """Like pick_number, but skips negative values since byte counts cannot be."""
    return pick_number(*(value for value in candidates if not _is_number(value) or value >= 0))


def first_present(*candidates: Any) -> Any:
    """Return the first candidate that is not None."""
    for value in candidates:
        if value is not None:
            return value
    return None


def clamp_percent(value: float | None) -> float | None:
    """Saturate a percentage into [0, 100]; None stays None."""
    if value is None:
        return None
    return min(100.0, max(0.0, value))


def _fields(raw: Mapping[str, Any], aliases: Sequence[str]) -> list[Any]:
    return [raw.get(key) for key in aliases]


def _as_mapping(raw: Any) -> Mapping[str, Any]:
    return raw if isinstance(raw, Mapping) else {}


def _unwrap_list(raw: Any, keys: Iterable[str]) -> list[Any] | None:
    """Accept a bare list or an object wrapping one under any of ``keys``."""
    if isinstance(raw, list):
        return raw
    if isinstance(raw, Mapping):
        for key in keys:
            wrapped = raw.get(key)
            if isinstance(wrapped, list):
                return wrapped
    return None


def _text(value: Any) -> str | None:
    # psutil-style agents report cmdline as an argv list.
    if isinstance(value, (list, tuple)):
        value = " ".join(str(part) for part in value if part is not None)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_cpu(raw: Any) -> CpuMetrics:
    """Map a cpu body; every field is a clamped percentage."""
    data = _as_mapping(raw)
    return CpuMetrics(
        **{name: clamp_percent(pick_number(*_fields(data, keys))) for name, keys in CPU_FIELDS.items()}
    )


def normalize_memory(raw: Any) -> MemoryMetrics:
    """Map a mem body; only ``percent`` is clamped, byte counts pass through."""
    data = _as_mapping(raw)
    return MemoryMetrics(
        percent=clamp_percent(pick_number(*_fields(data, MEMORY_FIELDS["percent"]))),
        used=pick_bytes(*_fields(data, MEMORY_FIELDS["used"])),
        total=pick_bytes(*_fields(data, MEMORY_FIELDS["total"])),
        available=pick_bytes(*_fields(data, MEMORY_FIELDS["available"])),
    )


def select_filesystem(raw: Any) -> Mapping[str, Any] | None:
    """Pick the root filesystem entry, falling back to the first one.

    A bare object without a wrapped list is treated as a single entry.
    """
    entries = _unwrap_list(raw, DISK_LIST_KEYS)
    if entries is None:
        return raw if isinstance(raw, Mapping) and raw else None

    mounts = [entry for entry in entries if isinstance(entry, Mapping)]
    for entry in mounts:
        if any(entry.get(key) == ROOT_MOUNT for key in MOUNT_KEYS):
            return entry
    return mounts[0] if mounts else None


def normalize_disk(raw: Any) -> DiskMetrics:
    """Map an fs body to the selected filesystem's usage."""
    entry = _as_mapping(select_filesystem(raw))
    mount = first_present(*_fields(entry, DISK_FIELDS["mount"]))
    return DiskMetrics(
        percent=clamp_percent(pick_number(*_fields(entry, DISK_FIELDS["percent"]))),
        used=pick_bytes(*_fields(entry, DISK_FIELDS["used"])),
        total=pick_bytes(*_fields(entry, DISK_FIELDS["total"])),
        mount=None if mount is None else str(mount),
    )


def normalize_process(raw: Any) -> ProcessEntry | None:
    """Map one raw process row; None when it has no usable name."""
    if not isinstance(raw, Mapping):
        return None

    name = None
    for value in _fields(raw, PROCESS_FIELDS["name"]):
        name = _text(value)
        if name is not None:
            break
    if name is None:
        return None

    pid = first_present(*_fields(raw, PROCESS_FIELDS["pid"]))
    if not isinstance(pid, (int, str)) or isinstance(pid, bool):
        pid = None

    return ProcessEntry(
        name=name,
        pid=pid,
        cpu_percent=clamp_percent(pick_number(*_fields(raw, PROCESS_FIELDS["cpu_percent"]))),
        memory_percent=clamp_percent(pick_number(*_fields(raw, PROCESS_FIELDS["memory_percent"]))),
        command=_text(first_present(*_fields(raw, PROCESS_FIELDS["command"]))),
    )


def rank_processes(processes: Iterable[ProcessEntry], limit: int = TOP_PROCESSES) -> list[ProcessEntry]:
    """Order by CPU then memory, both descending, keeping input order on ties.

    ``sorted`` is stable, which makes equal rows come out in the order the
    agent reported them.
    """
    ranked = sorted(
        processes,
        key=lambda p: (-(p.cpu_percent or 0.0), -(p.memory_percent or 0.0)),
    )
    return ranked[: max(0, limit)]


def normalize_processes(raw: Any, limit: int = TOP_PROCESSES) -> list[ProcessEntry]:
    """Map a processlist body and keep the top ``limit`` entries."""
    entries = _unwrap_list(raw, PROCESS_LIST_KEYS) or []
    normalized = [proc for proc in map(normalize_process, entries) if proc is not None]
    return rank_processes(normalized, limit)


def normalize_snapshot(
    raw: Mapping[Source, Any],
    *,
    top_count: int = TOP_PROCESSES,
    captured_at: datetime | None = None,
) -> tuple[MetricSnapshot, PollOutcome]:
    """Build one canonical snapshot from a cycle's raw responses.

    ``raw`` maps each source to its decoded body, or None when the fetch
    failed. A decoded JSON ``null`` counts as a failed source, and so does
    a body its normalizer cannot map; the other sources are unaffected.
    """
    normalizers: dict[Source, Callable[[Any], Any]] = {
        Source.CPU: normalize_cpu,
        Source.MEMORY: normalize_memory,
        Source.DISK: normalize_disk,
        Source.PROCESSES: lambda body: tuple(normalize_processes(body, top_count)),
    }

    values: dict[Source, Any] = {}
    succeeded = set()
    for source, normalizer in normalizers.items():
        body = raw.get(source)
        try:
            values[source] = normalizer(body)
        except Exception:
            logger.debug(
                "source %s returned an unusable body",
                source.value,
                exc_info=True,
                extra={"event": "source_unusable", "source": source.value},
            )
            values[source] = normalizer(None)
            continue
        if body is not None:
            succeeded.add(source)

    snapshot = MetricSnapshot(
        cpu=values[Source.CPU],
        memory=values[Source.MEMORY],
        disk=values[Source.DISK],
        processes=values[Source.PROCESSES],
        captured_at=captured_at,
    )
    return snapshot, PollOutcome(succeeded=frozenset(succeeded))
