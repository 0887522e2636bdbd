"""Local metrics agent serving psutil readings over HTTP.

Exposes ``cpu``, ``mem``, ``fs`` and ``processlist`` under
``/api/metrics`` in the field names the panel's normalizer understands.
Meant for a trusted local network: there is no authentication.
"""

import asyncio
import logging
from typing import Any

import psutil
from aiohttp import web

logger = logging.getLogger(__name__)

API_PREFIX = "/api/metrics"

PROCESS_ATTRS = [
    "pid",
    "name",
    "username",
    "cpu_percent",
    "memory_percent",
    "cmdline",
]


def collect_cpu() -> dict[str, Any]:
    """Aggregate CPU utilization since the previous call."""
    times = psutil.cpu_times_percent(interval=None)
    return {
        "total": psutil.cpu_percent(interval=None),
        "user": times.user,
        "system": times.system,
        # Not reported on every platform
        "iowait": getattr(times, "iowait", None),
    }


def collect_memory() -> dict[str, Any]:
    mem = psutil.virtual_memory()
    return {
        "total": mem.total,
        "available": mem.available,
        "used": mem.used,
        "percent": mem.percent,
    }


def collect_filesystems() -> list[dict[str, Any]]:
    """Usage of every mounted partition; unreadable mounts are skipped."""
    filesystems: list[dict[str, Any]] = []
    for part in psutil.disk_partitions(all=False):
        try:
            usage = psutil.disk_usage(part.mountpoint)
        except OSError:
            continue
        filesystems.append(
            {
                "device_name": part.device,
                "fs_type": part.fstype,
                "mnt_point": part.mountpoint,
                "size": usage.total,
                "used": usage.used,
                "free": usage.free,
                "percent": usage.percent,
            }
        )
    return filesystems


def collect_processes() -> list[dict[str, Any]]:
    """
    Collect one row per running process.

    Processes that exit, deny access or turn zombie mid-scan are skipped.
    """
    processes: list[dict[str, Any]] = []

    for proc in psutil.process_iter(attrs=PROCESS_ATTRS):
        try:
            with proc.oneshot():
                info = proc.info
                cmdline = info.get("cmdline") or []
                processes.append(
                    {
                        "pid": info.get("pid"),
                        "name": info.get("name") or "",
                        "username": info.get("username") or "",
                        "cpu_percent": info.get("cpu_percent") or 0.0,
                        "memory_percent": info.get("memory_percent") or 0.0,
                        "cmdline": " ".join(cmdline) if cmdline else None,
                    }
                )
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue

    return processes


async def _cpu(request: web.Request) -> web.Response:
    return web.json_response(collect_cpu())


async def _memory(request: web.Request) -> web.Response:
    return web.json_response(collect_memory())


async def _filesystems(request: web.Request) -> web.Response:
    filesystems = await asyncio.to_thread(collect_filesystems)
    return web.json_response(filesystems)


async def _processes(request: web.Request) -> web.Response:
    processes = await asyncio.to_thread(collect_processes)
    return web.json_response({"processlist": processes})


def create_agent_app() -> web.Application:
    # First cpu_percent() calls return 0.0; prime them so real values follow.
    psutil.cpu_percent(interval=None)
    psutil.cpu_times_percent(interval=None)

    app = web.Application()
    app.add_routes(
        [
            web.get(f"{API_PREFIX}/cpu", _cpu),
            web.get(f"{API_PREFIX}/mem", _memory),
            web.get(f"{API_PREFIX}/fs", _filesystems),
            web.get(f"{API_PREFIX}/processlist", _processes),
        ]
    )
    return app


def run_agent(host: str = "127.0.0.1", port: int = 61208) -> None:
    logger.info("serving metrics on http://%s:%d%s", host, port, API_PREFIX)
    web.run_app(create_agent_app(), host=host, port=port, print=None)
