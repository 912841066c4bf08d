"""Process introspection used by the health and memory endpoints."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone

import psutil


_BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True)
class MemoryUsage:
    """Memory figures of the current process, in bytes.

    ``heap_used`` is the data segment and ``external`` the shared pages where the
    platform reports them (Linux); elsewhere they fall back to ``rss`` and 0.
    """

    rss: int
    heap_total: int
    heap_used: int
    external: int

    def as_megabytes(self) -> dict[str, str]:
        return {
            "heap_used": _format_mb(self.heap_used),
            "heap_total": _format_mb(self.heap_total),
            "external": _format_mb(self.external),
            "rss": _format_mb(self.rss),
        }


def _format_mb(value: int) -> str:
    return f"{round(value / _BYTES_PER_MB)} MB"


def memory_usage() -> MemoryUsage:
    info = psutil.Process().memory_info()
    return MemoryUsage(
        rss=info.rss,
        heap_total=info.vms,
        heap_used=getattr(info, "data", info.rss),
        external=getattr(info, "shared", 0),
    )


def uptime_seconds() -> float:
    """Seconds since this process started."""
    return max(0.0, time.time() - psutil.Process().create_time())


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
