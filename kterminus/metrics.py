"""System metrics collection."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path

_MEMINFO = Path("/proc/meminfo")


@dataclass(frozen=True)
class SystemMetrics:
    """A snapshot of a machine's load and resources."""

    cpu_percent: float = 0.0
    """CPU usage percentage (0-100)."""
    memory_percent: float = 0.0
    """Memory usage percentage (0-100)."""
    disk_available: int = 0
    """Available disk space in bytes on the root filesystem."""
    load_avg_1m: float = 0.0
    """System load average over one minute."""

    @classmethod
    def collect(cls) -> "SystemMetrics":
        """Collect the current system metrics; unavailable values are zero."""
        load = _load_average()
        return cls(
            cpu_percent=_cpu_percent(load),
            memory_percent=_memory_percent(),
            disk_available=_disk_available(),
            load_avg_1m=load,
        )


def _load_average() -> float:
    try:
        return float(os.getloadavg()[0])
    except (OSError, AttributeError):
        return 0.0


def _cpu_percent(load: float) -> float:
    cpus = os.cpu_count() or 1
    return max(0.0, min(100.0, load / cpus * 100.0))


def _parse_meminfo(text: str) -> float:
    values: dict[str, int] = {}
    for line in text.splitlines():
        name, _, rest = line.partition(":")
        fields = rest.split()
        if fields and fields[0].isdigit():
            values[name.strip()] = int(fields[0])
    total = values.get("MemTotal", 0)
    if total <= 0:
        return 0.0
    available = values.get("MemAvailable", values.get("MemFree", total))
    used = total - available
    return max(0.0, min(100.0, used / total * 100.0))


def _memory_percent(path: Path = _MEMINFO) -> float:
    try:
        return _parse_meminfo(path.read_text())
    except OSError:
        return 0.0


def _disk_available() -> int:
    try:
        return shutil.disk_usage(os.path.abspath(os.sep)).free
    except OSError:
        return 0