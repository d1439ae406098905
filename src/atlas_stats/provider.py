"""OS metrics provider backed by psutil."""

import platform
import socket
import time
from typing import Any, Protocol

import psutil

from atlas_stats.models import HostInfo


class ProcessHandle(Protocol):
    """A provider-issued reference to one process, reused across polls."""

    def oneshot(self) -> Any: ...

    def name(self) -> str: ...

    def cpu_percent(self) -> float: ...

    def memory_info(self) -> Any: ...

    def io_counters(self) -> Any: ...

    def net_connections(self) -> list[Any]: ...


class MetricsProvider(Protocol):
    """
    Point-in-time OS queries consumed by the sampler.

    Every method may raise ``psutil.Error`` or ``OSError`` independently.
    """

    def cpu_percent(self, interval: float) -> float: ...

    def virtual_memory(self) -> Any: ...

    def disk_partitions(self) -> list[Any]: ...

    def disk_usage(self, path: str) -> Any: ...

    def host_info(self) -> HostInfo: ...

    def net_io_counters(self) -> Any: ...

    def pids(self) -> list[int]: ...

    def process(self, pid: int) -> ProcessHandle: ...


def _platform_name() -> str:
    """Distribution ID on Linux, lowercased system name elsewhere."""
    try:
        return platform.freedesktop_os_release().get("ID", "linux")
    except OSError:
        return platform.system().lower()


class PsutilProvider:
    """MetricsProvider implementation using psutil."""

    def cpu_percent(self, interval: float) -> float:
        """Blocking system-wide CPU sample over ``interval`` seconds."""
        return psutil.cpu_percent(interval=interval)

    def virtual_memory(self) -> Any:
        return psutil.virtual_memory()

    def disk_partitions(self) -> list[Any]:
        return psutil.disk_partitions(all=False)

    def disk_usage(self, path: str) -> Any:
        return psutil.disk_usage(path)

    def host_info(self) -> HostInfo:
        return HostInfo(
            hostname=socket.gethostname(),
            os=platform.system().lower(),
            platform=_platform_name(),
            uptime_seconds=time.time() - psutil.boot_time(),
        )

    def net_io_counters(self) -> Any:
        # Aggregated over all interfaces; None when the host has none
        return psutil.net_io_counters(pernic=False)

    def pids(self) -> list[int]:
        return psutil.pids()

    def process(self, pid: int) -> psutil.Process:
        """Acquire a handle. Raises NoSuchProcess if the PID already exited."""
        return psutil.Process(pid)
