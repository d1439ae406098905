"""Data models for atlas-stats."""

from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class ProcessSample:
    """Immutable reading of one process at one poll."""

    pid: int
    name: str
    cpu_percent: float  # Since this PID's previous sample
    memory_rss: int  # Bytes
    disk_io: int  # Cumulative bytes read + written since process start
    disk_rate: float  # Bytes per second, derived
    net_connections: int


@dataclass(slots=True, frozen=True)
class DiskUsage:
    """Usage of a single mounted filesystem."""

    path: str
    total: int
    used: int
    free: int
    used_percent: float


@dataclass(slots=True, frozen=True)
class HostInfo:
    """Host identity."""

    hostname: str = ""
    os: str = ""
    platform: str = ""
    uptime_seconds: float = 0.0


@dataclass(slots=True, frozen=True)
class SystemSnapshot:
    """Immutable result of one poll: system-wide totals plus four Top-N views."""

    cpu_percent: float = 0.0
    memory_total: int = 0
    memory_used: int = 0
    memory_free: int = 0
    disks: tuple[DiskUsage, ...] = ()
    host: HostInfo = field(default_factory=HostInfo)
    net_sent: int = 0
    net_recv: int = 0
    net_rate: float = 0.0  # Bytes per second since the previous snapshot
    top_cpu: tuple[ProcessSample, ...] = ()
    top_memory: tuple[ProcessSample, ...] = ()
    top_disk: tuple[ProcessSample, ...] = ()
    top_net: tuple[ProcessSample, ...] = ()
    process_count: int = 0
    timestamp: float = 0.0

    @property
    def memory_percent(self) -> float:
        """Used memory as a percentage of total."""
        if self.memory_total <= 0:
            return 0.0
        return self.memory_used / self.memory_total * 100.0
