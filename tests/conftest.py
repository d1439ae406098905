"""Shared test fixtures for atlas-stats."""

from collections import namedtuple
from contextlib import nullcontext

import psutil
import pytest

from atlas_stats.models import HostInfo, ProcessSample
from atlas_stats.sampler import Sampler

Partition = namedtuple("Partition", "device mountpoint fstype opts")
Usage = namedtuple("Usage", "total used free percent")
Memory = namedtuple("Memory", "total used free")
NetIO = namedtuple("NetIO", "bytes_sent bytes_recv")
MemInfo = namedtuple("MemInfo", "rss vms")
IOCounters = namedtuple("IOCounters", "read_bytes write_bytes")

GB = 1024**3


class FakeHandle:
    """Stands in for psutil.Process. Queries listed in ``errors`` raise."""

    def __init__(
        self,
        pid: int,
        name: str = "proc",
        cpu: float = 0.0,
        rss: int = 0,
        disk_io: int = 0,
        conns: int = 0,
    ) -> None:
        self.pid = pid
        self.proc_name = name
        self.cpu = cpu
        self.rss = rss
        self.disk_io = disk_io
        self.conns = conns
        self.errors: dict[str, Exception] = {}

    def _check(self, query: str) -> None:
        if query in self.errors:
            raise self.errors[query]

    def oneshot(self):
        return nullcontext()

    def name(self) -> str:
        self._check("name")
        return self.proc_name

    def cpu_percent(self) -> float:
        self._check("cpu_percent")
        return self.cpu

    def memory_info(self) -> MemInfo:
        self._check("memory_info")
        return MemInfo(rss=self.rss, vms=self.rss * 2)

    def io_counters(self) -> IOCounters:
        self._check("io_counters")
        # Split so the sampler has to add both halves
        return IOCounters(read_bytes=self.disk_io // 2, write_bytes=self.disk_io - self.disk_io // 2)

    def net_connections(self) -> list[object]:
        self._check("net_connections")
        return [object() for _ in range(self.conns)]


class FakeProvider:
    """In-memory MetricsProvider. Provider-level queries listed in ``errors`` raise."""

    def __init__(self) -> None:
        self.cpu = 12.5
        self.memory = Memory(total=16 * GB, used=6 * GB, free=10 * GB)
        self.partitions = [Partition("/dev/sda1", "/", "ext4", "rw")]
        self.usage = {"/": Usage(total=500 * GB, used=200 * GB, free=300 * GB, percent=40.0)}
        self.host = HostInfo(hostname="testhost", os="linux", platform="ubuntu", uptime_seconds=3600.0)
        self.net = NetIO(bytes_sent=1000, bytes_recv=2000)
        self.handles: dict[int, FakeHandle] = {}
        self.unacquirable: set[int] = set()
        self.errors: dict[str, Exception] = {}
        self.acquired: list[int] = []
        self.cpu_intervals: list[float] = []

    def _check(self, query: str) -> None:
        if query in self.errors:
            raise self.errors[query]

    def add(self, pid: int, **kwargs) -> FakeHandle:
        handle = FakeHandle(pid, **kwargs)
        self.handles[pid] = handle
        return handle

    def remove(self, pid: int) -> None:
        del self.handles[pid]

    def cpu_percent(self, interval: float) -> float:
        self._check("cpu_percent")
        self.cpu_intervals.append(interval)
        return self.cpu

    def virtual_memory(self) -> Memory:
        self._check("virtual_memory")
        return self.memory

    def disk_partitions(self) -> list[Partition]:
        self._check("disk_partitions")
        return list(self.partitions)

    def disk_usage(self, path: str) -> Usage:
        self._check("disk_usage")
        if path not in self.usage:
            raise PermissionError(13, "Permission denied", path)
        return self.usage[path]

    def host_info(self) -> HostInfo:
        self._check("host_info")
        return self.host

    def net_io_counters(self) -> NetIO | None:
        self._check("net_io_counters")
        return self.net

    def pids(self) -> list[int]:
        self._check("pids")
        return list(self.handles)

    def process(self, pid: int) -> FakeHandle:
        if pid in self.unacquirable or pid not in self.handles:
            raise psutil.NoSuchProcess(pid)
        self.acquired.append(pid)
        return self.handles[pid]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def provider() -> FakeProvider:
    """A provider with one mounted disk and no processes."""
    return FakeProvider()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sampler(provider: FakeProvider, clock: FakeClock) -> Sampler:
    """A Sampler reading from the fake provider on the fake clock."""
    return Sampler(provider, clock=clock, wall_clock=lambda: 1_700_000_000.0)


def make_sample(
    pid: int = 100,
    name: str = "proc",
    cpu_percent: float = 0.0,
    memory_rss: int = 0,
    disk_io: int = 0,
    disk_rate: float = 0.0,
    net_connections: int = 0,
) -> ProcessSample:
    """Create a ProcessSample for testing."""
    return ProcessSample(
        pid=pid,
        name=name,
        cpu_percent=cpu_percent,
        memory_rss=memory_rss,
        disk_io=disk_io,
        disk_rate=disk_rate,
        net_connections=net_connections,
    )
