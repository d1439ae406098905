"""Sampling and differencing engine for atlas-stats."""

import time
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

import psutil
import structlog

from atlas_stats.config import SamplingConfig
from atlas_stats.models import DiskUsage, HostInfo, ProcessSample, SystemSnapshot
from atlas_stats.provider import MetricsProvider, ProcessHandle, PsutilProvider
from atlas_stats.ranking import DEFAULT_LIMIT, rank

log = structlog.get_logger()

T = TypeVar("T")

# Errors that mean "this value is unavailable right now". AttributeError and
# NotImplementedError cover queries a platform does not support, e.g.
# Process.io_counters on macOS.
UNAVAILABLE = (psutil.Error, OSError, AttributeError, NotImplementedError)

DEFAULT_CPU_WINDOW = 0.2
DEFAULT_EXCLUDED_DEVICE_PREFIXES = ("/dev/loop",)
DEFAULT_EXCLUDED_MOUNT_PREFIXES = ("/snap/",)


def _query(what: str, func: Callable[[], T | None], default: T, **context: Any) -> T:
    """Run one provider query, substituting ``default`` on failure or None."""
    try:
        result = func()
    except UNAVAILABLE as e:
        log.debug("query_failed", query=what, error=repr(e), **context)
        return default
    return default if result is None else result


def compute_rate(previous: int, current: int, elapsed: float) -> float:
    """
    Per-second rate of change between two cumulative counter readings.

    A counter that went backwards (reset or PID reuse) yields 0. A
    non-positive ``elapsed`` is treated as one second.
    """
    if elapsed <= 0:
        elapsed = 1.0
    if current < previous:
        return 0.0
    return (current - previous) / elapsed


class Sampler:
    """
    Polls the provider and turns raw readings into a ranked SystemSnapshot.

    Process handles are cached per PID so the provider's own CPU baseline
    survives between polls. The last sample of each PID is kept to derive
    disk throughput. Both caches are purged of PIDs that are no longer
    enumerated.

    Not thread-safe: callers must serialize calls to ``poll``.
    """

    def __init__(
        self,
        provider: MetricsProvider | None = None,
        *,
        top_n: int = DEFAULT_LIMIT,
        cpu_window: float = DEFAULT_CPU_WINDOW,
        excluded_device_prefixes: Iterable[str] = DEFAULT_EXCLUDED_DEVICE_PREFIXES,
        excluded_mount_prefixes: Iterable[str] = DEFAULT_EXCLUDED_MOUNT_PREFIXES,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the Sampler.

        Args:
            provider: OS metrics source. Defaults to PsutilProvider.
            top_n: Maximum entries in each ranked view.
            cpu_window: Seconds the system CPU sample blocks for.
            excluded_device_prefixes: Partitions whose device starts with one
                of these are skipped (loop devices).
            excluded_mount_prefixes: Partitions mounted under one of these are
                skipped (snap images).
            clock: Monotonic clock used for rate denominators.
            wall_clock: Clock used for snapshot timestamps.
        """
        self._provider = provider if provider is not None else PsutilProvider()
        self._top_n = top_n
        self._cpu_window = cpu_window
        self._excluded_devices = tuple(excluded_device_prefixes)
        self._excluded_mounts = tuple(excluded_mount_prefixes)
        self._clock = clock
        self._wall_clock = wall_clock

        self._handles: dict[int, ProcessHandle] = {}
        self._last_samples: dict[int, ProcessSample] = {}
        self._last_time = clock()

    @classmethod
    def from_config(
        cls,
        config: SamplingConfig,
        provider: MetricsProvider | None = None,
    ) -> "Sampler":
        """Build a Sampler from the [sampling] config section."""
        return cls(
            provider,
            top_n=config.top_n,
            cpu_window=config.cpu_window,
            excluded_device_prefixes=config.excluded_device_prefixes,
            excluded_mount_prefixes=config.excluded_mount_prefixes,
        )

    @property
    def cpu_window(self) -> float:
        """Seconds each poll blocks on the system CPU sample."""
        return self._cpu_window

    @property
    def tracked_pids(self) -> frozenset[int]:
        """PIDs currently holding a cached handle."""
        return frozenset(self._handles)

    def cached_sample(self, pid: int) -> ProcessSample | None:
        """The most recent sample kept for ``pid``, if any."""
        return self._last_samples.get(pid)

    def poll(self) -> SystemSnapshot:
        """
        Take one reading of the whole system.

        Failed sub-queries degrade to zero or empty values; the poll itself
        does not raise for them.
        """
        cpu_percent = _query(
            "cpu_percent", lambda: self._provider.cpu_percent(self._cpu_window), 0.0
        )

        mem = _query("virtual_memory", self._provider.virtual_memory, None)
        disks = self._collect_disks()
        host = _query("host_info", self._provider.host_info, HostInfo())
        net = _query("net_io_counters", self._provider.net_io_counters, None)

        samples = self._collect_processes()
        rankings = rank(samples, self._top_n)

        log.debug("poll_complete", processes=len(samples), disks=len(disks))

        return SystemSnapshot(
            cpu_percent=cpu_percent,
            memory_total=mem.total if mem is not None else 0,
            memory_used=mem.used if mem is not None else 0,
            memory_free=mem.free if mem is not None else 0,
            disks=disks,
            host=host,
            net_sent=net.bytes_sent if net is not None else 0,
            net_recv=net.bytes_recv if net is not None else 0,
            top_cpu=rankings.cpu,
            top_memory=rankings.memory,
            top_disk=rankings.disk,
            top_net=rankings.net,
            process_count=len(samples),
            timestamp=self._wall_clock(),
        )

    def _is_excluded(self, partition: Any) -> bool:
        """Check whether a partition is a loopback or virtual mount."""
        return partition.device.startswith(self._excluded_devices) or (
            partition.mountpoint.startswith(self._excluded_mounts)
        )

    def _collect_disks(self) -> tuple[DiskUsage, ...]:
        """Usage for every real mount. Mounts whose usage query fails are left out."""
        partitions = _query("disk_partitions", self._provider.disk_partitions, [])

        disks: list[DiskUsage] = []
        for part in partitions:
            if self._is_excluded(part):
                continue

            usage = _query(
                "disk_usage",
                lambda: self._provider.disk_usage(part.mountpoint),
                None,
                mountpoint=part.mountpoint,
            )
            if usage is None:
                continue

            disks.append(
                DiskUsage(
                    path=part.mountpoint,
                    total=usage.total,
                    used=usage.used,
                    free=usage.free,
                    used_percent=usage.percent,
                )
            )
        return tuple(disks)

    def _collect_processes(self) -> list[ProcessSample]:
        """Sample every live process and reconcile the per-PID caches."""
        pids = _query("pids", self._provider.pids, None)
        if pids is None:
            return []

        now = self._clock()
        elapsed = now - self._last_time
        if elapsed <= 0:
            elapsed = 1.0

        samples: list[ProcessSample] = []
        for pid in pids:
            handle = self._acquire(pid)
            if handle is None:
                continue

            sample = self._sample_process(pid, handle, elapsed)
            self._last_samples[pid] = sample
            samples.append(sample)

        self._purge(set(pids))
        self._last_time = now
        return samples

    def _acquire(self, pid: int) -> ProcessHandle | None:
        """Return the cached handle for ``pid``, acquiring one on first sight."""
        handle = self._handles.get(pid)
        if handle is not None:
            return handle

        try:
            handle = self._provider.process(pid)
        except (psutil.Error, OSError) as e:
            # Exited between enumeration and acquisition
            log.debug("process_skipped", pid=pid, error=repr(e))
            return None

        self._handles[pid] = handle
        return handle

    def _sample_process(self, pid: int, handle: ProcessHandle, elapsed: float) -> ProcessSample:
        """Read one process. Each query degrades on its own."""
        with handle.oneshot():
            name = _query("name", handle.name, "", pid=pid)
            cpu_percent = _query("cpu_percent", handle.cpu_percent, 0.0, pid=pid)

            mem_info = _query("memory_info", handle.memory_info, None, pid=pid)
            memory_rss = mem_info.rss if mem_info else 0

            io = _query("io_counters", handle.io_counters, None, pid=pid)
            disk_io = io.read_bytes + io.write_bytes if io else 0

        previous = self._last_samples.get(pid)
        disk_rate = compute_rate(previous.disk_io, disk_io, elapsed) if previous else 0.0

        conns = _query("net_connections", handle.net_connections, [], pid=pid)

        return ProcessSample(
            pid=pid,
            name=name,
            cpu_percent=cpu_percent,
            memory_rss=memory_rss,
            disk_io=disk_io,
            disk_rate=disk_rate,
            net_connections=len(conns),
        )

    def _purge(self, live_pids: set[int]) -> None:
        """Drop cached handles and samples for PIDs that have exited."""
        stale = (self._handles.keys() | self._last_samples.keys()) - live_pids
        for pid in stale:
            self._handles.pop(pid, None)
            self._last_samples.pop(pid, None)
        if stale:
            log.debug("processes_retired", count=len(stale))
