"""Top-N process ranking."""

from collections.abc import Iterable
from enum import Enum
from typing import NamedTuple

from atlas_stats.models import ProcessSample

DEFAULT_LIMIT = 5


class Metric(Enum):
    """Ranking metrics for the Top-N views."""

    CPU = "cpu"
    MEMORY = "memory"
    DISK = "disk"
    NET = "net"


_METRIC_VALUE = {
    Metric.CPU: lambda p: p.cpu_percent,
    Metric.MEMORY: lambda p: p.memory_rss,
    Metric.DISK: lambda p: p.disk_rate,
    Metric.NET: lambda p: p.net_connections,
}


class Rankings(NamedTuple):
    """The four Top-N views derived from one poll."""

    cpu: tuple[ProcessSample, ...]
    memory: tuple[ProcessSample, ...]
    disk: tuple[ProcessSample, ...]
    net: tuple[ProcessSample, ...]


def top_n(
    samples: Iterable[ProcessSample],
    metric: Metric,
    limit: int = DEFAULT_LIMIT,
) -> tuple[ProcessSample, ...]:
    """
    Return the ``limit`` highest samples for ``metric``.

    Ordered by metric value descending, ties broken by PID ascending, so the
    result does not depend on the order processes were enumerated in.
    """
    if limit < 0:
        raise ValueError(f"limit must be non-negative, got {limit}")
    value = _METRIC_VALUE[metric]
    ordered = sorted(samples, key=lambda p: (-value(p), p.pid))
    return tuple(ordered[:limit])


def rank(samples: Iterable[ProcessSample], limit: int = DEFAULT_LIMIT) -> Rankings:
    """Rank samples by every metric."""
    samples = list(samples)
    return Rankings(
        cpu=top_n(samples, Metric.CPU, limit),
        memory=top_n(samples, Metric.MEMORY, limit),
        disk=top_n(samples, Metric.DISK, limit),
        net=top_n(samples, Metric.NET, limit),
    )
