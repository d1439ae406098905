"""Tests for the psutil-backed provider against the live system."""

import os

import psutil
import pytest

from atlas_stats.models import HostInfo
from atlas_stats.provider import PsutilProvider


@pytest.fixture
def provider() -> PsutilProvider:
    return PsutilProvider()


def test_pids_include_self(provider):
    assert os.getpid() in provider.pids()


def test_process_handle(provider):
    """A handle for this process answers every per-process query."""
    handle = provider.process(os.getpid())

    with handle.oneshot():
        assert isinstance(handle.name(), str)
        assert isinstance(handle.cpu_percent(), float)
        assert handle.memory_info().rss > 0
    assert isinstance(handle.net_connections(), list)


def test_process_for_missing_pid(provider):
    """Acquiring a handle for a PID that does not exist raises NoSuchProcess."""
    with pytest.raises(psutil.NoSuchProcess):
        provider.process(2**22 + 12345)


def test_cpu_percent_window(provider):
    assert 0.0 <= provider.cpu_percent(0.05) <= 100.0


def test_virtual_memory(provider):
    mem = provider.virtual_memory()
    assert mem.total > 0
    assert mem.used <= mem.total


def test_host_info(provider):
    host = provider.host_info()
    assert isinstance(host, HostInfo)
    assert host.hostname
    assert host.os
    assert host.platform
    assert host.uptime_seconds > 0


def test_disk_partitions_and_usage(provider):
    for part in provider.disk_partitions():
        try:
            usage = provider.disk_usage(part.mountpoint)
        except OSError:
            continue
        assert usage.total >= usage.used
