"""Background polling loop for atlas-stats."""

import threading
import time
from collections import deque
from dataclasses import replace
from queue import Queue

import structlog

from atlas_stats.models import SystemSnapshot
from atlas_stats.sampler import Sampler

log = structlog.get_logger()

NET_HISTORY_LENGTH = 40
MIN_POLL_RATE = 0.1
# Idle time kept between the end of the CPU window and the next poll
POLL_MARGIN = 0.05


class NetworkRate:
    """Turns cumulative system-wide network counters into a bandwidth history."""

    def __init__(self, maxlen: int = NET_HISTORY_LENGTH) -> None:
        self._last_total: int | None = None
        self._history: deque[float] = deque([0.0] * maxlen, maxlen=maxlen)

    @property
    def current(self) -> float:
        """Most recent bandwidth in bytes per second."""
        return self._history[-1]

    @property
    def history(self) -> list[float]:
        """Bandwidth history, oldest first."""
        return list(self._history)

    def update(self, sent: int, recv: int, elapsed: float) -> float:
        """Record a new counter reading and return the bandwidth since the last one."""
        total = sent + recv
        rate = 0.0
        if self._last_total is not None and 0 < self._last_total <= total:
            rate = (total - self._last_total) / (elapsed if elapsed > 0 else 1.0)
        self._last_total = total
        self._history.append(rate)
        return rate


class SystemMonitor:
    """
    Drives a Sampler from a daemon thread and pushes snapshots to a Queue.

    The worker thread is the sampler's only caller, so polls never overlap.
    """

    def __init__(
        self,
        update_queue: Queue[SystemSnapshot],
        poll_rate: float = 1.0,
        sampler: Sampler | None = None,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            update_queue: Thread-safe queue to push snapshots to.
            poll_rate: Seconds between polls. Default 1.0s.
            sampler: Sampler to drive. A psutil-backed one is created if omitted.
        """
        self._queue = update_queue
        self._sampler = sampler if sampler is not None else Sampler()
        self._poll_rate = self._clamp(poll_rate)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._net_rate = NetworkRate()
        self._last_timestamp: float | None = None

    def _clamp(self, value: float) -> float:
        # Polls block for the CPU window, so the interval must be strictly longer
        return max(MIN_POLL_RATE, self._sampler.cpu_window + POLL_MARGIN, value)

    @property
    def queue(self) -> Queue[SystemSnapshot]:
        """Queue the snapshots are pushed to."""
        return self._queue

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = self._clamp(value)

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SystemMonitor",
        )
        self._thread.start()
        log.info("monitor_started", poll_rate=self._poll_rate)

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        The poll in progress, if any, is allowed to finish.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
            log.info("monitor_stopped")

    def poll_once(self) -> SystemSnapshot:
        """Run one poll and stamp the snapshot with its network bandwidth."""
        snapshot = self._sampler.poll()
        elapsed = (
            snapshot.timestamp - self._last_timestamp
            if self._last_timestamp is not None
            else self._poll_rate
        )
        self._last_timestamp = snapshot.timestamp
        rate = self._net_rate.update(snapshot.net_sent, snapshot.net_recv, elapsed)
        return replace(snapshot, net_rate=rate)

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                self._queue.put(self.poll_once())
            except Exception:
                # Keep the loop alive even if the provider is entirely unavailable
                log.exception("poll_failed")

            # The poll itself counts toward the interval
            remaining = self._poll_rate - (time.monotonic() - started)
            self._stop_event.wait(timeout=max(0.0, remaining))

    def get_net_history(self) -> list[float]:
        """Get the network bandwidth history for sparkline rendering."""
        return self._net_rate.history

    @property
    def net_rate(self) -> float:
        """Latest network bandwidth in bytes per second."""
        return self._net_rate.current
