"""atlas-stats - Main Textual application."""

from collections.abc import Callable
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, VerticalScroll
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Sparkline, Static

from atlas_stats.config import Config
from atlas_stats.models import DiskUsage, ProcessSample, SystemSnapshot
from atlas_stats.monitor import SystemMonitor
from atlas_stats.sampler import Sampler

BAR_WIDTH = 20


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    if size < 1024:
        return f"{int(size)} B"
    for unit in "KMGTP":
        size = size / 1024
        if size < 1024:
            return f"{size:.1f} {unit}B"
    return f"{size:.1f} PB"


def format_duration(seconds: float) -> str:
    """Format an uptime as ``[Nd ]HH:MM:SS``."""
    seconds = int(max(0, seconds))
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    clock = f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{days}d {clock}" if days else clock


def render_bar(percent: float, color: str) -> str:
    """Render a fixed-width usage bar in Rich markup."""
    filled = min(int(percent / (100 / BAR_WIDTH)), BAR_WIDTH)
    bar = f"[{color}]█[/{color}]" * filled + "[dim]░[/dim]" * (BAR_WIDTH - filled)
    # Escaped bracket for the bar container
    return f"\\[{bar}] {percent:5.1f}%"


class HostPanel(Static):
    """Hostname, OS, platform and uptime."""

    def update_stats(self, snapshot: SystemSnapshot) -> None:
        host = snapshot.host
        self.update(
            f"[b]Hostname:[/b] {host.hostname or '-'}\n"
            f"[b]OS:[/b]       {host.os or '-'}\n"
            f"[b]Platform:[/b] {host.platform or '-'}\n"
            f"[b]Uptime:[/b]   {format_duration(host.uptime_seconds)}"
        )


def describe_network(snapshot: SystemSnapshot) -> str:
    """Markup for the network panel. Totals and rate come from the same poll."""
    return (
        "[b]Network Activity[/b]\n"
        f"Total Sent:   {format_bytes(snapshot.net_sent)}\n"
        f"Total Recv:   {format_bytes(snapshot.net_recv)}\n"
        f"Current Rate: {format_bytes(snapshot.net_rate)}/s"
    )


class NetworkPanel(Static):
    """System-wide network totals and current bandwidth."""

    def update_stats(self, snapshot: SystemSnapshot) -> None:
        self.update(describe_network(snapshot))


class UsagePanel(Static):
    """CPU and memory bars."""

    def update_stats(self, snapshot: SystemSnapshot) -> None:
        self.update(
            f"CPU \\[{snapshot.cpu_percent:.2f}%]\n"
            f"{render_bar(snapshot.cpu_percent, 'green')}\n"
            f"Mem {format_bytes(snapshot.memory_used)} / {format_bytes(snapshot.memory_total)}\n"
            f"{render_bar(snapshot.memory_percent, 'cyan')}"
        )


def describe_disks(disks: tuple[DiskUsage, ...]) -> str:
    """Markup for the disk panel: a heading and a bar per mount."""
    if not disks:
        return "No disks found"
    lines = []
    for disk in disks:
        lines.append(f"[b]{disk.path}[/b]  {format_bytes(disk.used)} / {format_bytes(disk.total)}")
        lines.append(render_bar(disk.used_percent, "yellow"))
    return "\n".join(lines)


class DiskPanel(Static):
    """One usage bar per mounted filesystem."""

    def update_disks(self, disks: tuple[DiskUsage, ...]) -> None:
        self.update(describe_disks(disks))


class TopTable(Container):
    """One ranked Top-N view."""

    DEFAULT_CSS = """
    TopTable {
        width: 1fr;
        height: auto;
        border: round $primary;
    }
    """

    def __init__(
        self,
        title: str,
        value: Callable[[ProcessSample], str],
        *args,
        **kwargs,
    ) -> None:
        """
        Initialize TopTable.

        Args:
            title: Border title, e.g. "Top CPU".
            value: Formats the ranked metric of a sample for the value column.
        """
        super().__init__(*args, **kwargs)
        self.border_title = title
        self._value = value
        self._pids: list[int] = []

    @property
    def pids(self) -> list[int]:
        """PIDs currently shown, in rank order."""
        return list(self._pids)

    def compose(self) -> ComposeResult:
        yield DataTable(show_cursor=False)

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.add_column("PID", key="pid", width=8)
        table.add_column("Name", key="name", width=18)
        table.add_column("Value", key="value", width=11)

    def update_samples(self, samples: tuple[ProcessSample, ...]) -> None:
        """Replace the rows. Views are short, so a full redraw is cheap."""
        table = self.query_one(DataTable)
        table.clear()
        for proc in samples:
            name = proc.name if len(proc.name) <= 18 else proc.name[:15] + "..."
            table.add_row(str(proc.pid), name, self._value(proc), key=str(proc.pid))
        self._pids = [proc.pid for proc in samples]


class AtlasStatsApp(App):
    """Main atlas-stats application."""

    TITLE = "atlas-stats"
    SUB_TITLE = "Host & Process Metrics"

    CSS = """
    Screen {
        layout: vertical;
    }

    Horizontal {
        height: auto;
    }

    HostPanel, NetworkPanel, UsagePanel, DiskPanel {
        width: 1fr;
        height: auto;
        padding: 0 1;
        border: round $primary;
    }

    #net-history {
        height: 4;
        width: 1fr;
        border: round $primary;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("up,k", "scroll_up", "Up"),
        ("down,j", "scroll_down", "Down"),
    ]

    def __init__(self, config: Config | None = None, monitor: SystemMonitor | None = None) -> None:
        """Initialize the AtlasStatsApp."""
        super().__init__()
        self._config = config or Config()
        self._update_queue: Queue[SystemSnapshot] = Queue()
        if monitor is None:
            sampling = self._config.sampling
            monitor = SystemMonitor(
                self._update_queue,
                poll_rate=sampling.poll_interval,
                sampler=Sampler.from_config(sampling),
            )
        else:
            self._update_queue = monitor.queue
        self._monitor = monitor
        self._last_snapshot: SystemSnapshot | None = None

    @property
    def last_snapshot(self) -> SystemSnapshot | None:
        """The snapshot currently on screen."""
        return self._last_snapshot

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        with VerticalScroll(id="body"):
            with Horizontal():
                yield HostPanel("Loading host info...", id="host")
                yield NetworkPanel("Loading network info...", id="network")
            yield Sparkline([], id="net-history")
            with Horizontal():
                yield UsagePanel("Loading CPU info...", id="usage")
                yield DiskPanel("Loading disk info...", id="disks")
            with Horizontal():
                yield TopTable("Top CPU", lambda p: f"{p.cpu_percent:.1f}%", id="top-cpu")
                yield TopTable("Top Mem", lambda p: format_bytes(p.memory_rss), id="top-memory")
            with Horizontal():
                yield TopTable(
                    "Top Disk I/O", lambda p: f"{format_bytes(p.disk_rate)}/s", id="top-disk"
                )
                yield TopTable("Top Net Conns", lambda p: str(p.net_connections), id="top-net")
        yield Footer()

    def on_mount(self) -> None:
        """Start the system monitor when the app is mounted."""
        self._monitor.start()
        self.set_interval(0.25, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and render the most recent snapshot."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self.show_snapshot(snapshot)

    def show_snapshot(self, snapshot: SystemSnapshot) -> None:
        """Render a snapshot into every panel."""
        try:
            self.query_one("#host", HostPanel).update_stats(snapshot)
            self.query_one("#network", NetworkPanel).update_stats(snapshot)
            self.query_one("#net-history", Sparkline).data = self._monitor.get_net_history()
            self.query_one("#usage", UsagePanel).update_stats(snapshot)
            self.query_one("#disks", DiskPanel).update_disks(snapshot.disks)
            self.query_one("#top-cpu", TopTable).update_samples(snapshot.top_cpu)
            self.query_one("#top-memory", TopTable).update_samples(snapshot.top_memory)
            self.query_one("#top-disk", TopTable).update_samples(snapshot.top_disk)
            self.query_one("#top-net", TopTable).update_samples(snapshot.top_net)
        except NoMatches:
            return  # Not mounted yet
        self._last_snapshot = snapshot

    def action_scroll_up(self) -> None:
        self.query_one("#body", VerticalScroll).scroll_up()

    def action_scroll_down(self) -> None:
        self.query_one("#body", VerticalScroll).scroll_down()

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()
