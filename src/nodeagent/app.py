"""nodeagent - Textual status view of the running agent."""

from textual.app import App, ComposeResult
from textual.containers import Horizontal
from textual.css.query import NoMatches
from textual.widgets import Footer, Static

from nodeagent.models import NodeIdentity, UtilizationSnapshot
from nodeagent.scheduler import DualCadenceScheduler
from nodeagent.state import NodeState

BAR_WIDTH = 20


def format_uptime(uptime: float) -> str:
    """Format seconds since boot as [D days, ]HH:MM:SS."""
    days = int(uptime // 86400)
    hours = int((uptime % 86400) // 3600)
    minutes = int((uptime % 3600) // 60)
    seconds = int(uptime % 60)
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def render_bar(percent: float, color: str) -> str:
    """Render a 0-100 value as a fixed-width bar with Rich markup."""
    bar_len = min(int(percent / (100 / BAR_WIDTH)), BAR_WIDTH)
    return f"[{color}]█[/{color}]" * bar_len + "[dim]░[/dim]" * (BAR_WIDTH - bar_len)


class NodeStats(Static):
    """Per-core utilization and memory for the current snapshot."""

    DEFAULT_CSS = """
    NodeStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, identity: NodeIdentity, *args, **kwargs) -> None:
        """Initialize NodeStats."""
        super().__init__(*args, **kwargs)
        self._identity = identity
        self._snapshot: UtilizationSnapshot | None = None

    @property
    def snapshot(self) -> UtilizationSnapshot | None:
        return self._snapshot

    def compose(self) -> ComposeResult:
        """Compose the stats layout."""
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_node_info(), id="node-info"),
        )

    def update_stats(self, snapshot: UtilizationSnapshot) -> None:
        """Show a new snapshot."""
        if snapshot is self._snapshot:
            return
        self._snapshot = snapshot
        try:
            cpu_info = self.query_one("#cpu-info", Static)
            node_info = self.query_one("#node-info", Static)
        except NoMatches:
            return  # Not mounted yet; compose() renders the stored snapshot
        cpu_info.update(self._get_cpu_info())
        node_info.update(self._get_node_info())

    def _get_cpu_info(self) -> str:
        if self._snapshot is None or self._snapshot.cycle == 0:
            return "Waiting for first sample..."
        lines = []
        for i, usage in enumerate(self._snapshot.per_core_percent):
            # Escaped bracket so Rich does not read the bar as markup
            lines.append(f"CPU{i:<2} \\[{render_bar(usage, 'green')}] {usage:5.1f}%")
        return "\n".join(lines)

    def _get_node_info(self) -> str:
        identity = self._identity
        lines = [
            f"Node: {identity.node_id}",
            f"Cluster: {identity.cluster_id}",
            f"Host: {identity.host_name} ({identity.core_count} cores)",
        ]
        snapshot = self._snapshot
        if snapshot is not None and snapshot.memory_total_mb > 0:
            mem_percent = 100.0 * snapshot.memory_used_mb / snapshot.memory_total_mb
            lines.append(
                f"Mem\\[{render_bar(mem_percent, 'cyan')}] "
                f"{snapshot.memory_used_mb}M/{snapshot.memory_total_mb}M"
            )
            lines.append(f"Uptime: {format_uptime(snapshot.uptime_seconds)}")
            lines.append(f"Cycle: {snapshot.cycle}")
        return "\n".join(lines)


class NodeStatusApp(App):
    """Live view of the agent's NodeState."""

    TITLE = "nodeagent"
    SUB_TITLE = "Node Telemetry Agent"

    CSS = """
    Screen {
        layout: vertical;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #node-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        state: NodeState,
        scheduler: DualCadenceScheduler | None = None,
        refresh_rate: float = 0.5,
    ) -> None:
        """
        Initialize the NodeStatusApp.

        Args:
            state: Shared node state to read from.
            scheduler: If given, stopped when the app quits.
            refresh_rate: How often to re-read the state (seconds).
        """
        super().__init__()
        self._state = state
        self._scheduler = scheduler
        self._refresh_rate = refresh_rate

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield NodeStats(self._state.identity, id="node-stats")
        yield Footer()

    def on_mount(self) -> None:
        self.refresh_stats()
        self.set_interval(self._refresh_rate, self.refresh_stats)

    def refresh_stats(self) -> None:
        """Read the latest snapshot and show it."""
        self.query_one("#node-stats", NodeStats).update_stats(self._state.current())

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        if self._scheduler is not None:
            self._scheduler.stop()
        self.exit()
