"""vitals - Main Textual application."""

import argparse
import logging
import math
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Grid
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Static

from vitals.config import PanelConfig, load_config, normalize_config
from vitals.history import MetricHistory
from vitals.logging_setup import configure_logging
from vitals.models import MetricSnapshot, ProcessEntry, Status
from vitals.poller import Fetcher, MetricsPoller
from vitals.trend import rasterize

PLACEHOLDER = "--"


def format_percent(value: float | None) -> str:
    """Format a percentage rounded half-up, e.g. ``43%``."""
    if value is None:
        return PLACEHOLDER
    return f"{math.floor(value + 0.5)}%"


def format_bytes(value: float | None) -> str:
    """Format bytes as human-readable string."""
    if value is None:
        return PLACEHOLDER
    if value == 0:
        return "0 B"
    size = float(value)
    units = ["B", "KB", "MB", "GB", "TB"]
    index = 0
    while size >= 1024 and index < len(units) - 1:
        size /= 1024
        index += 1
    decimals = 0 if size >= 10 else 1
    return f"{size:.{decimals}f} {units[index]}"


def format_timestamp(moment: datetime | None) -> str:
    """Format a capture time as local ``h:mm:ss AM``."""
    if moment is None:
        return PLACEHOLDER
    return moment.astimezone().strftime("%I:%M:%S %p").lstrip("0")


def usage_label(used: float | None, total: float | None) -> str:
    if used is None or total is None:
        return "Usage data pending"
    return f"{format_bytes(used)} / {format_bytes(total)}"


class TrendChart(Static):
    """Area chart of a sample history drawn with block characters."""

    DEFAULT_CSS = """
    TrendChart {
        height: 3;
    }
    """

    DEFAULT_COLUMNS = 24

    def __init__(self, color: str, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._color = color
        self._samples: tuple[float, ...] = ()

    @property
    def samples(self) -> tuple[float, ...]:
        return self._samples

    def plot(self, samples: Sequence[float]) -> None:
        self._samples = tuple(samples)
        self._redraw()

    def on_resize(self) -> None:
        self._redraw()

    def _redraw(self) -> None:
        columns = self.size.width or self.DEFAULT_COLUMNS
        rows = self.size.height or 3
        lines = rasterize(self._samples, columns, rows)
        self.update("\n".join(f"[{self._color}]{line}[/{self._color}]" for line in lines))


class MetricPanel(Container):
    """One headline metric: value, detail line, trend chart and breakdown rows."""

    DEFAULT_CSS = """
    MetricPanel {
        height: auto;
        border: round $primary;
        padding: 0 1;
    }

    MetricPanel .panel-detail {
        color: $text-muted;
    }
    """

    def __init__(self, label: str, color: str, *args, **kwargs) -> None:
        """Initialize MetricPanel."""
        super().__init__(*args, **kwargs)
        self._label = label
        self._color = color
        self._value_text = PLACEHOLDER
        self._detail_text = ""
        self._rows: list[tuple[str, str]] = []
        self._samples: tuple[float, ...] = ()

    def compose(self) -> ComposeResult:
        yield Static(self._title_markup(), classes="panel-title")
        yield Static(escape(self._detail_text), classes="panel-detail")
        yield TrendChart(self._color, classes="panel-chart")
        yield Static(self._rows_markup(), classes="panel-rows")

    def show(
        self,
        value: str,
        detail: str,
        samples: Sequence[float],
        rows: list[tuple[str, str]],
    ) -> None:
        self._value_text = value
        self._detail_text = detail
        self._samples = tuple(samples)
        self._rows = rows
        self._refresh_display()

    def _refresh_display(self) -> None:
        try:
            self.query_one(".panel-title", Static).update(self._title_markup())
            self.query_one(".panel-detail", Static).update(escape(self._detail_text))
            self.query_one(TrendChart).plot(self._samples)
            self.query_one(".panel-rows", Static).update(self._rows_markup())
        except NoMatches:
            pass  # Not mounted yet

    def _title_markup(self) -> str:
        return f"[b]{escape(self._label.upper())}[/b]  [{self._color}]{self._value_text}[/{self._color}]"

    def _rows_markup(self) -> str:
        return "\n".join(f"{escape(name)}: [b]{escape(value)}[/b]" for name, value in self._rows)


class ProcessTable(Container):
    """Container for the top-processes table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: auto;
        border: round $primary;
        padding: 0 1;
    }

    ProcessTable DataTable {
        height: auto;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._processes: list[ProcessEntry] = []

    @property
    def processes(self) -> list[ProcessEntry]:
        return list(self._processes)

    def compose(self) -> ComposeResult:
        yield Static(self._caption(), id="process-caption")
        yield DataTable(id="process-table", show_cursor=False)

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.add_column("Process", key="name")
        table.add_column("PID", key="pid", width=8)
        table.add_column("CPU", key="cpu", width=6)
        table.add_column("RAM", key="mem", width=6)

    def update_processes(self, processes: Sequence[ProcessEntry]) -> None:
        """Replace the rows with the already-ranked process list."""
        self._processes = list(processes)
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for index, proc in enumerate(self._processes):
            table.add_row(
                Text(proc.name),
                PLACEHOLDER if proc.pid is None else str(proc.pid),
                format_percent(proc.cpu_percent),
                format_percent(proc.memory_percent),
                key=str(index),
            )
        self.query_one("#process-caption", Static).update(self._caption())

    def _caption(self) -> str:
        shown = f"{len(self._processes)} shown" if self._processes else "No data"
        return f"[b]TOP PROCESSES[/b]  {shown}"


class StatusBadge(Static):
    """Connectivity badge: Checking, Online or Offline."""

    DEFAULT_CSS = """
    StatusBadge {
        width: auto;
        padding: 0 1;
        border: round $panel;
    }

    StatusBadge.-online {
        border: round $success;
        color: $success;
    }

    StatusBadge.-offline {
        border: round $error;
        color: $error;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(Status.CHECKING.label, *args, **kwargs)
        self._status = Status.CHECKING

    @property
    def status(self) -> Status:
        return self._status

    def set_status(self, status: Status) -> None:
        self._status = status
        self.set_class(status is Status.ONLINE, "-online")
        self.set_class(status is Status.OFFLINE, "-offline")
        self.update(status.label)


class VitalsApp(App):
    """Main vitals application."""

    TITLE = "vitals"
    SUB_TITLE = "Live CPU, memory, disk, and process telemetry"

    CSS = """
    Screen {
        layout: vertical;
    }

    #panels {
        grid-size: 2;
        grid-gutter: 0 1;
        height: 1fr;
    }

    #sync {
        color: $text-muted;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    def __init__(self, config: PanelConfig | None = None, fetch: Fetcher | None = None) -> None:
        """
        Initialize the VitalsApp.

        Args:
            config: Panel settings; defaults when omitted.
            fetch: Replacement for the HTTP fetcher, mainly for tests.
        """
        super().__init__()
        self._config = config or PanelConfig()
        self._poller = MetricsPoller(
            fetch,
            base_url=self._config.base_url,
            poll_rate=self._config.interval_s,
            fetch_timeout=self._config.fetch_timeout_s,
            top_count=self._config.top_count,
            on_update=self._on_poll,
        )

    @property
    def poller(self) -> MetricsPoller:
        return self._poller

    def compose(self) -> ComposeResult:
        yield StatusBadge(id="status")
        yield Grid(
            MetricPanel("CPU load", "green", id="cpu-panel"),
            MetricPanel("Memory usage", "cyan", id="memory-panel"),
            MetricPanel("Storage usage", "yellow", id="disk-panel"),
            ProcessTable(id="processes"),
            id="panels",
        )
        yield Static(self._sync_text(None), id="sync")
        yield Footer()

    def on_mount(self) -> None:
        """Start polling once the widgets exist."""
        self._poller.start()

    async def on_unmount(self) -> None:
        await self._poller.stop()

    def _on_poll(self, poller: MetricsPoller) -> None:
        self._update_ui(poller.snapshot, poller.status, poller.history)

    def _update_ui(self, snapshot: MetricSnapshot, status: Status, history: MetricHistory) -> None:
        """Update the UI with the new snapshot."""
        cpu, memory, disk = snapshot.cpu, snapshot.memory, snapshot.disk

        self.query_one("#status", StatusBadge).set_status(status)
        self.query_one("#cpu-panel", MetricPanel).show(
            format_percent(cpu.total),
            "Aggregate utilization",
            history.cpu,
            [
                ("User", format_percent(cpu.user)),
                ("System", format_percent(cpu.system)),
                ("I/O wait", format_percent(cpu.iowait)),
            ],
        )
        self.query_one("#memory-panel", MetricPanel).show(
            format_percent(memory.percent),
            usage_label(memory.used, memory.total),
            history.memory,
            [
                ("Available", format_bytes(memory.available)),
                ("Total", format_bytes(memory.total)),
            ],
        )
        self.query_one("#disk-panel", MetricPanel).show(
            format_percent(disk.percent),
            usage_label(disk.used, disk.total),
            history.disk,
            [
                ("Mount", disk.mount or PLACEHOLDER),
                ("Total", format_bytes(disk.total)),
            ],
        )
        self.query_one(ProcessTable).update_processes(snapshot.processes)
        self.query_one("#sync", Static).update(self._sync_text(snapshot.captured_at))

    def _sync_text(self, captured_at: datetime | None) -> str:
        return f"Last sync: {format_timestamp(captured_at)}    Refreshes every {self._config.interval_s:g}s"

    async def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        await self._poller.stop()
        self.exit()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vitals", description="Live system telemetry panel.")
    parser.add_argument("--config", type=Path, help="settings file (JSON)")
    parser.add_argument("--url", help="metrics endpoint root, e.g. http://host:61208/api/metrics")
    parser.add_argument("--interval", type=int, metavar="MS", help="poll interval in milliseconds")
    parser.add_argument("--timeout", type=float, metavar="S", help="per-source fetch timeout in seconds")
    parser.add_argument("--top", type=int, metavar="N", help="number of processes to show")
    parser.add_argument("--log-file", type=Path, help="log destination")
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug records")

    commands = parser.add_subparsers(dest="command")
    serve = commands.add_parser("serve", help="serve this host's metrics over HTTP")
    serve.add_argument("--host", help="bind address")
    serve.add_argument("--port", type=int, help="bind port")
    return parser


def resolve_config(args: argparse.Namespace) -> PanelConfig:
    """Load the settings file and apply command-line overrides."""
    cfg = load_config(args.config)
    overrides = {
        "base_url": args.url,
        "interval_ms": args.interval,
        "fetch_timeout_s": args.timeout,
        "top_count": args.top,
        "agent_host": getattr(args, "host", None),
        "agent_port": getattr(args, "port", None),
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(cfg, key, value)
    return normalize_config(cfg)


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for vitals."""
    args = build_parser().parse_args(argv)
    cfg = resolve_config(args)
    level = logging.DEBUG if args.verbose else logging.INFO

    if args.command == "serve":
        from vitals.agent import run_agent

        configure_logging(args.log_file, console=True, level=level)
        run_agent(cfg.agent_host, cfg.agent_port)
        return

    configure_logging(args.log_file, level=level)
    VitalsApp(cfg).run()


if __name__ == "__main__":
    main()
