"""devperf - Textual viewer for remote device performance."""

import argparse
import asyncio
import logging
from enum import Enum
from pathlib import Path

import httpx
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.css.query import NoMatches
from textual.screen import ModalScreen
from textual.widgets import DataTable, Footer, Input, Label, Static

from devperf.config import Settings, load_config
from devperf.errors import ConfigError
from devperf.log_config import setup_logger
from devperf.models import ProcessInfo, ProcessSnapshot, SystemPerformanceSnapshot
from devperf.monitor import DeviceMonitor, DeviceSample
from devperf.portal import DevicePortal

logger = logging.getLogger(__name__)


class SortKey(Enum):
    """Sort keys for the process table."""

    CPU = "cpu"
    MEM = "mem"
    PID = "pid"
    USER = "user"


def format_bytes(size: int | None) -> str:
    """Format bytes as human-readable string."""
    if size is None:
        return "n/a"
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def _bar(percent: float, color: str) -> str:
    bar_len = min(max(int(percent / 5), 0), 20)
    return f"[{color}]█[/{color}]" * bar_len + "[dim]░[/dim]" * (20 - bar_len)


class HeaderStats(Static):
    """Header widget showing device CPU, memory, GPU and network counters."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._system: SystemPerformanceSnapshot | None = None

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_mem_info(), id="mem-info"),
        )

    def update_stats(self, system: SystemPerformanceSnapshot) -> None:
        """Update the statistics from a system performance snapshot."""
        self._system = system
        try:
            self.query_one("#cpu-info", Static).update(self._get_cpu_info())
            self.query_one("#mem-info", Static).update(self._get_mem_info())
        except NoMatches:
            pass  # Widget not mounted yet

    def _get_cpu_info(self) -> str:
        """Get CPU, IO and GPU display."""
        system = self._system
        if system is None:
            return "Waiting for device..."

        lines = []
        if system.cpu_load is not None:
            lines.append(f"CPU \\[{_bar(system.cpu_load, 'green')}] {system.cpu_load:3d}%")
        else:
            lines.append("CPU n/a")
        lines.append(f"IO  read {system.io_read_speed} write {system.io_write_speed} other {system.io_other_speed}")

        adapters = system.gpu_data.adapters if system.gpu_data else None
        if not adapters:
            lines.append("GPU none reported")
        for i, adapter in enumerate(adapters or ()):
            engines = adapter.engines_utilization or ()
            busiest = max(engines, default=0.0) * 100
            lines.append(
                f"GPU{i} \\[{_bar(busiest, 'magenta')}] {busiest:5.1f}% "
                f"{format_bytes(adapter.dedicated_memory_used)}/{format_bytes(adapter.dedicated_memory)}"
            )
        return "\n".join(lines)

    def _get_mem_info(self) -> str:
        """Get memory and network display."""
        system = self._system
        if system is None:
            return ""

        if None in (system.total_pages, system.available_pages, system.page_size) or not system.total_pages:
            mem_line = "Mem n/a"
        else:
            used_pages = system.total_pages - system.available_pages
            percent = used_pages * 100 / system.total_pages
            mem_line = (
                f"Mem \\[{_bar(percent, 'cyan')}] "
                f"{format_bytes(used_pages * system.page_size)}/{format_bytes(system.total_pages * system.page_size)}"
            )

        if system.committed_pages is not None and system.commit_limit:
            commit_line = f"Commit {system.committed_pages}/{system.commit_limit} pages"
        else:
            commit_line = "Commit n/a"

        net = system.network_data
        if net is None:
            net_line = "Net none reported"
        else:
            net_line = f"Net in {format_bytes(net.bytes_in)} out {format_bytes(net.bytes_out)}"

        return f"{mem_line}\n{commit_line}\n{net_line}"


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._current_pids: set[int] = set()
        self._sort_key: SortKey = SortKey.CPU
        self._sort_reverse: bool = True  # Default: descending for CPU

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        current_index = keys.index(self._sort_key)
        self._sort_key = keys[(current_index + 1) % len(keys)]
        self._sort_reverse = self._sort_key in (SortKey.CPU, SortKey.MEM)
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("USER", key="user", width=12)
        table.add_column("CPU%", key="cpu", width=7)
        table.add_column("WSET", key="wset", width=8)
        table.add_column("PAGEF", key="pagefile", width=8)
        table.add_column("Image", key="image", width=24)
        table.add_column("Package", key="package")

    def update_processes(self, snapshot: ProcessSnapshot) -> None:
        """
        Update the process table with a new snapshot.

        Rows are keyed by process id, so processes the device reported
        without one are not shown.
        """
        table = self.query_one("#process-table", DataTable)

        processes = [proc for proc in snapshot if proc.process_id is not None]
        sorted_processes = self._sort_processes(processes)
        new_pids = {proc.process_id for proc in sorted_processes}

        for pid in self._current_pids - new_pids:
            table.remove_row(str(pid))

        for proc in sorted_processes:
            row_key = str(proc.process_id)
            if proc.process_id in self._current_pids:
                self._update_row(table, row_key, proc)
            else:
                table.add_row(*self._cells(proc), key=row_key)

        self._current_pids = new_pids
        table.sort("pid", key=self._row_sort_key(sorted_processes), reverse=False)

    def _row_sort_key(self, ordered: list[ProcessInfo]):
        """Map a PID cell to its position in the sorted process list."""
        position = {str(proc.process_id): i for i, proc in enumerate(ordered)}
        return lambda pid_cell: position.get(pid_cell, len(position))

    def _sort_processes(self, processes: list[ProcessInfo]) -> list[ProcessInfo]:
        """Sort processes based on the current sort key."""
        key_func = {
            SortKey.CPU: lambda p: p.cpu_usage or 0.0,
            SortKey.MEM: lambda p: p.working_set_size or 0,
            SortKey.PID: lambda p: p.process_id,
            SortKey.USER: lambda p: (p.user_name or "").lower(),
        }
        return sorted(processes, key=key_func[self._sort_key], reverse=self._sort_reverse)

    def _cells(self, proc: ProcessInfo) -> tuple[str, ...]:
        cpu = f"{proc.cpu_usage:5.1f}" if proc.cpu_usage is not None else "n/a"
        return (
            str(proc.process_id),
            (proc.user_name or "")[:12],
            cpu,
            format_bytes(proc.working_set_size),
            format_bytes(proc.page_file_usage),
            (proc.image_name or "")[:24],
            proc.package_full_name or "",
        )

    def _update_row(self, table: DataTable, row_key: str, proc: ProcessInfo) -> None:
        """Update an existing row using update_cell for performance."""
        columns = ("pid", "user", "cpu", "wset", "pagefile", "image", "package")
        for column, value in zip(columns, self._cells(proc)):
            table.update_cell(row_key, column, value)


class PromptScreen(ModalScreen[str | None]):
    """Single line input dialog."""

    DEFAULT_CSS = """
    PromptScreen {
        align: center middle;
    }

    PromptScreen > Vertical {
        width: 60;
        height: auto;
        padding: 1 2;
        border: thick $primary;
        background: $surface;
    }
    """

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, prompt: str) -> None:
        super().__init__()
        self._prompt = prompt

    def compose(self) -> ComposeResult:
        yield Vertical(Label(self._prompt), Input(id="prompt-input"))

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value)

    def action_cancel(self) -> None:
        self.dismiss(None)


class DevperfApp(App):
    """Main devperf application."""

    TITLE = "devperf"
    SUB_TITLE = "Device Portal Performance"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #mem-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
        ("slash", "search", "Find package"),
        ("p", "find_pid", "Find PID"),
    ]

    def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """
        Initialize the DevperfApp.

        Args:
            settings: Device and monitor settings. Defaults to built-in defaults.
            transport: Optional httpx transport handed to the portal.
        """
        super().__init__()
        self._settings = settings or Settings()
        self._portal = DevicePortal(self._settings.device, transport=transport)
        self._update_queue: asyncio.Queue[DeviceSample] = asyncio.Queue()
        self._monitor = DeviceMonitor(
            self._portal,
            self._update_queue,
            poll_rate=self._settings.monitor.poll_rate,
        )
        self._processes = ProcessSnapshot()

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield ProcessTable()
        yield Footer()

    async def on_mount(self) -> None:
        """Connect to the device and start polling when the app is mounted."""
        self.sub_title = self._portal.address
        await self._portal.connect()
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and show the most recent sample."""
        sample = None
        while True:
            try:
                sample = self._update_queue.get_nowait()
            except asyncio.QueueEmpty:
                break

        if sample is not None:
            self._update_ui(sample)
        elif self._monitor.last_error is not None:
            self.sub_title = f"{self._portal.address} - {self._monitor.last_error}"

    def _update_ui(self, sample: DeviceSample) -> None:
        """Update the UI with a new device sample."""
        self.sub_title = self._portal.address
        self._processes = sample.processes
        self.query_one("#header-stats", HeaderStats).update_stats(sample.system)
        self.query_one(ProcessTable).update_processes(sample.processes)

    def lookup_package(self, package_name: str) -> bool:
        """Report whether the latest snapshot has a process from this package."""
        found = self._processes.contains_package(package_name, case_sensitive=False)
        self.notify(f"{package_name}: {'running' if found else 'not running'}")
        return found

    def lookup_pid(self, text: str) -> bool:
        """Report whether the latest snapshot has a process with this id."""
        try:
            pid = int(text)
        except ValueError:
            self.notify(f"Not a process id: {text}", severity="warning")
            return False
        found = self._processes.contains_process_id(pid)
        self.notify(f"PID {pid}: {'running' if found else 'not running'}")
        return found

    def action_sort(self) -> None:
        """Handle sort action - cycle through sort keys."""
        process_table = self.query_one(ProcessTable)
        new_sort_key = process_table.cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")
        process_table.update_processes(self._processes)

    def action_search(self) -> None:
        """Ask for a package name and look it up."""

        def on_result(value: str | None) -> None:
            if value is not None:
                self.lookup_package(value)

        self.push_screen(PromptScreen("Package full name"), on_result)

    def action_find_pid(self) -> None:
        """Ask for a process id and look it up."""

        def on_result(value: str | None) -> None:
            if value is not None:
                self.lookup_pid(value)

        self.push_screen(PromptScreen("Process id"), on_result)

    async def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        await self._shutdown_device()
        self.exit()

    async def on_unmount(self) -> None:
        await self._shutdown_device()

    async def _shutdown_device(self) -> None:
        await self._monitor.stop()
        await self._portal.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="devperf", description="Watch performance data of a remote device.")
    parser.add_argument("--config", type=Path, default=None, help="TOML settings file (default: ./devperf.toml)")
    parser.add_argument("--address", default=None, help="Device portal URL, e.g. https://10.0.0.5")
    parser.add_argument("--user", default=None, help="Device portal user name")
    parser.add_argument("--password", default=None, help="Device portal password")
    parser.add_argument("--insecure", action="store_true", help="Do not verify the device TLS certificate")
    parser.add_argument("--poll-rate", type=float, default=None, help="Seconds between polls")
    parser.add_argument("--log-file", type=Path, default=Path("devperf.log"), help="Log file (default: ./devperf.log)")
    parser.add_argument("--debug", action="store_true", help="Log requests at DEBUG level")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for devperf application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logger(level=logging.DEBUG if args.debug else logging.INFO, log_file=args.log_file)

    try:
        settings = load_config(args.config)
    except ConfigError as e:
        parser.exit(2, f"devperf: {e}\n")

    settings = settings.with_overrides(
        address=args.address,
        username=args.user,
        password=args.password,
        insecure=args.insecure,
        poll_rate=args.poll_rate,
    )
    logger.info("Starting devperf for %s", settings.device.address)

    app = DevperfApp(settings)
    app.run()


if __name__ == "__main__":
    main()
