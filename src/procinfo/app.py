"""procinfo - Textual viewer and command-line entry point."""

import argparse
import logging
import sys
import threading

from textual import work
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Static
from textual.worker import get_current_worker

from procinfo.serialize import to_json
from procinfo.snapshot import SNAPSHOT_KEYS, ProcessHandleError, ProcessSnapshot

MEMORY_KEYS = ("memPeakWorkingSet", "memWorkingSet", "memPrivateBytes")


def format_kilobytes(size: int) -> str:
    """Format kilobytes as human-readable string."""
    value = float(size)
    for unit in ["K", "M", "G", "T"]:
        if value < 1024:
            return f"{value:.1f}{unit}" if unit != "K" else f"{size}K"
        value = value / 1024
    return f"{value:.1f}P"


def format_uptime(microseconds: int) -> str:
    """Format an uptime in microseconds as [D days, ]HH:MM:SS."""
    uptime = microseconds // 1_000_000
    days = uptime // 86400
    hours = (uptime % 86400) // 3600
    minutes = (uptime % 3600) // 60
    seconds = uptime % 60
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_value(key: str, value: int | str) -> str:
    """Render one record value for display."""
    if key in MEMORY_KEYS:
        return format_kilobytes(int(value))
    if key == "uptime":
        return format_uptime(int(value))
    if value == "":
        return "-"
    return str(value)


class IdentityHeader(Static):
    """Header line with the host identity and process id."""

    DEFAULT_CSS = """
    IdentityHeader {
        height: auto;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, **kwargs) -> None:
        """Initialize IdentityHeader."""
        super().__init__("Loading process info...", markup=False, **kwargs)
        self._text = ""

    @property
    def text(self) -> str:
        """Last rendered header text, without markup."""
        return self._text

    def update_record(self, record: dict[str, int | str]) -> None:
        """Update the header from a snapshot record."""
        host = record["fqdn"] or record["hostname"] or "unknown host"
        self._text = (
            f"{host}  pid {record['processId']}  "
            f"cores {record['cpuCores']}  up {format_uptime(int(record['uptime']))}"
        )
        self.update(self._text)


class RecordTable(Container):
    """Container for the snapshot record table."""

    DEFAULT_CSS = """
    RecordTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize RecordTable."""
        super().__init__(*args, **kwargs)
        self._values: dict[str, str] = {}

    @property
    def values(self) -> dict[str, str]:
        """Currently displayed values by record key."""
        return dict(self._values)

    def compose(self) -> ComposeResult:
        """Compose the record table."""
        yield DataTable(id="record-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#record-table", DataTable)
        table.cursor_type = "row"
        table.add_column("Field", key="field", width=20)
        table.add_column("Value", key="value")
        for key in SNAPSHOT_KEYS:
            table.add_row(key, "", key=key)

    def update_record(self, record: dict[str, int | str]) -> None:
        """
        Update the table with a snapshot record.

        Only cells whose rendered value changed are touched.
        """
        table = self.query_one("#record-table", DataTable)
        for key in SNAPSHOT_KEYS:
            rendered = format_value(key, record[key])
            if self._values.get(key) == rendered:
                continue
            table.update_cell(key, "value", rendered)
            self._values[key] = rendered


class ProcInfoApp(App):
    """Viewer for the resource snapshot of this process."""

    TITLE = "procinfo"
    SUB_TITLE = "Process Resource Snapshot"

    CSS = """
    Screen {
        layout: vertical;
    }

    #identity {
        dock: top;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "sample", "Sample"),
    ]

    def __init__(self, snapshot: ProcessSnapshot | None = None) -> None:
        """
        Initialize the ProcInfoApp.

        Args:
            snapshot: Snapshot to display. One is created when omitted.
        """
        super().__init__()
        self._snapshot = snapshot if snapshot is not None else ProcessSnapshot()
        self._sample_lock = threading.Lock()

    @property
    def snapshot(self) -> ProcessSnapshot:
        return self._snapshot

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield IdentityHeader(id="identity")
        yield RecordTable()
        yield Footer()

    def on_mount(self) -> None:
        """Take the first sample and keep the clock fields current."""
        self.call_after_refresh(self.action_sample)
        # Re-renders timeCurrent and uptime only; counters change on 'r'
        self.set_interval(1.0, self._refresh_record)

    def _refresh_record(self) -> None:
        """Render the current record into the widgets."""
        record = self._snapshot.as_dict()
        try:
            header = self.query_one("#identity", IdentityHeader)
            record_table = self.query_one(RecordTable)
        except NoMatches:
            return  # Screen torn down on quit
        header.update_record(record)
        record_table.update_record(record)

    def on_unmount(self) -> None:
        """Release the snapshot however the app exits."""
        self._snapshot.close()

    def action_sample(self) -> None:
        """Handle sample action - refresh the resource counters off the UI thread."""
        if self._snapshot.closed:
            return
        self._sample_worker()

    @work(thread=True, exclusive=True, group="sample")
    def _sample_worker(self) -> None:
        """Run the process inventory walk in a background thread."""
        try:
            with self._sample_lock:
                self._snapshot.sample()
        except ProcessHandleError:
            return  # Closed while the worker was queued

        if not get_current_worker().is_cancelled:
            self.call_from_thread(self._on_sampled)

    def _on_sampled(self) -> None:
        """Render a finished sample."""
        self._refresh_record()
        self.notify(f"Sampled: {self._snapshot.thread_count} threads")


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="procinfo",
        description="Show a resource snapshot of the running process.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="sample once and print the record as JSON instead of starting the viewer",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="log snapshot activity to stderr",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for procinfo."""
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )

    if args.json:
        with ProcessSnapshot() as snapshot:
            snapshot.sample()
            print(to_json(snapshot, indent=2))
        return

    app = ProcInfoApp()
    app.run()


if __name__ == "__main__":
    main()
