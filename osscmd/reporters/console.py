"""Console reporter using the Rich library for CLI output.

Renders:
- A live progress bar per worker pool
- One line per listed object
- A short summary for each finished command
"""

from typing import Any, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TaskProgressColumn,
    TextColumn,
)

from osscmd.models import (
    CompleteResult,
    CopyResult,
    DownloadResult,
    ListSummary,
    ObjectEntry,
    ObjectHead,
    PutResult,
    TransferCounts,
)
from osscmd.reporters.base import Reporter

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Wording of the count summary per bulk command
COUNT_HEADLINES = {
    "uploadfromdir": "Total being uploaded localfiles num",
    "copybucket": "Total being copied objects num",
    "deleteallobject": "Total being deleted objects num",
}


def size_format(size: int) -> str:
    """Human-readable size with two decimals, e.g. 1.50MB."""
    unit = "B"
    value = float(size)
    if size > (1 << 30):
        unit, value = "GB", size / (1 << 30)
    elif size > (1 << 20):
        unit, value = "MB", size / (1 << 20)
    elif size > (1 << 10):
        unit, value = "KB", size / (1 << 10)
    return f"{value:.2f}{unit}"


def format_entry(entry: ObjectEntry) -> str:
    timestamp = entry.last_modified.strftime(DATETIME_FORMAT) if entry.last_modified else "-"
    columns = [timestamp, size_format(entry.size)]
    if entry.storage_class:
        columns.append(entry.storage_class)
    columns.append(entry.path)
    return " ".join(columns)


class ConsoleReporter(Reporter):
    """Rich-based console reporter for CLI output.

    Args:
        quiet: If True, suppress progress bars and per-object listing lines
    """

    def __init__(self, quiet: bool = False, console: Optional[Console] = None):
        # Use legacy_windows=True for ASCII-safe output on Windows consoles
        self.console = console or Console(legacy_windows=True, highlight=False)
        self.quiet = quiet
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    def on_transfer_start(self, label: str, total: int) -> None:
        """Start a progress bar for a worker pool."""
        if self.quiet:
            return
        self._progress = Progress(
            TextColumn("[cyan]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            MofNCompleteColumn(),
            console=self.console,
        )
        self._task = self._progress.add_task(label, total=total or None)
        self._progress.start()

    def on_progress(self, label: str, finished: int, total: int) -> None:
        if self._progress is None or self._task is None:
            return
        self._progress.update(self._task, completed=finished, total=total)

    def on_transfer_complete(self, label: str, counts: TransferCounts) -> None:
        if self._progress is not None:
            self._progress.stop()
        self._progress = None
        self._task = None

    def on_entry(self, entry: ObjectEntry) -> None:
        if self.quiet:
            return
        self.console.print(format_entry(entry), markup=False)

    def on_command_complete(self, command: str, result: Any) -> None:
        """Print a summary appropriate to the result type."""
        if isinstance(result, (PutResult, CompleteResult)):
            self._print_object_result(result.location, result.bucket, result.key, result.etag)
        elif isinstance(result, CopyResult):
            self._print_object_result(None, result.bucket, result.key, result.etag)
        elif isinstance(result, TransferCounts):
            self._print_counts(command, result)
        elif isinstance(result, DownloadResult):
            self.console.print(
                f"  The object {result.key} is downloaded to {result.local_file}, please check.",
                markup=False,
            )
        elif isinstance(result, ObjectHead):
            self._print_head(result)
        elif isinstance(result, ListSummary):
            self._print_list_summary(result)

    def _print_object_result(
        self,
        location: Optional[str],
        bucket: str,
        key: str,
        etag: Optional[str],
    ) -> None:
        self.console.print()
        if location:
            self.console.print(f"Object URL is: {location}", markup=False)
        self.console.print(f"Object abstract path is: oss://{bucket}/{key}", markup=False)
        self.console.print(f"ETag is {etag or '-'}", markup=False)

    def _print_counts(self, command: str, counts: TransferCounts) -> None:
        headline = COUNT_HEADLINES.get(command, "Total objects num")
        self.console.print()
        self.console.print(f"{headline}: {counts.total}")
        if command == "deleteallobject":
            self.console.print(
                f"[green]OK num:{counts.finish}[/green], [red]FAIL num:{counts.fail}[/red]"
            )
        else:
            self.console.print(
                f"[green]OK num:{counts.finish}[/green], "
                f"[yellow]SKIP num:{counts.skip}[/yellow], "
                f"[red]FAIL num:{counts.fail}[/red]"
            )

    def _print_head(self, head: ObjectHead) -> None:
        self.console.print(f"{'objectname':<20}: {head.key}", markup=False)
        for name, value in sorted(head.headers.items()):
            if value:
                self.console.print(f"{name:<20}: {value}", markup=False)

    def _print_list_summary(self, summary: ListSummary) -> None:
        self.console.print()
        if summary.common_prefixes:
            self.console.print(f"prefix list number is: {len(summary.common_prefixes)}")
            for prefix in summary.common_prefixes:
                self.console.print(f"oss://{summary.bucket}/{prefix}", markup=False)
        self.console.print(f"object list number is: {summary.count}")
        self.console.print(
            f"totalsize is: real:{summary.total_size}, format:{size_format(summary.total_size)}"
        )
