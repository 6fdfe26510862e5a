"""Console rendering and progress helpers for the multipart upload CLI."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from .models import PartResult, UploadResult, UploadSession, UploadStatus
from .utils.sizes import human_size

console = Console()
err_console = Console(stderr=True)


def render_configuration_summary(config: Dict[str, Any], target: Optional[Console] = None) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]s3-mpu[/bold green]",
        subtitle="[dim]multipart upload[/dim]",
        border_style="blue",
    )
    (target or console).print(panel)


class PartUploadProgress:
    """
    Part-by-part progress renderer for a single file.

    Subscribes to orchestrator events; the bar advances one part at a time.
    """

    def __init__(self, file_path: Path, target: Optional[Console] = None):
        self.file_path = Path(file_path)
        self.filename = self.file_path.name
        try:
            self.file_size = self.file_path.stat().st_size
        except OSError:
            self.file_size = 0
        self._console = target or console
        self._task_id: Optional[TaskID] = None
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[filename]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("part {task.fields[part]}/{task.fields[parts]}"),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            expand=False,
            console=self._console,
        )

    def on_session_created(self, session: UploadSession) -> None:
        self._console.print(f"[cyan]Upload ID:[/cyan] {escape(session.session_id)}")
        self._progress.start()
        self._task_id = self._progress.add_task(
            "upload",
            filename=self.filename[:60],
            total=self.file_size,
            part=0,
            parts="?",
        )

    def on_part_uploaded(self, part: PartResult, expected_parts: int) -> None:
        self._progress.console.print(f"Uploaded part {part.part_number}, ETag: {part.etag}", markup=False)
        if self._task_id is not None:
            self._progress.update(
                self._task_id,
                advance=part.size,
                part=part.part_number,
                parts=expected_parts,
            )

    def stop(self) -> None:
        """Stop the live display. Safe to call more than once."""
        self._progress.stop()

    def complete(self, result: UploadResult) -> None:
        self.stop()

        if result.success:
            self._console.print(
                f"[green]Upload completed successfully![/green] "
                f"s3://{result.bucket}/{result.key} "
                f"({result.parts} parts, {human_size(result.bytes_uploaded)})"
            )
            return

        error = result.error.describe() if result.error else "unknown error"
        err_console.print(f"[red]Failed:[/red] {escape(self.filename)} - {escape(error)}")
        if result.status == UploadStatus.ABORTED:
            err_console.print(f"[yellow]Aborted upload[/yellow] {result.session_id}")
        elif result.session_id:
            err_console.print(
                f"[yellow]Upload {result.session_id} left open[/yellow] "
                f"with {result.parts} parts; retry or abort it with --abort-upload-id"
            )
        if result.abort_error is not None:
            err_console.print(f"[yellow]WARNING:[/yellow] {escape(result.abort_error.describe())}")
