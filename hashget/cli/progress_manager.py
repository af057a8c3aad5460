"""
Console progress display for a single transfer, built on Rich.
"""

from rich.console import Console
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


class ConsoleProgress:
    """
    A progress callback drawing one Rich progress bar.

    Instances are callable with `(bytes_done, bytes_total)` and always ask the
    transfer to continue. The bar is started on the first call and stopped by
    `close()`.
    """

    def __init__(self, description: str, console: Console | None = None):
        self.description = description
        self.console = console or Console(stderr=True)
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            DownloadColumn(),
            "•",
            TransferSpeedColumn(),
            "•",
            TimeRemainingColumn(),
            console=self.console,
            transient=True,
        )
        self._task_id: TaskID | None = None

    def __call__(self, bytes_done: int, bytes_total: int) -> bool:
        if self._task_id is None:
            self.progress.start()
            self._task_id = self.progress.add_task(
                self.description, total=bytes_total or None
            )
        self.progress.update(
            self._task_id, completed=bytes_done, total=bytes_total or None
        )
        return True

    def close(self) -> None:
        if self._task_id is not None:
            self.progress.stop()
            self._task_id = None
