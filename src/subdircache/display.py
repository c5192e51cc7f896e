"""Progress and status reporting for repodata refreshes.

Each subdirectory gets one progress task whose postfix shows what the cache
manager is doing ("Using cache", "Decomp...", "No change", "Done", ...).
"""

from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TextColumn,
)

# Width of the name column, matching the "Using cache" console lines
PREFIX_LENGTH = 25


def _pad(name: str) -> str:
    return name[: PREFIX_LENGTH - 1].ljust(PREFIX_LENGTH - 1)


class SubdirTask:
    """Handle for one subdirectory's progress line."""

    def __init__(self, display: "StatusDisplay", task_id: TaskID):
        self._display = display
        self.task_id = task_id
        self.postfix = ""
        self.completed = False

    def set_postfix(self, text: str) -> None:
        self.postfix = text
        self._display.progress.update(self.task_id, postfix=text)

    def advance(self, nbytes: int) -> None:
        self._display.progress.advance(self.task_id, nbytes)

    def set_full(self) -> None:
        task = self._display.progress.tasks[self._display.task_index(self.task_id)]
        total = task.total if task.total else max(task.completed, 1)
        self._display.progress.update(self.task_id, total=total, completed=total)

    def mark_as_completed(self) -> None:
        self.completed = True
        self._display.progress.stop_task(self.task_id)


class StatusDisplay:
    """Rich-based status output for cache loads and refreshes.

    Examples:
        >>> display = StatusDisplay(Console(quiet=True))
        >>> task = display.add_task('conda-forge/linux-64')
        >>> task.set_postfix('Done')
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)
        self.progress = Progress(
            TextColumn("{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TextColumn("{task.fields[postfix]}"),
            console=self.console,
            transient=False,
        )

    @classmethod
    def quiet(cls) -> "StatusDisplay":
        """Display that renders nothing, used by library code and tests."""
        return cls(Console(quiet=True))

    def add_task(self, name: str) -> SubdirTask:
        task_id = self.progress.add_task(_pad(name), total=None, postfix="")
        return SubdirTask(self, task_id)

    def task_index(self, task_id: TaskID) -> int:
        for i, task in enumerate(self.progress.tasks):
            if task.id == task_id:
                return i
        raise KeyError(task_id)

    def using_cache(self, name: str) -> None:
        self.console.print(f"{_pad(name)} Using cache")

    def __enter__(self) -> "StatusDisplay":
        self.progress.start()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.progress.stop()
