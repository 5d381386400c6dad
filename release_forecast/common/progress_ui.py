from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)


@dataclass
class Ui:
    console: Console
    progress: Progress
    _tasks: dict[str, TaskID] = field(default_factory=dict)

    def on_trials(self, label: str, completed: int, total: int) -> None:
        """Progress callback for the Monte Carlo forecaster."""
        task = self._tasks.get(label)
        if task is None:
            task = self.progress.add_task(f"Simulating {label}", total=total)
            self._tasks[label] = task
        self.progress.update(task, completed=completed, total=total)


@contextmanager
def progress_ui(console: Console | None = None) -> Iterator[Ui]:
    console = console or Console(stderr=True)
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
        transient=True,
    )
    with progress:
        yield Ui(console=console, progress=progress)
