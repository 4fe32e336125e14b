"""Rich console setup and engine progress helpers."""

from __future__ import annotations

import logging
from typing import Protocol

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn, TimeElapsedColumn

console = Console()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logger with Rich handler."""
    level = logging.DEBUG if verbose else (logging.ERROR if quiet else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Engine callbacks protocol
# ---------------------------------------------------------------------------


class EngineCallbacks(Protocol):
    """Protocol for compile and install progress reporting."""

    def on_stage_start(self, stage: str, description: str) -> None: ...
    def on_stage_end(self, stage: str, success: bool) -> None: ...
    def on_progress(self, status: str, progress: int) -> None: ...
    def on_warning(self, message: str) -> None: ...
    def on_error(self, message: str) -> None: ...


class NullCallbacks:
    """Callbacks that discard everything (library default)."""

    def on_stage_start(self, stage: str, description: str) -> None:
        pass

    def on_stage_end(self, stage: str, success: bool) -> None:
        pass

    def on_progress(self, status: str, progress: int) -> None:
        pass

    def on_warning(self, message: str) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass


class RichCallbacks:
    """Rich-based implementation of EngineCallbacks."""

    def __init__(self) -> None:
        self._progress: Progress | None = None
        self._task: TaskID | None = None

    def on_stage_start(self, stage: str, description: str) -> None:
        console.rule(f"[bold blue]{stage}[/]: {description}")

    def on_stage_end(self, stage: str, success: bool) -> None:
        status = "[green]OK[/]" if success else "[red]FAILED[/]"
        console.print(f"  Stage {stage}: {status}")

    def on_progress(self, status: str, progress: int) -> None:
        if progress < 0:
            self._stop()
            console.print(f"  [red]{status}[/]")
            return
        if self._progress is None:
            self._progress = create_progress()
            self._progress.start()
            self._task = self._progress.add_task(status, total=100)
        assert self._task is not None
        self._progress.update(self._task, completed=progress, description=status)
        if progress >= 100:
            self._stop()

    def _stop(self) -> None:
        if self._progress is not None:
            self._progress.stop()
        self._progress = None
        self._task = None

    def on_warning(self, message: str) -> None:
        console.print(f"  [yellow]WARNING:[/] {message}")

    def on_error(self, message: str) -> None:
        console.print(f"  [red]ERROR:[/] {message}")


def create_progress() -> Progress:
    """Create a Rich progress bar for installation."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    )
