"""Rich progress display for per-pair backfills."""

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


def create_backfill_progress(
    console: Console | None = None, *, expand: bool = False
) -> Progress:
    """Progress display shared by all workers, one task per backfilling pair.

    Totals are block counts, known once the head has been observed, so the
    time remaining estimate is meaningful.

    Args:
        console: Rich console instance (optional)
        expand: Whether to expand the bars to full width

    Example:
        ```python
        progress = create_backfill_progress(Console())

        with progress:
            task_id = progress.add_task("Backfilling 1:0x88e6...", total=1000)
            progress.update(
                task_id,
                advance=100,
                description=describe_range("Backfilling 1:0x88e6...", 1, 100),
            )
        ```
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TextColumn("blocks"),
        TextColumn("•"),
        TimeElapsedColumn(),
        TextColumn("•"),
        TimeRemainingColumn(),
        console=console,
        expand=expand,
    )


def describe_range(base_description: str, from_block: int, to_block: int) -> str:
    """Task description naming the block range just committed.

    Example:
        >>> describe_range("Backfilling", 10, 20)
        'Backfilling [blocks 10-20]'
    """
    return f"{base_description} [blocks {from_block}-{to_block}]"


__all__ = [
    "TaskID",
    "create_backfill_progress",
    "describe_range",
]
