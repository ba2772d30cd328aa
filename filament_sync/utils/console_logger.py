"""Base console logger with shared rich components.

Provides reusable building blocks for component-specific loggers:
- StructuredBlock: Context manager for key-value style output
- BaseConsoleLogger: Abstract base with common logging methods and a
  summary panel

Plain messages go through Python logging (and therefore RichHandler);
blocks and panels print straight to the shared console.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Generator

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from filament_sync.utils.logging import console


class StructuredBlock:
    """A context manager for displaying structured key-value info blocks.

    Usage:
        with logger.block("events.jsonl") as block:
            block.field("guild", guild_id)
            block.field("scope", "active", color="magenta")
            block.result("replayed 1,234 frames", success=True)
    """

    def __init__(self, title: str, parent: "BaseConsoleLogger") -> None:
        self.title = title
        self.console = parent.console

    def __enter__(self) -> "StructuredBlock":
        self.console.print(f"\n[bold]{self.title}[/bold]")
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        return None

    def field(self, key: str, value: Any, color: str | None = None) -> None:
        """Add a key-value field to the block."""
        if color:
            self.console.print(f"    [dim]{key}:[/dim] [{color}]{value}[/{color}]")
        else:
            self.console.print(f"    [dim]{key}:[/dim] {value}")

    def result(self, message: str, success: bool = True) -> None:
        """Show the final result of the block."""
        icon = "[green]✓[/green]" if success else "[red]✗[/red]"
        self.console.print(f"    {icon} {message}")

    def skip(self, reason: str) -> None:
        """Show that this block was skipped."""
        self.console.print(f"    [dim]Skipped: {reason}[/dim]")


class BaseConsoleLogger(ABC):
    """Abstract base class for component loggers.

    Subclasses add component-specific methods and implement summary().
    """

    def __init__(self, logger_name: str | None = None) -> None:
        """Initialize the console logger.

        Args:
            logger_name: Name for the Python logger. If None, uses the
                subclass module name.
        """
        self.console: Console = console
        self._logger = logging.getLogger(logger_name or self.__class__.__module__)

    @contextmanager
    def block(self, title: str) -> Generator[StructuredBlock, None, None]:
        """Create a structured block for key-value style output."""
        block = StructuredBlock(title, self)
        with block:
            yield block

    # -------------------------------------------------------------------------
    # Standard Logging (goes through Python logging)
    # -------------------------------------------------------------------------

    def info(self, message: str) -> None:
        """Log an info message."""
        self._logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self._logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self._logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self._logger.debug(message)

    def success(self, message: str) -> None:
        """Print a success message with green checkmark."""
        self.console.print(f"[green]✓[/green] {message}")

    # -------------------------------------------------------------------------
    # Summary Panel
    # -------------------------------------------------------------------------

    def _print_summary_table(
        self,
        title: str,
        rows: list[tuple[str, str | int]],
        *,
        style: str = "cyan",
    ) -> None:
        """Print a summary panel of (label, value) rows."""
        self.console.print()

        table = Table.grid(padding=(0, 2))
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right", style="green")

        for label, value in rows:
            if isinstance(value, int):
                table.add_row(label, f"{value:,}")
            else:
                table.add_row(label, str(value))

        panel = Panel(
            table,
            title=f"[bold]{title}[/bold]",
            border_style=style,
            padding=(1, 2),
        )
        self.console.print(panel)

    def print_summary(
        self,
        name: str,
        *,
        elapsed: float,
        stats: dict[str, int | str],
        extra_sections: dict[str, dict[str, int]] | None = None,
        style: str = "cyan",
    ) -> None:
        """Print a unified summary panel.

        Args:
            name: Name of the run being summarized
            elapsed: Time elapsed in seconds
            stats: Main statistics as {label: value}
            extra_sections: Optional nested sections, indented under a header
            style: Border color style
        """
        rows: list[tuple[str, str | int]] = list(stats.items())

        if extra_sections:
            for section_name, section_stats in extra_sections.items():
                rows.append((f"[dim]{section_name}[/dim]", ""))
                for label, value in section_stats.items():
                    rows.append((f"  {label}", value))

        rows.append(("Time elapsed", f"{elapsed:.1f}s"))

        self._print_summary_table(f"{name} Complete", rows, style=style)

    @abstractmethod
    def summary(self, **kwargs: Any) -> None:
        """Print final summary. Implementation varies by component."""
        ...
