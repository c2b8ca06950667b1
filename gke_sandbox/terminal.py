"""Interactive terminal channel.

Menus, tables, confirmation prompts and summaries are rendered here, on
stderr, through rich. Selection and deletion logic only talk to the
``Terminal`` protocol, so tests drive them with scripted answers.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table


class Terminal(Protocol):
    def header(self, title: str) -> None: ...

    def line(self, text: str = "") -> None: ...

    def warn(self, text: str) -> None: ...

    def table(self, columns: Sequence[str], rows: Sequence[Sequence[str]], title: str = "") -> None: ...

    def panel(self, body: str, title: str = "") -> None: ...

    def ask(self, prompt: str) -> str | None:
        """Read one line of input, or None once input is exhausted."""
        ...


class RichTerminal:
    """``Terminal`` backed by a rich console writing to stderr."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(stderr=True, highlight=False)

    @property
    def console(self) -> Console:
        return self._console

    def header(self, title: str) -> None:
        self._console.print(Rule(f"[bold blue]{escape(title)}[/bold blue]", style="blue"))

    def line(self, text: str = "") -> None:
        self._console.print(text)

    def warn(self, text: str) -> None:
        self._console.print(f"[yellow][WARNING][/yellow] {escape(text)}")

    def table(
        self, columns: Sequence[str], rows: Sequence[Sequence[str]], title: str = "",
    ) -> None:
        table = Table(title=title or None, show_header=True, header_style="bold")
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*(escape(cell) for cell in row))
        self._console.print(table)

    def panel(self, body: str, title: str = "") -> None:
        self._console.print(Panel(body, title=title or None, border_style="green"))

    def ask(self, prompt: str) -> str | None:
        try:
            return self._console.input(f"[bold]{prompt}[/bold] ")
        except EOFError:
            return None
