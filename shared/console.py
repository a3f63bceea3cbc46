"""
PeLens Console Interface
=========================

Rich-powered console abstraction shared by every PeLens front-end.

The class wraps :class:`rich.console.Console` and adds convenience methods
for the banner, section rules, coloured status messages, key/value panels
and tables, all with one consistent theme.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from typing import Any, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

_PELENS_THEME = Theme(
    {
        "pelens.banner": "bold bright_cyan",
        "pelens.section": "bold bright_magenta",
        "pelens.success": "bold green",
        "pelens.warning": "bold yellow",
        "pelens.error": "bold red",
        "pelens.dim": "dim white",
        "pelens.key": "bold bright_cyan",
    }
)

_BANNER = "[pelens.banner]PeLens[/pelens.banner] [pelens.dim]PE/COFF structure decoder[/pelens.dim]"


class ToolConsole:
    """Unified console interface for PeLens output.

    Usage::

        con = ToolConsole()
        con.banner()
        con.section("Sections")
        con.success("Parsed 5 sections")
    """

    def __init__(self, *, quiet: bool = False, record: bool = False) -> None:
        """Initialise the console.

        Args:
            quiet:  Suppress all output (library / test mode).
            record: Enable Rich recording for text / HTML export.
        """
        self._console = Console(
            theme=_PELENS_THEME,
            quiet=quiet,
            record=record,
            highlight=False,
        )

    def banner(self, version: str = "1.0.0") -> None:
        """Display a one-line banner panel."""
        self._console.print(
            Panel(
                f"{_BANNER}  [pelens.dim]v{version}[/pelens.dim]",
                border_style="bright_cyan",
                expand=False,
            )
        )

    def section(self, title: str) -> None:
        """Print a section rule."""
        self._console.rule(f"  {title}  ", style="pelens.section")

    # ------------------------------------------------------------------ #
    #  Message helpers
    # ------------------------------------------------------------------ #

    def success(self, message: str) -> None:
        self._console.print(f"[pelens.success][✔] SUCCESS:[/pelens.success] {message}")

    def warning(self, message: str) -> None:
        self._console.print(f"[pelens.warning][⚠] WARNING:[/pelens.warning] {message}")

    def error(self, message: str) -> None:
        self._console.print(f"[pelens.error][✘] ERROR:[/pelens.error] {message}")

    # ------------------------------------------------------------------ #
    #  Structured output
    # ------------------------------------------------------------------ #

    def key_values(self, title: str, pairs: Sequence[tuple[str, Any]]) -> None:
        """Render aligned ``key: value`` lines inside a titled panel.

        Args:
            title: Panel title.
            pairs: ``(label, value)`` tuples; values are stringified.
        """
        width = max((len(k) for k, _ in pairs), default=0)
        lines = [
            f"[pelens.key]{key.ljust(width)}[/pelens.key]  {value}"
            for key, value in pairs
        ]
        self._console.print(
            Panel(
                "\n".join(lines),
                title=f"[bold bright_cyan]{title}[/bold bright_cyan]",
                border_style="bright_cyan",
                expand=False,
            )
        )

    def table(
        self,
        title: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        *,
        caption: str | None = None,
        styles: Sequence[str] | None = None,
    ) -> None:
        """Render a styled Rich table.

        Args:
            title:    Table title.
            columns:  Column header labels.
            rows:     Row tuples; each element is stringified.
            caption:  Optional footer caption.
            styles:   Optional per-column Rich style strings.
        """
        tbl = Table(
            title=title,
            caption=caption,
            border_style="bright_cyan",
            header_style="bold bright_magenta",
            padding=(0, 1),
        )
        for idx, col_name in enumerate(columns):
            style = styles[idx] if styles and idx < len(styles) else ""
            tbl.add_column(col_name, style=style)

        for row in rows:
            tbl.add_row(*(str(cell) for cell in row))

        self._console.print(tbl)

    # ------------------------------------------------------------------ #
    #  Utility
    # ------------------------------------------------------------------ #

    def divider(self, style: str = "dim") -> None:
        self._console.rule(style=style)

    def export_text(self) -> str:
        """Export recorded console output as plain text (requires ``record=True``)."""
        return self._console.export_text()
