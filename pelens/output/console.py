"""
PeLens Console Output
======================

Rich terminal rendering of an :class:`~pelens.core.models.ImageReport`:
a header panel, the section table, one import table per DLL and the
export table.

Uses the :class:`~shared.console.ToolConsole` abstraction for consistent
styling.
"""

from __future__ import annotations

from shared.console import ToolConsole

from pelens.core.models import (
    ExportTableView,
    ImageReport,
    ImageSummary,
    ImportView,
    SectionView,
)


class PELensConsoleOutput:
    """Rich terminal display for decoded images.

    Usage::

        output = PELensConsoleOutput()
        output.display(report)
    """

    def __init__(self, console: ToolConsole | None = None, max_rows: int = 200) -> None:
        """Initialise the renderer.

        Args:
            console: Optional ToolConsole; a new one is created if omitted.
            max_rows: Row cap per table; the remainder is summarised in a caption.
        """
        self._console: ToolConsole = console or ToolConsole()
        self._max_rows = max_rows

    def display_summary(self, summary: ImageSummary) -> None:
        self._console.key_values(
            "Image Summary",
            [
                ("File", summary.path),
                ("Size", f"{summary.size:,} bytes"),
                ("Architecture", summary.architecture),
                ("Layout", summary.layout),
                ("Entry point", summary.entry_point),
                ("Image base", summary.image_base),
                ("Timestamp", summary.timestamp),
                ("Subsystem", summary.subsystem),
            ],
        )

    def display(self, report: ImageReport) -> None:
        """Render the complete report."""
        self.display_header(report)
        self.display_sections(report.sections)

        if report.import_table is not None:
            self.display_imports(report.import_table)
        if report.export_table is not None:
            self.display_exports(report.export_table)

        for table, message in report.table_errors.items():
            self._console.warning(f"{table}: {message}")

        self._console.divider()

    def display_header(self, report: ImageReport) -> None:
        pairs: list[tuple[str, object]] = [
            ("File", report.path),
            ("File type", report.file_type or "-"),
            ("Size", f"{report.size:,} bytes"),
            ("Architecture", report.architecture),
            ("Layout", report.layout),
            ("Entry point", report.entry_point),
            ("Image base", report.image_base),
        ]
        if report.base_of_data is not None:
            pairs.append(("Base of data", report.base_of_data))
        pairs += [
            ("Timestamp", report.timestamp),
            ("Subsystem", report.subsystem),
            ("Linker", report.linker_version),
            ("OS", report.os_version),
            ("Image", report.image_version),
            ("Subsystem ver.", report.subsystem_version),
            ("Size of image", report.size_of_image),
            ("Alignment", f"section {report.section_alignment} / file {report.file_alignment}"),
            ("Characteristics", ", ".join(report.characteristics) or "-"),
            ("DLL flags", ", ".join(report.dll_characteristics) or "-"),
        ]
        self._console.key_values("PE Headers", pairs)

    def display_sections(self, sections: list[SectionView]) -> None:
        self._console.section(f"Sections ({len(sections)})")
        rows = [
            (
                s.name, s.virtual_address, s.virtual_size,
                s.pointer_to_raw_data, s.size_of_raw_data,
                " ".join(s.flags) or "-",
            )
            for s in sections[: self._max_rows]
        ]
        self._console.table(
            "Section Table",
            ["Name", "VirtAddr", "VirtSize", "RawPtr", "RawSize", "Flags"],
            rows,
            caption=self._caption(len(sections)),
            styles=["bold bright_white", "cyan", "cyan", "green", "green", "dim"],
        )

    def display_imports(self, imports: list[ImportView]) -> None:
        self._console.section(f"Imports ({len(imports)} DLLs)")
        for entry in imports:
            rows = [
                (
                    fn.name or "-",
                    fn.ordinal if fn.ordinal is not None else "-",
                    fn.hint if fn.hint is not None else "-",
                    fn.thunk_rva,
                )
                for fn in entry.functions[: self._max_rows]
            ]
            self._console.table(
                entry.dll_name,
                ["Function", "Ordinal", "Hint", "Thunk RVA"],
                rows,
                caption=self._caption(len(entry.functions)),
                styles=["bright_white", "yellow", "dim", "cyan"],
            )

    def display_exports(self, table: ExportTableView) -> None:
        self._console.section(
            f"Exports: {table.dll_name or '-'} ({len(table.entries)} entries)"
        )
        rows = [
            (e.ordinal, e.name or "-", e.rva, e.forwarder or "")
            for e in table.entries[: self._max_rows]
        ]
        self._console.table(
            "Export Table",
            ["Ordinal", "Name", "RVA", "Forwarder"],
            rows,
            caption=self._caption(len(table.entries)),
            styles=["yellow", "bright_white", "cyan", "magenta"],
        )

    def _caption(self, total: int) -> str | None:
        if total > self._max_rows:
            return f"{total - self._max_rows} more not shown"
        return None
