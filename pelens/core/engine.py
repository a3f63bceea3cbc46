"""
PeLens Analysis Engine
=======================

Runs the decoding pipeline for one file and turns the result into an
:class:`~pelens.core.models.ImageReport`:

    1. Read the file (size-limited by configuration)
    2. Decode the header chain and section table
    3. Walk the import directory (optional)
    4. Walk and resolve the export directory (optional)
    5. Label raw fields through :mod:`pelens.output.flags`

Header and section failures end the analysis with the original
:class:`~pelens.core.errors.PEError`.  A directory table that fails to
decode is reported as missing, with its error kept in
``ImageReport.table_errors``, so the rest of the report is still shown.
"""

from __future__ import annotations

from pathlib import Path

from shared.config import PeLensConfig
from shared.logger import ToolLogger

from pelens.core.errors import PEError, PEIOError
from pelens.core.models import (
    ExportTableView,
    ExportView,
    ImageReport,
    ImageSummary,
    ImportedFunctionView,
    ImportView,
    SectionView,
    hex_str,
)
from pelens.output.flags import (
    detect_file_type,
    dll_characteristic_names,
    file_characteristic_names,
    section_flag_names,
    subsystem_name,
)
from pelens.parsers.directories import ExportTable, ImportEntry
from pelens.parsers.pe_image import PEImage
from pelens.parsers.sections import SectionHeader


def _version(pair: tuple[int, int]) -> str:
    return f"{pair[0]}.{pair[1]}"


class PELensEngine:
    """Orchestrates decoding and report building.

    Usage::

        engine = PELensEngine()
        report = engine.analyze("C:/Windows/notepad.exe")
        print(report.architecture, len(report.sections))
    """

    def __init__(
        self,
        config: PeLensConfig | None = None,
        logger: ToolLogger | None = None,
    ) -> None:
        """Initialise the engine.

        Args:
            config: PeLens configuration.  Defaults are used if not provided.
            logger: Logger instance.  A new one is created if not provided.
        """
        self._config: PeLensConfig = config or PeLensConfig()
        self._logger: ToolLogger = logger or ToolLogger(
            "engine", log_level=self._config.global_settings.log_level
        )

    # ------------------------------------------------------------------ #
    #  Entry points
    # ------------------------------------------------------------------ #

    def load(self, file_path: str | Path) -> PEImage:
        """Read and decode *file_path* into a :class:`PEImage`.

        Raises:
            PEIOError: The file is missing, unreadable or over the size limit.
            PEError: Header or section decoding failed.
        """
        path = Path(file_path)
        try:
            file_size = path.stat().st_size
        except OSError as exc:
            raise PEIOError(str(path), exc) from exc

        max_size = self._config.parser.max_file_size
        if file_size > max_size:
            raise PEIOError(
                str(path),
                ValueError(f"file too large: {file_size:,} bytes (max: {max_size:,})"),
            )

        with self._logger.timed(f"decode {path.name}"):
            return PEImage.from_path(path)

    def analyze(self, file_path: str | Path) -> ImageReport:
        """Decode *file_path* and build the detailed report."""
        self._logger.info("Analysing %s", file_path)
        image = self.load(file_path)
        return self.build_report(image, str(file_path))

    def analyze_data(self, data: bytes, file_path: str = "<memory>") -> ImageReport:
        """Decode in-memory *data* and build the detailed report."""
        image = PEImage.parse(data)
        return self.build_report(image, file_path)

    def summarize(self, file_path: str | Path) -> ImageSummary:
        """Decode *file_path* and return only the compact summary."""
        image = self.load(file_path)
        return self._summary_fields(image, str(file_path))

    # ------------------------------------------------------------------ #
    #  Report construction
    # ------------------------------------------------------------------ #

    def _summary_fields(self, image: PEImage, path: str) -> ImageSummary:
        return ImageSummary(
            path=path,
            size=len(image.data),
            architecture=image.architecture(),
            layout=image.optional_header.kind.value,
            entry_point=hex_str(image.entry_point),
            image_base=hex_str(image.image_base),
            timestamp=image.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            subsystem=subsystem_name(image.subsystem),
        )

    def build_report(self, image: PEImage, path: str) -> ImageReport:
        """Build an :class:`ImageReport` from a decoded *image*."""
        summary = self._summary_fields(image, path)
        base_of_data = image.base_of_data

        report = ImageReport(
            **summary.model_dump(),
            file_type=detect_file_type(path),
            number_of_sections=image.number_of_sections(),
            base_of_data=hex_str(base_of_data) if base_of_data is not None else None,
            size_of_image=hex_str(image.size_of_image),
            size_of_headers=hex_str(image.size_of_headers),
            section_alignment=hex_str(image.section_alignment),
            file_alignment=hex_str(image.file_alignment),
            linker_version=_version(image.linker_version),
            os_version=_version(image.os_version),
            image_version=_version(image.image_version),
            subsystem_version=_version(image.subsystem_version),
            characteristics=file_characteristic_names(image.characteristics),
            dll_characteristics=dll_characteristic_names(image.dll_characteristics),
            sections=[self._section_view(s) for s in image.sections],
        )

        if self._config.parser.resolve_imports:
            with self._logger.stage("imports"):
                try:
                    report.import_table = [self._import_view(e) for e in image.imports()]
                    self._logger.debug("Decoded imports", dlls=len(report.import_table))
                except PEError as exc:
                    report.table_errors["import_table"] = str(exc)
                    self._logger.warning("Import table not decoded: %s", exc)

        if self._config.parser.resolve_exports:
            with self._logger.stage("exports"):
                try:
                    table = image.exports()
                    if table is not None:
                        report.export_table = self._export_view(table)
                except PEError as exc:
                    report.table_errors["export_table"] = str(exc)
                    self._logger.warning("Export table not decoded: %s", exc)

        self._logger.info(
            "%s | %s | %d sections | entry %s",
            report.architecture, report.layout,
            len(report.sections), report.entry_point,
        )
        return report

    @staticmethod
    def _section_view(section: SectionHeader) -> SectionView:
        return SectionView(
            name=section.name,
            virtual_size=hex_str(section.virtual_size),
            virtual_address=hex_str(section.virtual_address),
            size_of_raw_data=hex_str(section.size_of_raw_data),
            pointer_to_raw_data=hex_str(section.pointer_to_raw_data),
            pointer_to_relocations=hex_str(section.pointer_to_relocations),
            pointer_to_linenumbers=hex_str(section.pointer_to_linenumbers),
            number_of_relocations=section.number_of_relocations,
            number_of_linenumbers=section.number_of_linenumbers,
            characteristics=hex_str(section.characteristics),
            flags=section_flag_names(section.characteristics),
        )

    @staticmethod
    def _import_view(entry: ImportEntry) -> ImportView:
        return ImportView(
            dll_name=entry.dll_name,
            original_first_thunk=hex_str(entry.descriptor.original_first_thunk),
            first_thunk=hex_str(entry.descriptor.first_thunk),
            time_date_stamp=entry.descriptor.time_date_stamp,
            forwarder_chain=entry.descriptor.forwarder_chain,
            functions=[
                ImportedFunctionView(
                    name=fn.name or "",
                    ordinal=fn.ordinal,
                    hint=fn.hint,
                    thunk_rva=hex_str(fn.thunk_rva),
                )
                for fn in entry.functions
            ],
        )

    @staticmethod
    def _export_view(table: ExportTable) -> ExportTableView:
        directory = table.directory
        return ExportTableView(
            dll_name=table.dll_name,
            base=directory.base,
            number_of_functions=directory.number_of_functions,
            number_of_names=directory.number_of_names,
            time_date_stamp=directory.time_date_stamp,
            version=f"{directory.major_version}.{directory.minor_version}",
            entries=[
                ExportView(
                    ordinal=e.ordinal,
                    rva=hex_str(e.rva),
                    name=e.name,
                    forwarder=e.forwarder,
                )
                for e in table.entries
            ],
        )
