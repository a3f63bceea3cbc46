"""
PeLens CLI -- PE/COFF Structure Decoder
=========================================

Click-based command-line interface.

Usage::

    # Full header, section, import and export view
    pelens app.exe

    # Compact identification only
    pelens app.exe --summary

    # JSON to stdout / to a file
    pelens app.exe --json
    pelens app.dll --output report.json

    # Skip directory walks
    pelens driver.sys --no-imports --no-exports

References:
    - Click documentation: https://click.palletsprojects.com/
"""

from __future__ import annotations

import json
import sys

import click

from shared.config import PeLensConfig
from shared.console import ToolConsole
from shared.logger import ToolLogger

from pelens import __version__
from pelens.core.engine import PELensEngine
from pelens.core.errors import PEError
from pelens.core.models import ImageReport, ImageSummary
from pelens.output.console import PELensConsoleOutput
from pelens.output.report import PELensReportGenerator


@click.command("pelens")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--summary", "-s",
    is_flag=True,
    default=False,
    help="Show only the compact summary.",
)
@click.option(
    "--json", "json_output",
    is_flag=True,
    default=False,
    help="Print the report as JSON to stdout.",
)
@click.option(
    "--output", "-o",
    "output_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write a JSON report to this path.",
)
@click.option(
    "--no-imports",
    is_flag=True,
    default=False,
    help="Do not walk the import directory.",
)
@click.option(
    "--no-exports",
    is_flag=True,
    default=False,
    help="Do not walk the export directory.",
)
@click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="TOML configuration file.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(__version__, prog_name="pelens")
def pelens_cli(
    path: str,
    summary: bool,
    json_output: bool,
    output_path: str | None,
    no_imports: bool,
    no_exports: bool,
    config_path: str | None,
    verbose: bool,
) -> None:
    """PeLens -- decode the structure of a Windows PE file.

    PATH is the executable, DLL or driver to inspect.  The file is never
    executed; only its headers, sections and import/export tables are read.
    """
    console = ToolConsole()
    config = PeLensConfig.load(config_path)

    settings = config.global_settings
    logger = ToolLogger(
        "cli",
        log_level="DEBUG" if verbose or settings.debug else settings.log_level,
        log_file=settings.log_file or None,
        json_logs=settings.log_json,
    )

    if no_imports:
        config.parser.resolve_imports = False
    if no_exports:
        config.parser.resolve_exports = False

    view = "summary" if summary else config.output.view
    engine = PELensEngine(config=config, logger=logger)

    report: ImageReport | ImageSummary
    try:
        if view == "summary":
            report = engine.summarize(path)
        else:
            report = engine.analyze(path)
    except PEError as exc:
        console.error(f"{type(exc).__name__}: {exc}")
        logger.debug("Decoding failed", exc_info=True)
        sys.exit(1)

    generator = PELensReportGenerator()

    if json_output or config.output.format == "json":
        click.echo(json.dumps(generator.render(report, view), indent=2))
    else:
        display = PELensConsoleOutput(console=console, max_rows=config.output.max_rows)
        if config.output.show_banner:
            console.banner(__version__)
        if view == "summary":
            display.display_summary(report)
        else:
            display.display(report)

    if output_path:
        written = generator.generate_json(report, output_path, view)
        console.success(f"JSON report saved: {written}")


def main() -> None:
    """Entry point for ``pelens`` and ``python -m pelens``."""
    pelens_cli()


if __name__ == "__main__":
    main()
