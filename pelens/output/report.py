"""
PeLens Report Generator
========================

Serialises decoded images to JSON.  Two shapes are produced:

- ``pretty``  -- the full :class:`~pelens.core.models.ImageReport`
- ``summary`` -- the compact :class:`~pelens.core.models.ImageSummary`

Both are plain pydantic dumps, so the JSON keys are the model field names.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from pelens import __version__
from pelens.core.models import ImageReport, ImageSummary

_VIEWS = ("pretty", "summary")


class PELensReportGenerator:
    """Builds and writes JSON reports."""

    def render(
        self,
        report: ImageReport | ImageSummary,
        view: str = "pretty",
    ) -> dict[str, Any]:
        """Return the report as a JSON-compatible dict wrapped in metadata.

        Args:
            report: Decoded image report, or an already reduced summary.
            view: ``"pretty"`` or ``"summary"``.
        """
        if view not in _VIEWS:
            raise ValueError(f"Unknown report view: {view!r}")
        body: BaseModel = report
        if view == "summary" and isinstance(report, ImageReport):
            body = report.summary()
        return {
            "generator": f"pelens {__version__}",
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "view": view,
            "image": body.model_dump(mode="json"),
        }

    def to_json(self, report: ImageReport | ImageSummary, indent: int = 2) -> str:
        """Bare model JSON without the metadata wrapper."""
        return report.model_dump_json(indent=indent)

    def generate_json(
        self,
        report: ImageReport | ImageSummary,
        output_path: str | Path,
        view: str = "pretty",
    ) -> Path:
        """Write the rendered report to *output_path* and return the path."""
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(self.render(report, view), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        return path
