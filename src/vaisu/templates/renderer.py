"""Markdown report rendering.

Renders an AnalysisResult to markdown with the package's Jinja2 templates.
Output is deterministic for a given result.
"""

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from jinja2 import Environment, PackageLoader, TemplateError, select_autoescape

from vaisu.models.analysis import AnalysisResult
from vaisu.models.document import Document

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = "report.md.j2"


def format_score(value: float | int | None, width: int = 10) -> str:
    """Format a 0-1 score as a percentage with a bar.

    Args:
        value: Score between 0 and 1 (clamped)
        width: Bar width in characters

    Returns:
        String like "70% (#######...)"; "N/A" for None
    """
    if value is None:
        return "N/A"

    score = min(max(float(value), 0.0), 1.0)
    filled = round(score * width)
    return f"{round(score * 100)}% ({'#' * filled}{'.' * (width - filled)})"


def format_datetime(dt: datetime | None) -> str:
    """Format a datetime for display (UTC)."""
    if dt is None:
        return "N/A"
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S UTC")


class ReportRenderer:
    """Renders analysis results to a markdown report.

    Usage:
        renderer = ReportRenderer()
        markdown = renderer.render(result, document)
    """

    def __init__(self) -> None:
        """Set up the Jinja2 environment with the package templates."""
        self._env = Environment(
            loader=PackageLoader("vaisu", "templates"),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self._env.filters["format_score"] = format_score
        self._env.filters["format_datetime"] = format_datetime

    def render(
        self,
        result: AnalysisResult,
        document: Document,
        template_name: str = DEFAULT_TEMPLATE,
    ) -> str:
        """Render an analysis result to markdown.

        Args:
            result: Analysis result from the pipeline
            document: The analyzed document (for title and section titles)
            template_name: Template file to use

        Returns:
            Rendered markdown string

        Raises:
            ValueError: If the template is missing or fails to render
        """
        try:
            template = self._env.get_template(template_name)
        except TemplateError as e:
            logger.error("Failed to load template %s: %s", template_name, e)
            raise ValueError(f"Template not found: {template_name}") from e

        try:
            rendered = template.render(**self._build_context(result, document))
        except TemplateError as e:
            logger.error("Template rendering failed: %s", e)
            raise ValueError(f"Template rendering failed: {e}") from e

        logger.debug("Rendered report (%d characters)", len(rendered))
        return rendered

    def _build_context(self, result: AnalysisResult, document: Document) -> dict[str, Any]:
        entity_names = {e.id: e.text for e in result.entities}
        return {
            "title": document.title,
            "document": document,
            "result": result,
            "summary": result.executive_summary,
            "entities": sorted(result.entities, key=lambda e: e.importance, reverse=True),
            "relationships": [
                {
                    "source": entity_names.get(r.source, r.source),
                    "target": entity_names.get(r.target, r.target),
                    "type": r.type,
                    "strength": r.strength,
                }
                for r in result.relationships
            ],
            "signals": result.signals.to_dict(),
            "sections": [
                {
                    "title": section.title,
                    "level": section.level,
                    "summary": result.section_summaries.get(section.id, ""),
                }
                for section in document.sections
            ],
        }

    def render_to_file(
        self,
        result: AnalysisResult,
        document: Document,
        output_path: Path,
        template_name: str = DEFAULT_TEMPLATE,
    ) -> Path:
        """Render an analysis result and write it to a file.

        Returns:
            Path to written file
        """
        content = self.render(result, document, template_name)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding="utf-8")
        logger.info("Wrote report to %s", output_path)

        return output_path
