"""Vaisu report rendering.

Jinja2-based markdown rendering of analysis results.
"""

from vaisu.templates.renderer import ReportRenderer, format_score

__all__ = ["ReportRenderer", "format_score"]
