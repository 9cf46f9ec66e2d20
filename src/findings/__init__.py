"""Finding schema and report rendering."""

from findings.models import Confidence, Finding, Severity, sort_findings
from findings.render import (
    format_finding,
    render_json,
    render_report,
    render_text,
    write_report,
)

__all__ = [
    "Confidence",
    "Finding",
    "Severity",
    "format_finding",
    "render_json",
    "render_report",
    "render_text",
    "sort_findings",
    "write_report",
]
