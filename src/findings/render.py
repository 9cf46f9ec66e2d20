"""Report rendering.

Both formats are byte-stable: the same findings always render to the same
bytes. Reports carry no timestamps and no paths besides the ones the inputs
gave.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import orjson

from contract.formats import REPORT_FORMATS, REPORT_SCHEMA_VERSION
from findings.models import Finding, Severity

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from engine.analyze import AnalysisResult
    from suppress.manager import SuppressedFinding


def _summary(result: AnalysisResult) -> dict[str, object]:
    return {
        "contracts": result.contracts,
        "counts": result.counts(),
        "total": len(result.findings),
        "suppressed": len(result.suppressed),
        "cancelled": result.cancelled,
    }


def render_json(result: AnalysisResult, *, verbose: bool = False) -> bytes:
    payload: dict[str, object] = {
        "schema_version": REPORT_SCHEMA_VERSION,
        "summary": _summary(result),
        "findings": [finding.to_dict() for finding in result.findings],
    }
    if verbose:
        payload["suppressed"] = [item.to_dict() for item in result.suppressed]
    return orjson.dumps(payload, option=orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2) + b"\n"


def format_finding(finding: Finding) -> str:
    symbol = finding.contract
    if finding.function:
        symbol = f"{symbol}.{finding.function}"
    return (
        f"{finding.severity.value.upper()} {finding.rule_id} {symbol} "
        f"{finding.location.label()} [{finding.confidence.value}] {finding.message}"
    )


def _summary_line(result: AnalysisResult) -> str:
    counts = _summary(result)["counts"]
    assert isinstance(counts, dict)
    by_severity = ", ".join(
        f"{severity.value}={counts[severity.value]}" for severity in reversed(Severity)
    )
    line = (
        f"{len(result.findings)} finding(s) in {result.contracts} unit(s) "
        f"({by_severity}); {len(result.suppressed)} suppressed"
    )
    if result.cancelled:
        line += "; run cancelled"
    return line


def _suppressed_lines(suppressed: Sequence[SuppressedFinding]) -> list[str]:
    lines = ["", "Suppressed:"]
    for item in suppressed:
        reason = item.suppression.reason or "no reason given"
        lines.append(
            f"  {format_finding(item.finding)} (by {item.suppression.origin or 'declaration'}: {reason})"
        )
    return lines


def render_text(result: AnalysisResult, *, verbose: bool = False) -> bytes:
    lines = [format_finding(finding) for finding in result.findings]
    lines.append(_summary_line(result))
    if verbose and result.suppressed:
        lines.extend(_suppressed_lines(result.suppressed))
    return ("\n".join(lines) + "\n").encode("utf-8")


_RENDERERS = {
    "json": render_json,
    "text": render_text,
}


def render_report(result: AnalysisResult, fmt: str = "text", *, verbose: bool = False) -> bytes:
    """Render ``result`` in one of the formats of ``REPORT_FORMATS``."""
    if fmt not in REPORT_FORMATS:
        msg = f"Unknown report format '{fmt}'. Valid formats: {', '.join(sorted(REPORT_FORMATS))}"
        raise ValueError(msg)
    return _RENDERERS[fmt](result, verbose=verbose)


def write_report(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


__all__ = [
    "format_finding",
    "render_json",
    "render_report",
    "render_text",
    "write_report",
]
