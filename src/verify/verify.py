"""Determinism verification for auditmap reports."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from engine.run import RunOptions, run_analysis
from findings.render import render_report

if TYPE_CHECKING:
    from pathlib import Path


@dataclass(frozen=True)
class DeterminismResult:
    ok: bool
    expected_size: int
    actual_size: int
    first_difference: int | None = None

    def describe(self) -> str:
        if self.ok:
            return f"report is byte-identical ({self.actual_size} bytes)"
        return (
            f"report differs at byte {self.first_difference} "
            f"(stored {self.expected_size} bytes, regenerated {self.actual_size} bytes)"
        )


def _first_difference(expected: bytes, actual: bytes) -> int | None:
    for index, (left, right) in enumerate(zip(expected, actual)):
        if left != right:
            return index
    if len(expected) != len(actual):
        return min(len(expected), len(actual))
    return None


def verify_report(
    *,
    root: Path,
    report: Path,
    options: RunOptions | None = None,
    fmt: str = "json",
    verbose: bool = False,
) -> DeterminismResult:
    """Re-run the analysis and compare the rendering with a stored report.

    Args:
        root: Analysis root.
        report: Previously written report.
        options: Overrides the report was produced with.
        fmt: Format the report was rendered in.
        verbose: Whether the report included suppressed findings.

    Returns:
        DeterminismResult with the byte offset of the first difference, if any.

    Raises:
        FileNotFoundError: If the report does not exist.
        IsADirectoryError: If the report path is a directory.
    """
    if not report.exists():
        msg = f"Report does not exist: {report}"
        raise FileNotFoundError(msg)
    if report.is_dir():
        msg = f"Report path is a directory: {report}"
        raise IsADirectoryError(msg)

    expected = report.read_bytes()
    actual = render_report(run_analysis(root, options), fmt, verbose=verbose)
    difference = _first_difference(expected, actual)
    return DeterminismResult(
        ok=difference is None,
        expected_size=len(expected),
        actual_size=len(actual),
        first_difference=difference,
    )


__all__ = ["DeterminismResult", "verify_report"]
