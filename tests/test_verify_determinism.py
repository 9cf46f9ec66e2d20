from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from engine.run import RunOptions, run_analysis
from findings.render import render_report, write_report
from verify.verify import DeterminismResult, verify_report

if TYPE_CHECKING:
    from pathlib import Path


def test_verify_report_requires_report(ir_project: Path, tmp_path: Path) -> None:
    missing = tmp_path / "missing.json"

    with pytest.raises(FileNotFoundError, match="Report does not exist"):
        verify_report(root=ir_project, report=missing)


def test_verify_report_rejects_directory(ir_project: Path, tmp_path: Path) -> None:
    with pytest.raises(IsADirectoryError):
        verify_report(root=ir_project, report=tmp_path)


def test_verify_report_matches_fresh_run(ir_project: Path, tmp_path: Path) -> None:
    report = tmp_path / "reports" / "report.json"
    write_report(report, render_report(run_analysis(ir_project), "json"))

    result = verify_report(root=ir_project, report=report)

    assert result.ok
    assert result.first_difference is None
    assert result.expected_size == result.actual_size


def test_verify_report_detects_first_difference(ir_project: Path, tmp_path: Path) -> None:
    data = render_report(run_analysis(ir_project, RunOptions(jobs=1)), "text")
    tampered = data.replace(b"HIGH", b"LOW!", 1)
    report = tmp_path / "report.txt"
    report.write_bytes(tampered)

    result = verify_report(root=ir_project, report=report, fmt="text")

    assert result == DeterminismResult(
        ok=False,
        expected_size=len(tampered),
        actual_size=len(data),
        first_difference=data.index(b"HIGH"),
    )
    assert "differs at byte" in result.describe()


def test_verify_report_after_inputs_change(ir_project: Path, tmp_path: Path) -> None:
    report = tmp_path / "report.json"
    write_report(report, render_report(run_analysis(ir_project), "json"))

    (ir_project / "wallet.json").unlink()

    assert not verify_report(root=ir_project, report=report).ok
