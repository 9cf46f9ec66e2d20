from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING

import pytest

from contract.errors import SuppressionFileError
from contract.formats import MALFORMED_INPUT, STALE_SUPPRESSION
from contract.models import SourceSpan
from engine.run import RunOptions, run_analysis
from findings.models import Finding, Severity
from suppress.load import (
    load_baseline,
    load_suppression_file,
    scan_inline_suppressions,
    write_baseline,
)
from suppress.manager import SuppressionManager
from suppress.models import Suppression

if TYPE_CHECKING:
    from pathlib import Path

TODAY = dt.date(2026, 10, 19)


def _rule_ids(result) -> list[str]:
    return [finding.rule_id for finding in result.findings]


def _write_suppressions(root: Path, body: str) -> None:
    (root / "auditmap-suppressions.toml").write_text(body.strip() + "\n", encoding="utf-8")


def test_file_suppression_hides_finding_and_keeps_reason(ir_project: Path) -> None:
    _write_suppressions(
        ir_project,
        """
[[suppression]]
rule = "reentrancy-eth"
contract = "Bank"
function = "withdraw"
reason = "balance is zeroed by the caller contract"
""",
    )

    result = run_analysis(ir_project, RunOptions(today=TODAY))

    assert "reentrancy-eth" not in _rule_ids(result)
    (suppressed,) = result.suppressed
    assert suppressed.finding.rule_id == "reentrancy-eth"
    assert suppressed.suppression.reason == "balance is zeroed by the caller contract"
    assert suppressed.suppression.origin == "auditmap-suppressions.toml#1"


def test_path_and_line_scope(ir_project: Path) -> None:
    _write_suppressions(
        ir_project,
        """
[[suppression]]
rule = "*"
path = "contracts/Wallet.sol"
lines = [11, 11]
""",
    )

    result = run_analysis(ir_project, RunOptions(today=TODAY))

    assert "tx-origin-auth" not in _rule_ids(result)
    assert "fixed-gas-transfer" in _rule_ids(result)


def test_inline_annotation_suppresses_next_line(ir_project: Path) -> None:
    source = ["// filler"] * 11 + [
        "        // auditmap-disable-next-line reentrancy-eth -- pull payments pending",
        '        (bool ok, ) = msg.sender.call{value: amount}("");',
    ]
    (ir_project / "contracts").mkdir()
    (ir_project / "contracts" / "Bank.sol").write_text("\n".join(source) + "\n", encoding="utf-8")

    result = run_analysis(ir_project, RunOptions(today=TODAY))

    assert "reentrancy-eth" not in _rule_ids(result)
    (suppressed,) = result.suppressed
    assert suppressed.suppression.origin == "contracts/Bank.sol:12"
    assert suppressed.suppression.reason == "pull payments pending"


def test_baseline_round_trip(ir_project: Path) -> None:
    first = run_analysis(ir_project, RunOptions(today=TODAY))
    assert first.findings

    baseline = ir_project / ".auditmap" / "baseline.json"
    count = write_baseline(baseline, first.findings)

    second = run_analysis(ir_project, RunOptions(baseline=baseline, today=TODAY))

    assert count == len(first.findings)
    assert second.findings == []
    assert len(second.suppressed) == count
    assert {item.suppression.origin for item in second.suppressed} == {"baseline"}
    assert load_baseline(baseline) == {finding.fingerprint for finding in first.findings}


def test_baseline_ignored_when_disabled(ir_project: Path) -> None:
    first = run_analysis(ir_project, RunOptions(today=TODAY))
    baseline = ir_project / ".auditmap" / "baseline.json"
    write_baseline(baseline, first.findings)

    again = run_analysis(
        ir_project, RunOptions(baseline=baseline, use_baseline=False, today=TODAY)
    )

    assert _rule_ids(again) == _rule_ids(first)


def test_expired_suppression_reports_stale_once(ir_project: Path) -> None:
    _write_suppressions(
        ir_project,
        """
[[suppression]]
rule = "*"
contract = "Wallet"
reason = "migration window"
expires = 2026-01-31
""",
    )

    result = run_analysis(ir_project, RunOptions(today=TODAY))

    stale = [f for f in result.findings if f.rule_id == STALE_SUPPRESSION]
    assert len(stale) == 1
    assert stale[0].severity is Severity.INFO
    assert "2026-01-31" in stale[0].message
    assert {item.finding.contract for item in result.suppressed} == {"Wallet"}
    assert len(result.suppressed) == 2


def test_diagnostics_are_never_suppressed() -> None:
    location = SourceSpan(path="broken.json", start_line=1, start_col=1, end_line=1, end_col=1)
    diagnostic = Finding(
        rule_id=MALFORMED_INPUT,
        detector=MALFORMED_INPUT,
        title="Malformed input",
        contract="Broken",
        location=location,
        severity=Severity.INFO,
        message="Cannot analyze Broken",
    )
    manager = SuppressionManager(
        [Suppression(rule="*", contract="Broken")], baseline=[diagnostic.fingerprint]
    )

    outcome = manager.apply([diagnostic], today=TODAY)

    assert outcome.reported == [diagnostic]
    assert outcome.suppressed == []


def test_suppression_without_scope_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "suppressions.toml"
    path.write_text('[[suppression]]\nrule = "reentrancy-eth"\n', encoding="utf-8")

    with pytest.raises(SuppressionFileError, match="invalid suppression #1"):
        load_suppression_file(path)


def test_unknown_section_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "suppressions.toml"
    path.write_text('[ignore]\nrule = "x"\n', encoding="utf-8")

    with pytest.raises(SuppressionFileError, match="Unknown section"):
        load_suppression_file(path)


def test_scan_inline_annotations() -> None:
    source = "\n".join(
        [
            "contract A {",
            "    function f() external {",
            "        x = tx.origin; // auditmap-disable-line tx-origin-auth,weak-randomness until=2027-03-01",
            "        // auditmap-disable-next-line",
            "        y = 1;",
            "    }",
        ]
    )

    suppressions = scan_inline_suppressions(source, "contracts/A.sol")

    assert [(s.rule, s.lines) for s in suppressions] == [
        ("tx-origin-auth", (3, 3)),
        ("weak-randomness", (3, 3)),
        ("*", (5, 5)),
    ]
    assert suppressions[0].expires == dt.date(2027, 3, 1)
    assert suppressions[2].expires is None


def test_inline_annotation_with_impossible_date_is_rejected(ir_project: Path) -> None:
    source = [
        "contract Bank {",
        "    // auditmap-disable-next-line reentrancy-eth until=2026-02-30",
        "}",
    ]
    (ir_project / "contracts").mkdir()
    (ir_project / "contracts" / "Bank.sol").write_text("\n".join(source) + "\n", encoding="utf-8")

    with pytest.raises(SuppressionFileError, match=r"contracts/Bank\.sol:2: invalid until date"):
        run_analysis(ir_project, RunOptions(today=TODAY))


def test_malformed_baseline_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "baseline.json"
    path.write_text('{"fingerprints": "nope"}', encoding="utf-8")

    with pytest.raises(SuppressionFileError, match="fingerprints"):
        load_baseline(path)
