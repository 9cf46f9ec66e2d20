from __future__ import annotations

import orjson
import pytest
from conftest import load_fixture_units

from contract.formats import REPORT_SCHEMA_VERSION
from engine.analyze import AnalysisEngine, AnalysisResult
from findings.render import format_finding, render_report
from rules.catalog import build_registry
from suppress.manager import SuppressionManager
from suppress.models import Suppression


def _result(*, suppress_wallet: bool = False) -> AnalysisResult:
    units = load_fixture_units("bank.json") + load_fixture_units("wallet.json")
    suppressions = (
        SuppressionManager([Suppression(rule="fixed-gas-transfer", contract="Wallet", reason="known")])
        if suppress_wallet
        else None
    )
    return AnalysisEngine(build_registry(), suppressions=suppressions).analyze(units)


def test_json_report_shape() -> None:
    payload = orjson.loads(render_report(_result(), "json"))

    assert payload["schema_version"] == REPORT_SCHEMA_VERSION
    assert payload["summary"] == {
        "cancelled": False,
        "contracts": 2,
        "counts": {"critical": 0, "high": 2, "info": 1, "low": 0, "medium": 0},
        "suppressed": 0,
        "total": 3,
    }
    first = payload["findings"][0]
    assert first["rule_id"] == "reentrancy-eth"
    assert first["location"] == {
        "path": "contracts/Bank.sol",
        "start_line": 13,
        "start_col": 25,
        "end_line": 13,
        "end_col": 66,
    }
    assert len(first["fingerprint"]) == 16
    assert "suppressed" not in payload


def test_json_report_is_byte_stable() -> None:
    first = render_report(_result(), "json")
    second = render_report(_result(), "json")

    assert first == second
    assert first.endswith(b"\n")


def test_text_report_lines() -> None:
    text = render_report(_result(), "text").decode("utf-8")

    lines = text.splitlines()
    assert lines[0].startswith(
        "HIGH reentrancy-eth Bank.withdraw contracts/Bank.sol:13:25 [proven] "
    )
    assert lines[-1] == (
        "3 finding(s) in 2 unit(s) "
        "(critical=0, high=2, medium=0, low=0, info=1); 0 suppressed"
    )


def test_verbose_reports_list_suppressed_findings() -> None:
    result = _result(suppress_wallet=True)

    payload = orjson.loads(render_report(result, "json", verbose=True))
    text = render_report(result, "text", verbose=True).decode("utf-8")

    assert payload["summary"]["suppressed"] == 1
    assert payload["suppressed"][0]["reason"] == "known"
    assert payload["suppressed"][0]["finding"]["rule_id"] == "fixed-gas-transfer"
    assert "Suppressed:" in text
    assert "(by declaration: known)" in text


def test_format_finding_without_function() -> None:
    result = _result()
    finding = result.findings[0].model_copy(update={"function": None})

    assert format_finding(finding).startswith("HIGH reentrancy-eth Bank contracts/")


def test_unknown_format_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown report format"):
        render_report(_result(), "sarif")
