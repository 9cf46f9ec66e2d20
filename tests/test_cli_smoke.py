from __future__ import annotations

from typing import TYPE_CHECKING

import orjson
import pytest

from cli import main

if TYPE_CHECKING:
    from pathlib import Path


def test_cli_analyze_reports_findings(
    ir_project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = main(["analyze", "--root", str(ir_project), "--jobs", "1"])

    assert exit_code == 1
    out = capsys.readouterr().out
    assert "HIGH reentrancy-eth Bank.withdraw contracts/Bank.sol:13:25" in out
    assert out.rstrip().endswith("0 suppressed")


def test_cli_analyze_severity_floor(
    ir_project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    loops = str(ir_project / "loops.json")

    assert main(["analyze", loops, "--root", str(ir_project), "--severity-floor", "high"]) == 0
    assert main(["analyze", loops, "--root", str(ir_project), "--severity-floor", "medium"]) == 1
    capsys.readouterr()


def test_cli_analyze_clean_input_exits_zero(tmp_path: Path) -> None:
    root = tmp_path / "project"
    root.mkdir()

    assert main(["analyze", "--root", str(root)]) == 0


def test_cli_analyze_json_to_file(ir_project: Path, tmp_path: Path) -> None:
    out = tmp_path / "report.json"

    exit_code = main(
        ["analyze", "--root", str(ir_project), "--format", "json", "--out", str(out)]
    )

    assert exit_code == 1
    payload = orjson.loads(out.read_bytes())
    assert payload["summary"]["total"] == 4
    assert [f["rule_id"] for f in payload["findings"]][:2] == [
        "reentrancy-eth",
        "tx-origin-auth",
    ]


def test_cli_config_error_exits_two(
    ir_project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (ir_project / "auditmap.toml").write_text("bogus = 1\n", encoding="utf-8")

    exit_code = main(["analyze", "--root", str(ir_project)])

    assert exit_code == 2
    assert "error: Invalid config" in capsys.readouterr().err


def test_cli_bad_inline_suppression_date_exits_two(
    ir_project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    contracts = ir_project / "contracts"
    contracts.mkdir()
    (contracts / "Wallet.sol").write_text(
        "// auditmap-disable-line tx-origin-auth until=2026-13-01\n", encoding="utf-8"
    )

    exit_code = main(["analyze", "--root", str(ir_project)])

    assert exit_code == 2
    assert "error: contracts/Wallet.sol:1: invalid until date" in capsys.readouterr().err


def test_cli_bad_catalog_exits_two(
    ir_project: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    catalog = tmp_path / "extra.toml"
    catalog.write_text(
        '[[rule]]\nid = "x"\ntitle = "X"\nseverity = "low"\ndetector = "nope"\n',
        encoding="utf-8",
    )

    exit_code = main(["analyze", "--root", str(ir_project), "--catalog", str(catalog)])

    assert exit_code == 2
    assert "unknown detector 'nope'" in capsys.readouterr().err


def test_cli_baseline_then_clean_analyze(
    ir_project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert main(["baseline", "--root", str(ir_project)]) == 0
    assert "Baselined 4 finding(s)" in capsys.readouterr().out
    assert (ir_project / ".auditmap" / "baseline.json").is_file()

    (ir_project / "auditmap.toml").write_text(
        'baseline = ".auditmap/baseline.json"\n', encoding="utf-8"
    )

    assert main(["analyze", "--root", str(ir_project)]) == 0
    assert "4 suppressed" in capsys.readouterr().out


def test_cli_rules_lists_catalog(capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
    assert main(["rules", "--root", str(tmp_path)]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert "reentrancy-eth\thigh\tcross-function\tReentrancy with ether transfer" in lines
    assert lines[0].startswith("tx-origin-auth\thigh\tlocal\t")


def test_cli_verify_round_trip(ir_project: Path, tmp_path: Path) -> None:
    report = tmp_path / "report.json"
    assert (
        main(["analyze", "--root", str(ir_project), "--format", "json", "--out", str(report)])
        == 1
    )

    assert main(["verify", "--root", str(ir_project), "--report", str(report)]) == 0

    report.write_bytes(report.read_bytes().replace(b'"total": 4', b'"total": 5'))
    assert main(["verify", "--root", str(ir_project), "--report", str(report)]) == 1


def test_cli_verify_missing_report_exits_two(
    ir_project: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    missing = tmp_path / "missing.json"

    exit_code = main(["verify", "--root", str(ir_project), "--report", str(missing)])

    assert exit_code == 2
    err = capsys.readouterr().err
    assert f"report: {missing}" in err
    assert "Report does not exist" in err


def test_cli_analyze_solc_input(
    solc_project: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = main(["analyze", "--root", str(solc_project)])

    assert exit_code == 1
    out = capsys.readouterr().out
    assert "HIGH reentrancy-eth Vault.withdraw contracts/Vault.sol:14:23" in out
    assert "HIGH tx-origin-auth Vault.setOwner contracts/Vault.sol:20:9" in out
