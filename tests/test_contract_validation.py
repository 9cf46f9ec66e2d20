from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from conftest import FIXTURES, load_fixture_units
from pydantic import ValidationError

from contract.errors import MalformedInputError
from contract.formats import build_fingerprint, normalize_message
from contract.models import ContractUnit
from contract.validation import (
    ValidationMessage,
    ValidationResult,
    ensure_valid,
    validate_unit,
)
from parse import load_file


def _bank() -> dict[str, Any]:
    (unit,) = load_fixture_units("bank.json")
    return unit.model_dump(mode="json")


def test_fixture_units_are_valid() -> None:
    for name in ("bank.json", "wallet.json", "loops.json"):
        for unit in load_fixture_units(name):
            result = validate_unit(unit)
            assert result.ok, result.errors
            assert ensure_valid(unit) is unit


def test_dangling_successor_reported_with_path() -> None:
    raw = _bank()
    raw["functions"][1]["cfg"]["nodes"][3]["successors"] = [42]

    result = validate_unit(ContractUnit.model_validate(raw))

    assert result.errors == [
        ValidationMessage(
            "Bank.functions[1].cfg.nodes[3].successors[0]",
            "Successor 42 does not exist.",
        )
    ]


def test_duplicate_node_ids_and_missing_entry() -> None:
    raw = _bank()
    raw["functions"][0]["cfg"]["nodes"][2]["id"] = 1
    raw["functions"][0]["cfg"]["entry"] = 7

    result = validate_unit(ContractUnit.model_validate(raw))

    paths = [message.node_path for message in result.errors]
    assert "Bank.functions[0].cfg.nodes[2].id" in paths
    assert "Bank.functions[0].cfg.entry" in paths


def test_duplicate_state_variable() -> None:
    raw = _bank()
    raw["state_variables"].append({"name": "balances", "type_name": "uint256"})

    with pytest.raises(MalformedInputError) as exc_info:
        ensure_valid(ContractUnit.model_validate(raw))

    assert exc_info.value.node_path == "Bank.state_variables[1]"
    assert str(exc_info.value).startswith("Bank.state_variables[1]: ")


def test_unresolved_modifier_is_only_a_warning() -> None:
    raw = _bank()
    raw["functions"][1]["modifiers"] = ["onlyOwner"]

    result = validate_unit(ContractUnit.model_validate(raw))

    assert result.ok
    assert [w.node_path for w in result.warnings] == ["Bank.functions[1].modifiers[0]"]


def test_modifier_listed_as_function_is_an_error() -> None:
    raw = _bank()
    raw["functions"][0]["kind"] = "modifier"

    result = validate_unit(ContractUnit.model_validate(raw))

    assert not result.ok
    assert result.errors[0].node_path == "Bank.functions[0].kind"


def test_units_are_immutable() -> None:
    (unit,) = load_fixture_units("bank.json")

    with pytest.raises(ValidationError):
        unit.name = "Other"  # type: ignore[misc]


def test_unknown_operation_rejected_at_load(tmp_path: Path) -> None:
    document = (FIXTURES / "ir" / "bank.json").read_text(encoding="utf-8")
    broken = document.replace('"op": "write"', '"op": "poke"', 1)
    path = tmp_path / "bank.json"
    path.write_text(broken, encoding="utf-8")

    (loaded,) = load_file(path, tmp_path)

    assert loaded.ok is False
    assert loaded.error is not None
    assert loaded.error.node_path.startswith("Bank.functions[0].cfg.nodes[1].ops[1]")


def test_validation_result_ok_property() -> None:
    result = ValidationResult()
    assert result.ok
    result.errors.append(ValidationMessage("Bank", "bad"))
    assert not result.ok
    assert result.errors[0].to_dict() == {"node_path": "Bank", "message": "bad"}


def test_fingerprint_ignores_whitespace_and_lines() -> None:
    first = build_fingerprint("reentrancy-eth", "Bank", "withdraw", "contracts/Bank.sol", "a  b\n c")
    second = build_fingerprint("reentrancy-eth", "Bank", "withdraw", "contracts/Bank.sol", " a b c ")

    assert first == second
    assert len(first) == 16
    assert normalize_message("  a \t b ") == "a b"
    assert first != build_fingerprint("reentrancy-eth", "Bank", None, "contracts/Bank.sol", "a b c")
