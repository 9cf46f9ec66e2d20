from __future__ import annotations

from typing import TYPE_CHECKING

import orjson
from conftest import FIXTURES

from contract.models import CallOp, GuardOp, ReadOp, WriteOp
from engine.analyze import AnalysisEngine
from parse import DIALECTS, detect_dialect, load_document, load_file
from parse.dialects import LoadRequest
from rules.catalog import build_registry

if TYPE_CHECKING:
    from pathlib import Path

    from contract.models import FunctionUnit


def _vault(root: Path):
    (loaded,) = load_file(root / "vault_ast.json", root)
    assert loaded.ok
    assert loaded.unit is not None
    return loaded.unit


def _ops(function: FunctionUnit, op_type) -> list:
    return [op for node in function.cfg.nodes for op in node.ops if isinstance(op, op_type)]


def test_builtin_dialects_registered() -> None:
    assert {"auditmap-ir", "solc-ast"} <= set(DIALECTS)
    document = orjson.loads((FIXTURES / "solc" / "vault_ast.json").read_bytes())
    dialect = detect_dialect(document)
    assert dialect is not None
    assert dialect.name == "solc-ast"


def test_contract_shape(solc_project: Path) -> None:
    unit = _vault(solc_project)

    assert unit.name == "Vault"
    assert unit.path == "contracts/Vault.sol"
    assert unit.pragma == "^0.8.0"
    assert [v.name for v in unit.state_variables] == ["balances", "owner"]
    assert [f.name for f in unit.functions] == ["deposit", "withdraw", "setOwner"]
    assert unit.span is not None
    assert (unit.span.start_line, unit.span.start_col) == (4, 1)


def test_withdraw_lowering(solc_project: Path) -> None:
    withdraw = _vault(solc_project).functions[1]

    assert [p.name for p in withdraw.parameters] == ["amount"]
    (call,) = _ops(withdraw, CallOp)
    assert call.kind == "call"
    assert call.target.kind == "msg_sender"
    assert call.value_transfer is True
    assert call.checked is True
    assert [operand.kind for operand in call.value] == ["parameter"]
    assert call.span is not None
    assert (call.span.start_line, call.span.start_col) == (14, 23)

    first_guard = _ops(withdraw, GuardOp)[0]
    assert [operand.kind for operand in first_guard.operands] == [
        "state",
        "msg_sender",
        "parameter",
    ]
    assert [op.variable for op in _ops(withdraw, WriteOp)] == ["balances"]
    assert any(op.guard for op in _ops(withdraw, ReadOp))


def test_cfg_is_linear_for_straight_line_body(solc_project: Path) -> None:
    withdraw = _vault(solc_project).functions[1]

    kinds = [node.kind for node in withdraw.cfg.nodes]
    assert kinds[0] == "entry"
    assert kinds[-1] == "exit"
    for node in withdraw.cfg.nodes[:-1]:
        assert node.successors == (node.id + 1,)


def test_findings_on_solc_input(solc_project: Path) -> None:
    unit = _vault(solc_project)

    result = AnalysisEngine(build_registry()).analyze([unit])

    labels = {(f.rule_id, f.function, f.location.label()) for f in result.findings}
    assert labels == {
        ("reentrancy-eth", "withdraw", "contracts/Vault.sol:14:23"),
        ("tx-origin-auth", "setOwner", "contracts/Vault.sol:20:9"),
        ("floating-pragma", None, "contracts/Vault.sol:4:1"),
    }


def test_spans_without_source_text_fall_back_to_offsets() -> None:
    document = orjson.loads((FIXTURES / "solc" / "vault_ast.json").read_bytes())

    (loaded,) = load_document(document, LoadRequest(origin="vault_ast.json"))

    assert loaded.unit is not None
    span = loaded.unit.span
    assert span is not None
    assert (span.start_line, span.start_col) == (1, 58)


def test_overloads_are_disambiguated() -> None:
    document = orjson.loads((FIXTURES / "solc" / "vault_ast.json").read_bytes())
    contract = document["nodes"][1]
    deposit = contract["nodes"][2]
    overload = {
        **deposit,
        "id": 900,
        "parameters": {
            "id": 901,
            "nodeType": "ParameterList",
            "parameters": [
                {
                    "id": 902,
                    "nodeType": "VariableDeclaration",
                    "name": "to",
                    "typeDescriptions": {"typeString": "address"},
                }
            ],
        },
    }
    contract["nodes"].append(overload)

    (loaded,) = load_document(document, LoadRequest(origin="vault_ast.json"))

    assert loaded.unit is not None
    assert [f.name for f in loaded.unit.functions] == [
        "deposit",
        "withdraw",
        "setOwner",
        "deposit(address)",
    ]


def test_length_cached_in_local_is_recorded_on_the_read() -> None:
    document = orjson.loads((FIXTURES / "solc" / "vault_ast.json").read_bytes())
    contract = document["nodes"][1]
    owner = contract["nodes"][1]
    set_owner = contract["nodes"][4]
    contract["nodes"].append(
        {**owner, "id": 910, "name": "holders", "typeDescriptions": {"typeString": "address[]"}}
    )
    set_owner["body"]["statements"].insert(
        0,
        {
            "id": 911,
            "nodeType": "VariableDeclarationStatement",
            "src": "521:0:0",
            "declarations": [
                {
                    "id": 912,
                    "nodeType": "VariableDeclaration",
                    "name": "n",
                    "stateVariable": False,
                    "typeDescriptions": {"typeString": "uint256"},
                }
            ],
            "initialValue": {
                "id": 913,
                "nodeType": "MemberAccess",
                "memberName": "length",
                "src": "521:0:0",
                "expression": {
                    "id": 914,
                    "nodeType": "Identifier",
                    "name": "holders",
                    "referencedDeclaration": 910,
                    "src": "521:0:0",
                },
            },
        },
    )

    (loaded,) = load_document(document, LoadRequest(origin="vault_ast.json"))

    assert loaded.unit is not None
    function = next(f for f in loaded.unit.functions if f.name == "setOwner")
    (read,) = [op for op in _ops(function, ReadOp) if op.variable == "holders"]
    assert (read.member, read.assigns) == ("length", "n")
    assert all(op.member is None for op in _ops(function, ReadOp) if op.variable == "owner")


def test_unknown_document_is_malformed() -> None:
    (loaded,) = load_document({"hello": "world"}, LoadRequest(origin="other.json"))

    assert loaded.ok is False
    assert loaded.error is not None
    assert "no known front-end dialect" in str(loaded.error)
