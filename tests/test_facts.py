from __future__ import annotations

import pytest
from conftest import load_fixture_units

from contract.errors import MalformedInputError
from contract.models import ContractUnit
from engine.analyze import AnalysisEngine
from facts.extractor import FactExtractor
from facts.kinds import (
    FACT_KINDS,
    AccessCheck,
    FunctionInfo,
    LoopBound,
    ReentrancyLock,
    StateRead,
    UsesTxOrigin,
    WritesAfterExternalCall,
    fact_kind,
)
from rules.catalog import build_registry


def _single(name: str) -> ContractUnit:
    (unit,) = load_fixture_units(name)
    return unit


def _node(node_id: int, successors: list[int], ops: list[dict] | None = None, **extra) -> dict:
    return {"id": node_id, "successors": successors, "ops": ops or [], **extra}


def _locked_vault() -> ContractUnit:
    """Bank's withdraw behind a mutex modifier."""
    bank = _single("bank.json").model_dump(mode="json")
    bank["state_variables"].append({"name": "locked", "type_name": "bool"})
    guard_read = [
        {"op": "read", "variable": "locked", "guard": True},
        {"op": "guard", "kind": "require", "operands": [{"kind": "state", "name": "locked"}]},
    ]
    write = [{"op": "write", "variable": "locked"}]
    bank["modifiers"] = [
        {
            "name": "guarded",
            "kind": "modifier",
            "visibility": "internal",
            "cfg": {
                "entry": 0,
                "nodes": [
                    _node(0, [1], kind="entry"),
                    _node(1, [2], guard_read),
                    _node(2, [3], write),
                    _node(3, [4], kind="placeholder"),
                    _node(4, [5], write),
                    _node(5, [], kind="exit"),
                ],
            },
        }
    ]
    bank["functions"][1]["modifiers"] = ["guarded"]
    return ContractUnit.model_validate(bank)


def test_write_after_call_fact() -> None:
    snapshot = FactExtractor().extract(_single("bank.json"))

    (fact,) = snapshot.of_kind(WritesAfterExternalCall)
    assert fact.function == "withdraw"
    assert fact.variable == "balances"
    assert (fact.call_node, fact.write_node) == (2, 3)
    assert fact.value_transfer is True
    assert fact.read_in_check is True
    assert fact.complete is True
    assert fact.call_span is not None and fact.call_span.start_line == 13


def test_guard_reads_and_access_checks() -> None:
    snapshot = FactExtractor().extract(_single("wallet.json"))

    (check,) = snapshot.of_kind(AccessCheck)
    assert check.against == "state"
    assert check.variables == ("owner",)
    assert check.via_tx_origin is True

    (origin,) = snapshot.of_kind(UsesTxOrigin)
    assert origin.in_guard is True

    reads = snapshot.where(StateRead, function="sweep", variable="owner")
    assert [read.in_guard for read in reads] == [True]


def test_loop_bounds() -> None:
    snapshot = FactExtractor().extract(_single("loops.json"))

    bounds = {bound.function: bound for bound in snapshot.of_kind(LoopBound)}
    assert bounds["countFixed"].bound_kind == "literal"
    assert bounds["countAll"].bound_kind == "state_length"
    assert bounds["countAll"].variable == "users"
    assert bounds["countAll"].capped is False
    assert bounds["countCapped"].capped is True


def _cached_length_distributor() -> ContractUnit:
    """countAll rewritten as ``uint n = users.length; for (...; i < n; ...)``."""
    distributor = _single("loops.json").model_dump(mode="json")
    cached = {**distributor["functions"][1], "name": "countCached"}
    nodes = cached["cfg"]["nodes"]
    nodes[1] = _node(1, [2], [{"op": "read", "variable": "users", "member": "length", "assigns": "n"}])
    nodes[2] = _node(
        2,
        [3, 5],
        [
            {
                "op": "guard",
                "kind": "loop",
                "operands": [{"kind": "local", "name": "i"}, {"kind": "local", "name": "n"}],
            }
        ],
        kind="loop",
    )
    distributor["functions"] = [cached]
    return ContractUnit.model_validate(distributor)


def test_loop_bound_through_cached_state_length() -> None:
    unit = _cached_length_distributor()

    (bound,) = FactExtractor().extract(unit).of_kind(LoopBound)
    result = AnalysisEngine(build_registry()).analyze([unit])

    assert bound.bound_kind == "state_length"
    assert bound.variable == "users"
    assert [(f.rule_id, f.function) for f in result.findings] == [
        ("unbounded-loop", "countCached")
    ]


def test_snapshot_restricted_to_one_function() -> None:
    snapshot = FactExtractor().extract(_single("bank.json"))

    deposit = snapshot.for_function("deposit")

    assert {fact.scope_function for fact in deposit} == {"deposit"}
    assert "writes-after-external-call" not in deposit.kinds()
    assert "writes-after-external-call" in snapshot.kinds()
    assert [info.function for info in snapshot.of_kind(FunctionInfo)] == [
        "deposit",
        "withdraw",
    ]


def test_mutex_modifier_is_recognized_and_silences_reentrancy() -> None:
    unit = _locked_vault()

    snapshot = FactExtractor().extract(unit)
    result = AnalysisEngine(build_registry()).analyze([unit])

    assert snapshot.of_kind(ReentrancyLock) == (
        ReentrancyLock(modifier="guarded", variable="locked"),
    )
    assert "reentrancy-eth" not in {f.rule_id for f in result.findings}


def test_structural_error_carries_node_path() -> None:
    unit = _single("bank.json").model_dump(mode="json")
    unit["functions"][0]["cfg"]["nodes"][1]["ops"].append(
        {"op": "write", "variable": "ghost"}
    )

    with pytest.raises(MalformedInputError) as exc_info:
        FactExtractor().extract(ContractUnit.model_validate(unit))

    assert exc_info.value.node_path == "Bank.functions[0].cfg.nodes[1].ops[2].variable"


def test_fact_kind_names_are_unique() -> None:
    with pytest.raises(ValueError, match="already registered"):
        fact_kind("state-read")(StateRead)

    assert FACT_KINDS["access-check"] is AccessCheck
