"""Contract-wide hygiene detectors."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from facts.kinds import (
    ContractInfo,
    ExternalCall,
    FunctionInfo,
    StateRead,
    StateVariableInfo,
    StateWrite,
)
from rules.context import Hit
from rules.detectors.common import called_internally, entry_points
from rules.registry import detector

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rules.context import ContractContext

_PINNED_PRAGMA = re.compile(r"^=?\s*\d+\.\d+\.\d+$")


@detector("locked_ether", scope="cross-function", requires=("function-info",))
def locked_ether(ctx: ContractContext) -> Iterator[Hit]:
    facts = ctx.facts
    info = facts.of_kind(ContractInfo)
    if info and info[0].contract_kind != "contract":
        return
    payable = [f for f in facts.of_kind(FunctionInfo) if f.mutability == "payable"]
    if not payable:
        return
    sends = any(
        call.value_transfer or call.call_kind in {"selfdestruct", "delegatecall"}
        for call in facts.of_kind(ExternalCall)
    )
    if sends:
        return
    names = ", ".join(f.function for f in payable)
    yield Hit(
        span=facts.span,
        message=(
            f"{facts.contract} accepts ether ({names}) but has no way to send "
            "it out"
        ),
        evidence=tuple(payable),
    )


@detector(
    "uninitialized_state",
    scope="cross-function",
    requires=("state-variable",),
)
def uninitialized_state(ctx: ContractContext) -> Iterator[Hit]:
    facts = ctx.facts
    written = {write.variable for write in facts.of_kind(StateWrite)}
    read = {item.variable for item in facts.of_kind(StateRead)}
    for variable in facts.of_kind(StateVariableInfo):
        if variable.constant or variable.initialized:
            continue
        if variable.type_name.startswith("mapping") or variable.type_name.endswith("]"):
            continue
        if variable.variable in written or variable.variable not in read:
            continue
        yield Hit(
            span=variable.span,
            message=(
                f"State variable {variable.variable} is read but never "
                "initialized or assigned"
            ),
            evidence=(variable,),
        )


@detector("external_function", scope="cross-function", requires=("function-info",))
def external_function(ctx: ContractContext) -> Iterator[Hit]:
    facts = ctx.facts
    internal = called_internally(facts)
    for info in entry_points(facts):
        if info.visibility != "public" or info.function_kind != "function":
            continue
        if info.function in internal:
            continue
        yield Hit(
            function=info.function,
            span=info.span,
            message=f"Public function {info.function} is never called internally and could be external",
            evidence=(info,),
        )


@detector("floating_pragma", scope="cross-function", requires=("contract-info",))
def floating_pragma(ctx: ContractContext) -> Iterator[Hit]:
    for info in ctx.facts.of_kind(ContractInfo):
        if info.pragma is None or _PINNED_PRAGMA.match(info.pragma.strip()):
            continue
        yield Hit(
            span=info.span,
            message=f"Compiler version '{info.pragma}' is not pinned",
            evidence=(info,),
        )
