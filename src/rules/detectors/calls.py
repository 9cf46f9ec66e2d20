"""Detectors over individual call sites."""

from __future__ import annotations

from typing import TYPE_CHECKING

from facts.kinds import ExternalCall
from rules.context import Hit
from rules.registry import detector

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rules.context import FunctionContext

_RESULT_RETURNING_KINDS = frozenset({"call", "delegatecall", "staticcall", "send"})


@detector(
    "unchecked_low_level_call", scope="local", requires=("external-call",)
)
def unchecked_low_level_call(ctx: FunctionContext) -> Iterator[Hit]:
    for call in ctx.facts.of_kind(ExternalCall):
        if call.call_kind in _RESULT_RETURNING_KINDS and not call.checked:
            yield Hit(
                function=ctx.name,
                span=call.span,
                message=(
                    f"Return value of low-level {call.call_kind} in {ctx.name} "
                    "is not checked"
                ),
                evidence=(call,),
            )


@detector("controlled_delegatecall", scope="local", requires=("external-call",))
def controlled_delegatecall(ctx: FunctionContext) -> Iterator[Hit]:
    for call in ctx.facts.of_kind(ExternalCall):
        if call.call_kind == "delegatecall" and call.target_kind == "parameter":
            yield Hit(
                function=ctx.name,
                span=call.span,
                message=(
                    f"delegatecall in {ctx.name} targets caller-supplied "
                    f"address '{call.target_name}'"
                ),
                evidence=(call,),
            )


@detector("calls_in_loop", scope="local", requires=("external-call",))
def calls_in_loop(ctx: FunctionContext) -> Iterator[Hit]:
    for call in ctx.facts.of_kind(ExternalCall):
        if call.in_loop and call.call_kind not in {"staticcall", "selfdestruct"}:
            yield Hit(
                function=ctx.name,
                span=call.span,
                message=(
                    f"External {call.call_kind} inside a loop in {ctx.name}; one "
                    "failing recipient can block the whole loop"
                ),
                evidence=(call,),
            )


@detector("fixed_gas_transfer", scope="local", requires=("external-call",))
def fixed_gas_transfer(ctx: FunctionContext) -> Iterator[Hit]:
    for call in ctx.facts.of_kind(ExternalCall):
        if call.call_kind in {"transfer", "send"}:
            yield Hit(
                function=ctx.name,
                span=call.span,
                message=(
                    f"{call.call_kind} in {ctx.name} forwards a fixed 2300 gas "
                    "stipend"
                ),
                evidence=(call,),
            )
