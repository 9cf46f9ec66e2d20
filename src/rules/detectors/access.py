"""Access-control detectors.

These rules are cross-function: whether a function is protected depends on the
checks inside the modifiers applied to it, and privileged state is whatever
other functions compare the caller against.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from facts.kinds import AccessCheck, ExternalCall, StateRead, StateVariableInfo, StateWrite
from findings.models import Confidence
from rules.context import Hit
from rules.detectors.common import (
    access_checks,
    applied_modifiers,
    entry_points,
    is_protected,
    reachable_functions,
)
from rules.registry import detector

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rules.context import ContractContext


@detector(
    "access_control_parameter",
    scope="cross-function",
    requires=("access-check",),
)
def access_control_parameter(ctx: ContractContext) -> Iterator[Hit]:
    """Caller checks that compare against a parameter instead of state.

    ``require(msg.sender == owner_)`` with ``owner_`` supplied by the caller
    authorizes anyone.
    """
    facts = ctx.facts
    for info in entry_points(facts):
        if any(not m.resolved for m in applied_modifiers(facts, info.function)):
            continue
        checks = access_checks(facts, info.function)
        if not checks or any(check.against != "parameter" for check in checks):
            continue
        yield Hit(
            function=info.function,
            span=checks[0].span,
            message=(
                f"{info.function} checks the caller against a parameter "
                "instead of stored state"
            ),
            evidence=tuple(checks),
        )


def _holds_identity(type_name: str) -> bool:
    """Addresses, and membership maps such as ``mapping(address => bool)``."""
    compact = type_name.replace(" ", "")
    return compact.startswith("address") or (
        compact.startswith("mapping(") and compact.endswith("=>bool)")
    )


def _privileged_variables(ctx: ContractContext) -> set[str]:
    types = {v.variable: v.type_name for v in ctx.facts.of_kind(StateVariableInfo)}
    return {
        variable
        for check in ctx.facts.of_kind(AccessCheck)
        if check.against == "state"
        for variable in check.variables
        if _holds_identity(types.get(variable, "address"))
    }


@detector(
    "unprotected_state_owner",
    scope="cross-function",
    requires=("access-check", "state-write"),
)
def unprotected_state_owner(ctx: ContractContext) -> Iterator[Hit]:
    facts = ctx.facts
    privileged = _privileged_variables(ctx)
    if not privileged:
        return
    for info in entry_points(facts):
        if is_protected(facts, info.function):
            continue
        for write in facts.where(StateWrite, function=info.function):
            if write.variable in privileged:
                yield Hit(
                    function=info.function,
                    span=write.span,
                    message=(
                        f"Anyone can call {info.function}, which overwrites "
                        f"access-control state {write.variable}"
                    ),
                    evidence=(write,),
                )
                break


def _unprotected_calls(ctx: ContractContext, predicate) -> Iterator[tuple[str, ExternalCall]]:
    """Calls matching ``predicate`` reachable from unprotected entry points."""
    facts = ctx.facts
    for info in entry_points(facts):
        if ctx.deadline.expired():
            return
        if is_protected(facts, info.function):
            continue
        for name in reachable_functions(facts, info.function):
            if name != info.function and is_protected(facts, name):
                continue
            for call in facts.where(ExternalCall, function=name):
                if predicate(call):
                    yield info.function, call


@detector(
    "unprotected_selfdestruct",
    scope="cross-function",
    requires=("external-call",),
)
def unprotected_selfdestruct(ctx: ContractContext) -> Iterator[Hit]:
    for function, call in _unprotected_calls(ctx, lambda c: c.call_kind == "selfdestruct"):
        via = "" if call.function == function else f" through {call.function}"
        yield Hit(
            function=function,
            span=call.span,
            message=f"Anyone can destroy the contract by calling {function}{via}",
            evidence=(call,),
        )


@detector(
    "arbitrary_send_eth",
    scope="cross-function",
    requires=("external-call",),
)
def arbitrary_send_eth(ctx: ContractContext) -> Iterator[Hit]:
    def sends_to_parameter(call: ExternalCall) -> bool:
        return call.value_transfer and call.target_kind == "parameter"

    for function, call in _unprotected_calls(ctx, sends_to_parameter):
        yield Hit(
            function=function,
            span=call.span,
            message=(
                f"Anyone can call {function} to send ether to a caller-chosen "
                f"address '{call.target_name}'"
            ),
            evidence=(call,),
        )


@detector(
    "unprotected_initializer",
    scope="cross-function",
    requires=("function-info", "state-write"),
)
def unprotected_initializer(ctx: ContractContext) -> Iterator[Hit]:
    facts = ctx.facts
    for info in entry_points(facts):
        if not info.function.lower().startswith("init"):
            continue
        if is_protected(facts, info.function):
            continue
        writes = facts.where(StateWrite, function=info.function)
        if not writes:
            continue
        scopes = [info.function] + [m.modifier for m in applied_modifiers(facts, info.function)]
        if any(
            read.in_guard for scope in scopes for read in facts.where(StateRead, function=scope)
        ):
            continue
        yield Hit(
            function=info.function,
            span=info.span,
            message=(
                f"Initializer {info.function} can be called by anyone, any "
                "number of times"
            ),
            evidence=(info, *writes[:3]),
            confidence=Confidence.SUSPECTED,
        )
