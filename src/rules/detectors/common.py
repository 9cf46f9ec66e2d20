"""Shared queries over fact snapshots used by several detectors."""

from __future__ import annotations

from typing import TYPE_CHECKING

from facts.kinds import (
    AccessCheck,
    FunctionInfo,
    InternalCall,
    ModifierApplied,
    ReentrancyLock,
)
from findings.models import Confidence
from graph.algos import reachable

if TYPE_CHECKING:
    from facts.snapshot import FactSnapshot
    from rules.context import Deadline

LOCK_NAME_HINTS = ("nonreentrant", "noreentrancy", "reentrancyguard", "lock")


def entry_points(facts: FactSnapshot) -> tuple[FunctionInfo, ...]:
    """Functions callable from outside the contract, in declaration order."""
    return tuple(info for info in facts.of_kind(FunctionInfo) if info.is_entry_point)


def applied_modifiers(facts: FactSnapshot, function: str) -> tuple[ModifierApplied, ...]:
    return tuple(
        sorted(facts.where(ModifierApplied, function=function), key=lambda m: m.position)
    )


def access_checks(facts: FactSnapshot, function: str) -> list[AccessCheck]:
    """Access checks guarding ``function``: its own and its modifiers'."""
    checks = list(facts.where(AccessCheck, function=function))
    for applied in applied_modifiers(facts, function):
        if applied.resolved:
            checks.extend(facts.where(AccessCheck, function=applied.modifier))
    return checks


def is_protected(facts: FactSnapshot, function: str) -> bool:
    """True when some caller check on state guards ``function``.

    Modifiers that could not be resolved (declared in an unanalyzed base
    contract) count as protective.
    """
    if any(not applied.resolved for applied in applied_modifiers(facts, function)):
        return True
    return any(check.against == "state" for check in access_checks(facts, function))


def is_reentrancy_locked(facts: FactSnapshot, function: str) -> bool:
    locks = {lock.modifier for lock in facts.of_kind(ReentrancyLock)}
    for applied in applied_modifiers(facts, function):
        if applied.modifier in locks:
            return True
        if not applied.resolved and applied.modifier.lower().startswith(LOCK_NAME_HINTS):
            return True
    return False


def call_graph(facts: FactSnapshot) -> dict[str, set[str]]:
    graph: dict[str, set[str]] = {info.function: set() for info in facts.of_kind(FunctionInfo)}
    for call in facts.of_kind(InternalCall):
        graph.setdefault(call.function, set()).add(call.callee)
    return graph


def reachable_functions(facts: FactSnapshot, function: str) -> list[str]:
    """``function`` followed by every function it reaches via internal calls."""
    graph = call_graph(facts)
    callees = reachable(graph, [function]).nodes - {function}
    return [function, *sorted(callees)]


def called_internally(facts: FactSnapshot) -> frozenset[str]:
    return frozenset(call.callee for call in facts.of_kind(InternalCall))


def confidence_for(complete: bool, deadline: Deadline) -> Confidence:
    if complete and not deadline.expired():
        return Confidence.PROVEN
    return Confidence.SUSPECTED


__all__ = [
    "access_checks",
    "applied_modifiers",
    "call_graph",
    "called_internally",
    "confidence_for",
    "entry_points",
    "is_protected",
    "is_reentrancy_locked",
    "reachable_functions",
]
