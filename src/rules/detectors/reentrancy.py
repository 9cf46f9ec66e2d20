"""Reentrancy detectors.

All three work on ``writes-after-external-call`` facts, which the extractor
derives by walking each function's CFG in successor order. A write only
counts when it is reachable from the call on some path, so code following
checks-effects-interactions is not reported even if it writes unrelated state
after the call.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from facts.kinds import FunctionInfo, StateRead, WritesAfterExternalCall
from findings.models import Severity
from rules.context import Hit
from rules.detectors.common import confidence_for, entry_points, is_reentrancy_locked
from rules.registry import detector

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rules.context import ContractContext

# Targets the front-end resolved to something that cannot call back.
_TRUSTED_TARGETS = frozenset({"this", "literal", "constant"})


def _candidates(
    ctx: ContractContext, *, value_transfer: bool | None
) -> dict[tuple[str, int], list[WritesAfterExternalCall]]:
    """Group write-after-call facts by (function, call node)."""
    facts = ctx.facts
    skip = {
        info.function
        for info in facts.of_kind(FunctionInfo)
        if info.function_kind == "modifier"
        or info.mutability in {"view", "pure"}
        or is_reentrancy_locked(facts, info.function)
    }
    grouped: dict[tuple[str, int], list[WritesAfterExternalCall]] = defaultdict(list)
    for fact in facts.of_kind(WritesAfterExternalCall):
        if ctx.deadline.expired():
            break
        if fact.function in skip or fact.target_kind in _TRUSTED_TARGETS:
            continue
        if value_transfer is not None and fact.value_transfer != value_transfer:
            continue
        grouped[(fact.function, fact.call_node)].append(fact)
    return grouped


def _same_function_hits(
    ctx: ContractContext,
    *,
    value_transfer: bool,
    label: str,
    partial_severity: Severity | None = None,
) -> Iterator[Hit]:
    for (function, _), facts in sorted(_candidates(ctx, value_transfer=value_transfer).items()):
        checked = [fact for fact in facts if fact.read_in_check]
        if not checked:
            continue
        complete = all(fact.complete for fact in checked)
        confidence = confidence_for(complete, ctx.deadline)
        variables = ", ".join(fact.variable for fact in checked)
        yield Hit(
            function=function,
            span=checked[0].call_span,
            message=(
                f"{label} in {function} is followed by a write to {variables}, "
                "which was checked before the call"
            ),
            evidence=tuple(checked),
            confidence=confidence,
            severity=None if complete else partial_severity,
        )


@detector(
    "reentrancy_eth",
    scope="cross-function",
    requires=("writes-after-external-call",),
)
def reentrancy_eth(ctx: ContractContext) -> Iterator[Hit]:
    yield from _same_function_hits(
        ctx,
        value_transfer=True,
        label="External call transferring value",
        partial_severity=Severity.MEDIUM,
    )


@detector(
    "reentrancy_no_eth",
    scope="cross-function",
    requires=("writes-after-external-call",),
)
def reentrancy_no_eth(ctx: ContractContext) -> Iterator[Hit]:
    yield from _same_function_hits(ctx, value_transfer=False, label="External call")


@detector(
    "reentrancy_cross_function",
    scope="cross-function",
    requires=("writes-after-external-call", "state-read"),
)
def reentrancy_cross_function(ctx: ContractContext) -> Iterator[Hit]:
    """State written after a call is checked by another entry point.

    A reentrant caller can enter that other function while the state is
    still stale.
    """
    facts = ctx.facts
    public = {info.function for info in entry_points(facts)}
    checked_by: dict[str, set[str]] = defaultdict(set)
    for read in facts.of_kind(StateRead):
        if read.in_guard and read.function in public:
            checked_by[read.variable].add(read.function)

    for (function, _), candidates in sorted(_candidates(ctx, value_transfer=None).items()):
        for fact in candidates:
            others = sorted(checked_by.get(fact.variable, set()) - {function})
            if not others:
                continue
            yield Hit(
                function=function,
                span=fact.write_span,
                message=(
                    f"{fact.variable} is written after an external call in "
                    f"{function} and checked by {', '.join(others)}"
                ),
                evidence=(fact,),
                confidence=confidence_for(fact.complete, ctx.deadline),
            )
