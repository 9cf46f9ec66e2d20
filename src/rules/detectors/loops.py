"""Loop-bound detectors."""

from __future__ import annotations

from typing import TYPE_CHECKING

from facts.kinds import LoopBound
from findings.models import Confidence
from rules.context import Hit
from rules.registry import detector

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rules.context import FunctionContext


@detector("unbounded_loop", scope="local", requires=("loop-bound",))
def unbounded_loop(ctx: FunctionContext) -> Iterator[Hit]:
    """Loops over storage arrays without a provable per-call cap.

    A bound is never proven unbounded statically, so hits are suspected.
    """
    for loop in ctx.facts.of_kind(LoopBound):
        if loop.bound_kind != "state_length" or loop.capped:
            continue
        yield Hit(
            function=ctx.name,
            span=loop.span,
            message=(
                f"Loop in {ctx.name} iterates up to {loop.variable}.length, "
                "which grows without bound"
            ),
            evidence=(loop,),
            confidence=Confidence.SUSPECTED,
        )
