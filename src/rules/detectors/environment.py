"""Detectors for transaction and block environment misuse."""

from __future__ import annotations

from typing import TYPE_CHECKING

from facts.kinds import EnvironmentRead, UsesTxOrigin
from rules.context import Hit
from rules.registry import detector

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rules.context import FunctionContext

_SOURCE_LABELS = {
    "tx_origin": "tx.origin",
    "block_timestamp": "block.timestamp",
    "block_number": "block.number",
    "blockhash": "blockhash",
    "prevrandao": "block.prevrandao",
}


@detector("tx_origin_auth", scope="local", requires=("uses-tx-origin",))
def tx_origin_auth(ctx: FunctionContext) -> Iterator[Hit]:
    for use in ctx.facts.of_kind(UsesTxOrigin):
        if use.in_guard:
            yield Hit(
                function=ctx.name,
                span=use.span,
                message=f"{ctx.name} authorizes the caller with tx.origin",
                evidence=(use,),
            )


@detector("timestamp_dependence", scope="local", requires=("environment-read",))
def timestamp_dependence(ctx: FunctionContext) -> Iterator[Hit]:
    for read in ctx.facts.of_kind(EnvironmentRead):
        if read.in_guard and read.source in {"block_timestamp", "block_number"}:
            yield Hit(
                function=ctx.name,
                span=read.span,
                message=(
                    f"Condition in {ctx.name} depends on "
                    f"{_SOURCE_LABELS[read.source]}, which block producers influence"
                ),
                evidence=(read,),
            )


@detector("weak_randomness", scope="local", requires=("environment-read",))
def weak_randomness(ctx: FunctionContext) -> Iterator[Hit]:
    for read in ctx.facts.of_kind(EnvironmentRead):
        if read.in_hash:
            yield Hit(
                function=ctx.name,
                span=read.span,
                message=(
                    f"{ctx.name} hashes {_SOURCE_LABELS.get(read.source, read.source)} "
                    "as a source of randomness"
                ),
                evidence=(read,),
            )
