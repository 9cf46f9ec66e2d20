"""Collapsing duplicate findings across rules."""

from __future__ import annotations

from typing import TYPE_CHECKING

from contract.formats import DIAGNOSTIC_RULE_IDS

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from findings.models import Finding


def deduplicate(findings: Iterable[Finding], order: Mapping[str, int]) -> list[Finding]:
    """Keep one finding per (rule id, contract, function, location).

    The highest severity wins. On a severity tie the finding whose detector
    was registered first wins. Diagnostics are never merged. Output keeps the
    input order of the surviving findings.
    """
    kept: dict[tuple, int] = {}
    result: list[Finding | None] = []
    unknown = len(order)

    for finding in findings:
        if finding.rule_id in DIAGNOSTIC_RULE_IDS:
            result.append(finding)
            continue
        key = finding.dedup_key()
        index = kept.get(key)
        if index is None:
            kept[key] = len(result)
            result.append(finding)
            continue
        current = result[index]
        assert current is not None
        if finding.severity > current.severity or (
            finding.severity == current.severity
            and order.get(finding.detector, unknown) < order.get(current.detector, unknown)
        ):
            result[index] = finding

    return [finding for finding in result if finding is not None]


__all__ = ["deduplicate"]
