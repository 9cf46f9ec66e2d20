"""Applying suppressions and baselines to a finding set."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from contract.formats import DIAGNOSTIC_RULE_IDS, STALE_SUPPRESSION
from contract.models import SourceSpan
from findings.models import Confidence, Finding, Severity
from suppress.models import Suppression

if TYPE_CHECKING:
    from collections.abc import Iterable

BASELINE_ORIGIN = "baseline"


@dataclass(frozen=True)
class SuppressedFinding:
    finding: Finding
    suppression: Suppression

    def to_dict(self) -> dict[str, object]:
        return {
            "finding": self.finding.to_dict(),
            "reason": self.suppression.reason,
            "origin": self.suppression.origin,
            "expires": (
                self.suppression.expires.isoformat()
                if self.suppression.expires
                else None
            ),
        }


@dataclass
class SuppressionOutcome:
    reported: list[Finding] = field(default_factory=list)
    suppressed: list[SuppressedFinding] = field(default_factory=list)
    stale: list[Finding] = field(default_factory=list)


class SuppressionManager:
    """Matches findings against declared suppressions and a baseline.

    Declarations are read-only; matching is a pure function of the finding
    (first matching declaration wins, file declarations before inline ones).
    """

    def __init__(
        self,
        suppressions: Iterable[Suppression] = (),
        baseline: Iterable[str] = (),
    ) -> None:
        self._suppressions: tuple[Suppression, ...] = tuple(suppressions)
        self._baseline: frozenset[str] = frozenset(baseline)

    @property
    def suppressions(self) -> tuple[Suppression, ...]:
        return self._suppressions

    def __len__(self) -> int:
        return len(self._suppressions) + len(self._baseline)

    def match(self, finding: Finding) -> Suppression | None:
        if finding.rule_id in DIAGNOSTIC_RULE_IDS:
            return None
        for suppression in self._suppressions:
            if suppression.matches(finding):
                return suppression
        if finding.fingerprint in self._baseline:
            return Suppression(
                rule=finding.rule_id,
                contract=finding.contract,
                function=finding.function,
                reason="baseline",
                origin=BASELINE_ORIGIN,
            )
        return None

    def is_suppressed(self, finding: Finding) -> bool:
        return self.match(finding) is not None

    def apply(
        self, findings: Iterable[Finding], *, today: dt.date | None = None
    ) -> SuppressionOutcome:
        """Split findings into reported and suppressed.

        Expired suppressions still suppress, and each one that matched adds a
        single ``stale-suppression`` finding to the reported set.
        """
        today = today or dt.date.today()
        outcome = SuppressionOutcome()
        stale: dict[Suppression, Finding] = {}
        for finding in findings:
            suppression = self.match(finding)
            if suppression is None:
                outcome.reported.append(finding)
                continue
            outcome.suppressed.append(SuppressedFinding(finding, suppression))
            if suppression.expired(today) and suppression not in stale:
                stale[suppression] = _stale_finding(suppression, finding)

        outcome.stale = list(stale.values())
        outcome.reported.extend(outcome.stale)
        return outcome


def _stale_finding(suppression: Suppression, matched: Finding) -> Finding:
    if suppression.path is not None and suppression.lines is not None:
        location = SourceSpan(
            path=suppression.path,
            start_line=suppression.lines[0],
            start_col=1,
            end_line=suppression.lines[1],
            end_col=1,
        )
    else:
        location = matched.location
    return Finding(
        rule_id=STALE_SUPPRESSION,
        detector=STALE_SUPPRESSION,
        title="Stale suppression",
        contract=matched.contract,
        function=matched.function,
        location=location,
        severity=Severity.INFO,
        confidence=Confidence.PROVEN,
        message=(
            f"Suppression of {suppression.rule} ({suppression.origin}) expired on "
            f"{suppression.expires} but still hides findings"
        ),
        evidence=(f"reason={suppression.reason}",) if suppression.reason else (),
    )


__all__ = [
    "BASELINE_ORIGIN",
    "SuppressedFinding",
    "SuppressionManager",
    "SuppressionOutcome",
]
