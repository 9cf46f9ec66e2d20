"""The analysis engine: schedules rules over fact snapshots.

One contract is one task. Inside a task, local rules run per function first
and cross-function rules run once afterwards on the full snapshot; that is
the only ordering barrier, and it is per contract. Tasks share no mutable
state, so they run on a thread pool and are merged in input order.
"""

from __future__ import annotations

import datetime as dt
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from loguru import logger

from contract.errors import AnalysisTimeout, MalformedInputError, RuleExecutionError
from contract.formats import (
    ANALYSIS_CANCELLED,
    ANALYSIS_TIMEOUT,
    MALFORMED_INPUT,
    RULE_EXECUTION_ERROR,
)
from contract.models import ContractUnit, SourceSpan
from engine.dedup import deduplicate
from facts.extractor import DEFAULT_PATH_BUDGET, FactExtractor
from findings.models import Confidence, Finding, Severity, sort_findings
from parse.dialects import LoadedUnit
from rules.context import CancelToken, ContractContext, Deadline, FunctionContext
from suppress.manager import SuppressionManager

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from facts.snapshot import FactSnapshot
    from rules.context import Hit
    from rules.registry import Rule, RuleRegistry
    from suppress.manager import SuppressedFinding


@dataclass
class AnalysisResult:
    """Outcome of one run."""

    findings: list[Finding] = field(default_factory=list)
    suppressed: list[SuppressedFinding] = field(default_factory=list)
    contracts: int = 0
    cancelled: bool = False

    def at_or_above(self, floor: Severity) -> list[Finding]:
        return [finding for finding in self.findings if finding.severity >= floor]

    def counts(self) -> dict[str, int]:
        counts = {severity.value: 0 for severity in Severity}
        for finding in self.findings:
            counts[finding.severity.value] += 1
        return counts


def _unit_span(unit: ContractUnit | LoadedUnit) -> SourceSpan:
    if isinstance(unit, ContractUnit) and unit.span is not None:
        return unit.span
    path = unit.path if isinstance(unit, ContractUnit) else unit.origin
    return SourceSpan(path=path or unit.name, start_line=1, start_col=1, end_line=1, end_col=1)


def _diagnostic(
    rule_id: str,
    *,
    title: str,
    contract: str,
    location: SourceSpan,
    message: str,
    detector: str | None = None,
) -> Finding:
    return Finding(
        rule_id=rule_id,
        detector=detector or rule_id,
        title=title,
        contract=contract,
        location=location,
        severity=Severity.INFO,
        confidence=Confidence.PROVEN,
        message=message,
    )


class AnalysisEngine:
    """Evaluates every registered rule against every contract.

    Args:
        registry: Rules to evaluate
        extractor: Fact extractor (default: one with the default path budget)
        suppressions: Suppressions and baseline applied after dedup
        jobs: Worker threads; 1 runs contracts sequentially
        contract_timeout: Per-contract analysis budget in seconds, or None
        clock: Monotonic clock used for deadlines
        today: Date used to decide suppression expiry
    """

    def __init__(
        self,
        registry: RuleRegistry,
        *,
        extractor: FactExtractor | None = None,
        suppressions: SuppressionManager | None = None,
        jobs: int = 1,
        contract_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        today: dt.date | None = None,
    ) -> None:
        self.registry = registry
        self.extractor = extractor or FactExtractor(path_budget=DEFAULT_PATH_BUDGET)
        self.suppressions = suppressions or SuppressionManager()
        self.jobs = max(jobs, 1)
        self.contract_timeout = contract_timeout
        self.clock = clock
        self.today = today

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def analyze(
        self,
        units: Iterable[ContractUnit | LoadedUnit],
        *,
        cancel: CancelToken | None = None,
    ) -> AnalysisResult:
        """Analyze a batch of units.

        Unit-scoped problems (malformed input, crashing rules, timeouts,
        cancellation) become ``info`` findings; they never abort the batch.
        """
        batch = list(units)
        token = cancel or CancelToken()

        if self.jobs == 1 or len(batch) <= 1:
            per_unit = [self._analyze_one(unit, token) for unit in batch]
        else:
            with ThreadPoolExecutor(max_workers=self.jobs) as pool:
                futures = [pool.submit(self._analyze_one, unit, token) for unit in batch]
                per_unit = [future.result() for future in futures]

        raw = [finding for findings in per_unit for finding in findings]
        merged = deduplicate(raw, self._rule_order())
        outcome = self.suppressions.apply(merged, today=self.today)

        result = AnalysisResult(
            findings=sort_findings(outcome.reported),
            suppressed=sorted(outcome.suppressed, key=lambda s: s.finding.sort_key()),
            contracts=len(batch),
            cancelled=token.cancelled,
        )
        logger.info(
            f"Analyzed {result.contracts} unit(s): {len(result.findings)} finding(s), "
            f"{len(result.suppressed)} suppressed"
        )
        return result

    def _rule_order(self) -> dict[str, int]:
        return {rule.id: rule.order for rule in self.registry.rules()}

    def _analyze_one(self, unit: ContractUnit | LoadedUnit, token: CancelToken) -> list[Finding]:
        if token.cancelled:
            logger.warning(f"Run cancelled before {unit.name}")
            return [
                _diagnostic(
                    ANALYSIS_CANCELLED,
                    title="Analysis cancelled",
                    contract=unit.name,
                    location=_unit_span(unit),
                    message=f"Run was cancelled before {unit.name} was analyzed",
                )
            ]

        if isinstance(unit, LoadedUnit):
            if unit.error is not None:
                return [self._malformed(unit, unit.error)]
            if unit.unit is None:
                return [
                    self._malformed(unit, MalformedInputError("Front-end produced no unit"))
                ]
            unit = unit.unit

        return self.analyze_unit(unit)

    def _malformed(
        self, unit: ContractUnit | LoadedUnit, error: MalformedInputError
    ) -> Finding:
        logger.warning(f"Skipping malformed unit {unit.name}: {error}")
        return _diagnostic(
            MALFORMED_INPUT,
            title="Malformed input",
            contract=unit.name,
            location=_unit_span(unit),
            message=f"Cannot analyze {unit.name}: {error}",
        )

    # ------------------------------------------------------------------
    # One contract
    # ------------------------------------------------------------------

    def analyze_unit(self, unit: ContractUnit) -> list[Finding]:
        """Raw findings for one contract, before dedup and suppression."""
        deadline = Deadline(self.contract_timeout, clock=self.clock)
        try:
            snapshot = self.extractor.extract(unit)
        except MalformedInputError as exc:
            return [self._malformed(unit, exc)]
        except Exception as exc:
            logger.opt(exception=exc).error(f"Fact extraction failed for {unit.name}")
            return [
                self._malformed(
                    unit,
                    MalformedInputError(
                        f"fact extraction failed ({type(exc).__name__}: {exc})"
                    ),
                )
            ]

        findings: list[Finding] = []
        failed: set[str] = set()
        stopped = False

        local_rules = self.registry.local_rules()
        for info in snapshot.functions():
            function_facts = snapshot.for_function(info.function)
            for rule in self._applicable(local_rules, function_facts.kinds()):
                if rule.id in failed:
                    continue
                if deadline.expired():
                    stopped = True
                    break
                context = FunctionContext(
                    contract=unit.name,
                    function=info,
                    facts=function_facts,
                    deadline=deadline,
                    params=rule.params,
                )
                findings.extend(self._run(rule, context, snapshot, failed))
            if stopped:
                break

        if not stopped:
            context_kinds = snapshot.kinds()
            for rule in self._applicable(self.registry.cross_function_rules(), context_kinds):
                if deadline.expired():
                    stopped = True
                    break
                context = ContractContext(facts=snapshot, deadline=deadline, params=rule.params)
                findings.extend(self._run(rule, context, snapshot, failed))

        if stopped or deadline.expired():
            timeout = AnalysisTimeout(unit.name, deadline.seconds or 0.0)
            logger.warning(str(timeout))
            findings.append(
                _diagnostic(
                    ANALYSIS_TIMEOUT,
                    title="Analysis timeout",
                    contract=unit.name,
                    location=_unit_span(unit),
                    message=f"{timeout}; results for this contract are partial",
                )
            )

        logger.debug(f"{unit.name}: {len(findings)} raw finding(s)")
        return findings

    def _applicable(self, rules: Sequence[Rule], present: frozenset[str]) -> list[Rule]:
        """Rules with no requirements, or whose required kinds are present."""
        relevant = {rule.id for rule in self.registry.rules_requiring(*present)}
        return [rule for rule in rules if not rule.requires or rule.id in relevant]

    def _run(
        self,
        rule: Rule,
        context: FunctionContext | ContractContext,
        snapshot: FactSnapshot,
        failed: set[str],
    ) -> list[Finding]:
        try:
            hits = rule.evaluate(context)
        except Exception as exc:
            error = RuleExecutionError(rule.id, exc)
            logger.error(f"{snapshot.contract}: {error}")
            failed.add(rule.id)
            return [
                _diagnostic(
                    RULE_EXECUTION_ERROR,
                    title="Rule execution error",
                    contract=snapshot.contract,
                    location=snapshot.span or _fallback_span(snapshot),
                    message=str(error),
                    detector=rule.id,
                )
            ]

        default_function = (
            context.name if isinstance(context, FunctionContext) else None
        )
        return [self._to_finding(rule, hit, snapshot, default_function) for hit in hits]

    def _to_finding(
        self,
        rule: Rule,
        hit: Hit,
        snapshot: FactSnapshot,
        default_function: str | None,
    ) -> Finding:
        function = hit.function or default_function
        location = hit.span
        if location is None and function is not None:
            info = snapshot.function_info(function)
            location = info.span if info is not None else None
        if location is None:
            location = snapshot.span or _fallback_span(snapshot)

        return Finding(
            rule_id=rule.finding_id,
            detector=rule.id,
            title=rule.title,
            contract=snapshot.contract,
            function=function,
            location=location,
            severity=hit.severity or rule.severity,
            confidence=hit.confidence or Confidence.PROVEN,
            message=hit.message,
            evidence=tuple(fact.describe() for fact in hit.evidence),
        )


def _fallback_span(snapshot: FactSnapshot) -> SourceSpan:
    return SourceSpan(
        path=snapshot.path or snapshot.contract,
        start_line=1,
        start_col=1,
        end_line=1,
        end_col=1,
    )


__all__ = ["AnalysisEngine", "AnalysisResult"]
