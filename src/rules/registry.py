"""Rule records, the detector table and the rule registry."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Callable, Iterable, Literal

from contract.errors import DuplicateRuleIdError
from facts.kinds import require_known_kinds
from findings.models import Severity

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rules.context import ContractContext, FunctionContext, Hit

Scope = Literal["local", "cross-function"]
DetectorFn = Callable[..., Iterable["Hit"]]


@dataclass(frozen=True)
class Detector:
    """A named, pure evaluation function."""

    name: str
    scope: Scope
    fn: DetectorFn
    requires: tuple[str, ...] = ()


# Flat table of built-in detectors, keyed by name.
DETECTORS: dict[str, Detector] = {}


def detector(
    name: str, *, scope: Scope, requires: tuple[str, ...] = ()
) -> Callable[[DetectorFn], DetectorFn]:
    """Register a built-in detector under ``name``."""

    def decorator(fn: DetectorFn) -> DetectorFn:
        if name in DETECTORS:
            msg = f"Detector '{name}' already registered"
            raise ValueError(msg)
        DETECTORS[name] = Detector(name=name, scope=scope, fn=fn, requires=requires)
        return fn

    return decorator


@dataclass(frozen=True)
class Rule:
    """A catalog entry bound to its detector.

    Rules are stateless: ``evaluate`` only reads the context it is given.
    """

    id: str
    title: str
    severity: Severity
    requires: frozenset[str]
    scope: Scope
    detector: DetectorFn
    group: str | None = None
    description: str = ""
    params: dict[str, object] = field(default_factory=dict, hash=False, compare=False)
    order: int = -1

    @property
    def finding_id(self) -> str:
        return self.group or self.id

    @property
    def is_local(self) -> bool:
        return self.scope == "local"

    def evaluate(self, context: FunctionContext | ContractContext) -> list[Hit]:
        return list(self.detector(context))


class RuleRegistry:
    """Flat table of rules keyed by id, in registration order."""

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._rules: dict[str, Rule] = {}
        for rule in rules:
            self.register(rule)

    def register(self, rule: Rule) -> Rule:
        """Add ``rule``; its ``order`` is set to the registration index.

        Raises:
            DuplicateRuleIdError: If a rule with the same id is present.
        """
        if rule.id in self._rules:
            raise DuplicateRuleIdError(rule.id)
        require_known_kinds(frozenset(rule.requires))
        registered = replace(rule, order=len(self._rules))
        self._rules[rule.id] = registered
        return registered

    def get(self, rule_id: str) -> Rule:
        return self._rules[rule_id]

    def rules(self) -> tuple[Rule, ...]:
        return tuple(self._rules.values())

    def rules_requiring(self, *fact_kinds: str) -> tuple[Rule, ...]:
        """Rules whose required fact kinds intersect ``fact_kinds``."""
        wanted = set(fact_kinds)
        return tuple(rule for rule in self._rules.values() if rule.requires & wanted)

    def local_rules(self) -> tuple[Rule, ...]:
        return tuple(rule for rule in self._rules.values() if rule.is_local)

    def cross_function_rules(self) -> tuple[Rule, ...]:
        return tuple(rule for rule in self._rules.values() if not rule.is_local)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)


__all__ = [
    "DETECTORS",
    "Detector",
    "DetectorFn",
    "Rule",
    "RuleRegistry",
    "Scope",
    "detector",
]
