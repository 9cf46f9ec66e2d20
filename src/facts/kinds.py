"""Fact definitions and registry.

Facts are the only input rules may read. Each fact kind is a frozen dataclass
registered under a stable kind identifier; the identifiers are what rule
catalogs list under ``requires``.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Callable, ClassVar, TypeVar

if TYPE_CHECKING:
    from contract.models import SourceSpan


class UnregisteredFactError(Exception):
    """Raised when a fact kind identifier is unknown."""


@dataclass(frozen=True)
class Fact:
    """Base class for all facts."""

    kind: ClassVar[str] = "fact"

    @property
    def scope_function(self) -> str | None:
        """Function (or modifier) the fact belongs to, if any."""
        return getattr(self, "function", None)

    @property
    def location(self) -> SourceSpan | None:
        return getattr(self, "span", None)

    def describe(self) -> str:
        """Render ``kind(field=value, ...)`` without spans, for evidence."""
        parts = []
        for item in fields(self):
            if item.name.endswith("span"):
                continue
            value = getattr(self, item.name)
            if value is None or value == ():
                continue
            if isinstance(value, tuple):
                value = "[" + ", ".join(str(v) for v in value) + "]"
            parts.append(f"{item.name}={value}")
        return f"{self.kind}(" + ", ".join(parts) + ")"


FACT_KINDS: dict[str, type[Fact]] = {}

F = TypeVar("F", bound=type[Fact])


def fact_kind(name: str) -> Callable[[F], F]:
    """Register a fact class under ``name``."""

    def decorator(cls: F) -> F:
        if name in FACT_KINDS:
            msg = f"Fact kind '{name}' already registered"
            raise ValueError(msg)
        cls.kind = name
        FACT_KINDS[name] = cls
        return cls

    return decorator


def require_known_kinds(kinds: tuple[str, ...] | frozenset[str]) -> None:
    unknown = sorted(set(kinds) - FACT_KINDS.keys())
    if unknown:
        msg = f"Unknown fact kind(s): {', '.join(unknown)}"
        raise UnregisteredFactError(msg)


# =============================================================================
# Contract scope
# =============================================================================


@fact_kind("contract-info")
@dataclass(frozen=True)
class ContractInfo(Fact):
    contract: str
    contract_kind: str
    pragma: str | None = None
    inherits: tuple[str, ...] = ()
    span: SourceSpan | None = None


@fact_kind("state-variable")
@dataclass(frozen=True)
class StateVariableInfo(Fact):
    variable: str
    visibility: str
    type_name: str
    constant: bool = False
    initialized: bool = False
    span: SourceSpan | None = None


@fact_kind("reentrancy-lock")
@dataclass(frozen=True)
class ReentrancyLock(Fact):
    """A modifier that serializes entry through a state flag."""

    modifier: str
    variable: str | None = None
    span: SourceSpan | None = None


# =============================================================================
# Function scope
# =============================================================================


@fact_kind("function-info")
@dataclass(frozen=True)
class FunctionInfo(Fact):
    function: str
    function_kind: str
    visibility: str
    mutability: str
    modifiers: tuple[str, ...] = ()
    parameters: tuple[str, ...] = ()
    span: SourceSpan | None = None

    @property
    def is_entry_point(self) -> bool:
        if self.function_kind in {"modifier", "constructor"}:
            return False
        return self.visibility in {"public", "external"}


@fact_kind("modifier-applied")
@dataclass(frozen=True)
class ModifierApplied(Fact):
    function: str
    modifier: str
    resolved: bool
    position: int = 0


@fact_kind("external-call")
@dataclass(frozen=True)
class ExternalCall(Fact):
    function: str
    node: int
    index: int
    call_kind: str
    target_kind: str
    target_name: str | None = None
    value_transfer: bool = False
    checked: bool = True
    in_loop: bool = False
    span: SourceSpan | None = None


@fact_kind("state-read")
@dataclass(frozen=True)
class StateRead(Fact):
    function: str
    variable: str
    node: int
    index: int
    in_guard: bool = False
    assigns: str | None = None
    span: SourceSpan | None = None


@fact_kind("state-write")
@dataclass(frozen=True)
class StateWrite(Fact):
    function: str
    variable: str
    node: int
    index: int
    span: SourceSpan | None = None


@fact_kind("guard")
@dataclass(frozen=True)
class Guard(Fact):
    function: str
    node: int
    guard_kind: str
    operands: tuple[str, ...] = ()
    span: SourceSpan | None = None


@fact_kind("access-check")
@dataclass(frozen=True)
class AccessCheck(Fact):
    """A guard comparing the caller identity against something.

    ``against`` is ``state`` when a state variable (or constant) takes part
    in the comparison, ``parameter`` when only parameters do, else ``other``.
    """

    function: str
    node: int
    against: str
    variables: tuple[str, ...] = ()
    via_tx_origin: bool = False
    span: SourceSpan | None = None


@fact_kind("uses-tx-origin")
@dataclass(frozen=True)
class UsesTxOrigin(Fact):
    function: str
    node: int
    in_guard: bool = False
    span: SourceSpan | None = None


@fact_kind("environment-read")
@dataclass(frozen=True)
class EnvironmentRead(Fact):
    function: str
    node: int
    source: str
    in_guard: bool = False
    in_hash: bool = False
    span: SourceSpan | None = None


@fact_kind("internal-call")
@dataclass(frozen=True)
class InternalCall(Fact):
    function: str
    callee: str
    node: int
    span: SourceSpan | None = None


@fact_kind("writes-after-external-call")
@dataclass(frozen=True)
class WritesAfterExternalCall(Fact):
    """A state write reachable after an external call in the same function.

    ``read_in_check`` records whether the variable was read before the call
    in a guard or in a value flowing into the call. ``complete`` is False
    when the path search ran out of budget.
    """

    function: str
    variable: str
    call_node: int
    write_node: int
    call_kind: str
    target_kind: str
    value_transfer: bool = False
    read_in_check: bool = False
    complete: bool = True
    call_span: SourceSpan | None = None
    write_span: SourceSpan | None = None

    @property
    def location(self) -> SourceSpan | None:
        return self.call_span


@fact_kind("loop-bound")
@dataclass(frozen=True)
class LoopBound(Fact):
    """How a loop's termination condition is bounded.

    ``bound_kind`` is one of ``literal``, ``state_length``, ``parameter``,
    ``local_length`` or ``unknown``.
    """

    function: str
    node: int
    bound_kind: str
    variable: str | None = None
    capped: bool = False
    span: SourceSpan | None = None


__all__ = [
    "AccessCheck",
    "ContractInfo",
    "EnvironmentRead",
    "ExternalCall",
    "FACT_KINDS",
    "Fact",
    "FunctionInfo",
    "Guard",
    "InternalCall",
    "LoopBound",
    "ModifierApplied",
    "ReentrancyLock",
    "StateRead",
    "StateVariableInfo",
    "StateWrite",
    "UnregisteredFactError",
    "UsesTxOrigin",
    "WritesAfterExternalCall",
    "fact_kind",
    "require_known_kinds",
]
