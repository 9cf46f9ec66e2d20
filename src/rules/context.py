"""Evaluation contexts handed to detectors, and what detectors hand back."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from contract.models import SourceSpan
    from facts.kinds import Fact, FunctionInfo
    from facts.snapshot import FactSnapshot
    from findings.models import Confidence, Severity


class Deadline:
    """Cooperative analysis-time budget.

    ``seconds=None`` never expires. The clock is injectable so tests can
    advance time without sleeping.
    """

    def __init__(
        self,
        seconds: float | None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.seconds = seconds
        self._clock = clock
        self._expires_at = None if seconds is None else clock() + seconds

    @classmethod
    def never(cls) -> Deadline:
        return cls(None)

    def expired(self) -> bool:
        return self._expires_at is not None and self._clock() >= self._expires_at

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(self._expires_at - self._clock(), 0.0)


class CancelToken:
    """Run-wide cancellation flag, honored between contract units."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class Hit:
    """One raw detection produced by a detector.

    The engine turns hits into findings by attaching the rule's id, title and
    severity. ``severity`` overrides the rule's severity for this hit only.
    """

    message: str
    function: str | None = None
    span: SourceSpan | None = None
    evidence: tuple[Fact, ...] = ()
    confidence: Confidence | None = None
    severity: Severity | None = None


@dataclass(frozen=True)
class FunctionContext:
    """Facts of a single function, for local rules."""

    contract: str
    function: FunctionInfo
    facts: FactSnapshot
    deadline: Deadline = field(default_factory=Deadline.never)
    params: dict[str, object] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.function.function


@dataclass(frozen=True)
class ContractContext:
    """Full fact snapshot of one contract, for cross-function rules."""

    facts: FactSnapshot
    deadline: Deadline = field(default_factory=Deadline.never)
    params: dict[str, object] = field(default_factory=dict)

    @property
    def contract(self) -> str:
        return self.facts.contract


__all__ = ["CancelToken", "ContractContext", "Deadline", "FunctionContext", "Hit"]
