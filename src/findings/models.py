"""Finding schema shared by the engine, suppressions and reports."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from contract.formats import build_fingerprint
from contract.models import SourceSpan


class Severity(str, Enum):
    """Finding severity, ordered ``info < low < medium < high < critical``."""

    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def lowered(self) -> Severity:
        """One level lower, bottoming out at ``info``."""
        return _SEVERITY_ORDER[max(self.rank - 1, 0)]

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank


_SEVERITY_ORDER = (
    Severity.INFO,
    Severity.LOW,
    Severity.MEDIUM,
    Severity.HIGH,
    Severity.CRITICAL,
)


class Confidence(str, Enum):
    """Whether a finding is certain or heuristic."""

    PROVEN = "proven"
    SUSPECTED = "suspected"


class Finding(BaseModel):
    """A reported rule violation. Immutable once emitted."""

    model_config = ConfigDict(frozen=True)

    rule_id: str = Field(description="Finding id used for dedup (rule group)")
    detector: str = Field(description="Id of the rule that produced the finding")
    title: str
    contract: str
    function: str | None = None
    location: SourceSpan
    severity: Severity
    confidence: Confidence = Confidence.PROVEN
    message: str
    evidence: tuple[str, ...] = ()

    @property
    def fingerprint(self) -> str:
        return build_fingerprint(
            self.rule_id,
            self.contract,
            self.function,
            self.location.path,
            self.message,
        )

    def dedup_key(self) -> tuple[str, str, str, SourceSpan]:
        return (self.rule_id, self.contract, self.function or "", self.location)

    def sort_key(self) -> tuple:
        """Severity descending, then contract, function, location."""
        return (
            -self.severity.rank,
            self.contract,
            self.function or "",
            self.location.path,
            self.location.start_line,
            self.location.start_col,
            self.location.end_line,
            self.location.end_col,
            self.rule_id,
            self.message,
        )

    def to_dict(self) -> dict[str, object]:
        payload = self.model_dump(mode="json")
        payload["fingerprint"] = self.fingerprint
        return payload


def sort_findings(findings) -> list[Finding]:
    return sorted(findings, key=Finding.sort_key)


__all__ = ["Confidence", "Finding", "Severity", "sort_findings"]
