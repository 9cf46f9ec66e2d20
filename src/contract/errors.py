"""Error taxonomy shared by every auditmap layer."""

from __future__ import annotations


class AuditMapError(Exception):
    """Base class for auditmap errors."""


class MalformedInputError(AuditMapError):
    """Raised when a contract representation cannot be analyzed.

    ``node_path`` is a dotted path to the offending element, e.g.
    ``Bank.functions[1].cfg.nodes[3].successors[0]``.
    """

    def __init__(self, message: str, node_path: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.node_path = node_path

    def __str__(self) -> str:
        if not self.node_path:
            return self.message
        return f"{self.node_path}: {self.message}"


class DuplicateRuleIdError(AuditMapError):
    """Raised when a rule id is registered twice."""

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Rule id '{rule_id}' is already registered")
        self.rule_id = rule_id


class CatalogError(AuditMapError):
    """Raised when a rule catalog cannot be loaded."""


class RuleExecutionError(AuditMapError):
    """Wraps an unexpected exception raised by a detector."""

    def __init__(self, rule_id: str, cause: BaseException) -> None:
        super().__init__(f"Rule '{rule_id}' failed: {type(cause).__name__}: {cause}")
        self.rule_id = rule_id
        self.cause = cause


class AnalysisTimeout(AuditMapError):
    """Raised when a contract exceeds its analysis-time budget."""

    def __init__(self, contract: str, budget: float) -> None:
        super().__init__(
            f"Analysis of '{contract}' exceeded its budget of {budget:g}s"
        )
        self.contract = contract
        self.budget = budget


class SuppressionFileError(AuditMapError):
    """Raised when a suppression or baseline file cannot be parsed."""


__all__ = [
    "AnalysisTimeout",
    "AuditMapError",
    "CatalogError",
    "DuplicateRuleIdError",
    "MalformedInputError",
    "RuleExecutionError",
    "SuppressionFileError",
]
