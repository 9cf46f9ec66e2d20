"""Stable contract-model surface for auditmap-core.

This module exposes the data model every front-end produces and every layer of
the engine consumes. Treat these exports as the front-end boundary.
"""

from contract.errors import (
    AnalysisTimeout,
    AuditMapError,
    CatalogError,
    DuplicateRuleIdError,
    MalformedInputError,
    RuleExecutionError,
    SuppressionFileError,
)
from contract.formats import (
    IR_FORMAT,
    IR_VERSION,
    REPORT_SCHEMA_VERSION,
    build_fingerprint,
)


def __getattr__(name: str) -> object:
    if name in {
        "CallOp",
        "CfgNode",
        "ContractUnit",
        "ControlFlowGraph",
        "FunctionUnit",
        "Operand",
        "SourceSpan",
        "StateVariable",
    }:
        from contract import models

        return getattr(models, name)

    if name in {"ValidationMessage", "ValidationResult", "validate_unit", "ensure_valid"}:
        from contract import validation

        return getattr(validation, name)

    msg = f"module 'contract' has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = [
    "AnalysisTimeout",
    "AuditMapError",
    "CallOp",
    "CatalogError",
    "CfgNode",
    "ContractUnit",
    "ControlFlowGraph",
    "DuplicateRuleIdError",
    "FunctionUnit",
    "IR_FORMAT",
    "IR_VERSION",
    "MalformedInputError",
    "Operand",
    "REPORT_SCHEMA_VERSION",
    "RuleExecutionError",
    "SourceSpan",
    "StateVariable",
    "SuppressionFileError",
    "ValidationMessage",
    "ValidationResult",
    "build_fingerprint",
    "ensure_valid",
    "validate_unit",
]
