"""Structural validation of contract units."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from contract.errors import MalformedInputError
from contract.models import ReadOp, WriteOp

if TYPE_CHECKING:
    from contract.models import ContractUnit, FunctionUnit


@dataclass(frozen=True)
class ValidationMessage:
    node_path: str
    message: str

    def location(self) -> str:
        return self.node_path or "<unit>"

    def to_dict(self) -> dict[str, object]:
        return {"node_path": self.node_path, "message": self.message}


@dataclass
class ValidationResult:
    errors: list[ValidationMessage] = field(default_factory=list)
    warnings: list[ValidationMessage] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def validate_unit(unit: ContractUnit) -> ValidationResult:
    """Check the structural invariants of a contract unit.

    Errors describe problems that make the unit unanalyzable (dangling CFG
    edges, duplicate node ids, writes to undeclared state). Warnings describe
    gaps that only reduce precision, such as an unresolved modifier.
    """
    result = ValidationResult()

    if not unit.name:
        result.errors.append(ValidationMessage("name", "Contract name is empty."))

    seen_variables: set[str] = set()
    for index, variable in enumerate(unit.state_variables):
        if variable.name in seen_variables:
            result.errors.append(
                ValidationMessage(
                    f"{unit.name}.state_variables[{index}]",
                    f"Duplicate state variable '{variable.name}'.",
                )
            )
        seen_variables.add(variable.name)

    modifier_names = {modifier.name for modifier in unit.modifiers}
    for index, modifier in enumerate(unit.modifiers):
        if modifier.kind != "modifier":
            result.errors.append(
                ValidationMessage(
                    f"{unit.name}.modifiers[{index}].kind",
                    f"Expected kind 'modifier', got '{modifier.kind}'.",
                )
            )
        _validate_function(
            unit,
            modifier,
            f"{unit.name}.modifiers[{index}]",
            seen_variables,
            result,
        )

    for index, function in enumerate(unit.functions):
        base = f"{unit.name}.functions[{index}]"
        if function.kind == "modifier":
            result.errors.append(
                ValidationMessage(
                    f"{base}.kind", "Modifiers must be listed under 'modifiers'."
                )
            )
        for position, modifier in enumerate(function.modifiers):
            if modifier not in modifier_names:
                result.warnings.append(
                    ValidationMessage(
                        f"{base}.modifiers[{position}]",
                        f"Modifier '{modifier}' is not declared in this unit.",
                    )
                )
        _validate_function(unit, function, base, seen_variables, result)

    return result


def _validate_function(
    unit: ContractUnit,
    function: FunctionUnit,
    base: str,
    state_names: set[str],
    result: ValidationResult,
) -> None:
    cfg = function.cfg
    if not cfg.nodes:
        return

    ids: set[int] = set()
    for index, node in enumerate(cfg.nodes):
        if node.id in ids:
            result.errors.append(
                ValidationMessage(
                    f"{base}.cfg.nodes[{index}].id",
                    f"Duplicate CFG node id {node.id}.",
                )
            )
        ids.add(node.id)

    if cfg.entry not in ids:
        result.errors.append(
            ValidationMessage(
                f"{base}.cfg.entry", f"Entry node {cfg.entry} does not exist."
            )
        )

    for index, node in enumerate(cfg.nodes):
        node_path = f"{base}.cfg.nodes[{index}]"
        for position, successor in enumerate(node.successors):
            if successor not in ids:
                result.errors.append(
                    ValidationMessage(
                        f"{node_path}.successors[{position}]",
                        f"Successor {successor} does not exist.",
                    )
                )
        for position, op in enumerate(node.ops):
            if isinstance(op, (ReadOp, WriteOp)) and op.variable not in state_names:
                result.errors.append(
                    ValidationMessage(
                        f"{node_path}.ops[{position}].variable",
                        f"State variable '{op.variable}' is not declared in "
                        f"'{unit.name}'.",
                    )
                )


def ensure_valid(unit: ContractUnit) -> ContractUnit:
    """Return ``unit`` unchanged, or raise for its first structural error."""
    result = validate_unit(unit)
    if result.errors:
        first = result.errors[0]
        raise MalformedInputError(first.message, first.node_path)
    return unit


__all__ = [
    "ValidationMessage",
    "ValidationResult",
    "ensure_valid",
    "validate_unit",
]
