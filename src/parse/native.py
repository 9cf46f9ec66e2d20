"""Loader for auditmap's native contract IR documents."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from contract.errors import MalformedInputError
from contract.formats import IR_FORMAT, IR_VERSION
from contract.models import ContractUnit
from parse.dialects import (
    RESOLVES_CALLS,
    RESOLVES_STATE_VARS,
    TRAVERSES_FUNCTIONS,
    Dialect,
    LoadedUnit,
    LoadRequest,
    register_dialect,
)


def _error_path(prefix: str, exc: ValidationError) -> str:
    first = exc.errors()[0] if exc.errors() else {}
    parts = [prefix]
    for part in first.get("loc", ()):
        if isinstance(part, int):
            parts[-1] = f"{parts[-1]}[{part}]"
        else:
            parts.append(str(part))
    return ".".join(parts)


def sniff(document: Any) -> bool:
    return isinstance(document, dict) and document.get("format") == IR_FORMAT


def load(document: dict[str, Any], request: LoadRequest) -> list[LoadedUnit]:
    origin = request.origin
    version = document.get("version")
    if version != IR_VERSION:
        error = MalformedInputError(
            f"Unsupported {IR_FORMAT} version {version!r} (expected {IR_VERSION})",
            "version",
        )
        return [LoadedUnit(name=origin, origin=origin, error=error)]

    contracts = document.get("contracts")
    if not isinstance(contracts, list):
        error = MalformedInputError("'contracts' must be a list", "contracts")
        return [LoadedUnit(name=origin, origin=origin, error=error)]

    loaded: list[LoadedUnit] = []
    for index, raw in enumerate(contracts):
        name = raw.get("name") if isinstance(raw, dict) else None
        name = name or f"{origin}#{index}"
        try:
            unit = ContractUnit.model_validate(raw)
        except ValidationError as exc:
            first = exc.errors()[0]["msg"] if exc.errors() else str(exc)
            error = MalformedInputError(first, _error_path(name, exc))
            loaded.append(LoadedUnit(name=name, origin=origin, error=error))
            continue
        if not unit.path:
            unit = unit.model_copy(update={"path": origin})
        loaded.append(LoadedUnit(name=unit.name, origin=origin, unit=unit))
    return loaded


NATIVE_IR = register_dialect(
    Dialect(
        name=IR_FORMAT,
        capabilities=frozenset({TRAVERSES_FUNCTIONS, RESOLVES_CALLS, RESOLVES_STATE_VARS}),
        sniff=sniff,
        load=load,
    )
)

__all__ = ["NATIVE_IR", "load", "sniff"]
