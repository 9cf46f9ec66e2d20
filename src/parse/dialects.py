"""Front-end dialect registry.

A dialect turns one decoded JSON document into contract units. Dialects are
plain records in a flat table; dispatch picks the first dialect whose
``sniff`` accepts the document.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

import orjson
from loguru import logger

from contract.errors import MalformedInputError
from utils import relative_posix

if TYPE_CHECKING:
    from pathlib import Path

    from contract.models import ContractUnit

TRAVERSES_FUNCTIONS = "traverses-functions"
RESOLVES_CALLS = "resolves-calls"
RESOLVES_STATE_VARS = "resolves-state-vars"
CAPABILITIES = frozenset({TRAVERSES_FUNCTIONS, RESOLVES_CALLS, RESOLVES_STATE_VARS})


@dataclass(frozen=True)
class LoadedUnit:
    """One contract produced by a front-end, or the reason it could not be."""

    name: str
    origin: str
    unit: ContractUnit | None = None
    error: MalformedInputError | None = None

    @property
    def ok(self) -> bool:
        return self.unit is not None and self.error is None


@dataclass(frozen=True)
class LoadRequest:
    """What a dialect receives besides the document itself."""

    origin: str
    root: Path | None = None

    def source_text(self, rel_path: str) -> bytes | None:
        """Raw bytes of a contract source under the root, if present."""
        if self.root is None or not rel_path:
            return None
        candidate = self.root / rel_path
        try:
            return candidate.read_bytes() if candidate.is_file() else None
        except OSError as exc:
            logger.debug(f"Cannot read source {candidate}: {exc}")
            return None


@dataclass(frozen=True)
class Dialect:
    name: str
    capabilities: frozenset[str]
    sniff: Callable[[Any], bool]
    load: Callable[[Any, LoadRequest], list[LoadedUnit]]


DIALECTS: dict[str, Dialect] = {}


def register_dialect(dialect: Dialect) -> Dialect:
    """Add ``dialect`` to the table; names are unique."""
    if dialect.name in DIALECTS:
        msg = f"Dialect '{dialect.name}' is already registered"
        raise ValueError(msg)
    unknown = dialect.capabilities - CAPABILITIES
    if unknown:
        msg = f"Unknown capabilities for dialect '{dialect.name}': {sorted(unknown)}"
        raise ValueError(msg)
    DIALECTS[dialect.name] = dialect
    return dialect


def detect_dialect(document: Any) -> Dialect | None:
    for dialect in DIALECTS.values():
        if dialect.sniff(document):
            return dialect
    return None


def load_document(document: Any, request: LoadRequest) -> list[LoadedUnit]:
    """Dispatch a decoded document to the first dialect that accepts it."""
    dialect = detect_dialect(document)
    if dialect is None:
        error = MalformedInputError("Document matches no known front-end dialect")
        return [LoadedUnit(name=request.origin, origin=request.origin, error=error)]
    logger.debug(f"{request.origin}: loading with dialect {dialect.name}")
    return dialect.load(document, request)


def load_file(path: Path, root: Path | None = None) -> list[LoadedUnit]:
    """Read, decode and convert one input file.

    Failures never raise: an unreadable or non-JSON file becomes a single
    errored ``LoadedUnit``.
    """
    origin = relative_posix(path, root)
    try:
        document = orjson.loads(path.read_bytes())
    except OSError as exc:
        error = MalformedInputError(f"Cannot read input: {exc}")
        return [LoadedUnit(name=origin, origin=origin, error=error)]
    except orjson.JSONDecodeError as exc:
        error = MalformedInputError(f"Input is not valid JSON: {exc}")
        return [LoadedUnit(name=origin, origin=origin, error=error)]
    return load_document(document, LoadRequest(origin=origin, root=root))


__all__ = [
    "CAPABILITIES",
    "DIALECTS",
    "Dialect",
    "LoadRequest",
    "LoadedUnit",
    "RESOLVES_CALLS",
    "RESOLVES_STATE_VARS",
    "TRAVERSES_FUNCTIONS",
    "detect_dialect",
    "load_document",
    "load_file",
    "register_dialect",
]
