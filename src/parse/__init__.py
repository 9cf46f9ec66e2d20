"""Front-end dialects turning parsed-contract JSON into contract units."""

from __future__ import annotations

from typing import TYPE_CHECKING

from parse import native, solc_ast  # noqa: F401  (registers the built-in dialects)
from parse.dialects import (
    DIALECTS,
    Dialect,
    LoadedUnit,
    LoadRequest,
    detect_dialect,
    load_document,
    load_file,
    register_dialect,
)

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path


def load_units(paths: Iterable[Path], root: Path | None = None) -> list[LoadedUnit]:
    """Load every input file, in the given order."""
    loaded: list[LoadedUnit] = []
    for path in paths:
        loaded.extend(load_file(path, root))
    return loaded


__all__ = [
    "DIALECTS",
    "Dialect",
    "LoadRequest",
    "LoadedUnit",
    "detect_dialect",
    "load_document",
    "load_file",
    "load_units",
    "register_dialect",
]
