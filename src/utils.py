"""Shared utilities for auditmap-core."""

from __future__ import annotations

from pathlib import Path


def to_posix(file_path: str | Path) -> str:
    """Normalize a path to the forward-slash form used in reports.

    Args:
        file_path: Relative file path (e.g., "contracts\\Bank.sol" or Path object)

    Returns:
        Posix path without empty or "." segments (e.g., "contracts/Bank.sol")

    Examples:
        >>> to_posix("contracts\\\\Bank.sol")
        'contracts/Bank.sol'
        >>> to_posix("./build//Bank.json")
        'build/Bank.json'
        >>> to_posix(Path("a/b.json"))
        'a/b.json'
    """
    path_str = file_path.as_posix() if isinstance(file_path, Path) else str(file_path)
    parts = [part for part in path_str.replace("\\", "/").split("/") if part and part != "."]
    return "/".join(parts)


def relative_posix(path: Path, root: Path | None) -> str:
    """Root-relative posix path of ``path``, or its own posix form.

    Paths outside ``root`` keep their full form rather than gaining ``..``
    segments.
    """
    if root is None:
        return to_posix(path)
    try:
        return to_posix(path.resolve().relative_to(root.resolve()))
    except ValueError:
        return to_posix(path)
