"""Input discovery for auditmap runs."""

from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatch
from typing import TYPE_CHECKING, cast

from gitignore_parser import parse_gitignore  # type: ignore[import-untyped]

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence
    from pathlib import Path

INPUT_SUFFIXES = (".json",)


@dataclass(frozen=True)
class _InputFilter:
    """Decides which files under an analysis root are contract documents."""

    root: Path
    state_dir: str
    ignored: Callable[[str], bool] | None
    include: Sequence[str]
    exclude: Sequence[str]
    suffixes: tuple[str, ...]

    def relative(self, path: Path) -> str | None:
        # Real files inside the root only.
        if path.is_symlink() or not path.is_file():
            return None
        try:
            path.resolve().relative_to(self.root.resolve())
            return path.relative_to(self.root).as_posix()
        except (OSError, ValueError):
            return None

    def accepts(self, path: Path) -> bool:
        if path.suffix not in self.suffixes:
            return False
        rel = self.relative(path)
        if rel is None:
            return False
        if self.state_dir and rel.split("/", 1)[0] == self.state_dir:
            return False
        if self.ignored is not None and self.ignored(str(path)):
            return False
        if self.include and not any(fnmatch(rel, pat) for pat in self.include):
            return False
        return not any(fnmatch(rel, pat) for pat in self.exclude)


def _gitignore_files(root: Path) -> list[Path]:
    """Every .gitignore under root, root's own first."""
    candidates = {
        path
        for path in root.rglob(".gitignore")
        if path.is_file() and not path.is_symlink()
    }
    return sorted(candidates, key=lambda p: (len(p.parts), p.as_posix()))


def _build_gitignore_matcher(
    root: Path,
    *,
    nested_gitignore: bool,
) -> Callable[[str], bool] | None:
    if not nested_gitignore:
        gitignore_path = root / ".gitignore"
        if gitignore_path.is_file():
            return cast("Callable[[str], bool]", parse_gitignore(gitignore_path))
        return None

    matchers = [parse_gitignore(path) for path in _gitignore_files(root)]
    if not matchers:
        return None

    def matches(path_str: str) -> bool:
        for matcher in matchers:
            try:
                if matcher(path_str):
                    return True
            except ValueError:
                # Paths outside a nested .gitignore's directory.
                continue
        return False

    return matches


def find_input_files(
    directory: Path,
    *,
    state_dir: str = ".auditmap",
    include_patterns: list[str] | None = None,
    exclude_patterns: list[str] | None = None,
    nested_gitignore: bool = False,
    suffixes: tuple[str, ...] = INPUT_SUFFIXES,
) -> Iterator[Path]:
    """Find parsed-contract documents under ``directory``.

    Args:
        directory: Analysis root
        state_dir: Top-level directory holding auditmap's own outputs; skipped
        include_patterns: fnmatch patterns on the root-relative posix path; if
            given, a file must match at least one
        exclude_patterns: fnmatch patterns; matching files are skipped
        nested_gitignore: Compose every .gitignore under the root instead of
            only the root's
        suffixes: File suffixes treated as inputs

    Yields:
        Input paths sorted by root-relative posix path.
    """
    accepts = _InputFilter(
        root=directory,
        state_dir=state_dir,
        ignored=_build_gitignore_matcher(directory, nested_gitignore=nested_gitignore),
        include=include_patterns or (),
        exclude=exclude_patterns or (),
        suffixes=suffixes,
    ).accepts

    yield from sorted(
        filter(accepts, directory.rglob("*")),
        key=lambda p: p.relative_to(directory).as_posix(),
    )


__all__ = ["INPUT_SUFFIXES", "find_input_files"]
