"""End-to-end run: discover inputs, build rules and suppressions, analyze."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from contract.formats import SUPPRESSIONS_FILENAME
from engine.analyze import AnalysisEngine, AnalysisResult
from facts.extractor import FactExtractor
from parse import load_units
from rules.catalog import build_registry
from rules.config import AuditMapConfig, ConfigError, load_config, resolve_within_root
from scan.files import find_input_files
from suppress.load import (
    load_baseline,
    load_inline_suppressions,
    load_suppression_file,
)
from suppress.manager import SuppressionManager
from utils import relative_posix

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence
    from pathlib import Path

    from parse.dialects import LoadedUnit
    from rules.context import CancelToken
    from rules.registry import RuleRegistry


@dataclass(frozen=True)
class RunOptions:
    """Command-line overrides; ``None`` keeps the configured value."""

    paths: Sequence[Path] = ()
    catalogs: Sequence[Path] = ()
    baseline: Path | None = None
    suppressions: Path | None = None
    jobs: int | None = None
    contract_timeout: float | None = None
    use_baseline: bool = True
    today: dt.date | None = None


def collect_inputs(root: Path, config: AuditMapConfig, paths: Sequence[Path] = ()) -> list[Path]:
    """Input files for a run, sorted by root-relative path.

    With no ``paths`` the whole root is scanned. Directories are scanned with
    the configured filters; explicit files are taken as given.
    """
    def scan() -> Iterator[Path]:
        return find_input_files(
            root,
            include_patterns=config.include or None,
            exclude_patterns=config.exclude or None,
            nested_gitignore=config.nested_gitignore,
        )

    if not paths:
        return list(scan())

    resolved_root = root.resolve()
    selected: dict[str, Path] = {}
    scanned: list[Path] | None = None
    for raw in paths:
        path = raw.resolve()
        try:
            rel = path.relative_to(resolved_root)
        except ValueError as exc:
            msg = f"Input path '{raw}' is outside the analysis root {root}"
            raise ConfigError(msg) from exc
        if path.is_dir():
            if scanned is None:
                scanned = list(scan())
            for candidate in scanned:
                candidate_path = candidate.resolve()
                if candidate_path == path or path in candidate_path.parents:
                    selected[relative_posix(candidate, root)] = candidate
        elif path.is_file():
            selected[rel.as_posix()] = root / rel
        else:
            msg = f"Input path '{raw}' does not exist"
            raise ConfigError(msg)
    return [selected[key] for key in sorted(selected)]


def build_rules(root: Path, config: AuditMapConfig, extra: Sequence[Path] = ()) -> RuleRegistry:
    catalogs = [resolve_within_root(root, value, label="catalogs") for value in config.catalogs]
    return build_registry(
        [*catalogs, *extra],
        disable=config.disable,
        severity_overrides=config.severity_overrides,
    )


def build_suppressions(
    root: Path,
    config: AuditMapConfig,
    units: Sequence[LoadedUnit],
    options: RunOptions,
) -> SuppressionManager:
    """Suppression file, inline annotations and baseline, in that precedence."""
    suppressions = []

    suppression_path = options.suppressions
    if suppression_path is None and config.suppressions is not None:
        suppression_path = resolve_within_root(root, config.suppressions, label="suppressions")
    if suppression_path is None and (root / SUPPRESSIONS_FILENAME).is_file():
        suppression_path = root / SUPPRESSIONS_FILENAME
    if suppression_path is not None:
        suppressions.extend(load_suppression_file(suppression_path))

    if config.inline_suppressions:
        sources = [loaded.unit.path for loaded in units if loaded.unit is not None]
        suppressions.extend(load_inline_suppressions(root, sources))

    fingerprints: frozenset[str] = frozenset()
    baseline_path = options.baseline
    if baseline_path is None and config.baseline is not None:
        baseline_path = resolve_within_root(root, config.baseline, label="baseline")
    if options.use_baseline and baseline_path is not None:
        if baseline_path.is_file():
            fingerprints = load_baseline(baseline_path)
        else:
            logger.warning(f"Baseline {baseline_path} does not exist; nothing is baselined")

    logger.debug(
        f"{len(suppressions)} suppression(s), {len(fingerprints)} baselined fingerprint(s)"
    )
    return SuppressionManager(suppressions, fingerprints)


def run_analysis(
    root: Path,
    options: RunOptions | None = None,
    *,
    config: AuditMapConfig | None = None,
    cancel: CancelToken | None = None,
) -> AnalysisResult:
    """Analyze every input under ``root``.

    Raises:
        ConfigError: Invalid config or input paths
        CatalogError: Unusable rule catalog
        DuplicateRuleIdError: A rule id declared twice
        SuppressionFileError: Unreadable suppression or baseline file
    """
    options = options or RunOptions()
    if config is None:
        config = load_config(root)

    registry = build_rules(root, config, options.catalogs)
    inputs = collect_inputs(root, config, options.paths)
    logger.debug(f"{len(inputs)} input file(s), {len(registry)} rule(s)")

    units = load_units(inputs, root)
    engine = AnalysisEngine(
        registry,
        extractor=FactExtractor(path_budget=config.path_budget),
        suppressions=build_suppressions(root, config, units, options),
        jobs=options.jobs or config.jobs,
        contract_timeout=(
            options.contract_timeout
            if options.contract_timeout is not None
            else config.contract_timeout
        ),
        today=options.today,
    )
    return engine.analyze(units, cancel=cancel)


__all__ = [
    "RunOptions",
    "build_rules",
    "build_suppressions",
    "collect_inputs",
    "run_analysis",
]
