"""Rule catalogs: rules declared as data and bound to detectors at load time."""

from __future__ import annotations

import importlib
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

import tomllib
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from contract.errors import CatalogError, DuplicateRuleIdError
from facts.kinds import FACT_KINDS
from findings.models import Severity
from rules.registry import DETECTORS, Rule, RuleRegistry

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

BUILTIN_CATALOG = Path(__file__).with_name("catalog.toml")


class CatalogEntry(BaseModel):
    """One ``[[rule]]`` table of a catalog file."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    title: str
    severity: Severity
    requires: list[str] = Field(default_factory=list)
    detector: str = Field(
        description="Built-in detector name or 'module:function' plugin path"
    )
    scope: Literal["local", "cross-function"] | None = None
    group: str | None = None
    description: str = ""
    params: dict[str, Any] = Field(default_factory=dict)


class Catalog(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rule: list[CatalogEntry] = Field(default_factory=list)


def _ensure_builtin_detectors() -> None:
    import rules.detectors  # noqa: F401


def _resolve_plugin(entry: CatalogEntry, origin: Path):
    module_name, _, attr = entry.detector.partition(":")
    try:
        module = importlib.import_module(module_name)
        fn = getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        msg = f"{origin}: rule '{entry.id}' detector '{entry.detector}' cannot be imported: {exc}"
        raise CatalogError(msg) from exc
    if not callable(fn):
        msg = f"{origin}: rule '{entry.id}' detector '{entry.detector}' is not callable"
        raise CatalogError(msg)
    if entry.scope is None:
        msg = f"{origin}: rule '{entry.id}' uses a plugin detector and must declare 'scope'"
        raise CatalogError(msg)
    return fn, entry.scope, ()


def build_rule(entry: CatalogEntry, origin: Path) -> Rule:
    """Bind a catalog entry to its detector."""
    _ensure_builtin_detectors()
    if ":" in entry.detector:
        fn, scope, default_requires = _resolve_plugin(entry, origin)
    else:
        detector = DETECTORS.get(entry.detector)
        if detector is None:
            msg = (
                f"{origin}: rule '{entry.id}' references unknown detector "
                f"'{entry.detector}'"
            )
            raise CatalogError(msg)
        fn, default_requires = detector.fn, detector.requires
        scope = entry.scope or detector.scope
        if scope != detector.scope:
            msg = (
                f"{origin}: rule '{entry.id}' declares scope '{scope}' but detector "
                f"'{detector.name}' is '{detector.scope}'"
            )
            raise CatalogError(msg)

    requires = frozenset(entry.requires or default_requires)
    unknown = sorted(requires - FACT_KINDS.keys())
    if unknown:
        msg = f"{origin}: rule '{entry.id}' requires unknown fact kind(s): {', '.join(unknown)}"
        raise CatalogError(msg)

    return Rule(
        id=entry.id,
        title=entry.title,
        severity=entry.severity,
        requires=requires,
        scope=scope,
        detector=fn,
        group=entry.group,
        description=entry.description,
        params=dict(entry.params),
    )


def load_catalog(path: Path) -> list[Rule]:
    """Load and bind every rule of a catalog file."""
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except OSError as exc:
        msg = f"Cannot read rule catalog {path}: {exc}"
        raise CatalogError(msg) from exc
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise CatalogError(msg) from exc

    try:
        catalog = Catalog.model_validate(data)
    except ValidationError as exc:
        msg = f"Invalid rule catalog {path}: {exc}"
        raise CatalogError(msg) from exc

    return [build_rule(entry, path) for entry in catalog.rule]


def build_registry(
    catalogs: Iterable[Path] = (),
    *,
    include_builtin: bool = True,
    disable: Iterable[str] = (),
    severity_overrides: Mapping[str, Severity] | None = None,
) -> RuleRegistry:
    """Build the registry from the built-in catalog plus extra catalogs.

    Raises:
        CatalogError: If a catalog is unreadable or refers to unknown names.
        DuplicateRuleIdError: If two catalogs declare the same rule id.
    """
    paths = ([BUILTIN_CATALOG] if include_builtin else []) + list(catalogs)
    disabled = set(disable)
    overrides = dict(severity_overrides or {})

    registry = RuleRegistry()
    declared: set[str] = set()
    for path in paths:
        for rule in load_catalog(path):
            if rule.id in declared:
                raise DuplicateRuleIdError(rule.id)
            declared.add(rule.id)
            if rule.id in disabled:
                continue
            if rule.id in overrides:
                rule = replace(rule, severity=Severity(overrides[rule.id]))
            registry.register(rule)

    unknown = sorted((disabled | overrides.keys()) - declared)
    if unknown:
        logger.warning(f"Configuration names unknown rule id(s): {', '.join(unknown)}")
    return registry


__all__ = [
    "BUILTIN_CATALOG",
    "Catalog",
    "CatalogEntry",
    "build_registry",
    "build_rule",
    "load_catalog",
]
