"""Rule registry, catalogs and configuration."""

from rules.catalog import BUILTIN_CATALOG, build_registry, load_catalog
from rules.config import (
    AuditMapConfig,
    ConfigError,
    load_config,
)
from rules.context import CancelToken, ContractContext, Deadline, FunctionContext, Hit
from rules.registry import DETECTORS, Rule, RuleRegistry, detector

__all__ = [
    "AuditMapConfig",
    "BUILTIN_CATALOG",
    "CancelToken",
    "ConfigError",
    "ContractContext",
    "DETECTORS",
    "Deadline",
    "FunctionContext",
    "Hit",
    "Rule",
    "RuleRegistry",
    "build_registry",
    "detector",
    "load_catalog",
]
