from __future__ import annotations

from pathlib import Path
from typing import Any

import tomllib
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from contract.errors import AuditMapError
from contract.formats import CONFIG_FILENAME, DEFAULT_BASELINE, REPORT_FORMATS
from findings.models import Severity


class AuditMapConfig(BaseModel):
    """Configuration for an auditmap analysis run."""

    model_config = ConfigDict(extra="forbid")

    include: list[str] = Field(
        default_factory=list,
        description="Glob patterns for input files to include (empty = all *.json)",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Glob patterns for input files to exclude",
    )
    nested_gitignore: bool = Field(
        default=False,
        description=(
            "Enable nested .gitignore composition (default: false for root-only)"
        ),
    )
    severity_floor: Severity = Field(
        default=Severity.LOW,
        description="Lowest severity that makes 'analyze' exit non-zero",
    )
    format: str = Field(default="text", description="Report format (json or text)")
    jobs: int = Field(default=4, ge=1, description="Worker threads for analysis")
    contract_timeout: float | None = Field(
        default=30.0,
        gt=0,
        description="Analysis-time budget per contract, in seconds",
    )
    path_budget: int | None = Field(
        default=20000,
        ge=1,
        description="CFG nodes visited per path search before giving up",
    )
    baseline: str | None = Field(
        default=None,
        description=f"Baseline fingerprint file (e.g. {DEFAULT_BASELINE})",
    )
    suppressions: str | None = Field(
        default=None,
        description="Suppression file (default: auditmap-suppressions.toml if present)",
    )
    catalogs: list[str] = Field(
        default_factory=list,
        description="Extra rule catalogs appended to the built-in one",
    )
    disable: list[str] = Field(
        default_factory=list,
        description="Rule ids to leave out of the run",
    )
    severity_overrides: dict[str, Severity] = Field(
        default_factory=dict,
        description="Per-rule severity replacing the catalog's",
    )
    inline_suppressions: bool = Field(
        default=True,
        description="Honor auditmap-disable annotations in contract sources",
    )

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: Any) -> Any:
        if v not in REPORT_FORMATS:
            msg = (
                f"Invalid report format '{v}'. "
                f"Valid formats: {', '.join(sorted(REPORT_FORMATS))}"
            )
            raise ValueError(msg)
        return v


class ConfigError(AuditMapError):
    """Raised when config file exists but cannot be parsed."""


def resolve_within_root(root: Path, value: str, *, label: str) -> Path:
    """Resolve a config-provided relative path safely within the root.

    The path must be non-empty and relative, and must remain within the
    analysis root after resolution.
    """
    if not value:
        msg = f"{label} must be a non-empty relative path"
        raise ConfigError(msg)

    if value.startswith("~"):
        msg = f"{label} must be a relative path within the analysis root"
        raise ConfigError(msg)

    candidate = Path(value)
    if candidate.is_absolute():
        msg = f"{label} must be a relative path within the analysis root"
        raise ConfigError(msg)

    try:
        resolved_root = root.resolve()
        resolved = (resolved_root / candidate).resolve()
    except OSError as exc:
        msg = f"Failed to resolve {label} '{value}': {exc}"
        raise ConfigError(msg) from exc

    try:
        resolved.relative_to(resolved_root)
    except ValueError as exc:
        msg = f"{label} '{value}' escapes the analysis root"
        raise ConfigError(msg) from exc

    return resolved


def load_config(root: Path) -> AuditMapConfig:
    """Load configuration from auditmap.toml if it exists."""
    config_path = Path(root) / CONFIG_FILENAME

    if not config_path.is_file():
        return AuditMapConfig()

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {config_path}: {e}"
        raise ConfigError(msg) from e

    try:
        return AuditMapConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid config in {config_path}: {e}"
        raise ConfigError(msg) from e


__all__ = ["AuditMapConfig", "ConfigError", "load_config", "resolve_within_root"]
