"""Stable on-disk formats and identifiers.

This module defines the format tags, schema versions and fingerprint rules that
reports, baselines and IR documents share.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

# Native contract IR document tag and version.
IR_FORMAT = "auditmap-ir"
IR_VERSION = 1

# Schema versions for generated files.
REPORT_SCHEMA_VERSION = 1
BASELINE_SCHEMA_VERSION = 1

# Default filenames (relative to the analysis root).
CONFIG_FILENAME = "auditmap.toml"
SUPPRESSIONS_FILENAME = "auditmap-suppressions.toml"
DEFAULT_BASELINE = ".auditmap/baseline.json"

# Identifiers of engine-generated diagnostics.
RULE_EXECUTION_ERROR = "rule-execution-error"
ANALYSIS_TIMEOUT = "analysis-timeout"
MALFORMED_INPUT = "malformed-input"
ANALYSIS_CANCELLED = "analysis-cancelled"
STALE_SUPPRESSION = "stale-suppression"

DIAGNOSTIC_RULE_IDS = frozenset(
    {
        RULE_EXECUTION_ERROR,
        ANALYSIS_TIMEOUT,
        MALFORMED_INPUT,
        ANALYSIS_CANCELLED,
        STALE_SUPPRESSION,
    }
)


@dataclass(frozen=True)
class ReportFormat:
    """A supported report rendering."""

    name: str
    description: str


REPORT_FORMATS: dict[str, ReportFormat] = {
    "json": ReportFormat(name="json", description="structured data"),
    "text": ReportFormat(name="text", description="human-readable text"),
}


# ---------------------------------------------------------------------------
# Deterministic fingerprints
# ---------------------------------------------------------------------------
# Fingerprint input: {rule_id}|{contract}|{function}|{path}|{normalized message}
# Line numbers are not part of the input so that baselines survive unrelated
# edits that shift code up or down.

_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_message(raw: str) -> str:
    """Strip and collapse internal whitespace runs to a single space."""
    return _WHITESPACE_RUN.sub(" ", raw.strip())


def build_fingerprint(
    rule_id: str,
    contract: str,
    function: str | None,
    path: str,
    message: str,
) -> str:
    """Build the 16-hex-digit fingerprint used by baselines."""
    payload = "|".join(
        (rule_id, contract, function or "", path, normalize_message(message))
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


__all__ = [
    "ANALYSIS_CANCELLED",
    "ANALYSIS_TIMEOUT",
    "BASELINE_SCHEMA_VERSION",
    "CONFIG_FILENAME",
    "DEFAULT_BASELINE",
    "DIAGNOSTIC_RULE_IDS",
    "IR_FORMAT",
    "IR_VERSION",
    "MALFORMED_INPUT",
    "REPORT_FORMATS",
    "REPORT_SCHEMA_VERSION",
    "RULE_EXECUTION_ERROR",
    "ReportFormat",
    "STALE_SUPPRESSION",
    "SUPPRESSIONS_FILENAME",
    "build_fingerprint",
    "normalize_message",
]
