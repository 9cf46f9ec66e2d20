"""Suppression and baseline management."""

from suppress.load import (
    load_baseline,
    load_inline_suppressions,
    load_suppression_file,
    scan_inline_suppressions,
    write_baseline,
)
from suppress.manager import (
    SuppressedFinding,
    SuppressionManager,
    SuppressionOutcome,
)
from suppress.models import Suppression

__all__ = [
    "SuppressedFinding",
    "Suppression",
    "SuppressionManager",
    "SuppressionOutcome",
    "load_baseline",
    "load_inline_suppressions",
    "load_suppression_file",
    "scan_inline_suppressions",
    "write_baseline",
]
