"""Loading suppressions from files, source annotations and baselines."""

from __future__ import annotations

import datetime as dt
import re
from typing import TYPE_CHECKING

import orjson
import tomllib
from loguru import logger
from pydantic import ValidationError

from contract.errors import SuppressionFileError
from contract.formats import BASELINE_SCHEMA_VERSION
from suppress.models import Suppression

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from findings.models import Finding

# // auditmap-disable-next-line reentrancy-eth,tx-origin-auth until=2026-12-31 -- reason
_INLINE = re.compile(
    r"//\s*auditmap-disable-(?P<which>next-line|line)"
    r"(?:\s+(?P<rules>[A-Za-z0-9_*,\-]+))?"
    r"(?:\s+until=(?P<until>\d{4}-\d{2}-\d{2}))?"
    r"(?:\s+--\s*(?P<reason>.*))?\s*$"
)


def load_suppression_file(path: Path) -> list[Suppression]:
    """Load ``[[suppression]]`` tables from a TOML file, in declaration order."""
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except OSError as exc:
        msg = f"Cannot read suppression file {path}: {exc}"
        raise SuppressionFileError(msg) from exc
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise SuppressionFileError(msg) from exc

    unknown = sorted(set(data) - {"suppression"})
    if unknown:
        msg = f"Unknown section(s) in {path}: {', '.join(unknown)}"
        raise SuppressionFileError(msg)

    entries = data.get("suppression", [])
    if not isinstance(entries, list):
        msg = f"{path}: 'suppression' must be an array of tables"
        raise SuppressionFileError(msg)

    suppressions: list[Suppression] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            msg = f"{path}: suppression #{index + 1} is not a table"
            raise SuppressionFileError(msg)
        try:
            suppressions.append(
                Suppression.model_validate({**entry, "origin": f"{path.name}#{index + 1}"})
            )
        except ValidationError as exc:
            msg = f"{path}: invalid suppression #{index + 1}: {exc}"
            raise SuppressionFileError(msg) from exc
    return suppressions


def scan_inline_suppressions(source: str, path: str) -> list[Suppression]:
    """Find ``auditmap-disable-*`` annotations in contract source text.

    ``path`` is the path findings report for this file.
    """
    suppressions: list[Suppression] = []
    for line_number, line in enumerate(source.splitlines(), 1):
        match = _INLINE.search(line)
        if match is None:
            continue
        target = line_number + 1 if match["which"] == "next-line" else line_number
        try:
            expires = dt.date.fromisoformat(match["until"]) if match["until"] else None
        except ValueError as exc:
            msg = f"{path}:{line_number}: invalid until date {match['until']!r}: {exc}"
            raise SuppressionFileError(msg) from exc
        for rule in (match["rules"] or "*").split(","):
            if not rule:
                continue
            suppressions.append(
                Suppression(
                    rule=rule,
                    path=path,
                    lines=(target, target),
                    reason=(match["reason"] or "").strip(),
                    expires=expires,
                    origin=f"{path}:{line_number}",
                )
            )
    return suppressions


def load_inline_suppressions(root: Path, paths: Iterable[str]) -> list[Suppression]:
    """Scan each contract source file (relative to ``root``) once."""
    suppressions: list[Suppression] = []
    for rel_path in sorted(set(paths)):
        if not rel_path:
            continue
        source_path = root / rel_path
        if not source_path.is_file():
            logger.debug(f"No source text for {rel_path}; skipping inline suppressions")
            continue
        try:
            text = source_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning(f"Cannot read {source_path} for inline suppressions: {exc}")
            continue
        suppressions.extend(scan_inline_suppressions(text, rel_path))
    return suppressions


def load_baseline(path: Path) -> frozenset[str]:
    """Load accepted finding fingerprints."""
    try:
        raw = orjson.loads(path.read_bytes())
    except OSError as exc:
        msg = f"Cannot read baseline {path}: {exc}"
        raise SuppressionFileError(msg) from exc
    except orjson.JSONDecodeError as exc:
        msg = f"Invalid JSON in baseline {path}: {exc}"
        raise SuppressionFileError(msg) from exc

    if not isinstance(raw, dict) or not isinstance(raw.get("fingerprints"), list):
        msg = f"Baseline {path} must be an object with a 'fingerprints' list"
        raise SuppressionFileError(msg)
    version = raw.get("schema_version", BASELINE_SCHEMA_VERSION)
    if version != BASELINE_SCHEMA_VERSION:
        msg = (
            f"Baseline {path} has schema version {version}, "
            f"expected {BASELINE_SCHEMA_VERSION}"
        )
        raise SuppressionFileError(msg)
    return frozenset(str(item) for item in raw["fingerprints"])


def write_baseline(path: Path, findings: Iterable[Finding]) -> int:
    """Write the fingerprints of ``findings``; returns how many were written."""
    fingerprints = sorted({finding.fingerprint for finding in findings})
    payload = {"schema_version": BASELINE_SCHEMA_VERSION, "fingerprints": fingerprints}
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(
        orjson.dumps(payload, option=orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2) + b"\n"
    )
    return len(fingerprints)


__all__ = [
    "load_baseline",
    "load_inline_suppressions",
    "load_suppression_file",
    "scan_inline_suppressions",
    "write_baseline",
]
