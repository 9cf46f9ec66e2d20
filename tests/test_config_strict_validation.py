from __future__ import annotations

from pathlib import Path

import pytest

from findings.models import Severity
from rules.config import ConfigError, load_config, resolve_within_root


def _write_config(root: Path, toml_content: str) -> None:
    (root / "auditmap.toml").write_text(toml_content, encoding="utf-8")


def test_unknown_top_level_key_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, "bogus_key = true")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_unknown_section_rejected(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
[detectors]
enabled = true
""".strip(),
    )

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_invalid_toml_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, "severity_floor = ")

    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(tmp_path)


def test_invalid_severity_floor_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, 'severity_floor = "severe"')

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_invalid_format_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, 'format = "sarif"')

    with pytest.raises(ConfigError, match="Invalid report format"):
        load_config(tmp_path)


def test_nonpositive_jobs_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, "jobs = 0")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_valid_config_accepted(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        """
exclude = ["node_modules/**"]
severity_floor = "high"
format = "json"
jobs = 2
disable = ["floating-pragma"]

[severity_overrides]
unbounded-loop = "low"
""".strip(),
    )

    config = load_config(tmp_path)

    assert config.exclude == ["node_modules/**"]
    assert config.severity_floor is Severity.HIGH
    assert config.format == "json"
    assert config.jobs == 2
    assert config.disable == ["floating-pragma"]
    assert config.severity_overrides == {"unbounded-loop": Severity.LOW}


def test_empty_config_accepted(tmp_path: Path) -> None:
    _write_config(tmp_path, "")

    config = load_config(tmp_path)

    assert config.include == []
    assert config.exclude == []
    assert config.severity_floor is Severity.LOW
    assert config.format == "text"
    assert config.baseline is None
    assert config.inline_suppressions is True


def test_missing_config_uses_defaults(tmp_path: Path) -> None:
    assert load_config(tmp_path) == load_config(tmp_path / "nowhere")


def test_resolve_within_root_rejects_escape(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="escapes the analysis root"):
        resolve_within_root(tmp_path, "../outside.json", label="baseline")


def test_resolve_within_root_rejects_absolute(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="relative path"):
        resolve_within_root(tmp_path, str(tmp_path / "abs.json"), label="baseline")


def test_resolve_within_root_accepts_nested(tmp_path: Path) -> None:
    resolved = resolve_within_root(tmp_path, ".auditmap/baseline.json", label="baseline")

    assert resolved == (tmp_path / ".auditmap" / "baseline.json").resolve()
