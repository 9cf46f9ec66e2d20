from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from contract.errors import CatalogError, DuplicateRuleIdError
from facts.kinds import UnregisteredFactError
from findings.models import Severity
from rules.catalog import BUILTIN_CATALOG, build_registry, load_catalog
from rules.registry import DETECTORS, Rule, RuleRegistry

if TYPE_CHECKING:
    from pathlib import Path


def _write_catalog(path: Path, body: str) -> Path:
    path.write_text(body.strip() + "\n", encoding="utf-8")
    return path


def test_builtin_catalog_binds_every_rule() -> None:
    registry = build_registry()

    assert len(registry) == len(load_catalog(BUILTIN_CATALOG))
    assert "reentrancy-eth" in registry
    assert registry.get("reentrancy-eth").severity is Severity.HIGH
    assert [rule.order for rule in registry] == list(range(len(registry)))
    assert {rule.detector for rule in registry} <= {d.fn for d in DETECTORS.values()}


def test_local_and_cross_function_partition() -> None:
    registry = build_registry()

    local = {rule.id for rule in registry.local_rules()}
    cross = {rule.id for rule in registry.cross_function_rules()}

    assert "tx-origin-auth" in local
    assert "reentrancy-eth" in cross
    assert not local & cross
    assert len(local) + len(cross) == len(registry)


def test_rules_requiring_fact_kinds() -> None:
    registry = build_registry()

    ids = {rule.id for rule in registry.rules_requiring("loop-bound")}

    assert ids == {"unbounded-loop"}


def test_duplicate_rule_id_across_catalogs(tmp_path: Path) -> None:
    extra = _write_catalog(
        tmp_path / "extra.toml",
        """
[[rule]]
id = "reentrancy-eth"
title = "Shadowing rule"
severity = "low"
detector = "reentrancy_eth"
""",
    )

    with pytest.raises(DuplicateRuleIdError, match="reentrancy-eth"):
        build_registry([extra])


def test_duplicate_registration_is_rejected() -> None:
    rule = Rule(
        id="custom",
        title="Custom",
        severity=Severity.LOW,
        requires=frozenset(),
        scope="local",
        detector=lambda ctx: iter(()),
    )
    registry = RuleRegistry([rule])

    with pytest.raises(DuplicateRuleIdError):
        registry.register(rule)


def test_unknown_fact_kind_is_rejected_at_registration() -> None:
    rule = Rule(
        id="custom",
        title="Custom",
        severity=Severity.LOW,
        requires=frozenset({"gas-price"}),
        scope="local",
        detector=lambda ctx: iter(()),
    )

    with pytest.raises(UnregisteredFactError, match="gas-price"):
        RuleRegistry([rule])


def test_unknown_detector(tmp_path: Path) -> None:
    extra = _write_catalog(
        tmp_path / "extra.toml",
        """
[[rule]]
id = "custom"
title = "Custom"
severity = "low"
detector = "does_not_exist"
""",
    )

    with pytest.raises(CatalogError, match="unknown detector 'does_not_exist'"):
        build_registry([extra])


def test_scope_mismatch(tmp_path: Path) -> None:
    extra = _write_catalog(
        tmp_path / "extra.toml",
        """
[[rule]]
id = "custom"
title = "Custom"
severity = "low"
detector = "tx_origin_auth"
scope = "cross-function"
""",
    )

    with pytest.raises(CatalogError, match="declares scope"):
        build_registry([extra])


def test_plugin_detector_requires_scope(tmp_path: Path) -> None:
    extra = _write_catalog(
        tmp_path / "extra.toml",
        """
[[rule]]
id = "custom"
title = "Custom"
severity = "low"
detector = "rules.detectors.calls:fixed_gas_transfer"
""",
    )

    with pytest.raises(CatalogError, match="must declare 'scope'"):
        build_registry([extra])


def test_grouped_extra_rule(tmp_path: Path) -> None:
    extra = _write_catalog(
        tmp_path / "extra.toml",
        """
[[rule]]
id = "send-stipend"
title = "send with fixed stipend"
severity = "low"
group = "fixed-gas-transfer"
requires = ["external-call"]
detector = "rules.detectors.calls:fixed_gas_transfer"
scope = "local"
""",
    )

    registry = build_registry([extra])

    rule = registry.get("send-stipend")
    assert rule.finding_id == "fixed-gas-transfer"
    assert rule.order == len(registry) - 1


def test_disable_and_severity_overrides() -> None:
    registry = build_registry(
        disable=["floating-pragma"],
        severity_overrides={"unbounded-loop": Severity.HIGH},
    )

    assert "floating-pragma" not in registry
    assert registry.get("unbounded-loop").severity is Severity.HIGH


def test_invalid_catalog_table(tmp_path: Path) -> None:
    extra = _write_catalog(
        tmp_path / "extra.toml",
        """
[[rule]]
id = "custom"
title = "Custom"
severity = "catastrophic"
detector = "tx_origin_auth"
""",
    )

    with pytest.raises(CatalogError, match="Invalid rule catalog"):
        build_registry([extra])
