from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from contract.models import ContractUnit
from parse import load_file

FIXTURES = Path(__file__).parent / "fixtures"


def load_fixture_units(name: str) -> list[ContractUnit]:
    """Contract units of one IR fixture; malformed entries are left out."""
    loaded = load_file(FIXTURES / "ir" / name, FIXTURES / "ir")
    return [item.unit for item in loaded if item.unit is not None]


@pytest.fixture
def ir_project(tmp_path: Path) -> Path:
    """A fresh analysis root holding the well-formed IR fixtures."""
    root = tmp_path / "project"
    root.mkdir()
    for name in ("bank.json", "wallet.json", "loops.json"):
        shutil.copy(FIXTURES / "ir" / name, root / name)
    return root


@pytest.fixture
def solc_project(tmp_path: Path) -> Path:
    root = tmp_path / "solc"
    shutil.copytree(FIXTURES / "solc", root)
    return root
