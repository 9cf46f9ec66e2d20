"""Fact extraction for contract units."""

from facts.extractor import DEFAULT_PATH_BUDGET, FactExtractor
from facts.kinds import FACT_KINDS, Fact, UnregisteredFactError
from facts.snapshot import FactSnapshot

__all__ = [
    "DEFAULT_PATH_BUDGET",
    "FACT_KINDS",
    "Fact",
    "FactExtractor",
    "FactSnapshot",
    "UnregisteredFactError",
]
