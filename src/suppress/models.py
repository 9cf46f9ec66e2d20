"""Suppression declarations."""

from __future__ import annotations

import datetime as dt
from fnmatch import fnmatch

from pydantic import BaseModel, ConfigDict, Field, model_validator

from findings.models import Finding


class Suppression(BaseModel):
    """An accepted-risk declaration.

    The scope is either a file (``path`` with optional inclusive ``lines``) or
    a symbol (``contract`` with optional ``function``). ``rule`` is a rule id
    or ``*``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    rule: str = Field(min_length=1)
    path: str | None = None
    lines: tuple[int, int] | None = None
    contract: str | None = None
    function: str | None = None
    reason: str = ""
    expires: dt.date | None = None
    origin: str = Field(default="", description="Where the suppression was declared")

    @model_validator(mode="after")
    def _check_scope(self) -> Suppression:
        if self.path is None and self.contract is None:
            msg = "suppression needs a 'path' or a 'contract' scope"
            raise ValueError(msg)
        if self.lines is not None:
            if self.path is None:
                msg = "'lines' requires 'path'"
                raise ValueError(msg)
            start, end = self.lines
            if start < 1 or end < start:
                msg = f"invalid line range {start}-{end}"
                raise ValueError(msg)
        if self.function is not None and self.contract is None:
            msg = "'function' requires 'contract'"
            raise ValueError(msg)
        return self

    def expired(self, today: dt.date) -> bool:
        return self.expires is not None and today > self.expires

    def matches(self, finding: Finding) -> bool:
        if self.rule != "*" and self.rule not in {finding.rule_id, finding.detector}:
            return False
        if self.path is not None:
            if not fnmatch(finding.location.path, self.path):
                return False
            if self.lines is not None:
                start, end = self.lines
                if not start <= finding.location.start_line <= end:
                    return False
        if self.contract is not None:
            if finding.contract != self.contract:
                return False
            if self.function is not None and finding.function != self.function:
                return False
        return True


__all__ = ["Suppression"]
