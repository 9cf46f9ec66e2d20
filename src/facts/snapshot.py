"""Read-only fact snapshot passed to every rule invocation."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, TypeVar

from facts.kinds import Fact, FunctionInfo

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from contract.models import SourceSpan

F = TypeVar("F", bound=Fact)


class FactSnapshot:
    """Immutable, indexed collection of one contract's facts."""

    def __init__(
        self,
        contract: str,
        facts: Iterable[Fact],
        *,
        path: str = "",
        span: SourceSpan | None = None,
    ) -> None:
        self._contract = contract
        self._path = path
        self._span = span
        self._facts: tuple[Fact, ...] = tuple(facts)
        by_kind: dict[str, list[Fact]] = defaultdict(list)
        by_function: dict[str, list[Fact]] = defaultdict(list)
        for fact in self._facts:
            by_kind[fact.kind].append(fact)
            function = fact.scope_function
            if function is not None:
                by_function[function].append(fact)
        self._by_kind = {kind: tuple(items) for kind, items in by_kind.items()}
        self._by_function = {
            name: tuple(items) for name, items in by_function.items()
        }

    @property
    def contract(self) -> str:
        return self._contract

    @property
    def path(self) -> str:
        return self._path

    @property
    def span(self) -> SourceSpan | None:
        return self._span

    def __iter__(self) -> Iterator[Fact]:
        return iter(self._facts)

    def __len__(self) -> int:
        return len(self._facts)

    def kinds(self) -> frozenset[str]:
        return frozenset(self._by_kind)

    def of_kind(self, cls: type[F]) -> tuple[F, ...]:
        return self._by_kind.get(cls.kind, ())  # type: ignore[return-value]

    def functions(self) -> tuple[FunctionInfo, ...]:
        return self.of_kind(FunctionInfo)

    def function_info(self, name: str) -> FunctionInfo | None:
        for info in self.functions():
            if info.function == name:
                return info
        return None

    def for_function(self, name: str) -> FactSnapshot:
        """Return a snapshot restricted to the facts of one function."""
        return FactSnapshot(
            self._contract,
            self._by_function.get(name, ()),
            path=self._path,
            span=self._span,
        )

    def where(self, cls: type[F], **criteria: object) -> tuple[F, ...]:
        """Facts of ``cls`` whose attributes equal every given criterion."""
        return tuple(
            fact
            for fact in self.of_kind(cls)
            if all(getattr(fact, key) == value for key, value in criteria.items())
        )


__all__ = ["FactSnapshot"]
