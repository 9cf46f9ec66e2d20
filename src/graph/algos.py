"""Graph algorithms over control-flow and call graphs."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Hashable, TypeVar

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

N = TypeVar("N", bound=Hashable)


@dataclass(frozen=True)
class Reachability:
    """Nodes reached by a bounded search.

    ``complete`` is False when the visit budget ran out before the frontier
    was exhausted; ``nodes`` is then an under-approximation.
    """

    nodes: frozenset
    complete: bool = True

    def __contains__(self, node: object) -> bool:
        return node in self.nodes


def reachable(
    graph: Mapping[N, Iterable[N]],
    starts: Iterable[N],
    *,
    budget: int | None = None,
) -> Reachability:
    """Breadth-first successors of ``starts`` (the starts themselves excluded
    unless they lie on a cycle).

    Args:
        graph: Adjacency mapping node -> successors
        starts: Nodes to start from
        budget: Maximum number of nodes to visit; None means unbounded

    Returns:
        Reachability with the visited set and whether the search finished
    """
    seen: set[N] = set()
    queue: deque[N] = deque()
    for start in starts:
        queue.extend(sorted(graph.get(start, ()), key=repr))

    visited = 0
    while queue:
        node = queue.popleft()
        if node in seen:
            continue
        if budget is not None and visited >= budget:
            return Reachability(nodes=frozenset(seen), complete=False)
        seen.add(node)
        visited += 1
        queue.extend(sorted(graph.get(node, ()), key=repr))

    return Reachability(nodes=frozenset(seen))


def predecessors(graph: Mapping[N, Iterable[N]]) -> dict[N, set[N]]:
    """Invert an adjacency mapping."""
    inverted: dict[N, set[N]] = {node: set() for node in graph}
    for node, successors in graph.items():
        for successor in successors:
            inverted.setdefault(successor, set()).add(node)
    return inverted


class _TarjanState:
    """Mutable state container for Tarjan's SCC algorithm."""

    def __init__(self) -> None:
        self.index = 0
        self.indices: dict = {}
        self.low_link: dict = {}
        self.on_stack: set = set()
        self.stack: list = []
        self.sccs: list[list] = []


def _extract_scc(state: _TarjanState, root: N) -> list[N]:
    """Extract a strongly connected component from the stack."""
    scc: list[N] = []
    while state.stack:
        w = state.stack.pop()
        state.on_stack.remove(w)
        scc.append(w)
        if w == root:
            break
    if root not in scc:
        msg = (
            f"Tarjan algorithm invariant violated: root node {root!r} "
            "not found in stack during SCC extraction."
        )
        raise RuntimeError(msg)
    return scc


def _strongconnect(root: N, graph: Mapping[N, Iterable[N]], state: _TarjanState) -> None:
    """Run Tarjan from ``root`` with an explicit work stack.

    Each frame holds a node and the iterator over its remaining successors.
    """

    def enter(node: N) -> Iterator[N]:
        state.indices[node] = state.index
        state.low_link[node] = state.index
        state.index += 1
        state.stack.append(node)
        state.on_stack.add(node)
        return iter(sorted(graph.get(node, ()), key=repr))

    work: list[tuple[N, Iterator[N]]] = [(root, enter(root))]
    while work:
        node, successors = work[-1]
        for neighbor in successors:
            if neighbor not in state.indices:
                work.append((neighbor, enter(neighbor)))
                break
            if neighbor in state.on_stack:
                state.low_link[node] = min(state.low_link[node], state.indices[neighbor])
        else:
            work.pop()
            if work:
                parent = work[-1][0]
                state.low_link[parent] = min(state.low_link[parent], state.low_link[node])
            if state.low_link[node] == state.indices[node]:
                scc = _extract_scc(state, node)
                if len(scc) > 1 or node in graph.get(node, ()):
                    state.sccs.append(scc)


def find_cycles(graph: Mapping[N, Iterable[N]]) -> list[list[N]]:
    """Find cycles in a directed graph using Tarjan's algorithm.

    Args:
        graph: Dictionary representing the graph

    Returns:
        List of cycles, where each cycle is a list of nodes
    """
    state = _TarjanState()

    for node in sorted(graph, key=repr):
        if node not in state.indices:
            _strongconnect(node, graph, state)

    return state.sccs


def cycle_containing(graph: Mapping[N, Iterable[N]], node: N) -> frozenset[N]:
    """Return the nodes of the cycle through ``node`` (empty if none)."""
    for cycle in find_cycles(graph):
        if node in cycle:
            return frozenset(cycle)
    return frozenset()


__all__ = [
    "Reachability",
    "cycle_containing",
    "find_cycles",
    "predecessors",
    "reachable",
]
