from __future__ import annotations

from graph.algos import cycle_containing, find_cycles, predecessors, reachable

DIAMOND = {0: [1, 2], 1: [3], 2: [3], 3: []}
LOOP = {0: [1], 1: [2, 4], 2: [3], 3: [1], 4: []}


def test_reachable_excludes_start_outside_cycles() -> None:
    result = reachable(DIAMOND, [0])

    assert result.nodes == {1, 2, 3}
    assert result.complete
    assert 0 not in result


def test_reachable_includes_start_on_cycle() -> None:
    assert 1 in reachable(LOOP, [1])


def test_reachable_budget_marks_incomplete() -> None:
    result = reachable(DIAMOND, [0], budget=1)

    assert not result.complete
    assert result.nodes == {1}


def test_predecessors() -> None:
    assert predecessors(DIAMOND) == {0: set(), 1: {0}, 2: {0}, 3: {1, 2}}


def test_find_cycles() -> None:
    cycles = find_cycles(LOOP)

    assert len(cycles) == 1
    assert sorted(cycles[0]) == [1, 2, 3]
    assert find_cycles(DIAMOND) == []
    assert find_cycles({0: [0]}) == [[0]]


def test_cycle_containing() -> None:
    assert cycle_containing(LOOP, 2) == frozenset({1, 2, 3})
    assert cycle_containing(LOOP, 4) == frozenset()


def test_find_cycles_on_deep_graphs() -> None:
    depth = 5000
    chain = {node: [node + 1] for node in range(depth)}

    assert find_cycles(chain) == []

    chain[depth] = [0]
    (cycle,) = find_cycles(chain)
    assert len(cycle) == depth + 1
    assert cycle_containing(chain, depth // 2) == frozenset(range(depth + 1))
