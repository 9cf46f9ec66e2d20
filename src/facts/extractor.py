"""Fact extraction from contract units.

The extractor is a pure transform: one ``ContractUnit`` in, one
``FactSnapshot`` out. It only reports what is locally visible in the unit and
never resolves a call target the front-end left unresolved.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from contract.models import (
    CallOp,
    EnvOp,
    GuardOp,
    HashOp,
    InternalCallOp,
    ReadOp,
    WriteOp,
)
from contract.validation import ensure_valid
from facts.kinds import (
    AccessCheck,
    ContractInfo,
    EnvironmentRead,
    ExternalCall,
    Fact,
    FunctionInfo,
    Guard,
    InternalCall,
    LoopBound,
    ModifierApplied,
    ReentrancyLock,
    StateRead,
    StateVariableInfo,
    StateWrite,
    UsesTxOrigin,
    WritesAfterExternalCall,
)
from facts.snapshot import FactSnapshot
from graph.algos import Reachability, find_cycles, predecessors, reachable

if TYPE_CHECKING:
    from contract.models import (
        CfgNode,
        ContractUnit,
        FunctionUnit,
        Operand,
        SourceSpan,
    )

DEFAULT_PATH_BUDGET = 20000

ENVIRONMENT_OPERANDS = frozenset(
    {"tx_origin", "block_timestamp", "block_number", "blockhash", "prevrandao"}
)
LOCK_MODIFIER_NAMES = frozenset({"nonreentrant", "noreentrancy", "reentrancyguard"})
# Call kinds that can hand control to untrusted code.
REENTRANT_CALL_KINDS = frozenset({"call", "send", "transfer", "external"})
_BOUNDING_OPERANDS = frozenset({"literal", "constant"})


def _operand_label(operand: Operand) -> str:
    label = operand.kind
    if operand.name:
        label = f"{label}:{operand.name}"
    if operand.member:
        label = f"{label}.{operand.member}"
    return label


def _span(*candidates: SourceSpan | None) -> SourceSpan | None:
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


class FactExtractor:
    """Derives normalized facts from a contract unit.

    Args:
        path_budget: Maximum CFG nodes visited per path search; searches that
            run out of budget yield facts marked incomplete.
    """

    def __init__(self, *, path_budget: int | None = DEFAULT_PATH_BUDGET) -> None:
        self.path_budget = path_budget

    def extract(self, unit: ContractUnit) -> FactSnapshot:
        """Extract facts for ``unit``.

        Raises:
            MalformedInputError: If the unit violates a structural invariant.
        """
        ensure_valid(unit)

        facts: list[Fact] = [
            ContractInfo(
                contract=unit.name,
                contract_kind=unit.kind,
                pragma=unit.pragma,
                inherits=unit.inherits,
                span=unit.span,
            )
        ]
        facts.extend(
            StateVariableInfo(
                variable=variable.name,
                visibility=variable.visibility,
                type_name=variable.type_name,
                constant=variable.constant,
                initialized=variable.initialized,
                span=variable.span,
            )
            for variable in unit.state_variables
        )

        for function in unit.all_functions():
            facts.extend(_FunctionWalker(unit, function, self.path_budget).walk())

        facts.extend(self._reentrancy_locks(unit))

        logger.debug(f"Extracted {len(facts)} facts from {unit.name}")
        return FactSnapshot(unit.name, facts, path=unit.path, span=unit.span)

    def _reentrancy_locks(self, unit: ContractUnit) -> list[ReentrancyLock]:
        locks: list[ReentrancyLock] = []
        for modifier in unit.modifiers:
            variable = _lock_variable(modifier, self.path_budget)
            if variable is not None or modifier.name.lower() in LOCK_MODIFIER_NAMES:
                locks.append(
                    ReentrancyLock(
                        modifier=modifier.name, variable=variable, span=modifier.span
                    )
                )
        return locks


def _lock_variable(modifier: FunctionUnit, budget: int | None) -> str | None:
    """Return the flag a modifier uses as a mutex, if it looks like one.

    The flag must be checked in a guard and written both before and after the
    placeholder.
    """
    graph = modifier.cfg.successor_map()
    placeholders = [node.id for node in modifier.cfg.nodes if node.kind == "placeholder"]
    if not placeholders:
        return None
    after = reachable(graph, placeholders, budget=budget).nodes

    checked: set[str] = set()
    before_writes: set[str] = set()
    after_writes: set[str] = set()
    for node in modifier.cfg.nodes:
        for op in node.ops:
            if isinstance(op, ReadOp) and op.guard:
                checked.add(op.variable)
            elif isinstance(op, GuardOp):
                checked.update(
                    operand.name
                    for operand in op.operands
                    if operand.kind == "state" and operand.name
                )
            elif isinstance(op, WriteOp):
                if node.id in after:
                    after_writes.add(op.variable)
                else:
                    before_writes.add(op.variable)

    candidates = sorted(checked & before_writes & after_writes)
    return candidates[0] if candidates else None


class _FunctionWalker:
    """Walks one function's CFG and collects its facts."""

    def __init__(
        self, unit: ContractUnit, function: FunctionUnit, budget: int | None
    ) -> None:
        self.unit = unit
        self.function = function
        self.budget = budget
        self.graph = function.cfg.successor_map()
        self.preds = predecessors(self.graph)
        self.cycles = find_cycles(self.graph)
        self.loop_nodes: frozenset[int] = frozenset(
            node for cycle in self.cycles for node in cycle
        )
        # Locals that cache a state array length, e.g. `uint n = users.length`.
        self.cached_lengths: dict[str, str] = {
            op.assigns: op.variable
            for node in function.cfg.nodes
            for op in node.ops
            if isinstance(op, ReadOp) and op.member == "length" and op.assigns
        }
        self.parameters = {parameter.name for parameter in function.parameters}

    def walk(self) -> list[Fact]:
        function = self.function
        facts: list[Fact] = [
            FunctionInfo(
                function=function.name,
                function_kind=function.kind,
                visibility=function.visibility,
                mutability=function.mutability,
                modifiers=function.modifiers,
                parameters=tuple(p.name for p in function.parameters),
                span=function.span,
            )
        ]
        facts.extend(
            ModifierApplied(
                function=function.name,
                modifier=name,
                resolved=self.unit.modifier(name) is not None,
                position=position,
            )
            for position, name in enumerate(function.modifiers)
        )

        for node in function.cfg.nodes:
            facts.extend(self._node_facts(node))
            if node.kind == "loop":
                bound = self._loop_bound(node)
                if bound is not None:
                    facts.append(bound)

        facts.extend(self._writes_after_calls())
        return facts

    def _fallback_span(self, node: CfgNode) -> SourceSpan | None:
        return _span(node.span, self.function.span)

    def _node_facts(self, node: CfgNode) -> list[Fact]:
        name = self.function.name
        facts: list[Fact] = []
        explicit_guard_reads: set[str] = set()
        env_seen: set[tuple[str, bool, bool]] = set()

        def env_fact(source: str, span, *, in_guard: bool, in_hash: bool) -> None:
            key = (source, in_guard, in_hash)
            if key in env_seen:
                return
            env_seen.add(key)
            if source == "tx_origin":
                facts.append(
                    UsesTxOrigin(function=name, node=node.id, in_guard=in_guard, span=span)
                )
            facts.append(
                EnvironmentRead(
                    function=name,
                    node=node.id,
                    source=source,
                    in_guard=in_guard,
                    in_hash=in_hash,
                    span=span,
                )
            )

        for index, op in enumerate(node.ops):
            span = _span(op.span, self._fallback_span(node))
            if isinstance(op, CallOp):
                facts.append(
                    ExternalCall(
                        function=name,
                        node=node.id,
                        index=index,
                        call_kind=op.kind,
                        target_kind=op.target.kind,
                        target_name=op.target.name,
                        value_transfer=op.value_transfer,
                        checked=op.checked,
                        in_loop=node.id in self.loop_nodes,
                        span=span,
                    )
                )
            elif isinstance(op, ReadOp):
                if op.guard:
                    explicit_guard_reads.add(op.variable)
                facts.append(
                    StateRead(
                        function=name,
                        variable=op.variable,
                        node=node.id,
                        index=index,
                        in_guard=op.guard,
                        assigns=op.assigns,
                        span=span,
                    )
                )
            elif isinstance(op, WriteOp):
                facts.append(
                    StateWrite(
                        function=name,
                        variable=op.variable,
                        node=node.id,
                        index=index,
                        span=span,
                    )
                )
            elif isinstance(op, GuardOp):
                facts.extend(self._guard_facts(node, index, op, span, explicit_guard_reads))
                for operand in op.operands:
                    if operand.kind in ENVIRONMENT_OPERANDS:
                        env_fact(operand.kind, span, in_guard=True, in_hash=False)
            elif isinstance(op, EnvOp):
                env_fact(op.source, span, in_guard=op.guard, in_hash=False)
            elif isinstance(op, HashOp):
                for operand in op.operands:
                    if operand.kind in ENVIRONMENT_OPERANDS:
                        env_fact(operand.kind, span, in_guard=False, in_hash=True)
            elif isinstance(op, InternalCallOp):
                facts.append(
                    InternalCall(function=name, callee=op.callee, node=node.id, span=span)
                )
        return facts

    def _guard_facts(
        self,
        node: CfgNode,
        index: int,
        op: GuardOp,
        span: SourceSpan | None,
        explicit_guard_reads: set[str],
    ) -> list[Fact]:
        name = self.function.name
        facts: list[Fact] = [
            Guard(
                function=name,
                node=node.id,
                guard_kind=op.kind,
                operands=tuple(_operand_label(operand) for operand in op.operands),
                span=span,
            )
        ]

        for operand in op.operands:
            if (
                operand.kind == "state"
                and operand.name
                and operand.name not in explicit_guard_reads
                and self.unit.state_variable(operand.name) is not None
            ):
                explicit_guard_reads.add(operand.name)
                facts.append(
                    StateRead(
                        function=name,
                        variable=operand.name,
                        node=node.id,
                        index=index,
                        in_guard=True,
                        span=span,
                    )
                )

        kinds = {operand.kind for operand in op.operands}
        if kinds & {"msg_sender", "tx_origin"}:
            state_names = tuple(
                sorted(
                    operand.name
                    for operand in op.operands
                    if operand.kind in {"state", "constant"} and operand.name
                )
            )
            if kinds & {"state", "constant"}:
                against = "state"
            elif "parameter" in kinds:
                against = "parameter"
            else:
                against = "other"
            facts.append(
                AccessCheck(
                    function=name,
                    node=node.id,
                    against=against,
                    variables=state_names,
                    via_tx_origin="tx_origin" in kinds and "msg_sender" not in kinds,
                    span=span,
                )
            )
        return facts

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    def _loop_bound(self, node: CfgNode) -> LoopBound | None:
        guard = next(
            (op for op in node.ops if isinstance(op, GuardOp) and op.kind == "loop"),
            None,
        )
        operands = guard.operands if guard is not None else ()

        bound_kind = "unknown"
        variable: str | None = None
        state_length = [
            operand
            for operand in operands
            if operand.kind == "state" and operand.member == "length"
        ]
        cached = [
            self.cached_lengths[operand.name]
            for operand in operands
            if operand.kind == "local" and operand.name in self.cached_lengths
        ]
        if state_length or cached:
            variable = state_length[0].name if state_length else cached[0]
            declared = self.unit.state_variable(variable or "")
            if declared is not None and declared.type_name and not declared.is_dynamic_array:
                bound_kind = "literal"
            else:
                bound_kind = "state_length"
        elif any(operand.kind == "parameter" for operand in operands):
            bound_kind = "parameter"
            variable = next(o.name for o in operands if o.kind == "parameter")
        elif any(
            operand.kind == "local" and operand.member == "length" for operand in operands
        ):
            bound_kind = "local_length"
        elif any(operand.kind in _BOUNDING_OPERANDS for operand in operands):
            bound_kind = "literal"

        return LoopBound(
            function=self.function.name,
            node=node.id,
            bound_kind=bound_kind,
            variable=variable,
            capped=self._has_counter_break(node),
            span=_span(guard.span if guard else None, self._fallback_span(node)),
        )

    def _has_counter_break(self, header: CfgNode) -> bool:
        """True when a ``break`` out of the loop is guarded by a fixed counter."""
        body = {header.id}
        for cycle in self.cycles:
            if header.id in cycle:
                body.update(cycle)
        preds = self.preds
        nodes = {node.id: node for node in self.function.cfg.nodes}

        for node in self.function.cfg.nodes:
            if node.kind != "break" or not preds.get(node.id, set()) & body:
                continue
            guarding = [node] + [
                nodes[pred] for pred in sorted(preds.get(node.id, ())) if pred in nodes
            ]
            for candidate in guarding:
                for op in candidate.ops:
                    if not isinstance(op, GuardOp) or op.kind == "loop":
                        continue
                    kinds = {operand.kind for operand in op.operands}
                    if "local" in kinds and kinds & _BOUNDING_OPERANDS:
                        return True
        return False

    # ------------------------------------------------------------------
    # Path-sensitive write-after-call facts
    # ------------------------------------------------------------------

    def _writes_after_calls(self) -> list[WritesAfterExternalCall]:
        cfg = self.function.cfg
        preds = self.preds
        nodes = {node.id: node for node in cfg.nodes}
        facts: list[WritesAfterExternalCall] = []

        for call_node, call_index, call in self._positions(CallOp):
            if call.kind not in REENTRANT_CALL_KINDS:
                continue
            after: Reachability = reachable(self.graph, [call_node], budget=self.budget)
            before: Reachability = reachable(preds, [call_node], budget=self.budget)
            complete = after.complete and before.complete

            flowing_locals = {
                operand.name
                for operand in call.value + call.arguments
                if operand.kind == "local" and operand.name
            }
            flowing_state = {
                operand.name
                for operand in call.value + call.arguments
                if operand.kind == "state" and operand.name
            }

            checked_vars: set[str] = set(flowing_state)
            for node_id, index, read in self._positions(ReadOp):
                precedes = node_id in before or (node_id == call_node and index < call_index)
                if not precedes:
                    continue
                if read.guard or (read.assigns and read.assigns in flowing_locals):
                    checked_vars.add(read.variable)
            for node_id, index, guard in self._positions(GuardOp):
                precedes = node_id in before or (node_id == call_node and index < call_index)
                if precedes:
                    checked_vars.update(
                        operand.name
                        for operand in guard.operands
                        if operand.kind == "state" and operand.name
                    )

            first_write: dict[str, tuple[int, int, WriteOp]] = {}
            for node_id, index, write in self._positions(WriteOp):
                follows = node_id in after or (node_id == call_node and index > call_index)
                if not follows:
                    continue
                current = first_write.get(write.variable)
                if current is None or (node_id, index) < current[:2]:
                    first_write[write.variable] = (node_id, index, write)

            call_span = _span(call.span, self._fallback_span(nodes[call_node]))
            for variable in sorted(first_write):
                node_id, _, write = first_write[variable]
                facts.append(
                    WritesAfterExternalCall(
                        function=self.function.name,
                        variable=variable,
                        call_node=call_node,
                        write_node=node_id,
                        call_kind=call.kind,
                        target_kind=call.target.kind,
                        value_transfer=call.value_transfer,
                        read_in_check=variable in checked_vars,
                        complete=complete,
                        call_span=call_span,
                        write_span=_span(write.span, self._fallback_span(nodes[node_id])),
                    )
                )
        return facts

    def _positions(self, op_type):
        for node in self.function.cfg.nodes:
            for index, op in enumerate(node.ops):
                if isinstance(op, op_type):
                    yield node.id, index, op


__all__ = ["DEFAULT_PATH_BUDGET", "FactExtractor"]
