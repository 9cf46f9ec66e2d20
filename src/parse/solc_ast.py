"""Adapter from the solc compact JSON AST to contract units.

Accepted documents:

- standard-JSON compiler output: ``{"sources": {path: {"ast": SourceUnit}}}``
- ``solc --combined-json ast`` output: ``{"sources": {path: {"AST": SourceUnit}}}``
- a bare ``SourceUnit``

Every function body is lowered to a CFG of small statement nodes. Identifiers
are resolved through ``referencedDeclaration``; anything that cannot be
resolved becomes an ``unresolved`` operand rather than a guess.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field, replace
from typing import Any

from loguru import logger
from pydantic import ValidationError

from contract.errors import MalformedInputError
from contract.models import (
    ENVIRONMENT_SOURCES,
    CallOp,
    CfgNode,
    ContractUnit,
    ControlFlowGraph,
    EnvOp,
    FunctionUnit,
    GuardOp,
    HashOp,
    InternalCallOp,
    Operand,
    Parameter,
    ReadOp,
    SourceSpan,
    StateVariable,
    WriteOp,
)
from parse.dialects import (
    RESOLVES_CALLS,
    RESOLVES_STATE_VARS,
    TRAVERSES_FUNCTIONS,
    Dialect,
    LoadedUnit,
    LoadRequest,
    register_dialect,
)

DIALECT_NAME = "solc-ast"

LOW_LEVEL_MEMBERS = frozenset({"call", "delegatecall", "staticcall", "send", "transfer"})
HASH_FUNCTIONS = frozenset({"keccak256", "sha256", "ripemd160", "sha3"})
MAGIC_MEMBERS = {
    ("msg", "sender"): "msg_sender",
    ("msg", "value"): "msg_value",
    ("tx", "origin"): "tx_origin",
    ("block", "timestamp"): "block_timestamp",
    ("block", "number"): "block_number",
    ("block", "difficulty"): "prevrandao",
    ("block", "prevrandao"): "prevrandao",
}
_MUTABILITY = {"constant": "view"}


# ---------------------------------------------------------------------------
# Document shapes
# ---------------------------------------------------------------------------


def _source_units(document: Any) -> list[tuple[str, dict[str, Any]]]:
    if not isinstance(document, dict):
        return []
    if document.get("nodeType") == "SourceUnit":
        return [(document.get("absolutePath", ""), document)]
    sources = document.get("sources")
    if not isinstance(sources, dict):
        return []
    units = []
    for path in sorted(sources):
        entry = sources[path]
        if not isinstance(entry, dict):
            continue
        ast = entry.get("ast") or entry.get("AST")
        if isinstance(ast, dict) and ast.get("nodeType") == "SourceUnit":
            units.append((ast.get("absolutePath") or path, ast))
    return units


def sniff(document: Any) -> bool:
    return bool(_source_units(document))


def _type_string(node: dict[str, Any] | None) -> str:
    if not node:
        return ""
    return (node.get("typeDescriptions") or {}).get("typeString") or ""


def _children(node: Any):
    if isinstance(node, dict):
        yield from node.values()
    elif isinstance(node, list):
        yield from node


class _Declarations:
    """Every AST node carrying an id, across all source units of a document."""

    def __init__(self, roots: list[dict[str, Any]]) -> None:
        self.by_id: dict[int, dict[str, Any]] = {}
        stack: list[Any] = list(roots)
        while stack:
            node = stack.pop()
            if isinstance(node, dict) and "nodeType" in node and isinstance(node.get("id"), int):
                self.by_id[node["id"]] = node
            stack.extend(
                child for child in _children(node) if isinstance(child, (dict, list))
            )

    def get(self, node_id: Any) -> dict[str, Any] | None:
        if not isinstance(node_id, int):
            return None
        return self.by_id.get(node_id)


class _Spans:
    """Converts solc ``start:length:file`` triples to 1-based spans."""

    def __init__(self, path: str, text: bytes | None) -> None:
        self.path = path
        self._line_starts: list[int] | None = None
        if text is not None:
            starts = [0]
            starts.extend(index + 1 for index, byte in enumerate(text) if byte == 0x0A)
            self._line_starts = starts

    def _position(self, offset: int) -> tuple[int, int]:
        if self._line_starts is None:
            return 1, offset + 1
        line = bisect.bisect_right(self._line_starts, offset) - 1
        return line + 1, offset - self._line_starts[line] + 1

    def span(self, src: Any) -> SourceSpan | None:
        if not isinstance(src, str):
            return None
        try:
            start, length = (int(part) for part in src.split(":")[:2])
        except ValueError:
            return None
        if start < 0 or length < 0:
            return None
        start_line, start_col = self._position(start)
        end_line, end_col = self._position(start + length)
        return SourceSpan(
            path=self.path,
            start_line=start_line,
            start_col=start_col,
            end_line=end_line,
            end_col=end_col,
        )


def _pragma(source_unit: dict[str, Any]) -> str | None:
    for node in source_unit.get("nodes", []):
        if node.get("nodeType") != "PragmaDirective":
            continue
        literals = node.get("literals") or []
        if not literals or literals[0] != "solidity":
            continue
        text = ""
        for token in literals[1:]:
            if text and token[:1] in "^~<>=|":
                text += " "
            text += token
        return text or None
    return None


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Ctx:
    guard: bool = False
    in_hash: bool = False
    assigns: str | None = None
    member: str | None = None


@dataclass
class _Node:
    id: int
    kind: str
    span: SourceSpan | None
    ops: list = field(default_factory=list)
    successors: list[int] = field(default_factory=list)


class _FunctionLowering:
    """Lowers one function or modifier body to a CFG."""

    def __init__(
        self,
        decls: _Declarations,
        spans: _Spans,
        state: dict[int, StateVariable],
        parameters: set[int],
    ) -> None:
        self.decls = decls
        self.spans = spans
        self.state = state
        self.parameters = parameters
        self.nodes: list[_Node] = []
        self.loops: list[tuple[int, int]] = []
        self.current: _Node | None = None
        self.exit_id = -1

    # -- graph -------------------------------------------------------------

    def _new(self, kind: str, src: Any = None) -> _Node:
        node = _Node(id=len(self.nodes), kind=kind, span=self.spans.span(src))
        self.nodes.append(node)
        return node

    def _link(self, source: _Node | None, target: _Node) -> None:
        if source is not None and target.id not in source.successors:
            source.successors.append(target.id)

    def _emit(self, op) -> None:
        assert self.current is not None
        self.current.ops.append(op)

    def lower(self, body: dict[str, Any] | None) -> ControlFlowGraph:
        entry = self._new("entry")
        exit_node = _Node(id=-1, kind="exit", span=None)
        if body is not None:
            end = self._statement(body, entry)
        else:
            end = entry
        exit_node.id = len(self.nodes)
        self.exit_id = exit_node.id
        self.nodes.append(exit_node)
        for node in self.nodes:
            node.successors = [exit_node.id if s == -1 else s for s in node.successors]
        self._link(end, exit_node)
        return ControlFlowGraph(
            entry=entry.id,
            nodes=tuple(
                CfgNode(
                    id=node.id,
                    kind=node.kind,
                    ops=tuple(node.ops),
                    successors=tuple(node.successors),
                    span=node.span,
                )
                for node in self.nodes
            ),
        )

    # -- statements --------------------------------------------------------

    def _simple(self, kind: str, stmt: dict[str, Any], current: _Node) -> _Node:
        node = self._new(kind, stmt.get("src"))
        self._link(current, node)
        self.current = node
        return node

    def _statement(self, stmt: dict[str, Any] | None, current: _Node | None) -> _Node | None:
        """Lower ``stmt`` after ``current``; returns the fall-through node."""
        if stmt is None or current is None:
            return current
        node_type = stmt.get("nodeType")

        if node_type in {"Block", "UncheckedBlock"}:
            for child in stmt.get("statements") or []:
                current = self._statement(child, current)
                if current is None:
                    break
            return current

        if node_type == "ExpressionStatement":
            expression = stmt.get("expression") or {}
            reverts = _is_revert_call(expression)
            node = self._simple("revert" if reverts else "statement", stmt, current)
            self._expr(expression, _Ctx(), discarded=True)
            return None if reverts else node

        if node_type == "VariableDeclarationStatement":
            node = self._simple("statement", stmt, current)
            names = [d.get("name") for d in stmt.get("declarations") or [] if d]
            assigns = names[0] if len(names) == 1 else None
            self._expr(stmt.get("initialValue"), _Ctx(assigns=assigns))
            return node

        if node_type == "IfStatement":
            branch = self._simple("branch", stmt, current)
            condition = stmt.get("condition")
            operands = self._expr(condition, _Ctx(guard=True))
            self._emit(
                GuardOp(kind="if", operands=tuple(operands), span=self.spans.span(condition.get("src")))
            )
            ends = [self._statement(stmt.get("trueBody"), branch)]
            if stmt.get("falseBody") is not None:
                ends.append(self._statement(stmt.get("falseBody"), branch))
            else:
                ends.append(branch)
            return self._join([end for end in ends if end is not None], stmt)

        if node_type in {"WhileStatement", "ForStatement"}:
            if node_type == "ForStatement" and stmt.get("initializationExpression"):
                current = self._statement(stmt["initializationExpression"], current)
            header = self._loop_header(stmt, current)
            after = self._new("join", stmt.get("src"))
            step: _Node | None = None
            if node_type == "ForStatement" and stmt.get("loopExpression"):
                step = self._new("statement", stmt["loopExpression"].get("src"))
                self.current = step
                self._expr(stmt["loopExpression"].get("expression"), _Ctx())
                self._link(step, header)
            self.loops.append(((step or header).id, after.id))
            end = self._statement(stmt.get("body"), header)
            self.loops.pop()
            self._link(end, step or header)
            self._link(header, after)
            return after

        if node_type == "DoWhileStatement":
            start = self._new("join", stmt.get("src"))
            self._link(current, start)
            condition_node = self._new("loop", (stmt.get("condition") or {}).get("src"))
            after = self._new("join", stmt.get("src"))
            self.loops.append((condition_node.id, after.id))
            end = self._statement(stmt.get("body"), start)
            self.loops.pop()
            self._link(end, condition_node)
            self.current = condition_node
            operands = self._expr(stmt.get("condition"), _Ctx(guard=True))
            self._emit(GuardOp(kind="loop", operands=tuple(operands), span=condition_node.span))
            self._link(condition_node, start)
            self._link(condition_node, after)
            return after

        if node_type == "Break":
            node = self._simple("break", stmt, current)
            if self.loops:
                node.successors.append(self.loops[-1][1])
            return None

        if node_type == "Continue":
            node = self._simple("continue", stmt, current)
            if self.loops:
                node.successors.append(self.loops[-1][0])
            return None

        if node_type == "Return":
            node = self._simple("return", stmt, current)
            self._expr(stmt.get("expression"), _Ctx())
            node.successors.append(-1)
            return None

        if node_type == "RevertStatement":
            self._simple("revert", stmt, current)
            self._expr(stmt.get("errorCall"), _Ctx())
            return None

        if node_type == "EmitStatement":
            node = self._simple("statement", stmt, current)
            event = stmt.get("eventCall") or {}
            self._exprs(event.get("arguments"), _Ctx())
            return node

        if node_type == "PlaceholderStatement":
            return self._simple("placeholder", stmt, current)

        if node_type == "TryStatement":
            node = self._simple("branch", stmt, current)
            self._expr(stmt.get("externalCall"), _Ctx())
            ends = [
                self._statement(clause.get("block"), node)
                for clause in stmt.get("clauses") or []
            ]
            return self._join([end for end in ends if end is not None], stmt)

        # Inline assembly and anything newer than this adapter: opaque statement.
        return self._simple("statement", stmt, current)

    def _loop_header(self, stmt: dict[str, Any], current: _Node | None) -> _Node:
        condition = stmt.get("condition")
        header = self._new("loop", (condition or stmt).get("src"))
        self._link(current, header)
        self.current = header
        operands = self._expr(condition, _Ctx(guard=True)) if condition else []
        self._emit(GuardOp(kind="loop", operands=tuple(operands), span=header.span))
        return header

    def _join(self, ends: list[_Node], stmt: dict[str, Any]) -> _Node | None:
        if not ends:
            return None
        join = self._new("join", stmt.get("src"))
        for end in ends:
            self._link(end, join)
        return join

    # -- expressions -------------------------------------------------------

    def _exprs(self, nodes: list | None, ctx: _Ctx) -> list[Operand]:
        operands: list[Operand] = []
        for node in nodes or []:
            operands.extend(self._expr(node, ctx))
        return operands

    def _expr(
        self, node: dict[str, Any] | None, ctx: _Ctx, *, discarded: bool = False
    ) -> list[Operand]:
        """Emit the ops ``node`` performs; return the operands it refers to."""
        if not node:
            return []
        node_type = node.get("nodeType")
        span = self.spans.span(node.get("src"))

        if node_type == "Literal":
            return [Operand(kind="literal", value=node.get("value"))]

        if node_type == "Identifier":
            return self._identifier(node, ctx, span)

        if node_type == "MemberAccess":
            return self._member(node, ctx, span)

        if node_type == "IndexAccess":
            return self._expr(node.get("baseExpression"), ctx) + self._expr(
                node.get("indexExpression"), ctx
            )

        if node_type == "FunctionCall":
            return self._call(node, ctx, span, discarded=discarded)

        if node_type == "Assignment":
            return self._assignment(node, ctx, span)

        if node_type == "UnaryOperation":
            operands = self._expr(node.get("subExpression"), ctx)
            if node.get("operator") in {"++", "--", "delete"}:
                root = self._state_root(node.get("subExpression"))
                if root is not None:
                    self._emit(WriteOp(variable=root, span=span))
            return operands

        if node_type == "BinaryOperation":
            return self._expr(node.get("leftExpression"), ctx) + self._expr(
                node.get("rightExpression"), ctx
            )

        if node_type == "Conditional":
            condition = self._expr(node.get("condition"), replace(ctx, guard=True))
            self._emit(GuardOp(kind="if", operands=tuple(condition), span=span))
            return self._expr(node.get("trueExpression"), ctx) + self._expr(
                node.get("falseExpression"), ctx
            )

        if node_type == "TupleExpression":
            return self._exprs([c for c in node.get("components") or [] if c], ctx)

        if node_type == "IndexRangeAccess":
            return self._exprs(
                [node.get("baseExpression"), node.get("startExpression"), node.get("endExpression")],
                ctx,
            )

        return []

    def _identifier(self, node: dict[str, Any], ctx: _Ctx, span) -> list[Operand]:
        name = node.get("name")
        decl = self.decls.get(node.get("referencedDeclaration"))
        if decl is None:
            if name == "now":
                return self._environment("block_timestamp", ctx, span)
            if name == "this":
                return [Operand(kind="this")]
            return [Operand(kind="unresolved", name=name)]

        if decl.get("nodeType") != "VariableDeclaration":
            return [Operand(kind="unresolved", name=name)]

        variable = self.state.get(decl["id"])
        if variable is not None:
            if variable.constant:
                return [Operand(kind="constant", name=variable.name)]
            self._emit(
                ReadOp(
                    variable=variable.name,
                    member=ctx.member,
                    guard=ctx.guard,
                    assigns=ctx.assigns,
                    span=span,
                )
            )
            return [Operand(kind="state", name=variable.name)]
        if decl.get("stateVariable"):
            # Declared by a contract outside this unit's linearization.
            return [Operand(kind="unresolved", name=name)]
        kind = "parameter" if decl["id"] in self.parameters else "local"
        return [Operand(kind=kind, name=name)]

    def _environment(self, source: str, ctx: _Ctx, span) -> list[Operand]:
        if source in ENVIRONMENT_SOURCES and not ctx.guard and not ctx.in_hash:
            self._emit(EnvOp(source=source, span=span))
        return [Operand(kind=source)]

    def _member(self, node: dict[str, Any], ctx: _Ctx, span) -> list[Operand]:
        base = node.get("expression") or {}
        member = node.get("memberName")
        if base.get("nodeType") == "Identifier" and self.decls.get(
            base.get("referencedDeclaration")
        ) is None:
            source = MAGIC_MEMBERS.get((base.get("name"), member))
            if source is not None:
                return self._environment(source, ctx, span)
            if base.get("name") in {"msg", "tx", "block", "abi"}:
                return []

        if member == "length" and base.get("nodeType") == "Identifier":
            operands = self._expr(base, replace(ctx, member=member))
        else:
            operands = self._expr(base, ctx)
        if member == "length" and operands and operands[0].kind in {"state", "local", "parameter"}:
            return [operands[0].model_copy(update={"member": "length"}), *operands[1:]]
        return operands

    def _state_root(self, node: dict[str, Any] | None) -> str | None:
        """State variable ultimately written through an lvalue, if any."""
        while node:
            node_type = node.get("nodeType")
            if node_type == "IndexAccess":
                node = node.get("baseExpression")
            elif node_type == "MemberAccess":
                node = node.get("expression")
            elif node_type == "Identifier":
                variable = self.state.get(node.get("referencedDeclaration"))
                if variable is None or variable.constant:
                    return None
                return variable.name
            else:
                return None
        return None

    def _lvalue_reads(self, node: dict[str, Any] | None, ctx: _Ctx) -> None:
        """Visit the index expressions inside an lvalue as reads."""
        while node:
            node_type = node.get("nodeType")
            if node_type == "IndexAccess":
                self._expr(node.get("indexExpression"), ctx)
                node = node.get("baseExpression")
            elif node_type == "MemberAccess":
                node = node.get("expression")
            else:
                return

    def _assignment(self, node: dict[str, Any], ctx: _Ctx, span) -> list[Operand]:
        lhs = node.get("leftHandSide") or {}
        targets = (
            [c for c in lhs.get("components") or [] if c]
            if lhs.get("nodeType") == "TupleExpression"
            else [lhs]
        )
        assigns = None
        if len(targets) == 1 and targets[0].get("nodeType") == "Identifier":
            if self.state.get(targets[0].get("referencedDeclaration")) is None:
                assigns = targets[0].get("name")

        operands = self._expr(node.get("rightHandSide"), replace(ctx, assigns=assigns))
        for target in targets:
            self._lvalue_reads(target, ctx)
            root = self._state_root(target)
            if root is None:
                continue
            if node.get("operator", "=") != "=":
                self._emit(ReadOp(variable=root, span=span))
            self._emit(WriteOp(variable=root, span=span))
        return operands

    # -- calls -------------------------------------------------------------

    def _call(
        self, node: dict[str, Any], ctx: _Ctx, span, *, discarded: bool
    ) -> list[Operand]:
        arguments = node.get("arguments") or []
        if node.get("kind") in {"typeConversion", "structConstructorCall"}:
            return self._exprs(arguments, ctx)

        callee, value_exprs = _unwrap_call_options(node.get("expression") or {})
        callee_type = callee.get("nodeType")

        if callee_type == "Identifier":
            return self._named_call(callee, arguments, ctx, span)

        if callee_type == "MemberAccess":
            return self._member_call(
                callee, arguments, value_exprs, ctx, span, discarded=discarded
            )

        self._expr(callee, ctx)
        return self._exprs(arguments, ctx)

    def _named_call(
        self, callee: dict[str, Any], arguments: list, ctx: _Ctx, span
    ) -> list[Operand]:
        name = callee.get("name")
        decl = self.decls.get(callee.get("referencedDeclaration"))

        if decl is None and name in {"require", "assert"}:
            operands = self._exprs(arguments[:1], replace(ctx, guard=True, assigns=None))
            self._emit(GuardOp(kind=name, operands=tuple(operands), span=span))
            self._exprs(arguments[1:], ctx)
            return []
        if decl is None and name == "revert":
            self._exprs(arguments, ctx)
            return []
        if decl is None and name in HASH_FUNCTIONS:
            operands = self._exprs(arguments, replace(ctx, in_hash=True))
            self._emit(HashOp(operands=tuple(operands), span=span))
            return operands
        if decl is None and name == "blockhash":
            self._exprs(arguments, ctx)
            return self._environment("blockhash", ctx, span)
        if decl is None and name in {"selfdestruct", "suicide"}:
            targets = self._exprs(arguments, ctx)
            self._emit(
                CallOp(
                    kind="selfdestruct",
                    target=targets[0] if targets else Operand(kind="unresolved"),
                    value_transfer=True,
                    arguments=tuple(targets),
                    span=span,
                )
            )
            return []

        operands = self._exprs(arguments, ctx)
        if decl is not None and decl.get("nodeType") == "FunctionDefinition":
            self._emit(InternalCallOp(callee=name, span=span))
        return operands

    def _member_call(
        self,
        callee: dict[str, Any],
        arguments: list,
        value_exprs: list,
        ctx: _Ctx,
        span,
        *,
        discarded: bool,
    ) -> list[Operand]:
        member = callee.get("memberName")
        base = callee.get("expression") or {}
        base_type = _type_string(base)

        if base.get("nodeType") == "Identifier" and base.get("name") == "super":
            operands = self._exprs(arguments, ctx)
            self._emit(InternalCallOp(callee=member, span=span))
            return operands

        if member in LOW_LEVEL_MEMBERS and base_type.startswith("address"):
            targets = self._expr(base, ctx)
            if member in {"transfer", "send"}:
                values = self._exprs(arguments, ctx)
                call_arguments: list[Operand] = []
                transfers = True
            else:
                values = self._exprs(value_exprs, ctx)
                call_arguments = self._exprs(arguments, ctx)
                transfers = bool(value_exprs) and not _is_zero(value_exprs)
            self._emit(
                CallOp(
                    kind=member,
                    target=targets[0] if targets else Operand(kind="unresolved"),
                    value_transfer=transfers,
                    value=tuple(values),
                    arguments=tuple(call_arguments),
                    checked=member == "transfer" or not discarded,
                    span=span,
                )
            )
            return []

        if base_type.startswith("contract ") or base_type.startswith("super "):
            targets = self._expr(base, ctx)
            values = self._exprs(value_exprs, ctx)
            call_arguments = self._exprs(arguments, ctx)
            self._emit(
                CallOp(
                    kind="external",
                    target=targets[0] if targets else Operand(kind="unresolved"),
                    value_transfer=bool(value_exprs) and not _is_zero(value_exprs),
                    value=tuple(values),
                    arguments=tuple(call_arguments),
                    span=span,
                )
            )
            return []

        operands = self._expr(base, ctx)
        if member in {"push", "pop"}:
            root = self._state_root(base)
            if root is not None:
                self._emit(WriteOp(variable=root, span=span))
        return operands + self._exprs(arguments, ctx)


def _unwrap_call_options(callee: dict[str, Any]) -> tuple[dict[str, Any], list]:
    """Strip ``{value: ...}`` options and legacy ``.value(...)``/``.gas(...)``."""
    values: list = []
    while True:
        node_type = callee.get("nodeType")
        if node_type == "FunctionCallOptions":
            for name, option in zip(callee.get("names") or [], callee.get("options") or []):
                if name == "value":
                    values.append(option)
            callee = callee.get("expression") or {}
            continue
        inner = callee.get("expression") or {}
        if (
            node_type == "FunctionCall"
            and inner.get("nodeType") == "MemberAccess"
            and inner.get("memberName") in {"value", "gas"}
            and _type_string(inner.get("expression")).startswith("function")
        ):
            if inner.get("memberName") == "value":
                values.extend(callee.get("arguments") or [])
            callee = inner.get("expression") or {}
            continue
        return callee, values


def _is_zero(values: list) -> bool:
    return all(
        value.get("nodeType") == "Literal" and value.get("value") in {"0", "0x0"}
        for value in values
    )


def _is_revert_call(expression: dict[str, Any]) -> bool:
    callee = expression.get("expression") or {}
    return (
        expression.get("nodeType") == "FunctionCall"
        and callee.get("nodeType") == "Identifier"
        and callee.get("name") == "revert"
    )


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


_CONTRACT_KINDS = {"contract": "contract", "library": "library", "interface": "interface"}


class _ContractLowering:
    def __init__(
        self,
        decls: _Declarations,
        spans: _Spans,
        contract: dict[str, Any],
        pragma: str | None,
    ) -> None:
        self.decls = decls
        self.spans = spans
        self.contract = contract
        self.pragma = pragma

    def _linearization(self) -> list[dict[str, Any]]:
        chain = []
        for base_id in self.contract.get("linearizedBaseContracts") or [self.contract["id"]]:
            base = self.decls.get(base_id)
            if base is not None:
                chain.append(base)
        return chain

    def _state_variables(self, chain: list[dict[str, Any]]) -> dict[int, StateVariable]:
        variables: dict[int, StateVariable] = {}
        names: set[str] = set()
        # Most-derived declaration wins when a name is shadowed.
        for contract in chain:
            for node in contract.get("nodes") or []:
                if node.get("nodeType") != "VariableDeclaration" or node.get("name") in names:
                    continue
                names.add(node["name"])
                visibility = node.get("visibility")
                variables[node["id"]] = StateVariable(
                    name=node["name"],
                    visibility=visibility if visibility in {"public", "private"} else "internal",
                    type_name=_type_string(node) or _type_string(node.get("typeName")),
                    initialized=node.get("value") is not None,
                    constant=bool(node.get("constant"))
                    or node.get("mutability") in {"constant", "immutable"},
                    span=self.spans.span(node.get("src")),
                )
        return variables

    def lower(self) -> ContractUnit:
        contract = self.contract
        name = contract.get("name") or "<anonymous>"
        chain = self._linearization()
        state = self._state_variables(chain)

        modifiers: dict[str, FunctionUnit] = {}
        for owner in chain:
            for node in owner.get("nodes") or []:
                if node.get("nodeType") == "ModifierDefinition" and node.get("name") not in modifiers:
                    modifiers[node["name"]] = self._function(node, state, name, "modifiers")

        functions: list[FunctionUnit] = []
        seen: dict[str, int] = {}
        for node in contract.get("nodes") or []:
            if node.get("nodeType") != "FunctionDefinition":
                continue
            function = self._function(node, state, name, "functions")
            count = seen.get(function.name, 0)
            seen[function.name] = count + 1
            if count:
                types = ",".join(p.type_name for p in function.parameters)
                function = function.model_copy(update={"name": f"{function.name}({types})"})
            functions.append(function)

        kind = _CONTRACT_KINDS.get(contract.get("contractKind", "contract"), "contract")
        if kind == "contract" and contract.get("abstract"):
            kind = "abstract"

        inherits = tuple(
            (base.get("baseName") or {}).get("name")
            or (base.get("baseName") or {}).get("namePath")
            or ""
            for base in contract.get("baseContracts") or []
        )
        ordered_state = sorted(state.values(), key=_declaration_order(state))
        return ContractUnit(
            name=name,
            kind=kind,
            path=self.spans.path,
            span=self.spans.span(contract.get("src")),
            pragma=self.pragma,
            inherits=tuple(base for base in inherits if base),
            state_variables=tuple(ordered_state),
            modifiers=tuple(modifiers.values()),
            functions=tuple(functions),
        )

    def _function(
        self,
        node: dict[str, Any],
        state: dict[int, StateVariable],
        contract: str,
        listing: str,
    ) -> FunctionUnit:
        is_modifier = node.get("nodeType") == "ModifierDefinition"
        kind = "modifier" if is_modifier else node.get("kind", "function")
        if kind == "freeFunction":
            kind = "function"
        name = node.get("name") or kind

        parameters = [
            p for p in (node.get("parameters") or {}).get("parameters") or [] if p
        ]
        mutability = node.get("stateMutability", "nonpayable")
        visibility = node.get("visibility", "public")
        if is_modifier:
            visibility, mutability = "internal", "nonpayable"

        lowering = _FunctionLowering(
            self.decls, self.spans, state, {p["id"] for p in parameters if "id" in p}
        )
        try:
            cfg = lowering.lower(node.get("body"))
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            msg = f"Cannot lower body: {type(exc).__name__}: {exc}"
            raise MalformedInputError(msg, f"{contract}.{listing}[{name}]") from exc

        applied: list[str] = []
        for invocation in node.get("modifiers") or []:
            if invocation.get("kind") == "baseConstructorSpecifier":
                continue
            target = invocation.get("modifierName") or {}
            decl = self.decls.get(target.get("referencedDeclaration"))
            if decl is not None and decl.get("nodeType") == "ContractDefinition":
                continue
            applied.append(target.get("name") or target.get("namePath") or "")

        return FunctionUnit(
            name=name,
            kind=kind,
            visibility=visibility if visibility != "default" else "public",
            mutability=_MUTABILITY.get(mutability, mutability),
            modifiers=tuple(m for m in applied if m),
            parameters=tuple(
                Parameter(name=p.get("name") or f"_{i}", type_name=_type_string(p))
                for i, p in enumerate(parameters)
            ),
            cfg=cfg,
            span=self.spans.span(node.get("src")),
        )


def _declaration_order(state: dict[int, StateVariable]):
    position = {variable.name: decl_id for decl_id, variable in state.items()}

    def key(variable: StateVariable) -> int:
        return position[variable.name]

    return key


def load(document: Any, request: LoadRequest) -> list[LoadedUnit]:
    units = _source_units(document)
    decls = _Declarations([ast for _, ast in units])
    loaded: list[LoadedUnit] = []

    for path, source_unit in units:
        spans = _Spans(path, request.source_text(path))
        pragma = _pragma(source_unit)
        for node in source_unit.get("nodes") or []:
            if node.get("nodeType") != "ContractDefinition":
                continue
            name = node.get("name") or "<anonymous>"
            try:
                unit = _ContractLowering(decls, spans, node, pragma).lower()
            except MalformedInputError as exc:
                loaded.append(LoadedUnit(name=name, origin=request.origin, error=exc))
                continue
            except ValidationError as exc:
                error = MalformedInputError(f"Invalid contract: {exc.errors()[0]['msg']}", name)
                loaded.append(LoadedUnit(name=name, origin=request.origin, error=error))
                continue
            loaded.append(LoadedUnit(name=name, origin=request.origin, unit=unit))

    logger.debug(f"{request.origin}: {len(loaded)} contract(s) from {len(units)} source unit(s)")
    return loaded


SOLC_AST = register_dialect(
    Dialect(
        name=DIALECT_NAME,
        capabilities=frozenset({TRAVERSES_FUNCTIONS, RESOLVES_CALLS, RESOLVES_STATE_VARS}),
        sniff=sniff,
        load=load,
    )
)

__all__ = ["DIALECT_NAME", "SOLC_AST", "load", "sniff"]
