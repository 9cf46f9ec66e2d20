"""Contract representation consumed by the fact extractor.

Front-ends (see ``parse``) turn external ASTs into these models. Every model is
frozen: a ``ContractUnit`` is immutable once it has been built.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

Visibility = Literal["external", "public", "internal", "private"]
Mutability = Literal["pure", "view", "payable", "nonpayable"]
FunctionKind = Literal["function", "constructor", "fallback", "receive", "modifier"]
ContractKind = Literal["contract", "library", "interface", "abstract"]
CallKind = Literal[
    "call",
    "delegatecall",
    "staticcall",
    "selfdestruct",
    "transfer",
    "send",
    "external",
]
OperandKind = Literal[
    "state",
    "parameter",
    "local",
    "literal",
    "constant",
    "msg_sender",
    "msg_value",
    "tx_origin",
    "block_timestamp",
    "block_number",
    "blockhash",
    "prevrandao",
    "this",
    "unresolved",
]
GuardKind = Literal["require", "assert", "if", "loop"]
NodeKind = Literal[
    "entry",
    "exit",
    "statement",
    "branch",
    "loop",
    "join",
    "break",
    "continue",
    "return",
    "revert",
    "placeholder",
]

LOW_LEVEL_CALL_KINDS = frozenset({"call", "delegatecall", "staticcall", "send"})
ENVIRONMENT_SOURCES = frozenset(
    {"tx_origin", "block_timestamp", "block_number", "blockhash", "prevrandao"}
)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class SourceSpan(_Frozen):
    """Source span (1-based lines and columns)."""

    path: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int

    def label(self) -> str:
        return f"{self.path}:{self.start_line}:{self.start_col}"


class Parameter(_Frozen):
    name: str
    type_name: str = ""


class StateVariable(_Frozen):
    """A contract storage variable."""

    name: str
    visibility: Literal["public", "internal", "private"] = "internal"
    type_name: str = ""
    slot: int | None = None
    initialized: bool = False
    constant: bool = False
    span: SourceSpan | None = None

    @property
    def is_dynamic_array(self) -> bool:
        return self.type_name.rstrip().endswith("[]")


class Operand(_Frozen):
    """What an expression refers to, as far as the front-end could resolve."""

    kind: OperandKind
    name: str | None = None
    member: str | None = None
    value: str | None = None


class CallOp(_Frozen):
    """A CallSite: an instruction transferring control outside the function."""

    op: Literal["call"] = "call"
    kind: CallKind
    target: Operand = Field(default_factory=lambda: Operand(kind="unresolved"))
    value_transfer: bool = False
    value: tuple[Operand, ...] = ()
    arguments: tuple[Operand, ...] = ()
    checked: bool = True
    span: SourceSpan | None = None


class ReadOp(_Frozen):
    op: Literal["read"] = "read"
    variable: str
    member: str | None = None
    guard: bool = False
    assigns: str | None = None
    span: SourceSpan | None = None


class WriteOp(_Frozen):
    op: Literal["write"] = "write"
    variable: str
    span: SourceSpan | None = None


class GuardOp(_Frozen):
    op: Literal["guard"] = "guard"
    kind: GuardKind
    operands: tuple[Operand, ...] = ()
    span: SourceSpan | None = None


class EnvOp(_Frozen):
    op: Literal["env"] = "env"
    source: OperandKind
    guard: bool = False
    span: SourceSpan | None = None


class HashOp(_Frozen):
    op: Literal["hash"] = "hash"
    operands: tuple[Operand, ...] = ()
    span: SourceSpan | None = None


class InternalCallOp(_Frozen):
    op: Literal["internal_call"] = "internal_call"
    callee: str
    span: SourceSpan | None = None


Operation = Annotated[
    Union[CallOp, ReadOp, WriteOp, GuardOp, EnvOp, HashOp, InternalCallOp],
    Field(discriminator="op"),
]


class CfgNode(_Frozen):
    id: int
    kind: NodeKind = "statement"
    ops: tuple[Operation, ...] = ()
    successors: tuple[int, ...] = ()
    span: SourceSpan | None = None


class ControlFlowGraph(_Frozen):
    entry: int = 0
    nodes: tuple[CfgNode, ...] = ()

    def node(self, node_id: int) -> CfgNode:
        for node in self.nodes:
            if node.id == node_id:
                return node
        msg = f"CFG has no node {node_id}"
        raise KeyError(msg)

    def successor_map(self) -> dict[int, tuple[int, ...]]:
        return {node.id: node.successors for node in self.nodes}


class FunctionUnit(_Frozen):
    """A function or modifier, owned by exactly one ContractUnit."""

    name: str
    kind: FunctionKind = "function"
    visibility: Visibility = "public"
    mutability: Mutability = "nonpayable"
    modifiers: tuple[str, ...] = ()
    parameters: tuple[Parameter, ...] = ()
    cfg: ControlFlowGraph = Field(default_factory=ControlFlowGraph)
    span: SourceSpan | None = None

    @property
    def is_entry_point(self) -> bool:
        """True when callers outside the contract can invoke the function."""
        if self.kind == "modifier" or self.kind == "constructor":
            return False
        return self.visibility in {"public", "external"}

    def call_sites(self) -> list[tuple[CfgNode, CallOp]]:
        return [
            (node, op)
            for node in self.cfg.nodes
            for op in node.ops
            if isinstance(op, CallOp)
        ]


class ContractUnit(_Frozen):
    """One compiled contract."""

    name: str
    kind: ContractKind = "contract"
    path: str = ""
    span: SourceSpan | None = None
    pragma: str | None = None
    inherits: tuple[str, ...] = ()
    state_variables: tuple[StateVariable, ...] = ()
    modifiers: tuple[FunctionUnit, ...] = ()
    functions: tuple[FunctionUnit, ...] = ()

    def state_variable(self, name: str) -> StateVariable | None:
        for variable in self.state_variables:
            if variable.name == name:
                return variable
        return None

    def modifier(self, name: str) -> FunctionUnit | None:
        for modifier in self.modifiers:
            if modifier.name == name:
                return modifier
        return None

    def all_functions(self) -> tuple[FunctionUnit, ...]:
        """Functions followed by modifiers, in declaration order."""
        return self.functions + self.modifiers


class IrDocument(_Frozen):
    """Native auditmap IR document."""

    format: Literal["auditmap-ir"] = "auditmap-ir"
    version: int = 1
    contracts: tuple[ContractUnit, ...] = ()


__all__ = [
    "CallKind",
    "CallOp",
    "CfgNode",
    "ContractKind",
    "ContractUnit",
    "ControlFlowGraph",
    "ENVIRONMENT_SOURCES",
    "EnvOp",
    "FunctionKind",
    "FunctionUnit",
    "GuardKind",
    "GuardOp",
    "HashOp",
    "InternalCallOp",
    "IrDocument",
    "LOW_LEVEL_CALL_KINDS",
    "Mutability",
    "NodeKind",
    "Operand",
    "OperandKind",
    "Operation",
    "Parameter",
    "ReadOp",
    "SourceSpan",
    "StateVariable",
    "Visibility",
    "WriteOp",
]
