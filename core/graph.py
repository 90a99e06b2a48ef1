# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Arena-owned expression DAG.

Nodes are immutable and addressed by their index in the arena. A node may
only reference indices created strictly before it, so cycles cannot be
constructed and index order is always a valid evaluation order. Sharing a
child between several parents is how common subexpressions are expressed.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from core.algebra import blade_label


class NodeKind(Enum):
    INPUT = "input"
    CONSTANT = "constant"
    ADD = "add"
    MULTIPLY = "multiply"
    NEGATE = "negate"
    # Lane kinds, introduced by legalization
    EXTRACT = "extract"
    SWIZZLE = "swizzle"
    PACK = "pack"
    BROADCAST = "broadcast"


SCALAR_KINDS = frozenset({
    NodeKind.INPUT, NodeKind.CONSTANT, NodeKind.ADD, NodeKind.MULTIPLY, NodeKind.NEGATE,
})
LEAF_KINDS = frozenset({
    NodeKind.INPUT, NodeKind.CONSTANT, NodeKind.EXTRACT, NodeKind.SWIZZLE,
})


@dataclass(frozen=True)
class Node:
    """One arena entry.

    ``value`` depends on ``kind``:

    - INPUT: ``(operand_slot, blade)``
    - CONSTANT: :class:`fractions.Fraction`
    - EXTRACT: ``(operand_slot, group, lane)``
    - SWIZZLE: ``(operand_slot, group, lanes)``
    - others: ``None``
    """

    kind: NodeKind
    children: Tuple[int, ...] = ()
    value: Any = None
    width: int = 1


class ExpressionGraph:
    """Expression DAG for one operation.

    Attributes:
        nodes (list[Node]): The arena; children always point to lower indices.
        outputs (dict[int, int]): Result blade -> node index, canonical order.
        operands (tuple[TypeSignature, ...]): Operand type signatures by slot.
        result (TypeSignature | None): Result type signature.
        descriptor (OperationDescriptor | None): The compiled request.
    """

    def __init__(self, operands=(), result=None, descriptor=None):
        self.nodes: List[Node] = []
        self.outputs: Dict[int, int] = {}
        self.operands = tuple(operands)
        self.result = result
        self.descriptor = descriptor

    def spawn(self) -> "ExpressionGraph":
        """Empty graph sharing this graph's metadata (for the next stage)."""
        return ExpressionGraph(self.operands, self.result, self.descriptor)

    # Construction

    def add(self, kind: NodeKind, children: Iterable[int] = (), value: Any = None,
            width: int = 1) -> int:
        return self.append(Node(kind, tuple(children), value, width))

    def append(self, node: Node) -> int:
        """Append ``node`` after checking its shape; returns its index."""
        index = len(self.nodes)
        for child in node.children:
            if not 0 <= child < index:
                raise ValueError(
                    f"{node.kind.value} node {index} references {child}; "
                    f"children must precede their parent"
                )
        _check_shape(node)
        if node.kind is NodeKind.CONSTANT and not isinstance(node.value, Fraction):
            node = Node(node.kind, node.children, Fraction(node.value), node.width)
        self.nodes.append(node)
        return index

    def input(self, slot: int, blade: int) -> int:
        return self.add(NodeKind.INPUT, value=(slot, blade))

    def constant(self, value) -> int:
        return self.add(NodeKind.CONSTANT, value=Fraction(value))

    def set_output(self, blade: int, index: int) -> None:
        if not 0 <= index < len(self.nodes):
            raise ValueError(f"output node {index} does not exist")
        self.outputs[blade] = index

    # Queries

    def __len__(self) -> int:
        return len(self.nodes)

    def __getitem__(self, index: int) -> Node:
        return self.nodes[index]

    def roots(self) -> List[int]:
        return list(self.outputs.values())

    def reachable(self, roots: Optional[Iterable[int]] = None) -> Set[int]:
        """Indices reachable from ``roots`` (default: the outputs)."""
        stack = list(self.roots() if roots is None else roots)
        seen: Set[int] = set()
        while stack:
            index = stack.pop()
            if index in seen:
                continue
            seen.add(index)
            stack.extend(self.nodes[index].children)
        return seen

    def reference_counts(self, roots: Optional[Iterable[int]] = None) -> Counter:
        """How many reachable parents (plus roots) reference each node."""
        roots = list(self.roots() if roots is None else roots)
        live = self.reachable(roots)
        counts: Counter = Counter(roots)
        for index in live:
            counts.update(self.nodes[index].children)
        return counts

    def kind_counts(self, roots: Optional[Iterable[int]] = None) -> Counter:
        return Counter(self.nodes[i].kind for i in self.reachable(roots))

    def is_acyclic(self) -> bool:
        return all(child < index
                   for index, node in enumerate(self.nodes)
                   for child in node.children)

    def evaluate(self, assignment: Mapping[Tuple[int, int], Any]) -> Dict[int, Fraction]:
        """Exact scalar evaluation.

        Args:
            assignment: ``(operand_slot, blade) -> value`` for every input used.

        Returns:
            dict[int, Fraction]: Value of each output blade.
        """
        values: List[Fraction] = []
        for node in self.nodes:
            kind = node.kind
            if kind is NodeKind.INPUT:
                values.append(Fraction(assignment[node.value]))
            elif kind is NodeKind.CONSTANT:
                values.append(node.value)
            elif kind is NodeKind.ADD:
                values.append(sum((values[c] for c in node.children), Fraction(0)))
            elif kind is NodeKind.MULTIPLY:
                values.append(values[node.children[0]] * values[node.children[1]])
            elif kind is NodeKind.NEGATE:
                values.append(-values[node.children[0]])
            else:
                raise ValueError(f"scalar evaluation cannot handle {kind.value} nodes")
        return {blade: values[index] for blade, index in self.outputs.items()}

    def format(self, index: int) -> str:
        """S-expression of the subgraph rooted at ``index`` (diagnostics)."""
        node = self.nodes[index]
        if node.kind is NodeKind.INPUT:
            slot, blade = node.value
            return f"in{slot}.{blade_label(blade)}"
        if node.kind is NodeKind.CONSTANT:
            return str(node.value)
        if node.kind is NodeKind.EXTRACT:
            slot, group, lane = node.value
            return f"in{slot}.g{group}[{lane}]"
        if node.kind is NodeKind.SWIZZLE:
            slot, group, lanes = node.value
            return f"in{slot}.g{group}{list(lanes)}"
        inner = " ".join(self.format(c) for c in node.children)
        return f"({node.kind.value} {inner})"

    def __eq__(self, other) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return (self.nodes == other.nodes
                and list(self.outputs.items()) == list(other.outputs.items())
                and self.operands == other.operands
                and self.result == other.result)

    __hash__ = None

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(nodes={len(self.nodes)}, "
                f"outputs={[blade_label(b) for b in self.outputs]})")


def _check_shape(node: Node) -> None:
    kind, arity = node.kind, len(node.children)
    if kind in (NodeKind.INPUT, NodeKind.CONSTANT, NodeKind.EXTRACT, NodeKind.SWIZZLE):
        ok = arity == 0
    elif kind is NodeKind.MULTIPLY:
        ok = arity == 2
    elif kind in (NodeKind.NEGATE, NodeKind.BROADCAST):
        ok = arity == 1
    elif kind is NodeKind.ADD:
        ok = arity >= 1
    else:  # PACK
        ok = arity == node.width
    if not ok:
        raise ValueError(f"{kind.value} node cannot have {arity} children")
    if kind is NodeKind.SWIZZLE and len(node.value[2]) != node.width:
        raise ValueError("swizzle lane count must equal its width")
