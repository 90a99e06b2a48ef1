# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Fixed-point simplification of scalar expression graphs.

Each pass rebuilds the graph into a fresh arena, visiting nodes in index
order so every child is already rewritten when its parent is reached. Per
node the rules apply in this order:

1. constant folding,
2. identity / annihilation (``x*0``, ``x*1``, ``x*-1 -> -x``, ``x+0``,
   double negation, single-term sums),
3. common-subexpression sharing through hash-consing, with a canonical child
   order for the commutative operators,
4. coefficient factoring (like terms of a sum are collected first, then a
   constant shared by every term is pulled out).

Passes repeat until one leaves the graph unchanged. Dead nodes are dropped at
the end of every pass, which also makes ``optimize`` idempotent.
"""

from __future__ import annotations

from fractions import Fraction
from typing import Dict, List, Optional, Set, Tuple

from core.errors import NonConvergent
from core.graph import SCALAR_KINDS, ExpressionGraph, Node, NodeKind
from log import get_logger

logger = get_logger(__name__)

DEFAULT_REWRITE_CEILING = 1_000_000

# (coefficient, remaining factor or None for a pure constant)
Split = Tuple[Fraction, Optional[int]]


class _RewritePass:
    """One rebuild of ``source`` into a hash-consed arena."""

    def __init__(self, source: ExpressionGraph):
        self.source = source
        self.target = source.spawn()
        self._interned: Dict[tuple, int] = {}
        self._images: Set[int] = set()
        self.fired = 0
        self.shared = 0

    def intern(self, kind: NodeKind, children=(), value=None) -> int:
        if kind is NodeKind.CONSTANT:
            value = Fraction(value)
        key = (kind, tuple(children), value)
        index = self._interned.get(key)
        if index is None:
            index = self.target.add(kind, children, value)
            self._interned[key] = index
        return index

    def constant(self, value) -> int:
        return self.intern(NodeKind.CONSTANT, value=value)

    def split(self, index: int) -> Split:
        """Peel constant factors and negations off a rewritten node."""
        node = self.target[index]
        if node.kind is NodeKind.CONSTANT:
            return node.value, None
        if node.kind is NodeKind.NEGATE:
            coefficient, rest = self.split(node.children[0])
            return -coefficient, rest
        if node.kind is NodeKind.MULTIPLY:
            left, right = node.children
            if self.target[left].kind is NodeKind.CONSTANT:
                coefficient, rest = self.split(right)
                return self.target[left].value * coefficient, rest
        return Fraction(1), index

    def scaled(self, coefficient: Fraction, rest: Optional[int]) -> int:
        if rest is None or coefficient == 0:
            return self.constant(coefficient if rest is None else 0)
        if coefficient == 1:
            return rest
        if coefficient == -1:
            return self.intern(NodeKind.NEGATE, (rest,))
        return self.intern(NodeKind.MULTIPLY, (self.constant(coefficient), rest))

    # Rules

    def multiply(self, left: int, right: int) -> int:
        left_coefficient, left_rest = self.split(left)
        right_coefficient, right_rest = self.split(right)
        coefficient = left_coefficient * right_coefficient
        rests = [r for r in (left_rest, right_rest) if r is not None]
        if coefficient == 0 or not rests:
            return self.constant(coefficient)
        if len(rests) == 1:
            return self.scaled(coefficient, rests[0])
        return self.scaled(coefficient, self.intern(NodeKind.MULTIPLY, sorted(rests)))

    def negate(self, child: int) -> int:
        coefficient, rest = self.split(child)
        return self.scaled(-coefficient, rest)

    def add(self, children: List[int]) -> int:
        total = Fraction(0)
        like: Dict[int, Fraction] = {}
        for child in children:
            coefficient, rest = self.split(child)
            if rest is None:
                total += coefficient
            else:
                like[rest] = like.get(rest, Fraction(0)) + coefficient
        terms = sorted((rest, c) for rest, c in like.items() if c != 0)
        if not terms:
            return self.constant(total)

        if total == 0 and len(terms) > 1:
            magnitude = abs(terms[0][1])
            if magnitude != 1 and all(abs(c) == magnitude for _, c in terms):
                factor = -magnitude if all(c < 0 for _, c in terms) else magnitude
                inner = [self.scaled(c / factor, rest) for rest, c in terms]
                return self.scaled(factor, self.intern(NodeKind.ADD, inner))

        parts = [self.scaled(c, rest) for rest, c in terms]
        if total != 0:
            parts.append(self.constant(total))
        if len(parts) == 1:
            return parts[0]
        return self.intern(NodeKind.ADD, parts)

    def rewrite(self, node: Node, children: List[int]) -> int:
        kind = node.kind
        if kind is NodeKind.INPUT:
            return self.intern(kind, value=node.value)
        if kind is NodeKind.CONSTANT:
            return self.constant(node.value)
        if kind is NodeKind.MULTIPLY:
            return self.multiply(*children)
        if kind is NodeKind.NEGATE:
            return self.negate(children[0])
        return self.add(children)

    def run(self) -> ExpressionGraph:
        remap: List[int] = []
        for node in self.source.nodes:
            if node.kind not in SCALAR_KINDS:
                raise ValueError(f"optimize expects a scalar graph, found a {node.kind.value} node")
            children = [remap[c] for c in node.children]
            index = self.rewrite(node, children)
            plain = Node(node.kind, tuple(children), node.value, node.width)
            if self.target[index] != plain:
                self.fired += 1
            elif index in self._images:
                self.fired += 1
                self.shared += 1
            self._images.add(index)
            remap.append(index)
        for blade, index in self.source.outputs.items():
            self.target.set_output(blade, remap[index])
        return prune(self.target)


def prune(graph: ExpressionGraph) -> ExpressionGraph:
    """Copy of ``graph`` without nodes unreachable from its outputs (order kept)."""
    live = graph.reachable()
    pruned = graph.spawn()
    remap: Dict[int, int] = {}
    for index, node in enumerate(graph.nodes):
        if index in live:
            children = tuple(remap[c] for c in node.children)
            remap[index] = pruned.append(Node(node.kind, children, node.value, node.width))
    for blade, index in graph.outputs.items():
        pruned.set_output(blade, remap[index])
    return pruned


def _same(a: ExpressionGraph, b: ExpressionGraph) -> bool:
    return a.nodes == b.nodes and list(a.outputs.items()) == list(b.outputs.items())


def optimize(graph: ExpressionGraph, rewrite_ceiling: int = DEFAULT_REWRITE_CEILING) -> ExpressionGraph:
    """Simplify ``graph`` to a fixed point without changing what it computes.

    Args:
        graph (ExpressionGraph): Scalar graph from the compiler. Left untouched.
        rewrite_ceiling (int): Maximum total rule firings (and passes) before
            giving up.

    Returns:
        ExpressionGraph: The simplified graph, free of dead nodes.

    Raises:
        NonConvergent: More than ``rewrite_ceiling`` rules fired.
    """
    current = graph
    total = 0
    passes = 0
    while True:
        step = _RewritePass(current)
        rewritten = step.run()
        passes += 1
        total += step.fired
        logger.debug(f"pass {passes}: {step.fired} rewrites ({step.shared} shared), "
                     f"{len(current)} -> {len(rewritten)} nodes")
        if total > rewrite_ceiling or passes > rewrite_ceiling:
            raise NonConvergent(
                f"optimizer fired {total} rewrites in {passes} passes, "
                f"ceiling is {rewrite_ceiling}",
                descriptor=graph.descriptor,
                ceiling=rewrite_ceiling,
                passes=passes,
                rewrites=total,
            )
        if _same(rewritten, current):
            return rewritten
        current = rewritten
