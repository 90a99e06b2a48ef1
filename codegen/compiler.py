# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Operation descriptor -> expression graph.

Every operator is lowered through one dispatch table. Bilinear products only
differ in which blade pairs contribute; the per-kind rule receives the grades
``(r, s, t)`` of the left factor, the right factor and their product.

Term order inside every sum is ascending (left blade position, right blade
position) in canonical operand order, so the emitted source is stable.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Mapping, Optional, Tuple

from core.algebra import MultiplicationTable, canonical_order, popcount
from core.errors import CodegenError, InvalidSignature
from core.graph import ExpressionGraph, NodeKind
from core.types import (
    OperationDescriptor,
    OperatorKind,
    TypeSignature,
    check_arity,
    resolve_operator,
)
from core.validation import check_blades
from log import get_logger

logger = get_logger(__name__)

# (coefficient, left blade, right blade)
Term = Tuple[int, int, int]

GradeRule = Callable[[int, int, int], bool]

PRODUCT_RULES: Dict[OperatorKind, GradeRule] = {
    OperatorKind.GEOMETRIC_PRODUCT: lambda r, s, t: True,
    OperatorKind.WEDGE: lambda r, s, t: t == r + s,
    OperatorKind.DOT: lambda r, s, t: t == abs(r - s),
    OperatorKind.LEFT_CONTRACTION: lambda r, s, t: t == s - r,
    OperatorKind.RIGHT_CONTRACTION: lambda r, s, t: t == r - s,
    OperatorKind.SCALAR_PRODUCT: lambda r, s, t: t == 0,
}


def product_terms(table: MultiplicationTable, left: TypeSignature, right: TypeSignature,
                  rule: GradeRule = PRODUCT_RULES[OperatorKind.GEOMETRIC_PRODUCT]
                  ) -> Dict[int, List[Term]]:
    """Nonzero blade-pair contributions grouped by product blade.

    Args:
        table (MultiplicationTable): The algebra.
        left, right (TypeSignature): Present blades of each factor.
        rule: Grade filter ``(r, s, t) -> bool``.

    Returns:
        dict[int, list[Term]]: Product blade -> contributing terms.
    """
    terms: Dict[int, List[Term]] = {}
    for a in left:
        for b in right:
            blade, coefficient = table.product(a, b)
            if coefficient == 0:
                continue
            if not rule(popcount(a), popcount(b), popcount(blade)):
                continue
            terms.setdefault(blade, []).append((coefficient, a, b))
    return terms


class _GraphBuilder:
    """Thin helper over the arena with one shared Input leaf per operand component."""

    def __init__(self, table: MultiplicationTable, descriptor: OperationDescriptor):
        self.table = table
        self.descriptor = descriptor
        self.graph = ExpressionGraph(descriptor.operands, None, descriptor)
        self._inputs: Dict[Tuple[int, int], int] = {}
        for slot, signature in enumerate(descriptor.operands):
            for blade in signature:
                self._inputs[(slot, blade)] = self.graph.input(slot, blade)

    def input(self, slot: int, blade: int) -> int:
        return self._inputs[(slot, blade)]

    def scaled(self, coefficient: int, node: int) -> int:
        return self.graph.add(NodeKind.MULTIPLY, (self.graph.constant(coefficient), node))

    def term(self, coefficient: int, left: int, right: int) -> int:
        product = self.graph.add(NodeKind.MULTIPLY, (left, right))
        return self.scaled(coefficient, product)

    def sum(self, terms: List[int]) -> int:
        return self.graph.add(NodeKind.ADD, terms)


def _bilinear(builder: _GraphBuilder, kind: OperatorKind) -> Tuple[Dict[int, int], None]:
    left, right = builder.descriptor.operands
    terms = product_terms(builder.table, left, right, PRODUCT_RULES[kind])
    sums = {}
    for blade in canonical_order(terms):
        sums[blade] = builder.sum([
            builder.term(c, builder.input(0, a), builder.input(1, b))
            for c, a, b in terms[blade]
        ])
    return sums, None


def _regressive(builder: _GraphBuilder, kind: OperatorKind) -> Tuple[Dict[int, int], None]:
    """Wedge of the duals, mapped back through the dual."""
    table = builder.table
    left, right = builder.descriptor.operands
    terms: Dict[int, List[Term]] = {}
    for x in left:
        for y in right:
            a, b = table.complement(x), table.complement(y)
            if a & b:
                continue
            c = a | b
            coefficient = (table.coefficient(a, b) * table.dual_sign(a)
                           * table.dual_sign(b) * table.dual_sign(c))
            terms.setdefault(table.complement(c), []).append((coefficient, x, y))
    sums = {}
    for blade in canonical_order(terms):
        sums[blade] = builder.sum([
            builder.term(c, builder.input(0, x), builder.input(1, y))
            for c, x, y in terms[blade]
        ])
    return sums, None


def _sandwich(builder: _GraphBuilder, kind: OperatorKind) -> Tuple[Dict[int, int], TypeSignature]:
    """``V * X * reverse(V)`` as two chained geometric products.

    The reversed copy of ``V`` is its own set of nodes, each input scaled by
    the reversion sign of its grade. The default result is the signature of
    the transformed operand ``X``.
    """
    table = builder.table
    versor, target = builder.descriptor.operands

    first = product_terms(table, versor, target)
    partial = {}
    for blade in canonical_order(first):
        partial[blade] = builder.sum([
            builder.term(c, builder.input(0, a), builder.input(1, b))
            for c, a, b in first[blade]
        ])

    reversed_versor = {
        blade: builder.scaled(table.reversion_sign(blade), builder.input(0, blade))
        for blade in versor
    }

    second: Dict[int, List[Tuple[int, int, int]]] = {}
    for c in partial:
        for k in versor:
            blade, coefficient = table.product(c, k)
            if coefficient:
                second.setdefault(blade, []).append((coefficient, partial[c], reversed_versor[k]))

    sums = {}
    for blade in canonical_order(second):
        sums[blade] = builder.sum([builder.term(c, p, r) for c, p, r in second[blade]])
    return sums, target


def _squared_magnitude(builder: _GraphBuilder, kind: OperatorKind) -> Tuple[Dict[int, int], TypeSignature]:
    """Scalar part of ``A * reverse(A)``."""
    table = builder.table
    (operand,) = builder.descriptor.operands
    terms = []
    for blade in operand:
        coefficient = table.coefficient(blade, blade)
        if coefficient == 0:
            continue
        component = builder.input(0, blade)
        reverse = builder.scaled(table.reversion_sign(blade), component)
        terms.append(builder.term(coefficient, component, reverse))
    sums = {0: builder.sum(terms)} if terms else {}
    return sums, TypeSignature((0,))


def _involution(builder: _GraphBuilder, kind: OperatorKind) -> Tuple[Dict[int, int], None]:
    table = builder.table
    sign = {
        OperatorKind.REVERSE: table.reversion_sign,
        OperatorKind.GRADE_INVOLUTION: table.involution_sign,
        OperatorKind.CONJUGATE: table.conjugation_sign,
        OperatorKind.NEGATE: lambda blade: -1,
    }[kind]
    (operand,) = builder.descriptor.operands
    return {blade: builder.scaled(sign(blade), builder.input(0, blade)) for blade in operand}, None


def _dual(builder: _GraphBuilder, kind: OperatorKind) -> Tuple[Dict[int, int], None]:
    """Each blade maps onto its complement, signed by ``blade * complement``."""
    table = builder.table
    (operand,) = builder.descriptor.operands
    mapped = {table.complement(blade): blade for blade in operand}
    return {
        target: builder.scaled(table.dual_sign(mapped[target]), builder.input(0, mapped[target]))
        for target in canonical_order(mapped)
    }, None


def _component_wise(builder: _GraphBuilder, kind: OperatorKind) -> Tuple[Dict[int, int], None]:
    left, right = builder.descriptor.operands
    sign = 1 if kind is OperatorKind.ADD else -1
    sums = {}
    for blade in canonical_order(set(left) | set(right)):
        parts = []
        if blade in left:
            parts.append(builder.input(0, blade))
        if blade in right:
            parts.append(builder.scaled(sign, builder.input(1, blade)))
        sums[blade] = builder.sum(parts)
    return sums, None


def _constant(builder: _GraphBuilder, kind: OperatorKind) -> Tuple[Dict[int, int], TypeSignature]:
    """``zero`` / ``one``: no operands, the result defaults to the scalar type.

    ``one`` is the multiplicative identity, so its result must store the scalar.
    """
    result = builder.descriptor.result
    if result is None:
        result = TypeSignature((0,))
    if kind is OperatorKind.ZERO:
        return {}, result
    if 0 not in result:
        raise InvalidSignature(f"one needs a result with a scalar blade, got {result.type_name}",
                               type=result.type_name)
    return {0: builder.graph.constant(1)}, result


def _into(builder: _GraphBuilder, kind: OperatorKind) -> Tuple[Dict[int, int], None]:
    """Projection onto the result: shared blades are copied, the rest dropped."""
    (operand,) = builder.descriptor.operands
    return {blade: builder.input(0, blade) for blade in operand}, None


def _scale(builder: _GraphBuilder, kind: OperatorKind) -> Tuple[Dict[int, int], TypeSignature]:
    """Every component of the first operand times the scalar second operand."""
    operand, factor = builder.descriptor.operands
    if factor.blades != (0,):
        raise InvalidSignature(f"scale factor must be a scalar, got {factor.type_name}",
                               type=factor.type_name)
    scalar = builder.input(1, 0)
    return {
        blade: builder.graph.add(NodeKind.MULTIPLY, (builder.input(0, blade), scalar))
        for blade in operand
    }, operand


_LOWERINGS = {
    OperatorKind.GEOMETRIC_PRODUCT: _bilinear,
    OperatorKind.WEDGE: _bilinear,
    OperatorKind.DOT: _bilinear,
    OperatorKind.LEFT_CONTRACTION: _bilinear,
    OperatorKind.RIGHT_CONTRACTION: _bilinear,
    OperatorKind.SCALAR_PRODUCT: _bilinear,
    OperatorKind.REGRESSIVE: _regressive,
    OperatorKind.SANDWICH: _sandwich,
    OperatorKind.SQUARED_MAGNITUDE: _squared_magnitude,
    OperatorKind.DUAL: _dual,
    OperatorKind.REVERSE: _involution,
    OperatorKind.GRADE_INVOLUTION: _involution,
    OperatorKind.CONJUGATE: _involution,
    OperatorKind.NEGATE: _involution,
    OperatorKind.ADD: _component_wise,
    OperatorKind.SUBTRACT: _component_wise,
    OperatorKind.ZERO: _constant,
    OperatorKind.ONE: _constant,
    OperatorKind.INTO: _into,
    OperatorKind.SCALE: _scale,
}


def compile(table: MultiplicationTable, descriptor: OperationDescriptor,
            names: Optional[Mapping[Tuple[int, ...], str]] = None) -> ExpressionGraph:
    """Build the expression graph of one operation.

    Args:
        table (MultiplicationTable): Read-only multiplication table.
        descriptor (OperationDescriptor): Operator and operand signatures.
        names (Mapping, optional): Blade tuple -> type name, used to name an
            inferred result after a known type.

    Returns:
        ExpressionGraph: One output node per result blade that receives a
        contribution; blades without contributions are left out.

    Raises:
        UnknownOperator: ``descriptor.kind`` is not an operator.
        OperandArityMismatch: Wrong number of operands.
        InvalidSignature: An operand or result mentions a blade outside the algebra,
            or a ``one`` result / ``scale`` factor lacks the required scalar blade.
    """
    try:
        kind = resolve_operator(descriptor.kind)
        check_arity(kind, len(descriptor.operands))
        for slot, signature in enumerate(descriptor.operands):
            check_blades(signature, table.dim, name=f"operand {slot} ({signature.type_name})")
        if descriptor.result is not None:
            check_blades(descriptor.result, table.dim, name=f"result ({descriptor.result.type_name})")

        builder = _GraphBuilder(table, descriptor)
        sums, default_result = _LOWERINGS[kind](builder, kind)
        graph = builder.graph

        if descriptor.result is not None:
            result = descriptor.result
        elif default_result is not None:
            result = default_result
        else:
            result = TypeSignature.of(sums)
        if result.name is None and names and result.blades in names:
            result = result.named(names[result.blades])
        graph.result = result

        for blade in result:
            if blade in sums:
                graph.set_output(blade, sums[blade])
    except CodegenError as error:
        raise error.attach(descriptor)

    logger.debug(f"compiled {descriptor.describe()}: {len(graph)} nodes, "
                 f"{len(graph.outputs)}/{len(result)} outputs")
    return graph
