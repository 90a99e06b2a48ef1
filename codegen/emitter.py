# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Legalized graph -> source text.

One traversal for every backend. Nodes referenced more than once are bound
to a local exactly once, in dependency (index) order; everything else is
printed inline where it is used. The backend only supplies spelling.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from backends.base import Backend
from codegen.legalizer import LaneLayout, LegalizedGraph
from core.algebra import blade_label
from core.errors import CodegenError, UnsupportedConstruct
from core.graph import LEAF_KINDS, NodeKind
from log import get_logger

logger = get_logger(__name__)

# Precedence levels of printed expressions
SUM, PRODUCT, UNARY, ATOM = 1, 2, 3, 4

Printed = Tuple[str, int]


def _wrap(printed: Printed, minimum: int) -> str:
    text, precedence = printed
    return text if precedence >= minimum else f"({text})"


def check_layout(layout: LaneLayout, backend: Backend) -> str:
    """Validated type name of ``layout`` for ``backend``."""
    name = backend.identifier(layout.name)
    if not layout.groups and not backend.empty_structs:
        raise UnsupportedConstruct(f"{backend.name} structs need at least one member ({name})",
                                   backend=backend.name, type=name)
    backend.lane_type(layout.width)
    return name


class _Printer:

    def __init__(self, graph: LegalizedGraph, backend: Backend):
        self.graph = graph
        self.backend = backend
        self.locals: Dict[int, str] = {}

    def operand(self, slot: int) -> str:
        return self.backend.operand_name(slot)

    def expression(self, index: int) -> Printed:
        if index in self.locals:
            return self.locals[index], ATOM
        graph, backend = self.graph, self.backend
        node = graph[index]
        kind = node.kind
        width = graph.lane_width

        if kind is NodeKind.EXTRACT:
            slot, group, lane = node.value
            return backend.extract(self.operand(slot), group, lane, width), ATOM
        if kind is NodeKind.SWIZZLE:
            slot, group, lanes = node.value
            return backend.swizzle(self.operand(slot), group, lanes, width), ATOM
        if kind is NodeKind.CONSTANT:
            text = backend.literal(node.value)
            return text, UNARY if text.startswith("-") else ATOM
        if kind is NodeKind.NEGATE:
            return "-" + _wrap(self.expression(node.children[0]), ATOM), UNARY
        if kind is NodeKind.MULTIPLY:
            left, right = (self.expression(c) for c in node.children)
            return f"{_wrap(left, PRODUCT)} * {_wrap(right, UNARY)}", PRODUCT
        if kind is NodeKind.ADD:
            return self.sum(node.children), SUM
        if kind is NodeKind.BROADCAST:
            scalar = self.expression(node.children[0])
            if node.width == 1:
                return scalar
            return backend.broadcast(scalar[0], node.width), ATOM
        if kind is NodeKind.PACK:
            scalars = [self.expression(c) for c in node.children]
            if node.width == 1:
                return scalars[0]
            return backend.pack([text for text, _ in scalars], node.width), ATOM
        raise ValueError(f"cannot emit {kind.value} nodes; legalize the graph first")

    def sum(self, children: Iterable[int]) -> str:
        """Terms joined with ``+``, negated terms printed as subtractions."""
        parts: List[str] = []
        for position, child in enumerate(children):
            negated = self.negated_term(child) if position and child not in self.locals else None
            if negated is not None:
                parts.append(f" - {negated}")
            elif position:
                parts.append(f" + {_wrap(self.expression(child), PRODUCT)}")
            else:
                parts.append(_wrap(self.expression(child), SUM))
        return "".join(parts)

    def negated_term(self, index: int) -> Optional[str]:
        """Text of ``x`` when node ``index`` is ``-x`` or ``(-c) * x``."""
        node = self.graph[index]
        if node.kind is NodeKind.NEGATE:
            return _wrap(self.expression(node.children[0]), PRODUCT)
        if node.kind is NodeKind.MULTIPLY:
            left = self.graph[node.children[0]]
            if (left.kind is NodeKind.CONSTANT and left.value < 0
                    and node.children[0] not in self.locals):
                magnitude = self.backend.literal(-left.value)
                return f"{magnitude} * {_wrap(self.expression(node.children[1]), UNARY)}"
        return None

    def body(self) -> List[str]:
        graph, backend = self.graph, self.backend
        roots = graph.value_roots()
        counts = graph.reference_counts(roots)
        statements = []
        for index in sorted(graph.reachable(roots)):
            node = graph[index]
            if counts[index] > 1 and node.kind not in LEAF_KINDS:
                text, _ = self.expression(index)
                name = backend.local_name(len(self.locals))
                statements.append(backend.local(name, text, node.width))
                self.locals[index] = name
        fields = [self.expression(root)[0] for root in roots]
        type_name = backend.identifier(graph.result_layout.name)
        statements.append(backend.return_statement(backend.construct(type_name, fields)))
        return statements


def emit(graph: LegalizedGraph, backend: Backend, symbol: Optional[str] = None) -> str:
    """Print one legalized operation as a function definition.

    Args:
        graph (LegalizedGraph): Output of :func:`codegen.legalizer.legalize`.
        backend (Backend): Printing rules.
        symbol (str, optional): Function name; defaults to the descriptor's symbol.

    Returns:
        str: Function source, without the artifact preamble.

    Raises:
        UnsupportedConstruct: The backend cannot print a required shape.
    """
    descriptor = graph.descriptor
    try:
        if symbol is None:
            symbol = descriptor.symbol()
        symbol = backend.identifier(symbol)
        parameters = [(backend.operand_name(slot), check_layout(layout, backend))
                      for slot, layout in enumerate(graph.operand_layouts)]
        result = check_layout(graph.result_layout, backend)
        body = _Printer(graph, backend).body()
        header = descriptor.describe(graph.result) if descriptor is not None else symbol
        source = backend.function(symbol, parameters, result, body, header)
    except CodegenError as error:
        raise error.attach(descriptor, backend.name)
    logger.debug(f"emitted {symbol} for {backend.name}: {len(body) - 1} local(s)")
    return source


def emit_types(layouts: Iterable[LaneLayout], backend: Backend) -> str:
    """Struct definitions for ``layouts`` (first layout wins per type name)."""
    blocks = []
    seen = set()
    for layout in layouts:
        name = check_layout(layout, backend)
        if name in seen:
            continue
        seen.add(name)
        fields = []
        for group, lanes in enumerate(layout.groups):
            labels = ", ".join(blade_label(b) if b is not None else "_" for b in lanes)
            fields.append((backend.field_name(group), backend.lane_type(layout.width), labels))
        blocks.append(backend.struct(name, fields))
    return render(backend, blocks, types=True)


def render(backend: Backend, blocks: List[str], types: bool = False) -> str:
    """Join definitions into one artifact, preamble first."""
    preamble = backend.preamble(types=types)
    head = "\n".join(preamble) + "\n\n" if preamble else ""
    return head + "\n".join(blocks)
