# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Lane-group shaping of optimized graphs.

Every operand and result signature is laid out as ``ceil(count / W)`` groups
of exactly ``W`` lanes, blades in canonical order, padding lanes empty.
Legalization rewrites a scalar graph into one that backends can print
without further decisions:

- every ``Input`` becomes an ``Extract`` of one lane of an operand group,
- absent result blades and padding lanes become explicit ``Constant(0)``,
- every result group gets a lane value: ``Broadcast`` of a uniform constant,
  a lane-wise ``Multiply(Swizzle, Broadcast | Pack)`` when the group is a
  scaled permutation of one operand group, or a ``Pack`` of its slots.
"""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from core.config import next_power_of_two
from core.errors import LaneOverflow
from core.graph import SCALAR_KINDS, ExpressionGraph, Node, NodeKind
from core.types import TypeSignature
from log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LaneLayout:
    """Placement of a signature's blades into lane groups.

    Attributes:
        signature (TypeSignature): The laid out type.
        width (int): Lanes per group.
        groups (tuple[tuple[int | None, ...], ...]): Blade per lane; ``None``
            marks padding.
    """

    signature: TypeSignature
    width: int
    groups: Tuple[Tuple[Optional[int], ...], ...]

    @classmethod
    def of(cls, signature: TypeSignature, width: int) -> "LaneLayout":
        blades = list(signature.blades)
        groups = []
        for start in range(0, len(blades), width):
            chunk = blades[start:start + width]
            groups.append(tuple(chunk) + (None,) * (width - len(chunk)))
        return cls(signature, width, tuple(groups))

    @property
    def name(self) -> str:
        return self.signature.type_name

    def locate(self, blade: int) -> Tuple[int, int]:
        """``(group, lane)`` holding ``blade``."""
        position = self.signature.index(blade)
        return divmod(position, self.width)


class LaneGroup(NamedTuple):
    """One result group: its per-lane scalar slots and its lane value."""

    slots: Tuple[int, ...]
    value: int


class LegalizedGraph(ExpressionGraph):
    """Expression graph whose result is a sequence of lane groups.

    ``outputs`` maps every result blade (present or not) to its scalar slot;
    the backends only print ``groups[i].value``.

    Attributes:
        lane_width (int): Lanes per group.
        operand_layouts (tuple[LaneLayout, ...]): Layout per operand slot.
        result_layout (LaneLayout): Layout of the result type.
        groups (list[LaneGroup]): Result groups in layout order.
    """

    def __init__(self, operands=(), result=None, descriptor=None, lane_width: int = 1,
                 operand_layouts: Sequence[LaneLayout] = (),
                 result_layout: Optional[LaneLayout] = None):
        super().__init__(operands, result, descriptor)
        self.lane_width = lane_width
        self.operand_layouts = tuple(operand_layouts)
        self.result_layout = result_layout
        self.groups: List[LaneGroup] = []

    def spawn(self) -> "LegalizedGraph":
        return LegalizedGraph(self.operands, self.result, self.descriptor, self.lane_width,
                              self.operand_layouts, self.result_layout)

    def value_roots(self) -> List[int]:
        return [group.value for group in self.groups]

    def __eq__(self, other) -> bool:
        equal = super().__eq__(other)
        if equal is NotImplemented or not equal:
            return equal
        return (self.lane_width == other.lane_width
                and self.operand_layouts == other.operand_layouts
                and self.result_layout == other.result_layout
                and self.groups == other.groups)

    __hash__ = None


class _Legalizer:

    def __init__(self, graph: ExpressionGraph, width: int):
        self.source = graph
        self.width = width
        operand_layouts = tuple(LaneLayout.of(sig, width) for sig in graph.operands)
        result_layout = LaneLayout.of(graph.result, width)
        self.target = LegalizedGraph(graph.operands, graph.result, graph.descriptor, width,
                                     operand_layouts, result_layout)
        self._zero: Optional[int] = None

    def zero(self) -> int:
        if self._zero is None:
            self._zero = self.target.constant(0)
        return self._zero

    def lower_scalars(self) -> Dict[int, int]:
        remap: Dict[int, int] = {}
        for index, node in enumerate(self.source.nodes):
            if node.kind not in SCALAR_KINDS:
                raise ValueError(f"cannot legalize a graph holding {node.kind.value} nodes")
            if node.kind is NodeKind.INPUT:
                slot, blade = node.value
                group, lane = self.target.operand_layouts[slot].locate(blade)
                remap[index] = self.target.add(NodeKind.EXTRACT, value=(slot, group, lane))
            else:
                children = tuple(remap[c] for c in node.children)
                remap[index] = self.target.append(Node(node.kind, children, node.value))
        return remap

    def lane_term(self, index: int) -> Optional[Tuple[Fraction, Optional[Tuple[int, int, int]]]]:
        """``(coefficient, extract value)`` if ``index`` is a scaled operand lane.

        A zero constant matches with no lane; anything else returns ``None``.
        """
        node = self.target[index]
        if node.kind is NodeKind.EXTRACT:
            return Fraction(1), node.value
        if node.kind is NodeKind.CONSTANT and node.value == 0:
            return Fraction(0), None
        if node.kind is NodeKind.NEGATE:
            inner = self.target[node.children[0]]
            if inner.kind is NodeKind.EXTRACT:
                return Fraction(-1), inner.value
        if node.kind is NodeKind.MULTIPLY:
            left, right = (self.target[c] for c in node.children)
            if left.kind is NodeKind.CONSTANT and right.kind is NodeKind.EXTRACT:
                return left.value, right.value
            if right.kind is NodeKind.CONSTANT and left.kind is NodeKind.EXTRACT:
                return right.value, left.value
        return None

    def group_value(self, slots: Tuple[int, ...]) -> int:
        width = self.width
        nodes = [self.target[s] for s in slots]
        if all(n.kind is NodeKind.CONSTANT for n in nodes) and len({n.value for n in nodes}) == 1:
            return self.target.add(NodeKind.BROADCAST, (slots[0],), width=width)

        terms = [self.lane_term(s) for s in slots]
        sources = {term[1][:2] for term in terms if term is not None and term[1] is not None}
        if None not in terms and len(sources) == 1:
            (slot, group), = sources
            lanes = tuple(term[1][2] if term[1] is not None else lane
                          for lane, term in enumerate(terms))
            coefficients = [term[0] for term in terms]
            swizzle = self.target.add(NodeKind.SWIZZLE, value=(slot, group, lanes), width=width)
            if all(c == 1 for c in coefficients):
                return swizzle
            if len(set(coefficients)) == 1:
                scale = self.target.add(NodeKind.BROADCAST, (self.target.constant(coefficients[0]),),
                                        width=width)
            else:
                scale = self.target.add(NodeKind.PACK,
                                        [self.target.constant(c) for c in coefficients],
                                        width=width)
            return self.target.add(NodeKind.MULTIPLY, (swizzle, scale), width=width)

        return self.target.add(NodeKind.PACK, slots, width=width)

    def run(self) -> LegalizedGraph:
        remap = self.lower_scalars()
        layout = self.target.result_layout
        for lanes in layout.groups:
            slots = []
            for blade in lanes:
                if blade is not None and blade in self.source.outputs:
                    slot = remap[self.source.outputs[blade]]
                else:
                    slot = self.zero()
                if blade is not None:
                    self.target.set_output(blade, slot)
                slots.append(slot)
            slots = tuple(slots)
            self.target.groups.append(LaneGroup(slots, self.group_value(slots)))
        return _prune(self.target)


def _prune(graph: LegalizedGraph) -> LegalizedGraph:
    roots = graph.roots() + graph.value_roots()
    for group in graph.groups:
        roots.extend(group.slots)
    live = graph.reachable(roots)
    pruned = graph.spawn()
    remap: Dict[int, int] = {}
    for index, node in enumerate(graph.nodes):
        if index in live:
            children = tuple(remap[c] for c in node.children)
            remap[index] = pruned.append(Node(node.kind, children, node.value, node.width))
    for blade, index in graph.outputs.items():
        pruned.set_output(blade, remap[index])
    pruned.groups = [LaneGroup(tuple(remap[s] for s in group.slots), remap[group.value])
                     for group in graph.groups]
    return pruned


def legalize(graph: ExpressionGraph, target_lane_width: Optional[int] = None,
             max_lane_width: Optional[int] = None) -> LegalizedGraph:
    """Shape ``graph`` into fixed-width lane groups.

    Args:
        graph (ExpressionGraph): Optimized scalar graph; its ``result`` must be set.
        target_lane_width (int, optional): Lanes per group. Defaults to the
            smallest power of two covering the largest operand or result.
        max_lane_width (int, optional): Backend limit.

    Returns:
        LegalizedGraph: New graph; ``graph`` is not modified.

    Raises:
        LaneOverflow: The lane width exceeds ``max_lane_width``.
    """
    if graph.result is None:
        raise ValueError("legalize needs a graph with a result signature")
    signatures = list(graph.operands) + [graph.result]
    if target_lane_width is None:
        width = next_power_of_two(max(len(s) for s in signatures))
    else:
        width = int(target_lane_width)
    if width < 1:
        raise ValueError(f"lane width must be >= 1, got {width}")

    if max_lane_width is not None and width > max_lane_width:
        widest = max(signatures, key=len)
        raise LaneOverflow(
            f"lane width {width} exceeds the backend maximum {max_lane_width} "
            f"({widest.type_name} has {len(widest)} blades)",
            descriptor=graph.descriptor,
            lane_width=width,
            max_lane_width=max_lane_width,
            type=widest.type_name,
        )

    legalized = _Legalizer(graph, width).run()
    logger.debug(f"legalized {len(graph)} -> {len(legalized)} nodes, "
                 f"{len(legalized.groups)} result group(s) of {width} lanes")
    return legalized
