# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Exact batched evaluation of expression graphs.

Used to verify the pipeline (optimizer equivalence, legal lane layouts,
agreement with the dense Cayley product). Values are int64 tensors, so every
comparison is exact as long as the graph's constants are integers.
"""

from functools import reduce
from typing import Dict, List, Sequence, Tuple

import torch

from core.graph import ExpressionGraph, NodeKind

InputKey = Tuple[int, int]


def random_inputs(operands: Sequence, batch: int = 1000, low: int = -9, high: int = 10,
                  seed: int = 0) -> Dict[InputKey, torch.Tensor]:
    """Random integer assignment for every operand component.

    Args:
        operands: Type signatures by operand slot.
        batch (int): Number of assignments.
        low, high (int): Half-open value range.
        seed (int): Generator seed, for reproducible checks.

    Returns:
        dict: ``(slot, blade) -> LongTensor[batch]``.
    """
    generator = torch.Generator().manual_seed(seed)
    inputs = {}
    for slot, signature in enumerate(operands):
        for blade in signature:
            inputs[(slot, blade)] = torch.randint(low, high, (batch,), generator=generator,
                                                  dtype=torch.long)
    return inputs


def _batch_shape(inputs: Dict[InputKey, torch.Tensor]) -> torch.Size:
    for value in inputs.values():
        return value.shape
    return torch.Size([1])


def _integer_constant(value) -> torch.Tensor:
    if value.denominator != 1:
        raise ValueError(f"batched evaluation needs integer constants, got {value}")
    return torch.tensor(int(value), dtype=torch.long)


def evaluate_batch(graph: ExpressionGraph,
                   inputs: Dict[InputKey, torch.Tensor]) -> Dict[int, torch.Tensor]:
    """Evaluate a scalar graph on a batch of assignments.

    Returns:
        dict[int, torch.Tensor]: Output blade -> values ``[batch]``.
    """
    shape = _batch_shape(inputs)
    values: List[torch.Tensor] = []
    for node in graph.nodes:
        kind = node.kind
        if kind is NodeKind.INPUT:
            values.append(inputs[node.value])
        elif kind is NodeKind.CONSTANT:
            values.append(_integer_constant(node.value))
        elif kind is NodeKind.ADD:
            values.append(reduce(torch.add, (values[c] for c in node.children)))
        elif kind is NodeKind.MULTIPLY:
            values.append(values[node.children[0]] * values[node.children[1]])
        elif kind is NodeKind.NEGATE:
            values.append(-values[node.children[0]])
        else:
            raise ValueError(f"evaluate_batch cannot handle {kind.value} nodes; use evaluate_lanes")
    return {blade: values[index].expand(shape) for blade, index in graph.outputs.items()}


def operand_lanes(graph, inputs: Dict[InputKey, torch.Tensor]) -> List[List[torch.Tensor]]:
    """Pack operand components into the lane groups of a legalized graph."""
    shape = _batch_shape(inputs)
    lanes = []
    for slot, layout in enumerate(graph.operand_layouts):
        groups = []
        for group in layout.groups:
            columns = [inputs[(slot, blade)] if blade is not None
                       else torch.zeros(shape, dtype=torch.long)
                       for blade in group]
            groups.append(torch.stack(columns, dim=-1))
        lanes.append(groups)
    return lanes


def evaluate_lanes(graph, inputs: Dict[InputKey, torch.Tensor]) -> List[torch.Tensor]:
    """Evaluate a legalized graph.

    Returns:
        list[torch.Tensor]: One ``[batch, width]`` tensor per result lane group.
    """
    shape = _batch_shape(inputs)
    lanes = operand_lanes(graph, inputs)
    values: List[torch.Tensor] = []
    for node in graph.nodes:
        kind = node.kind
        if kind is NodeKind.EXTRACT:
            slot, group, lane = node.value
            values.append(lanes[slot][group][..., lane])
        elif kind is NodeKind.SWIZZLE:
            slot, group, selected = node.value
            values.append(lanes[slot][group][..., list(selected)])
        elif kind is NodeKind.CONSTANT:
            values.append(_integer_constant(node.value))
        elif kind is NodeKind.ADD:
            values.append(reduce(torch.add, (values[c] for c in node.children)))
        elif kind is NodeKind.MULTIPLY:
            values.append(values[node.children[0]] * values[node.children[1]])
        elif kind is NodeKind.NEGATE:
            values.append(-values[node.children[0]])
        elif kind is NodeKind.BROADCAST:
            scalar = values[node.children[0]].expand(shape)
            values.append(scalar.unsqueeze(-1).expand(*shape, node.width))
        elif kind is NodeKind.PACK:
            values.append(torch.stack([values[c].expand(shape) for c in node.children], dim=-1))
        else:
            raise ValueError(f"legalized graphs carry no {kind.value} nodes")
    return [values[group.value].expand(*shape, graph.lane_width) for group in graph.groups]


def dense(components: Dict[int, torch.Tensor], dim: int) -> torch.Tensor:
    """Scatter ``blade -> [batch]`` components into a ``[batch, dim]`` multivector."""
    shape = _batch_shape(components)
    mv = torch.zeros(*shape, dim, dtype=torch.long)
    for blade, value in components.items():
        mv[..., blade] = value
    return mv


def reference_product(table, A: torch.Tensor, B: torch.Tensor) -> torch.Tensor:
    """Dense geometric product through the Cayley tensors.

    Args:
        table (MultiplicationTable): Algebra with ``n <= DENSE_LIMIT``.
        A (torch.Tensor): Left operand [..., dim].
        B (torch.Tensor): Right operand [..., dim].

    Returns:
        torch.Tensor: The product AB [..., dim].
    """
    idx, signs = table.cayley_table(A.device)
    # result[..., k] = sum_i A[..., i] * B[..., idx[i, k]] * signs[i, idx[i, k]]
    gp_signs = torch.gather(signs, 1, idx)
    B_gathered = B[..., idx]  # [..., D, D]
    return (A.unsqueeze(-1) * B_gathered * gp_signs).sum(dim=-2)
