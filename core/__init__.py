# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Core data model for code generation.

Provides the multiplication table, type signatures and operation
descriptors, the expression graph arena, exact batched evaluation,
configuration and the diagnostic taxonomy.
"""

from .algebra import MultiplicationTable, build, blade_label, canonical_order, parse_blade
from .config import CodegenConfig
from .errors import (
    CodegenError,
    InvalidSignature,
    UnknownOperator,
    OperandArityMismatch,
    NonConvergent,
    LaneOverflow,
    UnsupportedConstruct,
)
from .graph import ExpressionGraph, Node, NodeKind
from .types import OperationDescriptor, OperatorKind, TypeSignature, descriptor
from .validation import check_blades, check_generator_signature

__all__ = [
    # algebra
    "MultiplicationTable",
    "build",
    "blade_label",
    "canonical_order",
    "parse_blade",
    # types / graph
    "OperationDescriptor",
    "OperatorKind",
    "TypeSignature",
    "descriptor",
    "ExpressionGraph",
    "Node",
    "NodeKind",
    # config / validation
    "CodegenConfig",
    "check_blades",
    "check_generator_signature",
    # errors
    "CodegenError",
    "InvalidSignature",
    "UnknownOperator",
    "OperandArityMismatch",
    "NonConvergent",
    "LaneOverflow",
    "UnsupportedConstruct",
]
