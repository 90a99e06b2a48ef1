# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Type signatures, operator kinds and operation descriptors.

A type signature is the sparsity pattern of a multivector: the set of basis
blades it stores. Operator kinds form a closed set consumed by a single
dispatch point in the compiler.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, Optional, Tuple, Union

from core.algebra import blade_identifier, blade_label, canonical_order, parse_blade
from core.errors import OperandArityMismatch, UnknownOperator


class OperatorKind(str, Enum):
    GEOMETRIC_PRODUCT = "geometric_product"
    WEDGE = "wedge"
    DOT = "dot"
    LEFT_CONTRACTION = "left_contraction"
    RIGHT_CONTRACTION = "right_contraction"
    SCALAR_PRODUCT = "scalar_product"
    REGRESSIVE = "regressive"
    SANDWICH = "sandwich"
    DUAL = "dual"
    REVERSE = "reverse"
    GRADE_INVOLUTION = "grade_involution"
    CONJUGATE = "conjugate"
    NEGATE = "negate"
    ADD = "add"
    SUBTRACT = "subtract"
    SQUARED_MAGNITUDE = "squared_magnitude"
    ZERO = "zero"
    ONE = "one"
    INTO = "into"
    SCALE = "scale"


ARITY: Dict[OperatorKind, int] = {
    OperatorKind.GEOMETRIC_PRODUCT: 2,
    OperatorKind.WEDGE: 2,
    OperatorKind.DOT: 2,
    OperatorKind.LEFT_CONTRACTION: 2,
    OperatorKind.RIGHT_CONTRACTION: 2,
    OperatorKind.SCALAR_PRODUCT: 2,
    OperatorKind.REGRESSIVE: 2,
    OperatorKind.SANDWICH: 2,
    OperatorKind.DUAL: 1,
    OperatorKind.REVERSE: 1,
    OperatorKind.GRADE_INVOLUTION: 1,
    OperatorKind.CONJUGATE: 1,
    OperatorKind.NEGATE: 1,
    OperatorKind.ADD: 2,
    OperatorKind.SUBTRACT: 2,
    OperatorKind.SQUARED_MAGNITUDE: 1,
    OperatorKind.ZERO: 0,
    OperatorKind.ONE: 0,
    OperatorKind.INTO: 1,
    OperatorKind.SCALE: 2,
}

# Aliases accepted from requests.
_ALIASES = {
    "gp": OperatorKind.GEOMETRIC_PRODUCT,
    "geometric": OperatorKind.GEOMETRIC_PRODUCT,
    "outer": OperatorKind.WEDGE,
    "outer_product": OperatorKind.WEDGE,
    "inner": OperatorKind.DOT,
    "inner_product": OperatorKind.DOT,
    "transformation": OperatorKind.SANDWICH,
    "reversal": OperatorKind.REVERSE,
    "automorphism": OperatorKind.GRADE_INVOLUTION,
    "conjugation": OperatorKind.CONJUGATE,
    "neg": OperatorKind.NEGATE,
    "sub": OperatorKind.SUBTRACT,
    "regressive_product": OperatorKind.REGRESSIVE,
    "convert": OperatorKind.INTO,
    "project": OperatorKind.INTO,
    "scalar_multiply": OperatorKind.SCALE,
}


def resolve_operator(kind: Union[str, OperatorKind]) -> OperatorKind:
    """Map a requested operator name onto the closed :class:`OperatorKind` set.

    Raises:
        UnknownOperator: The name is neither a kind nor a known alias.
    """
    if isinstance(kind, OperatorKind):
        return kind
    if isinstance(kind, str):
        key = kind.strip().lower()
        if key in _ALIASES:
            return _ALIASES[key]
        try:
            return OperatorKind(key)
        except ValueError:
            pass
    raise UnknownOperator(
        f"unknown operator kind {kind!r}",
        kind=repr(kind),
        available=[k.value for k in OperatorKind],
    )


def check_arity(kind: OperatorKind, operand_count: int) -> None:
    expected = ARITY[kind]
    if operand_count != expected:
        raise OperandArityMismatch(
            f"{kind.value} takes {expected} operand(s), got {operand_count}",
            expected=expected,
            got=operand_count,
        )


def snake_case(name: str) -> str:
    """``CamelCase`` / ``Mixed_name`` -> ``camel_case`` / ``mixed_name``."""
    text = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name)
    text = re.sub(r"[^0-9a-zA-Z]+", "_", text)
    return text.strip("_").lower()


@dataclass(frozen=True)
class TypeSignature:
    """Immutable set of present blades, kept in canonical order.

    Attributes:
        blades (tuple[int, ...]): Blade masks sorted by (grade, mask).
        name (str | None): Type name used by the emitters.
    """

    blades: Tuple[int, ...]
    name: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "blades", canonical_order(self.blades))

    @classmethod
    def of(cls, blades: Iterable[int], name: Optional[str] = None) -> "TypeSignature":
        return cls(tuple(blades), name)

    @classmethod
    def parse(cls, labels: Iterable[str], n: int, name: Optional[str] = None) -> "TypeSignature":
        """Build from blade labels such as ``["1", "e01"]``."""
        return cls(tuple(parse_blade(label, n) for label in labels), name)

    @classmethod
    def grades(cls, table, *grades: int, name: Optional[str] = None) -> "TypeSignature":
        """All blades of the listed grades in ``table``'s algebra."""
        return cls(table.blades_of_grade(*grades), name)

    @classmethod
    def full(cls, table, name: Optional[str] = None) -> "TypeSignature":
        return cls(tuple(table.blades), name)

    def __len__(self) -> int:
        return len(self.blades)

    def __iter__(self) -> Iterator[int]:
        return iter(self.blades)

    def __contains__(self, blade: int) -> bool:
        return blade in self.blades

    def index(self, blade: int) -> int:
        return self.blades.index(blade)

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(blade_label(b) for b in self.blades)

    @property
    def type_name(self) -> str:
        """Declared name, else one derived from the blade labels."""
        if self.name:
            return self.name
        if not self.blades:
            return "Empty"
        return "Mv" + "".join(blade_identifier(b).capitalize() for b in self.blades)

    def named(self, name: str) -> "TypeSignature":
        return TypeSignature(self.blades, name)

    def __repr__(self) -> str:
        return f"TypeSignature({self.type_name}: {', '.join(self.labels)})"


@dataclass(frozen=True)
class OperationDescriptor:
    """A requested operation.

    Attributes:
        kind (str | OperatorKind): Operator; resolved by the compiler.
        operands (tuple[TypeSignature, ...]): One signature per operand slot.
        result (TypeSignature | None): Declared result, or ``None`` to infer.
        name (str | None): Emitted symbol override.
    """

    kind: Union[str, OperatorKind]
    operands: Tuple[TypeSignature, ...]
    result: Optional[TypeSignature] = None
    name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "operands", tuple(self.operands))

    @property
    def kind_name(self) -> str:
        return self.kind.value if isinstance(self.kind, OperatorKind) else str(self.kind)

    def _operator(self) -> Optional[OperatorKind]:
        try:
            return resolve_operator(self.kind)
        except UnknownOperator:
            return None

    def symbol(self) -> str:
        """Emitted function name: operand type names followed by the operator.

        Constants (``zero``, ``one``) are prefixed with their result type and
        conversions are suffixed with it: ``motor_one``, ``motor_into_rotor``.
        """
        if self.name:
            return snake_case(self.name)
        parts = [snake_case(op.type_name) for op in self.operands]
        parts.append(snake_case(self.kind_name))
        if self.result is not None:
            if not self.operands:
                parts.insert(0, snake_case(self.result.type_name))
            elif self._operator() is OperatorKind.INTO:
                parts.append(snake_case(self.result.type_name))
        return "_".join(parts)

    def describe(self, result: Optional[TypeSignature] = None) -> str:
        """``kind(operands) -> result``; ``result`` overrides the declared one."""
        operands = ", ".join(op.type_name for op in self.operands)
        result = result if result is not None else self.result
        return f"{self.kind_name}({operands}) -> {result.type_name if result is not None else '?'}"


def descriptor(kind: Union[str, OperatorKind], *operands: TypeSignature,
               result: Optional[TypeSignature] = None,
               name: Optional[str] = None) -> OperationDescriptor:
    """Shorthand constructor used by tests and the request reader."""
    return OperationDescriptor(kind, tuple(operands), result, name)


def signature_dict(signature: TypeSignature) -> Dict[str, object]:
    return {"name": signature.type_name, "blades": list(signature.labels)}
