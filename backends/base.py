# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Printing rules shared by every backend.

A backend never decides *what* to compute; it only spells lane types, lane
accesses, constants and definitions. The traversal lives in
:mod:`codegen.emitter`.
"""

from abc import ABC, abstractmethod
from fractions import Fraction
from typing import FrozenSet, List, Optional, Sequence, Tuple

from core.errors import UnsupportedConstruct

# binary32: 24 significand bits, normal exponents up to 127, subnormals down to 2^-149
_SIGNIFICAND_BITS = 24
_MAX_EXPONENT = 127
_MIN_EXPONENT = -149


def _trailing_zeros(value: int) -> int:
    return (value & -value).bit_length() - 1


def is_binary32(value: Fraction) -> bool:
    """True if ``value`` is exactly representable as an IEEE-754 single."""
    value = Fraction(value)
    if value == 0:
        return True
    numerator, denominator = abs(value.numerator), value.denominator
    if denominator & (denominator - 1):
        return False
    shift = _trailing_zeros(numerator)
    significand = numerator >> shift
    exponent = shift - (denominator.bit_length() - 1)
    if significand.bit_length() > _SIGNIFICAND_BITS:
        return False
    top = exponent + significand.bit_length() - 1
    return _MIN_EXPONENT <= exponent and top <= _MAX_EXPONENT


def float_literal(value: Fraction, backend: str) -> str:
    """Decimal spelling of an exact binary32 constant (always has a ``.`` or exponent).

    Raises:
        UnsupportedConstruct: ``value`` would be rounded.
    """
    value = Fraction(value)
    if not is_binary32(value):
        raise UnsupportedConstruct(
            f"constant {value} is not exactly representable in binary32",
            backend=backend,
            constant=str(value),
        )
    text = repr(float(value))
    if text == "-0.0":
        text = "0.0"
    return text


class Backend(ABC):
    """Lexical rules of one target language.

    Attributes:
        name (str): Registry key, also the artifact sub-directory.
        extension (str): Artifact file extension.
        max_lane_width (int): Largest lane group the backend has a type for.
        lane_widths (frozenset[int]): Lane widths with a native type.
        comment (str): Line comment prefix.
        empty_structs (bool): Whether a struct may have no members.
        indent (str): One indentation level.
        support_module (str | None): Artifact name of the lane type
            definitions, for targets without built-in vector types.
    """

    name: str = ""
    extension: str = ""
    max_lane_width: int = 1
    lane_widths: FrozenSet[int] = frozenset({1})
    comment: str = "//"
    indent: str = "    "
    empty_structs: bool = True
    support_module: Optional[str] = None

    def check_lane_width(self, width: int) -> None:
        if width not in self.lane_widths:
            raise UnsupportedConstruct(
                f"{self.name} has no lane type of width {width} "
                f"(supported: {sorted(self.lane_widths)})",
                backend=self.name,
                lane_width=width,
            )

    def literal(self, value: Fraction) -> str:
        return float_literal(value, self.name)

    def operand_name(self, slot: int) -> str:
        return "ab"[slot] if slot < 2 else f"arg{slot}"

    def local_name(self, index: int) -> str:
        return f"t{index}"

    def field_name(self, group: int) -> str:
        return f"g{group}"

    def identifier(self, name: str) -> str:
        """Validated identifier for a type or function name."""
        return name

    # Lane types and accesses

    @abstractmethod
    def lane_type(self, width: int) -> str:
        """Type of one lane group of ``width`` lanes."""

    @abstractmethod
    def extract(self, operand: str, group: int, lane: int, width: int) -> str:
        """One lane of an operand group, as a scalar."""

    @abstractmethod
    def swizzle(self, operand: str, group: int, lanes: Tuple[int, ...], width: int) -> str:
        """Lane permutation of an operand group."""

    @abstractmethod
    def broadcast(self, scalar: str, width: int) -> str:
        """Scalar splatted across every lane."""

    @abstractmethod
    def pack(self, scalars: Sequence[str], width: int) -> str:
        """Lane group built from one scalar per lane."""

    # Definitions

    @abstractmethod
    def local(self, name: str, expression: str, width: int) -> str:
        """Statement binding ``expression`` to a local."""

    @abstractmethod
    def return_statement(self, expression: str) -> str:
        """Statement handing back the function result."""

    @abstractmethod
    def construct(self, type_name: str, fields: Sequence[str]) -> str:
        """Value of a struct type from its lane group values."""

    @abstractmethod
    def function(self, symbol: str, parameters: Sequence[Tuple[str, str]], result: str,
                 body: List[str], header: str) -> str:
        """Complete function definition."""

    @abstractmethod
    def struct(self, type_name: str, fields: Sequence[Tuple[str, str, str]]) -> str:
        """Struct definition; fields are ``(name, type, blade labels)``."""

    def lane_support(self) -> Optional[str]:
        """Source of the ``support_module`` artifact, if the target needs one."""
        return None

    def preamble(self, types: bool = False) -> List[str]:
        """Lines opening an artifact (``types``: the type definition artifact)."""
        return []
