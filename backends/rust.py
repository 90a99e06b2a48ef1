# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Rust printing rules over SIMD lane types.

Lane groups are ``Simd32x{W}`` values (``f32`` for a single lane) from the
crate's ``simd`` module; permutations go through its ``swizzle!`` macro. That
module is generated too (:meth:`RustBackend.lane_support`).
"""

from typing import List, Sequence, Tuple

from backends.base import Backend
from core.errors import UnsupportedConstruct

# Raw identifiers (r#name) cannot spell these.
RUST_PATH_KEYWORDS = frozenset({"crate", "self", "Self", "super"})

RUST_KEYWORDS = frozenset({
    "as", "async", "await", "break", "const", "continue", "crate", "dyn", "else",
    "enum", "extern", "false", "fn", "for", "if", "impl", "in", "let", "loop",
    "match", "mod", "move", "mut", "pub", "ref", "return", "static", "struct",
    "self", "Self", "super", "trait", "true", "type", "unsafe", "use", "where", "while",
})

SIMD_HEADER = """\
//! Lane types of the generated code. `Simd32xN` holds `N` f32 lanes and
//! supports lane-wise `+`, `-`, `*` and negation.

use std::ops::{Add, Index, IndexMut, Mul, Neg, Sub};
"""

LANE_TYPE = """\
#[derive(Clone, Copy, Debug, PartialEq)]
#[repr(C)]
pub struct {name}(pub [f32; {width}]);

impl From<[f32; {width}]> for {name} {{
    fn from(lanes: [f32; {width}]) -> Self {{
        Self(lanes)
    }}
}}

impl From<f32> for {name} {{
    fn from(scalar: f32) -> Self {{
        Self([scalar; {width}])
    }}
}}

impl From<{name}> for [f32; {width}] {{
    fn from(simd: {name}) -> Self {{
        simd.0
    }}
}}

impl Index<usize> for {name} {{
    type Output = f32;

    fn index(&self, index: usize) -> &f32 {{
        &self.0[index]
    }}
}}

impl IndexMut<usize> for {name} {{
    fn index_mut(&mut self, index: usize) -> &mut f32 {{
        &mut self.0[index]
    }}
}}

impl Neg for {name} {{
    type Output = Self;

    fn neg(self) -> Self {{
        Self(self.0.map(|lane| -lane))
    }}
}}
"""

LANE_OPERATOR = """\
impl {trait_name} for {name} {{
    type Output = Self;

    fn {method}(self, other: Self) -> Self {{
        let mut lanes = self.0;
        for (lane, value) in lanes.iter_mut().zip(other.0) {{
            *lane {symbol}= value;
        }}
        Self(lanes)
    }}
}}
"""

LANE_OPERATORS = (("Add", "add", "+"), ("Sub", "sub", "-"), ("Mul", "mul", "*"))


def _swizzle_arm(width: int) -> str:
    pattern = ", ".join(f"$l{i}:literal" for i in range(width))
    lanes = ", ".join(f"$simd[$l{i}]" for i in range(width))
    return (f"    ($simd:expr, {pattern}) => {{\n"
            f"        $crate::simd::Simd32x{width}([{lanes}])\n"
            f"    }};\n")


class RustBackend(Backend):
    name = "rust"
    extension = "rs"
    max_lane_width = 16
    lane_widths = frozenset({1, 2, 3, 4, 8, 16})
    comment = "//"
    support_module = "simd"

    def identifier(self, name: str) -> str:
        if name in RUST_PATH_KEYWORDS:
            raise UnsupportedConstruct(
                f"{name!r} is a path keyword in Rust and has no raw form",
                backend=self.name,
                identifier=name,
            )
        return f"r#{name}" if name in RUST_KEYWORDS else name

    def lane_type(self, width: int) -> str:
        self.check_lane_width(width)
        return "f32" if width == 1 else f"Simd32x{width}"

    def _group(self, operand: str, group: int) -> str:
        return f"{operand}.{self.field_name(group)}"

    def extract(self, operand: str, group: int, lane: int, width: int) -> str:
        if width == 1:
            return self._group(operand, group)
        return f"{self._group(operand, group)}[{lane}]"

    def swizzle(self, operand: str, group: int, lanes: Tuple[int, ...], width: int) -> str:
        source = self._group(operand, group)
        if width == 1 or tuple(lanes) == tuple(range(width)):
            return source
        return f"swizzle!({source}, {', '.join(str(lane) for lane in lanes)})"

    def broadcast(self, scalar: str, width: int) -> str:
        if width == 1:
            return scalar
        return f"{self.lane_type(width)}::from({scalar})"

    def pack(self, scalars: Sequence[str], width: int) -> str:
        if width == 1:
            return scalars[0]
        return f"{self.lane_type(width)}::from([{', '.join(scalars)}])"

    def local(self, name: str, expression: str, width: int) -> str:
        return f"let {name} = {expression};"

    def return_statement(self, expression: str) -> str:
        return expression

    def construct(self, type_name: str, fields: Sequence[str]) -> str:
        if not fields:
            return f"{type_name} {{}}"
        inits = ", ".join(f"{self.field_name(i)}: {value}" for i, value in enumerate(fields))
        return f"{type_name} {{ {inits} }}"

    def function(self, symbol: str, parameters: Sequence[Tuple[str, str]], result: str,
                 body: List[str], header: str) -> str:
        params = ", ".join(f"{name}: {type_name}" for name, type_name in parameters)
        lines = [f"/// {header}", f"pub fn {symbol}({params}) -> {result} {{"]
        lines += [self.indent + line for line in body]
        lines.append("}")
        return "\n".join(lines) + "\n"

    def struct(self, type_name: str, fields: Sequence[Tuple[str, str, str]]) -> str:
        lines = ["#[derive(Clone, Copy, Debug)]"]
        if not fields:
            lines.append(f"pub struct {type_name} {{}}")
            return "\n".join(lines) + "\n"
        lines.append(f"pub struct {type_name} {{")
        for name, lane_type, labels in fields:
            lines.append(f"{self.indent}/// {labels}")
            lines.append(f"{self.indent}pub {name}: {lane_type},")
        lines.append("}")
        return "\n".join(lines) + "\n"

    def preamble(self, types: bool = False) -> List[str]:
        if types:
            return ["use crate::simd::*;"]
        return ["use crate::simd::*;", "use crate::types::*;"]

    def lane_support(self) -> str:
        """The ``simd`` module: every multi-lane type plus ``swizzle!``."""
        widths = sorted(w for w in self.lane_widths if w > 1)
        blocks = [SIMD_HEADER]
        for width in widths:
            name = self.lane_type(width)
            blocks.append(LANE_TYPE.format(name=name, width=width))
            blocks.extend(LANE_OPERATOR.format(trait_name=trait_name, name=name, method=method,
                                               symbol=symbol)
                          for trait_name, method, symbol in LANE_OPERATORS)
        arms = "".join(_swizzle_arm(width) for width in widths)
        blocks.append(f"macro_rules! swizzle {{\n{arms}}}\n\npub(crate) use swizzle;\n")
        return "\n".join(blocks)
