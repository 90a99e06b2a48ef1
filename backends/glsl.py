# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""GLSL printing rules: ``float`` / ``vecN`` lanes, ``.xyzw`` swizzles."""

from typing import List, Sequence, Tuple

from backends.base import Backend
from core.errors import UnsupportedConstruct

LANE_NAMES = "xyzw"

GLSL_RESERVED = frozenset({
    "attribute", "bool", "break", "bvec2", "bvec3", "bvec4", "const", "continue",
    "discard", "do", "else", "false", "float", "for", "highp", "if", "in", "inout",
    "input", "int", "invariant", "ivec2", "ivec3", "ivec4", "lowp", "mat2", "mat3",
    "mat4", "mediump", "out", "output", "precision", "return", "sampler2D", "struct",
    "true", "uniform", "varying", "vec2", "vec3", "vec4", "void", "while",
})


class GlslBackend(Backend):
    name = "glsl"
    extension = "glsl"
    max_lane_width = 4
    lane_widths = frozenset({1, 2, 3, 4})
    comment = "//"
    empty_structs = False

    def identifier(self, name: str) -> str:
        if name in GLSL_RESERVED or name.startswith("gl_") or "__" in name:
            raise UnsupportedConstruct(
                f"{name!r} is reserved in GLSL",
                backend=self.name,
                identifier=name,
            )
        return name

    def lane_type(self, width: int) -> str:
        self.check_lane_width(width)
        return "float" if width == 1 else f"vec{width}"

    def _group(self, operand: str, group: int) -> str:
        return f"{operand}.{self.field_name(group)}"

    def extract(self, operand: str, group: int, lane: int, width: int) -> str:
        if width == 1:
            return self._group(operand, group)
        return f"{self._group(operand, group)}.{LANE_NAMES[lane]}"

    def swizzle(self, operand: str, group: int, lanes: Tuple[int, ...], width: int) -> str:
        source = self._group(operand, group)
        if width == 1 or tuple(lanes) == tuple(range(width)):
            return source
        return f"{source}.{''.join(LANE_NAMES[lane] for lane in lanes)}"

    def broadcast(self, scalar: str, width: int) -> str:
        if width == 1:
            return scalar
        return f"{self.lane_type(width)}({scalar})"

    def pack(self, scalars: Sequence[str], width: int) -> str:
        if width == 1:
            return scalars[0]
        return f"{self.lane_type(width)}({', '.join(scalars)})"

    def local(self, name: str, expression: str, width: int) -> str:
        return f"{self.lane_type(width)} {name} = {expression};"

    def return_statement(self, expression: str) -> str:
        return f"return {expression};"

    def construct(self, type_name: str, fields: Sequence[str]) -> str:
        return f"{type_name}({', '.join(fields)})"

    def function(self, symbol: str, parameters: Sequence[Tuple[str, str]], result: str,
                 body: List[str], header: str) -> str:
        params = ", ".join(f"{type_name} {name}" for name, type_name in parameters)
        lines = [f"// {header}", f"{result} {symbol}({params}) {{"]
        lines += [self.indent + line for line in body]
        lines.append("}")
        return "\n".join(lines) + "\n"

    def struct(self, type_name: str, fields: Sequence[Tuple[str, str, str]]) -> str:
        lines = [f"struct {type_name} {{"]
        for name, lane_type, labels in fields:
            lines.append(f"{self.indent}// {labels}")
            lines.append(f"{self.indent}{lane_type} {name};")
        lines.append("};")
        return "\n".join(lines) + "\n"
