"""BladeForge: Geometric Algebra code generator (Rust SIMD / GLSL)."""

__version__ = "0.1.0"

from core.algebra import build, MultiplicationTable
from core.types import TypeSignature, OperationDescriptor
from codegen.pipeline import CodegenPipeline

__all__ = [
    "__version__",
    "build",
    "MultiplicationTable",
    "TypeSignature",
    "OperationDescriptor",
    "CodegenPipeline",
]
