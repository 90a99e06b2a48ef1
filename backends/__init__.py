"""Backend printing rules.

Provides the Rust (SIMD lane types) and GLSL (vecN) backends and a registry
keyed by backend name.
"""

from .base import Backend, float_literal, is_binary32
from .glsl import GlslBackend
from .rust import RustBackend

BACKENDS = {
    RustBackend.name: RustBackend,
    GlslBackend.name: GlslBackend,
}


def get_backend(name: str) -> Backend:
    """Instantiate a backend by registry name."""
    if name not in BACKENDS:
        raise ValueError(f"Unknown backend: {name}. Available: {list(BACKENDS.keys())}")
    return BACKENDS[name]()


__all__ = [
    "Backend",
    "BACKENDS",
    "GlslBackend",
    "RustBackend",
    "float_literal",
    "get_backend",
    "is_binary32",
]
