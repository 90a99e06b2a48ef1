# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Diagnostic taxonomy for the code generation pipeline.

Every stage reports failures as a :class:`CodegenError` subclass carrying the
failing operation descriptor and a free-form context mapping, so the batch
driver can collect them instead of aborting.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CodegenError(Exception):
    """Base class for all pipeline diagnostics.

    Attributes:
        message (str): Human readable description.
        descriptor: The :class:`~core.types.OperationDescriptor` being
            processed, if any.
        backend (str | None): Backend name for emission-stage failures.
        context (dict): Blade / term / stage details.
        internal (bool): ``True`` for invariant violations inside the
            pipeline itself rather than bad input.
    """

    internal = False

    def __init__(self, message: str, descriptor=None, backend: Optional[str] = None,
                 **context: Any):
        super().__init__(message)
        self.message = message
        self.descriptor = descriptor
        self.backend = backend
        self.context: Dict[str, Any] = dict(context)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def attach(self, descriptor=None, backend: Optional[str] = None) -> "CodegenError":
        """Fill in descriptor / backend if the raising stage did not know them."""
        if self.descriptor is None:
            self.descriptor = descriptor
        if self.backend is None:
            self.backend = backend
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form used in batch reports and the manifest."""
        return {
            "kind": self.kind,
            "message": self.message,
            "internal": self.internal,
            "backend": self.backend,
            "operation": self.descriptor.describe() if self.descriptor is not None else None,
            "context": {key: _plain(value) for key, value in self.context.items()},
        }

    def __str__(self) -> str:
        parts = [f"{self.kind}: {self.message}"]
        if self.descriptor is not None:
            parts.append(f"[{self.descriptor.describe()}]")
        if self.backend is not None:
            parts.append(f"(backend={self.backend})")
        return " ".join(parts)


def _plain(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return str(value)


class InvalidSignature(CodegenError):
    """Generator signature or type signature does not describe a valid algebra."""


class UnknownOperator(CodegenError):
    """Operator kind is not part of the closed operator set."""


class OperandArityMismatch(CodegenError):
    """Operand count does not match the operator's arity."""


class NonConvergent(CodegenError):
    """Optimizer exceeded its rewrite ceiling before reaching a fixed point."""

    internal = True


class LaneOverflow(CodegenError):
    """A type signature does not fit the backend's maximum lane width."""


class UnsupportedConstruct(CodegenError):
    """A backend cannot print a required node shape."""
