# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Input validation for generator and type signatures.

Unlike the tensor shape checks these do not use ``assert``: a bad request
must surface as a diagnostic even under ``python -O``.
"""

from typing import Iterable, Sequence

from core.errors import InvalidSignature

METRIC_VALUES = (-1, 0, 1)


def check_generator_signature(signature: Sequence[int], max_generators: int) -> None:
    """Raise :class:`InvalidSignature` unless *signature* is a usable metric.

    Checks ``1 <= len(signature) <= max_generators`` and that every entry is
    an integer in {-1, 0, 1}.
    """
    try:
        n = len(signature)
    except TypeError:
        raise InvalidSignature(
            f"generator signature must be a sequence, got {type(signature).__name__}"
        ) from None
    if not 1 <= n <= max_generators:
        raise InvalidSignature(
            f"generator count must be in [1, {max_generators}], got {n}",
            generators=n,
        )
    for i, metric in enumerate(signature):
        if isinstance(metric, bool) or not isinstance(metric, int) or metric not in METRIC_VALUES:
            raise InvalidSignature(
                f"generator {i} squares to {metric!r}; expected one of {METRIC_VALUES}",
                generator=i,
                metric=repr(metric),
            )


def check_blades(blades: Iterable[int], dim: int, name: str = "type") -> None:
    """Raise :class:`InvalidSignature` if a blade mask falls outside ``[0, dim)``."""
    for blade in blades:
        if not 0 <= blade < dim:
            raise InvalidSignature(
                f"{name}: blade mask {blade} outside the algebra ({dim} blades)",
                blade=blade,
                type=name,
            )
