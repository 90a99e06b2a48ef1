# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Code generation settings.

Centralises lane width, generator cap, optimizer ceiling, worker count and
backend selection into a single :class:`CodegenConfig` dataclass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Tuple

from omegaconf import DictConfig, OmegaConf

from core.algebra import MAX_GENERATORS


def next_power_of_two(value: int) -> int:
    """Smallest power of two >= ``value`` (1 for ``value <= 1``)."""
    width = 1
    while width < value:
        width <<= 1
    return width


def default_lane_width(signatures: Iterable) -> int:
    """Smallest power of two covering the largest blade count used."""
    return next_power_of_two(max((len(s) for s in signatures), default=1))


@dataclass
class CodegenConfig:
    """Bag of pipeline settings.

    Attributes:
        target_lane_width: Lane group size for every backend. ``None`` ->
            auto (smallest power of two >= the largest blade count used).
        lane_widths: Per-backend overrides of ``target_lane_width``.
        max_generators: Hard cap on N; values above 16 are clamped.
        rewrite_ceiling: Optimizer safety bound on rule firings.
        workers: Operations compiled concurrently. ``1`` -> sequential.
        backends: Backend names to emit.
        progress: Show a ``tqdm`` bar over the batch.
    """

    target_lane_width: int | None = None
    lane_widths: Dict[str, int] = field(default_factory=dict)
    max_generators: int = MAX_GENERATORS
    rewrite_ceiling: int = 1_000_000
    workers: int = 1
    backends: Tuple[str, ...] = ("rust", "glsl")
    progress: bool = False

    def __post_init__(self) -> None:
        self.max_generators = min(int(self.max_generators), MAX_GENERATORS)
        if self.max_generators < 1:
            raise ValueError(f"max_generators must be >= 1, got {self.max_generators}")
        if self.rewrite_ceiling < 1:
            raise ValueError(f"rewrite_ceiling must be >= 1, got {self.rewrite_ceiling}")
        if self.workers < 1:
            self.workers = 1
        if self.target_lane_width is not None and self.target_lane_width < 1:
            raise ValueError(f"target_lane_width must be >= 1, got {self.target_lane_width}")
        self.backends = tuple(self.backends)
        self.lane_widths = {str(k): int(v) for k, v in dict(self.lane_widths).items()}

    def lane_width_for(self, backend: str, default: int) -> int:
        """Lane width for ``backend``: override, then global, then ``default``."""
        if backend in self.lane_widths:
            return self.lane_widths[backend]
        if self.target_lane_width is not None:
            return self.target_lane_width
        return default

    @classmethod
    def from_cfg(cls, cfg: DictConfig | dict | None) -> "CodegenConfig":
        """Build from the ``codegen`` section of the Hydra config."""
        if cfg is None:
            return cls()
        if isinstance(cfg, DictConfig):
            cfg = OmegaConf.to_container(cfg, resolve=True)
        # Unset keys fall back to the dataclass defaults
        known = {k: v for k, v in cfg.items()
                 if k in cls.__dataclass_fields__ and v is not None}
        return cls(**known)
