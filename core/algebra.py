# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Basis blades and the multiplication table of a Clifford algebra."""

from __future__ import annotations

import hashlib
from typing import Iterable, NamedTuple, Sequence, Tuple

import torch

from core.errors import InvalidSignature
from core.validation import check_generator_signature

MAX_GENERATORS = 16

# Largest N for which the dense [2^N, 2^N] tensor form is materialized.
DENSE_LIMIT = 10

HEX_DIGITS = "0123456789ABCDEF"


def popcount(x: int) -> int:
    return bin(x).count('1')


def canonical_key(blade: int) -> Tuple[int, int]:
    """Sort key: ascending grade, then ascending mask."""
    return (popcount(blade), blade)


def canonical_order(blades: Iterable[int]) -> Tuple[int, ...]:
    return tuple(sorted(set(blades), key=canonical_key))


def generator_indices(blade: int) -> Tuple[int, ...]:
    """Indices of the generators participating in ``blade``, ascending."""
    indices = []
    i = 0
    while blade:
        if blade & 1:
            indices.append(i)
        blade >>= 1
        i += 1
    return tuple(indices)


def blade_label(blade: int) -> str:
    """Printable label: ``1`` for the scalar, else ``e`` + one hex digit per generator."""
    if blade == 0:
        return "1"
    return "e" + "".join(HEX_DIGITS[i] for i in generator_indices(blade))


def blade_identifier(blade: int) -> str:
    """Label usable inside identifiers of the emitted source."""
    return "scalar" if blade == 0 else blade_label(blade)


def parse_blade(label: str, n: int = MAX_GENERATORS) -> int:
    """Parse a blade label such as ``"e12"`` or ``"1"`` into its mask.

    Generator digits may appear in any order (only presence is recorded)
    but must not repeat.

    Raises:
        InvalidSignature: Malformed label or generator index >= ``n``.
    """
    text = label.strip()
    if text in ("1", "scalar"):
        return 0
    if len(text) < 2 or text[0] != 'e':
        raise InvalidSignature(f"malformed blade label {label!r}", label=label)
    mask = 0
    for digit in text[1:].upper():
        index = HEX_DIGITS.find(digit)
        if index < 0 or index >= n:
            raise InvalidSignature(
                f"blade label {label!r} names generator {digit!r} outside 0..{n - 1}",
                label=label,
            )
        if mask & (1 << index):
            raise InvalidSignature(f"blade label {label!r} repeats generator {digit!r}",
                                   label=label)
        mask |= 1 << index
    return mask


def reordering_sign(a: int, b: int) -> int:
    """Sign of the permutation sorting the generators of ``a`` followed by ``b``.

    Counts pairs (i in a, j in b) with i > j; each is one transposition.
    """
    a >>= 1
    swaps = 0
    while a:
        swaps += popcount(a & b)
        a >>= 1
    return -1 if swaps & 1 else 1


class TableEntry(NamedTuple):
    blade: int
    coefficient: int


class MultiplicationTable:
    """Multiplication structure of the basis blades of ``Cl(signature)``.

    Entries are a pure function of the generator signature and are computed on
    demand, so even N = 16 (65,536 blades) never materializes the 2^32 pairs.
    A dense tensor form is available through :meth:`cayley_table` for small N.

    Attributes:
        signature (tuple[int, ...]): Square of each generator, in {-1, 0, 1}.
        n (int): Number of generators.
        dim (int): Number of basis blades (2^n).
        pseudoscalar (int): Mask of the highest grade blade.
        blades (tuple[int, ...]): All blade masks in index order.
    """
    _CACHED_TABLES = {}

    def __init__(self, signature: Sequence[int], max_generators: int = MAX_GENERATORS):
        """Validate the signature and derive the per-blade data.

        Args:
            signature (Sequence[int]): Metric value of each generator.
            max_generators (int, optional): Hard cap on N. Defaults to 16.
        """
        check_generator_signature(signature, min(max_generators, MAX_GENERATORS))

        self.signature = tuple(int(m) for m in signature)
        self.n = len(self.signature)
        self.dim = 1 << self.n
        self.pseudoscalar = self.dim - 1
        self.blades = tuple(range(self.dim))

        negative_mask = 0
        null_mask = 0
        for i, metric in enumerate(self.signature):
            if metric == -1:
                negative_mask |= 1 << i
            elif metric == 0:
                null_mask |= 1 << i
        self._negative_mask = negative_mask
        self._null_mask = null_mask

    @property
    def num_grades(self) -> int:
        """Counts the number of grades (n + 1)."""
        return self.n + 1

    def grade(self, blade: int) -> int:
        return popcount(blade)

    def label(self, blade: int) -> str:
        return blade_label(blade)

    def parse(self, label: str) -> int:
        return parse_blade(label, self.n)

    def contains(self, blade: int) -> bool:
        return 0 <= blade < self.dim

    def product(self, a: int, b: int) -> TableEntry:
        """Product of two basis blades.

        Args:
            a (int): Left blade mask.
            b (int): Right blade mask.

        Returns:
            TableEntry: ``(a ^ b, coefficient)``; the coefficient is 0 when a
            degenerate generator is shared.
        """
        shared = a & b
        if shared & self._null_mask:
            return TableEntry(a ^ b, 0)
        sign = reordering_sign(a, b)
        if popcount(shared & self._negative_mask) & 1:
            sign = -sign
        return TableEntry(a ^ b, sign)

    def __getitem__(self, pair: Tuple[int, int]) -> TableEntry:
        a, b = pair
        return self.product(a, b)

    def coefficient(self, a: int, b: int) -> int:
        return self.product(a, b).coefficient

    def metric_of(self, blade: int) -> int:
        """Product of the generator squares of ``blade`` (the sign of ``blade * blade`` up to reordering)."""
        value = 1
        for i in generator_indices(blade):
            value *= self.signature[i]
        return value

    # Per-grade involution signs

    def reversion_sign(self, blade: int) -> int:
        """Blade of grade k gets sign (-1)^(k(k-1)/2)."""
        k = popcount(blade)
        return -1 if (k * (k - 1) // 2) & 1 else 1

    def involution_sign(self, blade: int) -> int:
        """Grade involution: odd grades flip."""
        return -1 if popcount(blade) & 1 else 1

    def conjugation_sign(self, blade: int) -> int:
        """Clifford conjugation: grades 1 and 2 (mod 4) flip."""
        return -1 if (popcount(blade) + 3) % 4 < 2 else 1

    def complement(self, blade: int) -> int:
        return self.pseudoscalar ^ blade

    def dual_sign(self, blade: int) -> int:
        """Sign of ``blade * complement(blade)``; never zero since they are disjoint."""
        return self.coefficient(blade, self.complement(blade))

    def blades_of_grade(self, *grades: int) -> Tuple[int, ...]:
        """All blades whose grade is listed, in canonical order."""
        wanted = set(grades)
        return canonical_order(b for b in self.blades if popcount(b) in wanted)

    def cayley_table(self, device='cpu') -> Tuple[torch.Tensor, torch.Tensor]:
        """Dense ``(indices, signs)`` tensors, both ``[dim, dim]`` int64.

        Cached per signature and device like the per-algebra tables of the
        training kernel.

        Raises:
            ValueError: When ``n`` exceeds :data:`DENSE_LIMIT`.
        """
        if self.n > DENSE_LIMIT:
            raise ValueError(
                f"dense table needs n <= {DENSE_LIMIT}, got {self.n} "
                f"({self.dim}x{self.dim} entries)"
            )
        cache_key = (self.signature, str(device))
        if cache_key not in MultiplicationTable._CACHED_TABLES:
            MultiplicationTable._CACHED_TABLES[cache_key] = self._generate_cayley_table(device)
        return MultiplicationTable._CACHED_TABLES[cache_key]

    def _generate_cayley_table(self, device):
        """Vectorized twin of :meth:`product` over every pair of blades."""
        indices = torch.arange(self.dim, device=device, dtype=torch.long)
        A = indices.unsqueeze(1)  # Row
        B = indices.unsqueeze(0)  # Col

        # Result index = A XOR B
        cayley_indices = A ^ B

        # 1. Commutation sign: for every bit i of A, count bits of B strictly below i
        swap_counts = torch.zeros((self.dim, self.dim), dtype=torch.long, device=device)
        for i in range(self.n):
            a_i = (A >> i) & 1
            b_lower = B & ((1 << i) - 1)
            swap_counts += a_i * self._tensor_popcount(b_lower)
        commutator_sign = 1 - 2 * (swap_counts & 1)

        # 2. Metric sign: one flip per shared generator squaring to -1
        intersection = A & B
        neg_cnt = self._tensor_popcount(intersection & self._negative_mask)
        metric_sign = 1 - 2 * (neg_cnt & 1)

        # 3. A shared null generator kills the product
        if self._null_mask:
            alive = ((intersection & self._null_mask) == 0).to(torch.long)
            metric_sign = metric_sign * alive

        return cayley_indices, commutator_sign * metric_sign

    def _tensor_popcount(self, x: torch.Tensor) -> torch.Tensor:
        count = torch.zeros_like(x)
        temp = x
        for _ in range(self.n):
            count += temp & 1
            temp = temp >> 1
        return count

    def fingerprint(self) -> str:
        """Stable digest of the signature; equal tables share a fingerprint."""
        text = ",".join(str(m) for m in self.signature)
        return hashlib.sha256(text.encode("ascii")).hexdigest()[:16]

    def __eq__(self, other) -> bool:
        return isinstance(other, MultiplicationTable) and self.signature == other.signature

    def __hash__(self) -> int:
        return hash(self.signature)

    def __repr__(self) -> str:
        return f"MultiplicationTable(signature={list(self.signature)})"


def build(generator_signature: Sequence[int],
          max_generators: int = MAX_GENERATORS) -> MultiplicationTable:
    """Derive the multiplication table for a generator signature.

    Args:
        generator_signature (Sequence[int]): Metric value per generator.
        max_generators (int, optional): Configured cap (never above 16).

    Returns:
        MultiplicationTable: Read-only table shared by every operation.

    Raises:
        InvalidSignature: N outside [1, max_generators] or a metric outside {-1, 0, 1}.
    """
    return MultiplicationTable(generator_signature, max_generators=max_generators)
