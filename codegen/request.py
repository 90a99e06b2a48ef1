# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Structured request -> algebra, named types and operation descriptors.

Reads the ``algebra``, ``types`` and ``operations`` sections of the Hydra
config. A type is either a list of blade labels or a mapping with ``grades``
(and optionally ``blades``); an operand is a type name or an inline label
list.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from omegaconf import DictConfig, OmegaConf

from core.algebra import MAX_GENERATORS, MultiplicationTable, build
from core.errors import CodegenError, InvalidSignature, UnknownOperator
from core.types import OperationDescriptor, OperatorKind, TypeSignature
from log import get_logger

logger = get_logger(__name__)


class Request(NamedTuple):
    table: MultiplicationTable
    types: Dict[str, TypeSignature]
    descriptors: List[OperationDescriptor]
    diagnostics: List[CodegenError]


def _plain(cfg: Any) -> Any:
    if isinstance(cfg, DictConfig) or OmegaConf.is_list(cfg):
        return OmegaConf.to_container(cfg, resolve=True)
    return cfg


def parse_type(entry: Any, table: MultiplicationTable, name: Optional[str] = None) -> TypeSignature:
    """Type signature from a label list or a ``{grades, blades}`` mapping."""
    if isinstance(entry, Mapping):
        blades = set(table.blades_of_grade(*entry.get("grades", ())))
        blades.update(table.parse(str(label)) for label in entry.get("blades", ()))
        return TypeSignature.of(blades, name)
    if isinstance(entry, (list, tuple)):
        return TypeSignature.of((table.parse(str(label)) for label in entry), name)
    raise InvalidSignature(f"type {name or entry!r} must be a list of blade labels "
                           f"or a mapping with 'grades'", type=str(name))


def parse_types(section: Optional[Mapping], table: MultiplicationTable) -> Dict[str, TypeSignature]:
    """Named types; two names for the same blade set are rejected."""
    types: Dict[str, TypeSignature] = {}
    owners: Dict[tuple, str] = {}
    for name, body in (section or {}).items():
        signature = parse_type(body, table, str(name))
        if signature.blades in owners:
            raise InvalidSignature(
                f"types {owners[signature.blades]!r} and {name!r} declare the same blades",
                type=str(name),
            )
        owners[signature.blades] = str(name)
        types[str(name)] = signature
    return types


def _resolve(ref: Any, types: Mapping[str, TypeSignature], table: MultiplicationTable) -> TypeSignature:
    if isinstance(ref, str):
        if ref not in types:
            raise InvalidSignature(f"unknown type {ref!r}; declared: {list(types)}", type=ref)
        return types[ref]
    return parse_type(ref, table)


def parse_operation(entry: Mapping, types: Mapping[str, TypeSignature],
                    table: MultiplicationTable) -> OperationDescriptor:
    """Descriptor of one ``operations`` entry.

    Raises:
        UnknownOperator: The entry has no ``kind``.
        InvalidSignature: The entry is not a mapping or names an unknown type.
    """
    if not isinstance(entry, Mapping):
        raise InvalidSignature(f"operation {entry!r} must be a mapping with 'kind' and 'operands'")
    if entry.get("kind") is None:
        raise UnknownOperator(f"operation {dict(entry)!r} has no 'kind'",
                              available=[k.value for k in OperatorKind])
    operands = tuple(_resolve(ref, types, table) for ref in entry.get("operands") or ())
    result = entry.get("result")
    return OperationDescriptor(
        kind=entry["kind"],
        operands=operands,
        result=_resolve(result, types, table) if result is not None else None,
        name=entry.get("name"),
    )


def parse_operations(entries: Sequence, types: Mapping[str, TypeSignature],
                     table: MultiplicationTable
                     ) -> Tuple[List[OperationDescriptor], List[CodegenError]]:
    """Descriptors of every well-formed entry plus one diagnostic per broken one."""
    descriptors: List[OperationDescriptor] = []
    diagnostics: List[CodegenError] = []
    for position, entry in enumerate(entries):
        try:
            descriptors.append(parse_operation(entry, types, table))
        except CodegenError as error:
            error.context.setdefault("operation", position)
            diagnostics.append(error)
            logger.warning(f"Skipping operation #{position}: {error}")
    return descriptors, diagnostics


def load_request(cfg: DictConfig, max_generators: int = MAX_GENERATORS) -> Request:
    """Build the table and descriptors described by ``cfg``.

    A broken ``operations`` entry does not stop the others; it ends up in
    ``Request.diagnostics`` instead.

    Raises:
        InvalidSignature: Bad generator signature, or a bad ``types`` section.
    """
    generators = list(_plain(cfg.algebra.generators))
    table = build(generators, max_generators)
    types = parse_types(_plain(cfg.get("types")), table)
    operations = _plain(cfg.get("operations")) or []
    descriptors, diagnostics = parse_operations(operations, types, table)
    logger.info(f"Algebra {table.signature}: {table.dim} blades, "
                f"{len(types)} type(s), {len(descriptors)} operation(s)")
    return Request(table, types, descriptors, diagnostics)
