# BladeForge: Geometric Algebra Code Generator (C) 2026 Eunkyum Kim
# Licensed under the Apache License, Version 2.0 | "Unbending" Paradigm

"""Batch driver: every operation through every stage for every backend.

The multiplication table is the only object shared between operations and it
is never written to, so operations may run on a thread pool. A failure only
aborts its own (operation, backend) run; diagnostics are collected and
reported together once the batch is done.
"""

from __future__ import annotations

import json
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from tqdm import tqdm

from backends import Backend, get_backend
from codegen.compiler import compile
from codegen.emitter import emit, emit_types, render
from codegen.legalizer import LaneLayout, LegalizedGraph, legalize
from codegen.optimizer import optimize
from core.algebra import MultiplicationTable
from core.config import CodegenConfig, default_lane_width
from core.errors import CodegenError
from core.graph import ExpressionGraph
from core.types import OperationDescriptor, TypeSignature, signature_dict
from log import get_logger, operation_logger

logger = get_logger(__name__)


@dataclass
class OperationResult:
    """Outcome of one requested operation.

    Attributes:
        descriptor (OperationDescriptor): The request.
        symbol (str): Emitted function name (unique within the batch).
        graph (ExpressionGraph | None): Optimized graph; ``None`` if compiling failed.
        compiled_nodes (int): Arena size before optimization.
        legalized (dict[str, LegalizedGraph]): Per backend.
        sources (dict[str, str]): Per backend function source.
    """

    descriptor: OperationDescriptor
    symbol: str
    graph: Optional[ExpressionGraph] = None
    compiled_nodes: int = 0
    legalized: Dict[str, LegalizedGraph] = field(default_factory=dict)
    sources: Dict[str, str] = field(default_factory=dict)

    @property
    def result(self) -> Optional[TypeSignature]:
        return self.graph.result if self.graph is not None else None


@dataclass
class BatchReport:
    """Everything a batch produced.

    Attributes:
        table (MultiplicationTable): The algebra of the batch.
        results (list[OperationResult]): In request order.
        diagnostics (list[CodegenError]): Every failure of the batch.
        types (dict[str, str]): Per backend type definition artifact.
        lane_widths (dict[str, int]): Lane width used per backend.
        extensions (dict[str, str]): Artifact file extension per backend.
        support (dict[str, tuple[str, str]]): Per backend ``(module, source)``
            of the lane type definitions, where the target needs them.
    """

    table: MultiplicationTable
    results: List[OperationResult] = field(default_factory=list)
    diagnostics: List[CodegenError] = field(default_factory=list)
    types: Dict[str, str] = field(default_factory=dict)
    lane_widths: Dict[str, int] = field(default_factory=dict)
    extensions: Dict[str, str] = field(default_factory=dict)
    support: Dict[str, Tuple[str, str]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.diagnostics

    @property
    def internal_errors(self) -> List[CodegenError]:
        return [d for d in self.diagnostics if d.internal]

    def artifact_path(self, backend: str, symbol: str) -> str:
        return f"{backend}/{symbol}.{self.extensions[backend]}"

    def support_path(self, backend: str) -> str:
        module, _ = self.support[backend]
        return f"{backend}/{module}.{self.extensions[backend]}"

    def _backend_entry(self, name: str, width: int) -> Dict[str, Any]:
        entry = {"lane_width": width, "types": f"{name}/types.{self.extensions[name]}"}
        if name in self.support:
            entry["support"] = self.support_path(name)
        return entry

    def manifest(self) -> Dict[str, Any]:
        """Symbol listing for downstream aggregation."""
        operations = []
        for result in self.results:
            entry = {
                "symbol": result.symbol,
                "kind": result.descriptor.kind_name,
                "operands": [signature_dict(op) for op in result.descriptor.operands],
                "result": signature_dict(result.result) if result.result is not None else None,
                "backends": {
                    name: {
                        "file": self.artifact_path(name, result.symbol),
                        "lane_width": graph.lane_width,
                    }
                    for name, graph in result.legalized.items() if name in result.sources
                },
            }
            operations.append(entry)
        return {
            "algebra": {
                "signature": list(self.table.signature),
                "generators": self.table.n,
                "fingerprint": self.table.fingerprint(),
            },
            "backends": {
                name: self._backend_entry(name, width) for name, width in self.lane_widths.items()
            },
            "operations": operations,
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }


class CodegenPipeline:
    """Compile -> optimize -> legalize -> emit over a batch of operations.

    Args:
        table (MultiplicationTable): Shared, read-only algebra.
        config (CodegenConfig, optional): Settings; defaults apply when omitted.
        types (Iterable[TypeSignature], optional): Named types, used to name
            inferred results that match one of them.
    """

    def __init__(self, table: MultiplicationTable, config: Optional[CodegenConfig] = None,
                 types: Iterable[TypeSignature] = ()):
        self.table = table
        self.config = config or CodegenConfig()
        self.backends: Dict[str, Backend] = {name: get_backend(name) for name in self.config.backends}
        self.type_names = {t.blades: t.name for t in types if t.name}

    # Stages

    def front(self, descriptor: OperationDescriptor) -> Tuple[Optional[ExpressionGraph], int]:
        """Compile and optimize; backend independent."""
        graph = compile(self.table, descriptor, self.type_names)
        return optimize(graph, self.config.rewrite_ceiling), len(graph)

    def back(self, graph: ExpressionGraph, backend: Backend, lane_width: int,
             symbol: str) -> Tuple[LegalizedGraph, str]:
        """Legalize and emit for one backend."""
        width = self.config.lane_width_for(backend.name, lane_width)
        legalized = legalize(graph, width, backend.max_lane_width)
        return legalized, emit(legalized, backend, symbol)

    def run_operation(self, descriptor: OperationDescriptor,
                      lane_width: Optional[int] = None) -> Tuple[OperationResult, List[CodegenError]]:
        """Run one operation through every stage and backend.

        Args:
            descriptor (OperationDescriptor): The request.
            lane_width (int, optional): Batch-wide default lane width;
                derived from this operation alone when omitted.

        Returns:
            tuple: ``(OperationResult, diagnostics)``.
        """
        result = OperationResult(descriptor, descriptor.symbol())
        diagnostics: List[CodegenError] = []
        try:
            result.graph, result.compiled_nodes = self.front(descriptor)
        except CodegenError as error:
            diagnostics.append(error.attach(descriptor))
            return result, diagnostics
        if lane_width is None:
            lane_width = default_lane_width(list(descriptor.operands) + [result.graph.result])
        diagnostics.extend(self._emit_all(result, lane_width))
        return result, diagnostics

    def _emit_all(self, result: OperationResult, lane_width: int) -> List[CodegenError]:
        diagnostics = []
        for name, backend in self.backends.items():
            log = operation_logger(logger, result.symbol, name)
            try:
                legalized, source = self.back(result.graph, backend, lane_width, result.symbol)
            except CodegenError as error:
                diagnostics.append(error.attach(result.descriptor, name))
                log.debug(f"skipped: {error.kind}")
                continue
            log.debug(f"{len(result.graph)} -> {len(legalized)} nodes, "
                      f"{len(legalized.groups)} group(s) of {legalized.lane_width}")
            result.legalized[name] = legalized
            result.sources[name] = source
        return diagnostics

    # Batch

    def _map(self, fn: Callable, items: Sequence, desc: str) -> List:
        """Apply ``fn`` to ``items`` keeping order, on a pool when ``workers > 1``."""
        progress = self.config.progress
        if self.config.workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
                iterator = pool.map(fn, items)
                return list(tqdm(iterator, total=len(items), desc=desc, disable=not progress))
        return [fn(item) for item in tqdm(items, desc=desc, disable=not progress)]

    def run(self, descriptors: Sequence[OperationDescriptor],
            diagnostics: Iterable[CodegenError] = ()) -> BatchReport:
        """Process a batch; never raises :class:`CodegenError`.

        The default lane width is shared by the whole batch (smallest power of
        two covering every operand and result), so a type has the same layout
        in every artifact of a backend.

        Args:
            descriptors: Operations to generate.
            diagnostics: Failures found before the batch started (requests
                that never became a descriptor); reported first.
        """
        descriptors = list(descriptors)
        report = BatchReport(self.table)
        report.diagnostics.extend(diagnostics)
        report.extensions = {name: b.extension for name, b in self.backends.items()}
        symbols = _unique_symbols(descriptors)

        def front(descriptor):
            try:
                return self.front(descriptor), None
            except CodegenError as error:
                return (None, 0), error.attach(descriptor)

        fronts = self._map(front, descriptors, "compile")
        signatures: List[TypeSignature] = []
        for descriptor, ((graph, compiled_nodes), error) in zip(descriptors, fronts):
            result = OperationResult(descriptor, symbols[len(report.results)], graph, compiled_nodes)
            report.results.append(result)
            if error is not None:
                report.diagnostics.append(error)
            else:
                signatures.extend(graph.operands)
                signatures.append(graph.result)
        lane_width = default_lane_width(signatures)

        compiled = [r for r in report.results if r.graph is not None]
        for errors in self._map(lambda r: self._emit_all(r, lane_width), compiled, "emit"):
            report.diagnostics.extend(errors)

        for name, backend in self.backends.items():
            report.lane_widths[name] = self.config.lane_width_for(name, lane_width)
            layouts: List[LaneLayout] = []
            for result in compiled:
                if name in result.sources:
                    graph = result.legalized[name]
                    layouts.extend(graph.operand_layouts)
                    layouts.append(graph.result_layout)
            try:
                report.types[name] = emit_types(layouts, backend)
            except CodegenError as error:
                report.diagnostics.append(error.attach(None, name))
            support = backend.lane_support()
            if support is not None:
                report.support[name] = (backend.support_module, support)

        _log_report(report)
        return report

    def write(self, report: BatchReport, output_dir: str) -> List[str]:
        """Write every artifact plus ``manifest.json`` under ``output_dir``."""
        written = []
        for name, backend in self.backends.items():
            os.makedirs(os.path.join(output_dir, name), exist_ok=True)
            for result in report.results:
                if name not in result.sources:
                    continue
                path = os.path.join(output_dir, report.artifact_path(name, result.symbol))
                with open(path, "w") as f:
                    f.write(render(backend, [result.sources[name]]))
                written.append(path)
            if name in report.types:
                path = os.path.join(output_dir, name, f"types.{backend.extension}")
                with open(path, "w") as f:
                    f.write(report.types[name])
                written.append(path)
            if name in report.support:
                path = os.path.join(output_dir, report.support_path(name))
                with open(path, "w") as f:
                    f.write(report.support[name][1])
                written.append(path)
        path = os.path.join(output_dir, "manifest.json")
        with open(path, "w") as f:
            json.dump(report.manifest(), f, indent=2)
        written.append(path)
        logger.info(f"Wrote {len(written)} files to {output_dir}")
        return written


def _unique_symbols(descriptors: Sequence[OperationDescriptor]) -> List[str]:
    """Descriptor symbols, suffixed ``_2``, ``_3``... when repeated."""
    counts: Dict[str, int] = {}
    symbols = []
    for descriptor in descriptors:
        symbol = descriptor.symbol()
        counts[symbol] = counts.get(symbol, 0) + 1
        symbols.append(symbol if counts[symbol] == 1 else f"{symbol}_{counts[symbol]}")
    return symbols


def _log_report(report: BatchReport) -> None:
    artifacts = sum(len(r.sources) for r in report.results)
    logger.info(f"{len(report.results)} operation(s), {artifacts} artifact(s), "
                f"{len(report.diagnostics)} diagnostic(s)")
    for diagnostic in report.diagnostics:
        if diagnostic.internal:
            logger.error(f"[internal] {diagnostic}")
        else:
            logger.warning(str(diagnostic))
