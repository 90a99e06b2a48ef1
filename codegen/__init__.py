"""Code generation stages.

Provides the compiler, optimizer, legalizer and emitter, the batch pipeline
driving them, and the request reader for Hydra configs.
"""

from .compiler import compile, product_terms
from .optimizer import optimize
from .legalizer import LaneGroup, LaneLayout, LegalizedGraph, legalize
from .emitter import emit, emit_types
from .pipeline import BatchReport, CodegenPipeline, OperationResult
from .request import Request, load_request

__all__ = [
    # stages
    "compile",
    "product_terms",
    "optimize",
    "legalize",
    "LaneGroup",
    "LaneLayout",
    "LegalizedGraph",
    "emit",
    "emit_types",
    # batch
    "BatchReport",
    "CodegenPipeline",
    "OperationResult",
    "Request",
    "load_request",
]
