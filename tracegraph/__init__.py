"""
tracegraph — call graphs and dominator trees from precompiler traces
=====================================================================

Reads the trace an ahead-of-time compiler writes while precompiling a
program, reconstructs the program entity tree and the whole-program call
graph (with dynamic dispatch resolved heuristically) and computes dominator
trees over it, answering "what code exists only because X needs it".

Core modules
------------
trace_reader
    Trace format decoding and call graph construction.
program_info
    The program entity tree (packages, libraries, classes, members).
callgraph
    The call graph: collapse to coarser granularity, dominators, DOT.
dominators
    SEMI-NCA dominator computation.
name
    Raw name helpers (nested scope components, package of a library).
config
    Format conventions and tuning knobs.
errors
    Error types.

Quick start
-----------
>>> from tracegraph import load_trace, NodeType
>>> cg = load_trace("trace.json")                       # doctest: +SKIP
>>> libs = cg.collapse(NodeType.LIBRARY, drop_call_nodes=True)  # doctest: +SKIP
>>> libs.compute_dominators()                           # doctest: +SKIP
"""

from __future__ import annotations

import logging
from typing import List

from tracegraph.callgraph import CallGraph, CallGraphNode, callgraph_summary
from tracegraph.config import DEFAULT_CONFIG, TraceConfig
from tracegraph.dominators import DominatorResult, compute_dominators
from tracegraph.errors import (
    ConfigError,
    DominatorError,
    TraceErrorCodes,
    TraceFormatError,
    TraceGraphError,
)
from tracegraph.name import Name, package_of
from tracegraph.program_info import NodeType, ProgramInfo, ProgramInfoNode
from tracegraph.trace_reader import load_json, load_trace, read_trace

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__license__ = "MIT"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__: List[str] = [
    "CallGraph",
    "CallGraphNode",
    "ConfigError",
    "DEFAULT_CONFIG",
    "DominatorError",
    "DominatorResult",
    "Name",
    "NodeType",
    "ProgramInfo",
    "ProgramInfoNode",
    "TraceConfig",
    "TraceErrorCodes",
    "TraceFormatError",
    "TraceGraphError",
    "callgraph_summary",
    "compute_dominators",
    "load_json",
    "load_trace",
    "package_of",
    "read_trace",
]
