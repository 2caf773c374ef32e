# tests/conftest.py
"""
Shared builders for tracegraph tests.

``TraceBuilder`` assembles the three arrays of a precompiler trace
(``strings``, ``entities``, ``trace``) so tests can describe programs by
name instead of by index.  ``make_graph`` builds a bare call graph from an
edge list for the graph algorithm tests.
"""

from typing import Dict, Iterable, List, Tuple, Union

import pytest

from tracegraph.callgraph import CallGraph, CallGraphNode
from tracegraph.program_info import ProgramInfo


Ref = Union[int, Tuple[str, Union[str, int]]]


def dyn(selector: str) -> Tuple[str, str]:
    """A dynamic call ref through a selector name."""
    return ("S", selector)


def dispatch(selector_id: int) -> Tuple[str, int]:
    """A dispatch table call ref through a selector id."""
    return ("T", selector_id)


class TraceBuilder:
    """Incrementally builds a trace document."""

    def __init__(self) -> None:
        self.strings: List[str] = []
        self._string_index: Dict[str, int] = {}
        self.entities: List = []
        self.trace: List = []

    def string(self, s: str) -> int:
        if s not in self._string_index:
            self._string_index[s] = len(self.strings)
            self.strings.append(s)
        return self._string_index[s]

    def _entity(self, *record) -> int:
        entity_id = len(self.entities) // 4
        self.entities.extend(record)
        return entity_id

    def cls(self, library: str, name: str) -> int:
        return self._entity("C", self.string(library), self.string(name), 0)

    def function(
        self,
        owner: int,
        name: str,
        selector_id: int = -1,
        dynamic: bool = True,
    ) -> int:
        tag = "F" if dynamic else "S"
        return self._entity(tag, owner, self.string(name), selector_id)

    def field(self, owner: int, name: str) -> int:
        return self._entity("V", owner, self.string(name), 0)

    def _refs(self, refs: Iterable[Ref]) -> None:
        for ref in refs:
            if isinstance(ref, tuple):
                tag, value = ref
                if tag == "S":
                    self.trace.extend(["S", self.string(value)])
                else:
                    self.trace.extend(["T", value])
            else:
                self.trace.append(ref)

    def roots(self, *refs: Ref) -> "TraceBuilder":
        self.trace.append("R")
        self._refs(refs)
        return self

    def compiled(self, function: int, *refs: Ref) -> "TraceBuilder":
        self.trace.extend(["C", function])
        self._refs(refs)
        return self

    def build(self) -> dict:
        return {
            "strings": list(self.strings),
            "entities": list(self.entities),
            "trace": self.trace + ["E"],
        }


def make_graph(
    node_count: int,
    edges: Iterable[Tuple[int, int]],
) -> CallGraph:
    """A call graph over ``node_count`` anonymous nodes; node 0 is the root."""
    nodes = [CallGraphNode(i, data=f"n{i}") for i in range(node_count)]
    for src, dst in edges:
        nodes[src].connect_to(nodes[dst])
    return CallGraph(ProgramInfo(), nodes, {})


def idom_ids(cg: CallGraph) -> Dict[int, int]:
    """``{node id: immediate dominator id}`` for every dominated node."""
    return {
        n.id: n.dominator.id for n in cg.nodes if n.dominator is not None
    }


@pytest.fixture
def builder() -> TraceBuilder:
    return TraceBuilder()


@pytest.fixture
def simple_trace() -> dict:
    """Roots reference f1; f1 allocates A and calls f2."""
    b = TraceBuilder()
    a = b.cls("package:app/main.dart", "A")
    f1 = b.function(a, "f1")
    f2 = b.function(a, "f2")
    b.roots(f1)
    b.compiled(f1, a, f2)
    return b.build()
