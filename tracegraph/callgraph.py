"""
tracegraph.callgraph
====================

Whole-program call graph reconstructed from a precompiler trace.

The call graph is a directed graph where:
- **Nodes** wrap a program entity (a function, a class used as an
  allocation site, or a field) or a call selector for a dynamic call that
  could not be resolved statically.
- **Edges** are deduplicated: there is at most one edge for an ordered
  pair of nodes, and a node is never connected to itself.

Node kinds
----------
Function node
    ``data`` is a :class:`~tracegraph.program_info.ProgramInfoNode` of type
    ``FUNCTION``.
Class node
    ``data`` is a ``CLASS`` program node; edges into it are allocations.
Dynamic call node
    ``data`` is a ``str`` selector, e.g. ``"foo"`` or ``"dyn:foo"``.
Dispatch table call node
    ``data`` is an ``int`` selector id.

Public API
----------
    CallGraphNode     - a node in the call graph
    CallGraph         - the whole-program graph
    callgraph_summary - human-readable summary

Typical usage::

    from tracegraph import load_trace
    from tracegraph.program_info import NodeType

    cg = load_trace("trace.json")
    by_library = cg.collapse(NodeType.LIBRARY, drop_call_nodes=True)
    by_library.compute_dominators()

    def show(node, depth):
        print("  " * depth + str(node))
        return depth < 2

    by_library.root.visit_dominator_tree(show)
"""

from __future__ import annotations

import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Tuple,
)

from tracegraph.dominators import compute_dominators as _semi_nca
from tracegraph.errors import DominatorError
from tracegraph.program_info import NodeType, ProgramInfo, ProgramInfoNode

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CallGraphNode
# ---------------------------------------------------------------------------

class CallGraphNode:
    """A node in the call graph.

    Attributes
    ----------
    id : int
        Index of this node in :attr:`CallGraph.nodes`.
    data : ProgramInfoNode or str or int
        The entity or selector this node stands for.
    succ : list[CallGraphNode]
        Successors, in insertion order.
    pred : list[CallGraphNode]
        Predecessors, in insertion order.
    dominator : CallGraphNode or None
        Immediate dominator.  Computed by
        :meth:`CallGraph.compute_dominators`.
    dominated : list[CallGraphNode]
        Nodes immediately dominated by this one.  Computed by
        :meth:`CallGraph.compute_dominators`.
    """

    __slots__ = ("id", "data", "succ", "pred", "dominator", "dominated",
                 "preorder_number")

    def __init__(self, node_id: int, data: Any = None) -> None:
        self.id: int = node_id
        self.data = data
        self.succ: List[CallGraphNode] = []
        self.pred: List[CallGraphNode] = []
        self.dominator: Optional[CallGraphNode] = None
        self.dominated: List[CallGraphNode] = []
        self.preorder_number: Optional[int] = None

    # ----- classification ---------------------------------------------------

    @property
    def is_program_node(self) -> bool:
        return isinstance(self.data, ProgramInfoNode)

    @property
    def is_function_node(self) -> bool:
        return self.is_program_node and self.data.type == NodeType.FUNCTION

    @property
    def is_class_node(self) -> bool:
        return self.is_program_node and self.data.type == NodeType.CLASS

    @property
    def is_field_node(self) -> bool:
        return self.is_program_node and self.data.type == NodeType.OTHER

    @property
    def is_dynamic_call_node(self) -> bool:
        return isinstance(self.data, str)

    @property
    def is_dispatch_call_node(self) -> bool:
        return isinstance(self.data, int) and not isinstance(self.data, bool)

    @property
    def is_call_node(self) -> bool:
        """Selector node (dynamic or dispatch table call)."""
        return self.is_dynamic_call_node or self.is_dispatch_call_node

    # ----- edges ------------------------------------------------------------

    def connect_to(self, n: CallGraphNode) -> None:
        """Create an outgoing edge from this node to *n*.

        Self-edges and duplicate edges are silently ignored.
        """
        if n is self:
            return
        if n not in self.succ:
            n.pred.append(self)
            self.succ.append(n)

    # ----- dominator tree ---------------------------------------------------

    def _add_dominated(self, n: CallGraphNode) -> None:
        self.dominated.append(n)
        n.dominator = self

    def visit_dominator_tree(
        self,
        callback: Callable[[CallGraphNode, int], bool],
        depth: int = 0,
    ) -> None:
        """Pre-order walk of the dominator tree rooted at this node.

        *callback* receives ``(node, depth)``; when it returns a false
        value the subtree below that node is skipped.
        """
        stack: List[Tuple[CallGraphNode, int]] = [(self, depth)]
        while stack:
            node, d = stack.pop()
            if callback(node, d):
                for child in reversed(node.dominated):
                    stack.append((child, d + 1))

    def iter_dominator_tree(self) -> Iterator[Tuple[CallGraphNode, int]]:
        """Yield ``(node, depth)`` for the dominator subtree, pre-order."""
        stack: List[Tuple[CallGraphNode, int]] = [(self, 0)]
        while stack:
            node, d = stack.pop()
            yield node, d
            for child in reversed(node.dominated):
                stack.append((child, d + 1))

    def dominates(self, other: CallGraphNode) -> bool:
        """Does this node dominate *other*?  A node dominates itself."""
        n: Optional[CallGraphNode] = other
        while n is not None:
            if n is self:
                return True
            n = n.dominator
        return False

    # ----- display ----------------------------------------------------------

    @property
    def label(self) -> str:
        if self.is_program_node:
            return self.data.qualified_name
        if self.is_dispatch_call_node:
            return f"#{self.data}"
        return str(self.data)

    def __repr__(self) -> str:
        return f"CallGraphNode({self.label})"


# ---------------------------------------------------------------------------
# CallGraph
# ---------------------------------------------------------------------------

class CallGraph:
    """Whole-program call graph.

    Attributes
    ----------
    program : ProgramInfo
        The program tree the graph refers to.
    nodes : list[CallGraphNode]
        All nodes; ``nodes[i].id == i``.  The first node is the root.
    unreachable : list[CallGraphNode]
        Nodes not reachable from :attr:`root`, as found by the last
        :meth:`compute_dominators` call.
    """

    def __init__(
        self,
        program: ProgramInfo,
        nodes: List[CallGraphNode],
        node_by_entity_id: Dict[int, CallGraphNode],
    ) -> None:
        self.program = program
        self.nodes = nodes
        # Program node id -> call graph node.
        self._node_by_entity_id = node_by_entity_id
        self.unreachable: List[CallGraphNode] = []

    @property
    def root(self) -> CallGraphNode:
        return self.nodes[0]

    def lookup(self, node: ProgramInfoNode) -> Optional[CallGraphNode]:
        """Return the call graph node for a program node, if any."""
        return self._node_by_entity_id.get(node.id)

    @property
    def dynamic_calls(self) -> List[CallGraphNode]:
        """Selector nodes for dynamic and dispatch table calls."""
        return [n for n in self.nodes if n.is_call_node]

    @property
    def edge_count(self) -> int:
        return sum(len(n.succ) for n in self.nodes)

    def edges(self) -> Iterator[Tuple[CallGraphNode, CallGraphNode]]:
        for n in self.nodes:
            for s in n.succ:
                yield n, s

    # ----- transforms -------------------------------------------------------

    def collapse(
        self,
        node_type: NodeType,
        drop_call_nodes: bool = False,
    ) -> CallGraph:
        """Compute a collapsed version of the call graph.

        Every program node is replaced by its closest ancestor of
        *node_type* (the tree root when there is none); nodes mapped to the
        same ancestor merge.  Selector nodes are kept as they are, or
        dropped when *drop_call_nodes* is set.  Edges are re-derived
        between the images; edges that collapse into a single node vanish.

        The receiver is not modified.
        """
        nodes_by_data: Dict[Any, CallGraphNode] = {}
        node_by_entity_id: Dict[int, CallGraphNode] = {}

        def node_for(data: Any) -> CallGraphNode:
            # Selector ints and strings never collide with program nodes,
            # but bools would collide with 0/1.
            key = (type(data), data)
            n = nodes_by_data.get(key)
            if n is None:
                n = CallGraphNode(len(nodes_by_data), data=data)
                nodes_by_data[key] = n
                if isinstance(data, ProgramInfoNode):
                    node_by_entity_id[data.id] = n
            return n

        new_nodes: List[Optional[CallGraphNode]] = []
        for n in self.nodes:
            if n.is_program_node:
                new_nodes.append(node_for(n.data.ancestor_of_type(node_type)))
            elif not drop_call_nodes:
                new_nodes.append(node_for(n.data))
            else:
                new_nodes.append(None)

        for n in self.nodes:
            src = new_nodes[n.id]
            if src is None:
                continue
            for succ in n.succ:
                dst = new_nodes[succ.id]
                if dst is not None:
                    src.connect_to(dst)

        collapsed = CallGraph(
            self.program, list(nodes_by_data.values()), node_by_entity_id
        )
        logger.debug(
            "collapsed %d nodes to %d at %s level",
            len(self.nodes), len(collapsed.nodes), node_type.value,
        )
        return collapsed

    # ----- analyses ---------------------------------------------------------

    def compute_dominators(self) -> None:
        """Compute the dominator tree of the call graph.

        Annotates :attr:`CallGraphNode.dominator`,
        :attr:`CallGraphNode.dominated` and
        :attr:`CallGraphNode.preorder_number` in place, overwriting the
        results of any earlier run.  Nodes unreachable from :attr:`root`
        are logged, recorded in :attr:`unreachable` and left out of the
        dominator tree.
        """
        if not self.nodes:
            raise DominatorError("cannot compute dominators of an empty graph")

        for n in self.nodes:
            n.dominator = None
            n.dominated = []
            n.preorder_number = None

        result = _semi_nca(self.root, self.nodes)

        for index, n in enumerate(result.preorder):
            n.preorder_number = index
        for index in range(1, result.reachable_count):
            result.preorder[result.idom[index]]._add_dominated(
                result.preorder[index]
            )

        self.unreachable = result.unreachable
        for n in self.unreachable:
            logger.warning("%s is unreachable", n)
        logger.debug(
            "dominators computed: %d reachable, %d unreachable",
            result.reachable_count, len(self.unreachable),
        )

    def dominator_subtree_sizes(self) -> List[int]:
        """Size of each node's dominator subtree, indexed by node id.

        A node counts itself; unreachable nodes get ``0``.  Requires
        :meth:`compute_dominators`.
        """
        sizes = [0] * len(self.nodes)
        reachable = sorted(
            (n for n in self.nodes if n.preorder_number is not None),
            key=lambda n: n.preorder_number,
            reverse=True,
        )
        for n in reachable:
            sizes[n.id] += 1
            if n.dominator is not None:
                sizes[n.dominator.id] += sizes[n.id]
        return sizes

    def dominator_tree_depth(self) -> int:
        """Height of the dominator tree (``0`` for a lone root)."""
        return max((d for _, d in self.root.iter_dominator_tree()), default=0)

    # ----- statistics -------------------------------------------------------

    def statistics(self) -> Dict[str, int]:
        """Return a dict with summary statistics."""
        return {
            "total_nodes": len(self.nodes),
            "total_edges": self.edge_count,
            "functions": sum(1 for n in self.nodes if n.is_function_node),
            "classes": sum(1 for n in self.nodes if n.is_class_node),
            "fields": sum(1 for n in self.nodes if n.is_field_node),
            "dynamic_calls": sum(
                1 for n in self.nodes if n.is_dynamic_call_node
            ),
            "dispatch_calls": sum(
                1 for n in self.nodes if n.is_dispatch_call_node
            ),
            "unresolved_calls": sum(
                1 for n in self.nodes if n.is_call_node and not n.succ
            ),
            "program_entities": len(self.program),
        }

    # ----- serialisation ----------------------------------------------------

    def to_dot(self, title: Optional[str] = None) -> str:
        """Return a Graphviz DOT representation."""
        lines = ["digraph CallGraph {"]
        lines.append("  rankdir=TB;")
        if title:
            escaped_title = title.replace('"', '\\"')
            lines.append(f'  label="{escaped_title}";')
        lines.append('  node [shape=box, fontname="Helvetica", fontsize=10];')

        for n in self.nodes:
            if n is self.root:
                attrs = 'style=filled, fillcolor="#ccffcc", shape=invhouse'
            elif n.is_class_node:
                attrs = 'style=filled, fillcolor="#fff3cd", shape=ellipse'
            elif n.is_call_node:
                attrs = 'style=filled, fillcolor="#ffcccc", shape=diamond'
            else:
                attrs = 'style=filled, fillcolor="#ddeeff"'
            escaped = n.label.replace('"', '\\"')
            lines.append(f'  "n{n.id}" [label="{escaped}", {attrs}];')

        for src, dst in self.edges():
            style = ""
            if src.is_call_node:
                style = " [style=dashed, color=blue]"
            lines.append(f'  "n{src.id}" -> "n{dst.id}"{style};')
        lines.append("}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"CallGraph(nodes={len(self.nodes)}, edges={self.edge_count})"


# ---------------------------------------------------------------------------
# Convenience utilities
# ---------------------------------------------------------------------------

def callgraph_summary(cg: CallGraph) -> str:
    """Return a human-readable multi-line summary."""
    stats = cg.statistics()
    lines = [
        "Call Graph Summary",
        f"  Program entities:     {stats['program_entities']}",
        f"  Total nodes:          {stats['total_nodes']}",
        f"  Total edges:          {stats['total_edges']}",
        f"  Functions:            {stats['functions']}",
        f"  Classes (allocated):  {stats['classes']}",
        f"  Fields:               {stats['fields']}",
        f"  Dynamic call sites:   {stats['dynamic_calls']}",
        f"  Dispatch table calls: {stats['dispatch_calls']}",
        f"  Unresolved selectors: {stats['unresolved_calls']}",
    ]
    return "\n".join(lines)
