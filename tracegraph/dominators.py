# tracegraph/dominators.py
"""
Dominator tree computation (SEMI-NCA).

SEMI-NCA is a two-pass version of the Lengauer-Tarjan algorithm (LT is
normally three passes) that eliminates a pass by using the nearest common
ancestor of the spanning-tree parent and the semidominator to compute
immediate dominators.  It also removes a level of indirection in the
link-eval forest.  See Georgiadis, Tarjan and Werneck, "Finding Dominators
in Practice".

Call graphs can be arbitrarily deep, so nothing here recurses: the DFS
uses an explicit stack and path compression walks the forest with a loop.

All arrays are indexed by preorder number.  The graph is described
structurally: a node exposes ``id`` (its index in the node list) and
``succ`` / ``pred`` sequences of nodes.

References
----------
[1] Lengauer, Tarjan - "A Fast Algorithm for Finding Dominators in a
    Flowgraph", 1979.
[2] Georgiadis, Tarjan, Werneck - "Finding Dominators in Practice", 2006.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Sequence

GraphNode = Any


@dataclass
class DominatorResult:
    """Outcome of :func:`compute_dominators`.

    Attributes
    ----------
    preorder : list
        Reachable nodes, indexed by preorder number (root first).
    idom : list[int]
        Preorder number of each node's immediate dominator; ``-1`` for the
        root.
    semi : list[int]
        Semidominator preorder numbers (kept for diagnostics).
    unreachable : list
        Nodes not reachable from the root, in node-list order.
    """

    preorder: List[GraphNode] = field(default_factory=list)
    idom: List[int] = field(default_factory=list)
    semi: List[int] = field(default_factory=list)
    unreachable: List[GraphNode] = field(default_factory=list)

    @property
    def reachable_count(self) -> int:
        return len(self.preorder)

    def immediate_dominator(self, preorder_index: int) -> GraphNode:
        d = self.idom[preorder_index]
        return self.preorder[d] if d >= 0 else None


def _depth_first_numbering(
    root: GraphNode,
    node_count: int,
) -> tuple:
    """Number nodes reachable from *root* in DFS preorder.

    Returns ``(preorder, parent, number)`` where ``number`` maps a node id
    to its preorder number (``-1`` when unreachable) and ``parent`` maps a
    preorder number to the preorder number of its spanning-tree parent.
    """
    number = [-1] * node_count
    preorder: List[GraphNode] = []
    parent: List[int] = []

    stack = [(-1, root)]
    while stack:
        p, n = stack.pop()
        if number[n.id] != -1:
            continue
        number[n.id] = len(preorder)
        preorder.append(n)
        parent.append(p)
        for w in n.succ:
            if number[w.id] == -1:
                stack.append((number[n.id], w))
    return preorder, parent, number


def _compress_path(
    start: int,
    current: int,
    parent: List[int],
    label: List[int],
) -> None:
    """Path compression in the link-eval forest, in place.

    Every node on the forest path from *current* up to (but excluding) the
    first ancestor numbered ``<= start`` gets the minimum label seen above
    it and is re-linked to that ancestor.
    """
    path: List[int] = []
    v = current
    while parent[v] > start:
        path.append(v)
        v = parent[v]
    for v in reversed(path):
        nxt = parent[v]
        label[v] = min(label[v], label[nxt])
        parent[v] = parent[nxt]


def compute_dominators(
    root: GraphNode,
    nodes: Sequence[GraphNode],
) -> DominatorResult:
    """Compute immediate dominators of *nodes* with respect to *root*."""
    preorder, parent, number = _depth_first_numbering(root, len(nodes))
    size = len(preorder)
    unreachable = [n for n in nodes if number[n.id] == -1]

    idom = list(parent)
    semi = list(range(size))
    label = list(range(size))

    # 1. Semidominators, in reverse preorder (not including the root).
    for block_index in range(size - 1, 0, -1):
        block = preorder[block_index]
        for pred in block.pred:
            pred_index = number[pred.id]
            if pred_index == -1:
                continue
            best = pred_index
            if pred_index > block_index:
                _compress_path(block_index, pred_index, parent, label)
                best = label[pred_index]
            semi[block_index] = min(semi[block_index], semi[best])
        label[block_index] = semi[block_index]

    # 2. Immediate dominators: nearest common ancestor of the spanning tree
    # parent and the semidominator.
    for block_index in range(1, size):
        dom_index = idom[block_index]
        while dom_index > semi[block_index]:
            dom_index = idom[dom_index]
        idom[block_index] = dom_index

    return DominatorResult(
        preorder=preorder,
        idom=idom,
        semi=semi,
        unreachable=unreachable,
    )
