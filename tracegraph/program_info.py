"""
tracegraph.program_info
=======================

The program tree: a canonical ownership tree of program entities
(packages, libraries, classes, functions and fields) reconstructed from a
precompiler trace.

Nodes are owned by a single :class:`ProgramInfo`.  Each node has a dense
integer id assigned when it is first created and kept for the lifetime of
the tree; structural lookup goes through the ``children`` mapping of the
parent (name → child), which is what keeps identity stable: asking for the
same name under the same parent always yields the same node.

Public API
----------
    NodeType         - kind of a program tree node
    ProgramInfoNode  - a node of the tree
    ProgramInfo      - the tree itself
"""

from __future__ import annotations

import enum
from typing import Callable, Dict, Iterator, List, Optional, Sequence


class NodeType(enum.Enum):
    """Classification of a program tree node."""

    PACKAGE  = "package"
    LIBRARY  = "library"
    CLASS    = "class"
    FUNCTION = "function"
    OTHER    = "other"      # fields


class ProgramInfoNode:
    """A single entity in the program tree.

    Attributes
    ----------
    id : int
        Dense identifier, position in :attr:`ProgramInfo.nodes`.
    name : str
        Name of the entity relative to its parent.
    type : NodeType
        What this node represents.
    parent : ProgramInfoNode or None
        Owning node; ``None`` only for the root.
    children : dict[str, ProgramInfoNode]
        Owned nodes keyed by name, in creation order.
    """

    __slots__ = ("id", "name", "type", "parent", "children")

    def __init__(
        self,
        node_id: int,
        name: str,
        node_type: NodeType,
        parent: Optional[ProgramInfoNode] = None,
    ) -> None:
        self.id: int = node_id
        self.name: str = name
        self.type: NodeType = node_type
        self.parent: Optional[ProgramInfoNode] = parent
        self.children: Dict[str, ProgramInfoNode] = {}

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def path(self) -> List[str]:
        """Names from just below the root down to this node."""
        names: List[str] = []
        n: Optional[ProgramInfoNode] = self
        while n is not None and n.parent is not None:
            names.append(n.name)
            n = n.parent
        names.reverse()
        return names

    @property
    def library(self) -> Optional[ProgramInfoNode]:
        """The enclosing library node (``None`` above library level)."""
        n: Optional[ProgramInfoNode] = self
        while n is not None:
            if n.type == NodeType.LIBRARY:
                return n
            n = n.parent
        return None

    @property
    def qualified_name(self) -> str:
        """``<library-uri>::<Class>.<member>``-style display name."""
        lib = self.library
        if lib is None:
            return "/".join(self.path) or self.name
        if lib is self:
            return lib.name
        names: List[str] = []
        n: Optional[ProgramInfoNode] = self
        while n is not None and n is not lib:
            names.append(n.name)
            n = n.parent
        return f"{lib.name}::{'.'.join(reversed(names))}"

    def ancestor_of_type(self, node_type: NodeType) -> ProgramInfoNode:
        """Closest node of *node_type* on the way up, the root if none.

        The node itself counts when it already has the requested type.
        """
        n = self
        while n.parent is not None and n.type != node_type:
            n = n.parent
        return n

    def __repr__(self) -> str:
        return f"ProgramInfoNode({self.qualified_name!r}, {self.type.value})"


class ProgramInfo:
    """Owner of every :class:`ProgramInfoNode` of one program."""

    def __init__(self, root_name: str = "@shared") -> None:
        self.nodes: List[ProgramInfoNode] = []
        self.root = self._new_node(root_name, NodeType.PACKAGE, None)

    def _new_node(
        self,
        name: str,
        node_type: NodeType,
        parent: Optional[ProgramInfoNode],
    ) -> ProgramInfoNode:
        node = ProgramInfoNode(len(self.nodes), name, node_type, parent)
        self.nodes.append(node)
        return node

    def make_node(
        self,
        name: str,
        parent: Optional[ProgramInfoNode],
        node_type: NodeType,
    ) -> ProgramInfoNode:
        """Return the child *name* of *parent*, creating it if needed.

        *parent* ``None`` means the root.  An existing child is returned
        as is, whatever *node_type* says.
        """
        owner = parent if parent is not None else self.root
        node = owner.children.get(name)
        if node is None:
            node = self._new_node(name, node_type, owner)
            owner.children[name] = node
        return node

    def node_by_id(self, node_id: int) -> ProgramInfoNode:
        return self.nodes[node_id]

    def lookup(self, path: Sequence[str]) -> Optional[ProgramInfoNode]:
        """Find a node by its names below the root, ``None`` if absent."""
        node = self.root
        for name in path:
            child = node.children.get(name)
            if child is None:
                return None
            node = child
        return node

    def iter_nodes(self) -> Iterator[ProgramInfoNode]:
        """Pre-order iteration over the ownership tree."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(list(node.children.values())))

    def visit(self, callback: Callable[[ProgramInfoNode], None]) -> None:
        for node in self.iter_nodes():
            callback(node)

    def __len__(self) -> int:
        return len(self.nodes)

    def __repr__(self) -> str:
        return f"ProgramInfo(nodes={len(self.nodes)})"
