"""
tracegraph.trace_reader
=======================

Builds a :class:`~tracegraph.callgraph.CallGraph` from the trace an
ahead-of-time compiler writes while precompiling a program.

Trace format
------------
The trace is a JSON object with three arrays:

``strings``
    The string pool; everything else refers to strings by index.
``entities``
    A flat table of fixed-size records (stride 4), addressed by entity
    index ``i`` at offset ``i * 4``::

        'C', <library-uri-idx>, <name-idx>, 0               class
        'F', <class-idx>, <name-idx>, <selector-id>         function, dynamically callable
        'S', <class-idx>, <name-idx>, <selector-id>         function, static-only
        'V', <class-idx>, <name-idx>, 0                     field

    A negative selector id means the function has no dispatch table
    selector.
``trace``
    A flat token stream::

        trace      := event* 'E'
        event      := 'R' refs | 'C' entity-ref refs
        refs       := ref*
        ref        := entity-ref | 'S' string-ref | 'T' selector-id
        entity-ref := int

    ``R`` lists the roots of the program, ``C`` lists what a compiled
    function refers to.  An entity ref is an allocation (class), a static
    call (function) or a field reference (field) depending on the kind of
    the referenced entity.  ``S`` is a dynamic call through a selector
    name, ``T`` a dispatch table call through a selector id.

Dynamic and dispatch table calls become selector nodes.  Once the stream
is consumed a single pass connects selector nodes to the functions of
allocated classes they can reach at runtime (see
:meth:`_TraceReader.resolve_dispatch`).

Public API
----------
    load_trace  - read a trace artifact and build the call graph
    read_trace  - build the call graph from an already decoded document
    load_json   - decode a trace artifact
"""

from __future__ import annotations

import gzip
import io
import json
import logging
import os
import zlib
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from tracegraph.callgraph import CallGraph, CallGraphNode
from tracegraph.config import DEFAULT_CONFIG, TraceConfig
from tracegraph.errors import TraceErrorCodes, TraceFormatError
from tracegraph.name import Name, package_of
from tracegraph.program_info import NodeType, ProgramInfo, ProgramInfoNode

logger = logging.getLogger(__name__)

TraceSource = Union[str, "os.PathLike[str]", io.IOBase, Mapping[str, Any], bytes]

# Event and ref tags of the trace stream.
_ROOTS = "R"
_COMPILED = "C"
_END = "E"
_DYNAMIC_CALL = "S"
_DISPATCH_CALL = "T"

# Entity record tags.
_CLASS = "C"
_DYNAMIC_FUNCTION = "F"
_STATIC_FUNCTION = "S"
_FIELD = "V"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# ===========================================================================
# TOKEN CURSOR
# ===========================================================================

class _TokenCursor:
    """Single forward cursor with one token of look-ahead."""

    def __init__(self, tokens: List[Any]) -> None:
        self._tokens = tokens
        self.pos: int = 0

    def at_end(self) -> bool:
        return self.pos >= len(self._tokens)

    def peek(self) -> Any:
        if self.at_end():
            raise TraceFormatError(
                "trace ended without an end event",
                code=TraceErrorCodes.UNEXPECTED_END,
                section="trace",
                position=self.pos,
            )
        return self._tokens[self.pos]

    def next(self) -> Any:
        token = self.peek()
        self.pos += 1
        return token

    def next_int(self, what: str) -> int:
        token = self.next()
        if not _is_int(token):
            raise TraceFormatError(
                f"expected {what}, got {token!r}",
                code=TraceErrorCodes.INVALID_OPERAND,
                section="trace",
                position=self.pos - 1,
            )
        return token


# ===========================================================================
# READER
# ===========================================================================

class _TraceReader:
    """Decodes one trace document into a :class:`CallGraph`.

    Entities are decoded on demand and memoized by id.  Everything that
    only matters while building one graph (allocated classes, selector
    nodes) is local to :meth:`read_trace`.
    """

    def __init__(
        self,
        data: Mapping[str, Any],
        config: TraceConfig = DEFAULT_CONFIG,
    ) -> None:
        self.config = config
        self.strings: List[Any] = _section(data, "strings")
        self.entities: List[Any] = _section(data, "entities")
        self.trace: List[Any] = _section(data, "trace")

        self.program = ProgramInfo(root_name=config.root_name)

        # Entity id -> decoded program node.
        self.entity_by_id: Dict[int, ProgramInfoNode] = {}
        # Entity ids currently being decoded (guards against cycles).
        self._decoding: Set[int] = set()

        # Function -> dispatch table selector id.
        self.selector_id_map: Dict[ProgramInfoNode, int] = {}
        # Functions which can be reached through dynamic dispatch.
        self.dynamic_functions: Set[ProgramInfoNode] = set()

    # ----- events -----------------------------------------------------------

    def read_trace(self) -> CallGraph:
        """Read all trace events and construct the call graph."""
        cursor = _TokenCursor(self.trace)
        nodes: List[CallGraphNode] = []
        node_by_entity_id: Dict[int, CallGraphNode] = {}
        call_nodes_by_selector: Dict[Any, CallGraphNode] = {}
        allocated: Dict[ProgramInfoNode, None] = {}
        current: Optional[CallGraphNode] = None

        def make_node(data: Any) -> CallGraphNode:
            n = CallGraphNode(len(nodes), data=data)
            nodes.append(n)
            return n

        def node_for(entity: ProgramInfoNode) -> CallGraphNode:
            n = node_by_entity_id.get(entity.id)
            if n is None:
                n = make_node(entity)
                node_by_entity_id[entity.id] = n
            return n

        def call_node_for(selector: Union[str, int]) -> CallGraphNode:
            n = call_nodes_by_selector.get(selector)
            if n is None:
                n = make_node(selector)
                call_nodes_by_selector[selector] = n
            return n

        def read_ref() -> bool:
            ref = cursor.peek()
            if ref == _COMPILED or ref == _END:
                return False
            cursor.next()
            if _is_int(ref):
                entity = self.get_entity_at(ref)
                if entity.type == NodeType.CLASS:
                    allocated[entity] = None
                current.connect_to(node_for(entity))
            elif ref == _DYNAMIC_CALL:
                selector = self.string_at(cursor.next_int("string index"))
                current.connect_to(call_node_for(selector))
            elif ref == _DISPATCH_CALL:
                current.connect_to(call_node_for(cursor.next_int("selector id")))
            else:
                raise TraceFormatError(
                    f"unexpected ref: {ref!r}",
                    code=TraceErrorCodes.UNEXPECTED_REF,
                    section="trace",
                    position=cursor.pos - 1,
                )
            return True

        # The root node is always node 0.
        node_for(self.program.root)

        while True:
            op = cursor.next()
            if op == _END:
                break
            if op == _ROOTS:
                current = node_for(self.program.root)
            elif op == _COMPILED:
                entity_pos = cursor.pos
                entity = self.get_entity_at(cursor.next_int("entity index"))
                if entity.type != NodeType.FUNCTION:
                    raise TraceFormatError(
                        f"compiled entity {entity!r} is not a function",
                        code=TraceErrorCodes.NOT_A_FUNCTION,
                        section="trace",
                        position=entity_pos,
                    )
                current = node_for(entity)
            else:
                raise TraceFormatError(
                    f"unknown event: {op!r}",
                    code=TraceErrorCodes.UNKNOWN_EVENT,
                    section="trace",
                    position=cursor.pos - 1,
                )
            while read_ref():
                pass

        added = self.resolve_dispatch(
            allocated, call_nodes_by_selector, node_for
        )
        logger.debug(
            "read %d trace tokens: %d entities, %d nodes, %d selector nodes, "
            "%d allocated classes, %d dispatch edges",
            cursor.pos, len(self.entity_by_id), len(nodes),
            len(call_nodes_by_selector), len(allocated), added,
        )
        return CallGraph(self.program, nodes, node_by_entity_id)

    # ----- dispatch resolution ----------------------------------------------

    def resolve_dispatch(
        self,
        allocated: Mapping[ProgramInfoNode, Any],
        call_nodes_by_selector: Mapping[Any, CallGraphNode],
        node_for,
    ) -> int:
        """Connect selector nodes to the functions they can reach.

        Only dynamically callable functions of allocated classes are
        considered.  The rules mirror the runtime's dispatch fallbacks and
        are cumulative.  Returns the number of edges added.
        """
        cfg = self.config
        dyn = cfg.dyn_prefix
        getter = cfg.getter_prefix
        extractor = cfg.tear_off_extractor_prefix
        added = 0

        def connect(selector: Any, fun_node: CallGraphNode) -> None:
            nonlocal added
            if selector is None:
                return
            call_node = call_nodes_by_selector.get(selector)
            if call_node is not None and fun_node not in call_node.succ:
                call_node.connect_to(fun_node)
                added += 1

        for cls in allocated:
            for fun in list(cls.children.values()):
                if fun not in self.dynamic_functions:
                    continue
                fun_node = node_for(fun)
                name = fun.name

                connect(self.selector_id_map.get(fun), fun_node)
                connect(name, fun_node)

                if name.startswith(dyn):
                    continue

                # A dyn: selector lands on the normal method unless the
                # class has a dedicated dyn: forwarder for this name.
                if f"{dyn}{name}" not in cls.children:
                    connect(f"{dyn}{name}", fun_node)

                if name.startswith(getter):
                    # Getter get:foo is also hit by calls through foo and
                    # dyn:foo.
                    target = name[len(getter):]
                    connect(target, fun_node)
                    connect(f"{dyn}{target}", fun_node)
                elif name.startswith(extractor):
                    # [tear-off-extractor] get:foo is hit by get:foo.
                    connect(name[len(extractor):], fun_node)
        return added

    # ----- entities ---------------------------------------------------------

    def string_at(self, index: Any) -> str:
        if not _is_int(index) or not 0 <= index < len(self.strings):
            raise TraceFormatError(
                f"string index {index!r} out of range",
                code=TraceErrorCodes.STRING_OUT_OF_RANGE,
                section="strings",
                position=index if _is_int(index) else None,
            )
        value = self.strings[index]
        if not isinstance(value, str):
            raise TraceFormatError(
                f"string pool entry {index} is not a string",
                code=TraceErrorCodes.BAD_ENTITY_RECORD,
                section="strings",
                position=index,
            )
        return value

    def get_entity_at(self, entity_id: Any) -> ProgramInfoNode:
        """Return the program node for the entity with the given id."""
        node = self.entity_by_id.get(entity_id) if _is_int(entity_id) else None
        if node is not None:
            return node

        stride = self.config.entity_stride
        if (
            not _is_int(entity_id)
            or entity_id < 0
            or (entity_id + 1) * stride > len(self.entities)
        ):
            raise TraceFormatError(
                f"entity index {entity_id!r} out of range",
                code=TraceErrorCodes.ENTITY_OUT_OF_RANGE,
                section="entities",
                position=entity_id if _is_int(entity_id) else None,
            )
        if entity_id in self._decoding:
            raise TraceFormatError(
                f"entity {entity_id} is its own owner",
                code=TraceErrorCodes.BAD_ENTITY_RECORD,
                section="entities",
                position=entity_id * stride,
            )

        self._decoding.add(entity_id)
        try:
            node = self.read_entity_at(entity_id * stride)
        finally:
            self._decoding.discard(entity_id)
        self.entity_by_id[entity_id] = node
        return node

    def read_entity_at(self, index: int) -> ProgramInfoNode:
        """Decode the entity record starting at offset *index*."""
        kind = self.entities[index]

        if kind == _CLASS:
            library_uri = self.string_at(self.entities[index + 1])
            class_name = self.string_at(self.entities[index + 2])
            return self.program.make_node(
                class_name, self.get_library_node(library_uri), NodeType.CLASS
            )

        if kind in (_DYNAMIC_FUNCTION, _STATIC_FUNCTION):
            class_node = self._owner_class(index)
            function_name = self.string_at(self.entities[index + 2])
            selector_id = self.entities[index + 3]
            if not _is_int(selector_id):
                raise TraceFormatError(
                    f"selector id {selector_id!r} is not an integer",
                    code=TraceErrorCodes.BAD_ENTITY_RECORD,
                    section="entities",
                    position=index + 3,
                )

            path = Name(function_name).raw_components
            if path[-1] in self.config.disambiguated_names:
                path[-1] = f"{path[-1]}@{index}"
            node = class_node
            for name in path:
                node = self.program.make_node(name, node, NodeType.FUNCTION)
            if selector_id >= 0:
                self.selector_id_map[node] = selector_id
            if kind == _DYNAMIC_FUNCTION:
                self.dynamic_functions.add(node)
            return node

        if kind == _FIELD:
            class_node = self._owner_class(index)
            field_name = self.string_at(self.entities[index + 2])
            return self.program.make_node(field_name, class_node, NodeType.OTHER)

        raise TraceFormatError(
            f"unrecognized entity type {kind!r}",
            code=TraceErrorCodes.UNKNOWN_ENTITY_KIND,
            section="entities",
            position=index,
        )

    def _owner_class(self, index: int) -> ProgramInfoNode:
        owner = self.get_entity_at(self.entities[index + 1])
        if owner.type != NodeType.CLASS:
            raise TraceFormatError(
                f"member owner {owner!r} is not a class",
                code=TraceErrorCodes.BAD_ENTITY_RECORD,
                section="entities",
                position=index + 1,
            )
        return owner

    def get_library_node(self, library_uri: str) -> ProgramInfoNode:
        package = package_of(library_uri)
        node = self.program.root
        if package != library_uri:
            node = self.program.make_node(package, node, NodeType.PACKAGE)
        return self.program.make_node(library_uri, node, NodeType.LIBRARY)


def _section(data: Mapping[str, Any], key: str) -> List[Any]:
    value = data.get(key) if isinstance(data, Mapping) else None
    if not isinstance(value, list):
        raise TraceFormatError(
            f"trace document has no {key!r} array",
            code=TraceErrorCodes.MISSING_SECTION,
            section=key,
        )
    return value


# ===========================================================================
# PUBLIC API
# ===========================================================================

def load_json(source: TraceSource) -> Any:
    """Decode a trace artifact.

    *source* may be a path (``.gz`` files are decompressed), an open text
    or binary file, raw ``bytes``, or an already decoded mapping which is
    returned as is.
    """
    if isinstance(source, Mapping):
        return source
    try:
        if isinstance(source, (bytes, bytearray)):
            return json.loads(source)
        if isinstance(source, (str, os.PathLike)):
            path = os.fspath(source)
            opener = gzip.open if path.endswith(".gz") else open
            with opener(path, "rt", encoding="utf-8") as f:
                return json.load(f)
        return json.load(source)
    except (ValueError, EOFError, gzip.BadGzipFile, zlib.error) as exc:
        raise TraceFormatError(
            f"cannot decode trace: {exc}",
            code=TraceErrorCodes.INVALID_JSON,
            cause=exc,
        ) from exc


def read_trace(
    data: Mapping[str, Any],
    config: Optional[TraceConfig] = None,
) -> CallGraph:
    """Build the call graph from a decoded trace document."""
    return _TraceReader(data, (config or DEFAULT_CONFIG).check()).read_trace()


def load_trace(
    source: TraceSource,
    config: Optional[TraceConfig] = None,
) -> CallGraph:
    """Build the call graph from the trace written by the precompiler.

    Raises :class:`~tracegraph.errors.TraceFormatError` on any violation
    of the trace format; no partial graph is returned.

    Example
    -------
    ::

        from tracegraph import load_trace

        cg = load_trace("precompiler-trace.json")
        for node in cg.dynamic_calls:
            print(node, "->", [str(t) for t in node.succ])
    """
    if not isinstance(source, Mapping):
        logger.debug("loading trace from %r", source)
    return read_trace(load_json(source), config)
