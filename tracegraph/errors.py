# tracegraph/errors.py
"""
Error types for tracegraph.

Error Hierarchy:
────────────────
    TraceGraphError (base)
    ├── TraceFormatError   - grammar / record violations in a trace (fatal)
    ├── DominatorError     - dominator computation on an unusable graph
    └── ConfigError        - invalid TraceConfig

Error Codes:
────────────
Each error carries a code of the form TRACE-NNNN:
  - 1000-1999: trace event stream errors
  - 2000-2999: entity table / string pool errors
  - 3000-3999: document-level errors (I/O, JSON)
  - 4000-4999: analysis errors
  - 9000-9999: configuration errors

A malformed trace aborts the whole load: no partial graph is ever
returned.  Nodes that are unreachable from the root during dominator
computation are *not* errors; they are logged and recorded on the graph.
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Optional


@unique
class ErrorPhase(Enum):
    """Stage of the pipeline where the error occurred."""

    EVENTS = "events"          # Trace event stream
    ENTITIES = "entities"      # Entity table decoding
    DOCUMENT = "document"      # Reading / decoding the artifact
    ANALYSIS = "analysis"      # Graph analyses
    CONFIG = "config"


class ErrorCode:
    """Structured error code (``TRACE-NNNN``)."""

    __slots__ = ("prefix", "number", "phase", "summary")

    def __init__(
        self,
        prefix: str,
        number: int,
        phase: ErrorPhase,
        summary: str = "",
    ) -> None:
        self.prefix = prefix
        self.number = number
        self.phase = phase
        self.summary = summary

    @property
    def code(self) -> str:
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.phase.name})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class TraceErrorCodes:
    """Predefined error codes."""

    # Event stream (1000-1999)
    UNKNOWN_EVENT = ErrorCode(
        "TRACE", 1000, ErrorPhase.EVENTS, "unknown event tag"
    )
    UNEXPECTED_REF = ErrorCode(
        "TRACE", 1001, ErrorPhase.EVENTS, "unexpected token in ref list"
    )
    UNEXPECTED_END = ErrorCode(
        "TRACE", 1002, ErrorPhase.EVENTS, "trace ended before end event"
    )
    INVALID_OPERAND = ErrorCode(
        "TRACE", 1003, ErrorPhase.EVENTS, "operand is not an integer"
    )
    NOT_A_FUNCTION = ErrorCode(
        "TRACE", 1004, ErrorPhase.EVENTS, "compiled entity is not a function"
    )

    # Entity table / string pool (2000-2999)
    UNKNOWN_ENTITY_KIND = ErrorCode(
        "TRACE", 2000, ErrorPhase.ENTITIES, "unrecognized entity type"
    )
    ENTITY_OUT_OF_RANGE = ErrorCode(
        "TRACE", 2001, ErrorPhase.ENTITIES, "entity index out of range"
    )
    STRING_OUT_OF_RANGE = ErrorCode(
        "TRACE", 2002, ErrorPhase.ENTITIES, "string index out of range"
    )
    BAD_ENTITY_RECORD = ErrorCode(
        "TRACE", 2003, ErrorPhase.ENTITIES, "structurally invalid entity record"
    )

    # Document (3000-3999)
    INVALID_JSON = ErrorCode(
        "TRACE", 3000, ErrorPhase.DOCUMENT, "trace is not valid JSON"
    )
    MISSING_SECTION = ErrorCode(
        "TRACE", 3001, ErrorPhase.DOCUMENT, "trace document lacks a section"
    )

    # Analysis (4000-4999)
    EMPTY_GRAPH = ErrorCode(
        "TRACE", 4000, ErrorPhase.ANALYSIS, "graph has no root node"
    )

    # Configuration (9000-9999)
    INVALID_CONFIG = ErrorCode(
        "TRACE", 9000, ErrorPhase.CONFIG, "invalid configuration"
    )


class TraceGraphError(Exception):
    """Base exception for all tracegraph errors.

    Carries the error code and, where known, the section of the trace
    document (``"trace"``, ``"entities"``, ``"strings"``) and the position
    inside it that triggered the failure.
    """

    default_code: ErrorCode = TraceErrorCodes.INVALID_JSON

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        section: Optional[str] = None,
        position: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.section = section
        self.position = position
        self.cause = cause

    @property
    def location(self) -> str:
        if self.section is None:
            return ""
        if self.position is None:
            return self.section
        return f"{self.section}[{self.position}]"

    def __str__(self) -> str:
        loc = self.location
        if loc:
            return f"{self.code}: {self.message} (at {loc})"
        return f"{self.code}: {self.message}"


class TraceFormatError(TraceGraphError):
    """The trace artifact violates the format; the load is aborted."""

    default_code = TraceErrorCodes.UNEXPECTED_REF


class DominatorError(TraceGraphError):
    """Dominators were requested for a graph that has no root."""

    default_code = TraceErrorCodes.EMPTY_GRAPH


class ConfigError(TraceGraphError):
    """A :class:`~tracegraph.config.TraceConfig` failed validation."""

    default_code = TraceErrorCodes.INVALID_CONFIG
