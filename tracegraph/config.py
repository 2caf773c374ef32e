# tracegraph/config.py
"""
Tuning knobs and format conventions for reading precompiler traces.

The selector naming conventions (``dyn:``, ``get:`` and the tear-off
extractor prefix) are part of the trace format contract: the compiler
writing the trace embeds them in function and selector names, and the
dispatch resolution pass keys off them.  They live here so that tests and
alternative producers can vary them without touching the reader.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from tracegraph.errors import ConfigError


@dataclass(frozen=True)
class TraceConfig:
    """Format conventions used by :mod:`tracegraph.trace_reader`."""

    entity_stride: int = 4
    dyn_prefix: str = "dyn:"
    getter_prefix: str = "get:"
    tear_off_extractor_prefix: str = "[tear-off-extractor] "
    # Synthesized functions that share a display name; each occurrence is
    # suffixed with its entity record offset.
    disambiguated_names: Tuple[str, ...] = ("FfiTrampoline",)
    root_name: str = "@shared"

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if self.entity_stride < 4:
            warnings.append("entity_stride must be at least 4")
        if not self.dyn_prefix:
            warnings.append("dyn_prefix must not be empty")
        if not self.getter_prefix:
            warnings.append("getter_prefix must not be empty")
        if not self.tear_off_extractor_prefix:
            warnings.append("tear_off_extractor_prefix must not be empty")
        if not self.root_name:
            warnings.append("root_name must not be empty")
        return warnings

    def check(self) -> "TraceConfig":
        """Raise :class:`ConfigError` if :meth:`validate` reports problems."""
        problems = self.validate()
        if problems:
            raise ConfigError("; ".join(problems))
        return self


DEFAULT_CONFIG = TraceConfig()
