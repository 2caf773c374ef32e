"""Helpers for the raw function and library names found in traces."""

from __future__ import annotations

from typing import List

_PACKAGE_SCHEME = "package:"
_CONSTRUCTOR_PREFIX = "new "


class Name:
    """A raw (unscrubbed) function name as written by the compiler."""

    __slots__ = ("raw",)

    def __init__(self, raw: str) -> None:
        self.raw = raw

    @property
    def raw_components(self) -> List[str]:
        """Split the name into ``.`` separated lexical scope components.

        Components are ordered outermost first, so ``"foo.bar"`` is the
        function ``bar`` nested inside ``foo``.  Constructor names look
        like ``new A.named``; the class and constructor name are kept
        together as a single component.
        """
        result = self.raw.split(".")
        if len(result) > 1 and result[0].startswith(_CONSTRUCTOR_PREFIX):
            result[0] = f"{result[0]}.{result[1]}"
            del result[1]
        return result

    def __repr__(self) -> str:
        return f"Name({self.raw!r})"


def package_of(uri: str) -> str:
    """Return the package a library URI belongs to.

    ``package:foo/src/bar.dart`` belongs to ``package:foo``.  Any other URI
    (``dart:core``, ``file:///...``) is its own package and is returned
    unchanged.
    """
    if uri.startswith(_PACKAGE_SCHEME):
        end = uri.find("/")
        return uri if end == -1 else uri[:end]
    return uri
