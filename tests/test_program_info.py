# tests/test_program_info.py
"""
Tests for the program tree and the raw name helpers.
"""

import pytest

from tracegraph.name import Name, package_of
from tracegraph.program_info import NodeType, ProgramInfo


class TestName:

    def test_simple_name_is_one_component(self):
        assert Name("foo").raw_components == ["foo"]

    def test_nested_scopes_outermost_first(self):
        assert Name("outer.inner.<anonymous closure>").raw_components == [
            "outer", "inner", "<anonymous closure>",
        ]

    def test_constructor_keeps_class_and_name_together(self):
        assert Name("new A.named").raw_components == ["new A.named"]

    def test_constructor_closure(self):
        assert Name("new A.named.<anonymous closure>").raw_components == [
            "new A.named", "<anonymous closure>",
        ]

    def test_selector_prefixes_are_not_split(self):
        assert Name("dyn:get:foo").raw_components == ["dyn:get:foo"]


class TestPackageOf:

    @pytest.mark.parametrize("uri, expected", [
        ("package:foo/foo.dart", "package:foo"),
        ("package:foo/src/deep/bar.dart", "package:foo"),
        ("package:foo", "package:foo"),
        ("dart:core", "dart:core"),
        ("file:///tmp/main.dart", "file:///tmp/main.dart"),
    ])
    def test_package_of(self, uri, expected):
        assert package_of(uri) == expected


class TestProgramInfo:

    def test_root(self):
        program = ProgramInfo()
        assert program.root.id == 0
        assert program.root.parent is None
        assert program.root.is_root
        assert program.root.name == "@shared"
        assert len(program) == 1

    def test_make_node_is_memoized_by_parent_and_name(self):
        program = ProgramInfo()
        lib = program.make_node("dart:core", None, NodeType.LIBRARY)
        again = program.make_node("dart:core", program.root, NodeType.LIBRARY)
        assert lib is again
        assert len(program) == 2

    def test_ids_are_dense_and_stable(self):
        program = ProgramInfo()
        lib = program.make_node("lib", None, NodeType.LIBRARY)
        cls = program.make_node("A", lib, NodeType.CLASS)
        fun = program.make_node("foo", cls, NodeType.FUNCTION)
        assert [n.id for n in program.nodes] == [0, 1, 2, 3]
        assert program.node_by_id(fun.id) is fun
        assert program.make_node("foo", cls, NodeType.FUNCTION).id == fun.id

    def test_same_name_under_different_parents(self):
        program = ProgramInfo()
        lib = program.make_node("lib", None, NodeType.LIBRARY)
        a = program.make_node("A", lib, NodeType.CLASS)
        b = program.make_node("B", lib, NodeType.CLASS)
        assert program.make_node("foo", a, NodeType.FUNCTION) is not \
            program.make_node("foo", b, NodeType.FUNCTION)

    def test_qualified_name(self):
        program = ProgramInfo()
        pkg = program.make_node("package:app", None, NodeType.PACKAGE)
        lib = program.make_node("package:app/a.dart", pkg, NodeType.LIBRARY)
        cls = program.make_node("A", lib, NodeType.CLASS)
        fun = program.make_node("foo", cls, NodeType.FUNCTION)
        inner = program.make_node("bar", fun, NodeType.FUNCTION)
        assert inner.qualified_name == "package:app/a.dart::A.foo.bar"
        assert lib.qualified_name == "package:app/a.dart"
        assert pkg.qualified_name == "package:app"
        assert inner.path == ["package:app", "package:app/a.dart", "A", "foo", "bar"]

    def test_ancestor_of_type(self):
        program = ProgramInfo()
        lib = program.make_node("dart:core", None, NodeType.LIBRARY)
        cls = program.make_node("A", lib, NodeType.CLASS)
        fun = program.make_node("foo", cls, NodeType.FUNCTION)
        assert fun.ancestor_of_type(NodeType.CLASS) is cls
        assert fun.ancestor_of_type(NodeType.LIBRARY) is lib
        assert cls.ancestor_of_type(NodeType.CLASS) is cls
        # No package above dart:core: falls back to the root.
        assert fun.ancestor_of_type(NodeType.PACKAGE) is program.root

    def test_lookup(self):
        program = ProgramInfo()
        lib = program.make_node("lib", None, NodeType.LIBRARY)
        cls = program.make_node("A", lib, NodeType.CLASS)
        assert program.lookup(["lib", "A"]) is cls
        assert program.lookup([]) is program.root
        assert program.lookup(["lib", "B"]) is None

    def test_iter_nodes_is_preorder(self):
        program = ProgramInfo()
        lib = program.make_node("lib", None, NodeType.LIBRARY)
        a = program.make_node("A", lib, NodeType.CLASS)
        b = program.make_node("B", lib, NodeType.CLASS)
        foo = program.make_node("foo", a, NodeType.FUNCTION)
        order = list(program.iter_nodes())
        assert order == [program.root, lib, a, foo, b]

        seen = []
        program.visit(seen.append)
        assert seen == order
