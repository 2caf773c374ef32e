#!/usr/bin/env python3
"""tracegraph/main.py — command line front-end.

Usage examples
--------------
    # Node / edge / selector statistics
    python -m tracegraph summary trace.json

    # Dominator tree at library granularity, three levels deep
    python -m tracegraph dominators trace.json --granularity library --max-depth 3

    # Which functions each dynamic call selector was resolved to
    python -m tracegraph dynamic-calls trace.json

    # Graphviz output (text, or rendered through the graphviz package)
    python -m tracegraph dot trace.json --granularity class -o graph.dot
    python -m tracegraph dot trace.json --render svg -o graph.svg

Exit codes
----------
    0   Success.
    1   The trace violates the trace format.
    2   Infrastructure failure (missing file, missing optional dependency).
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import Dict, List, Optional, Sequence, TextIO

from tracegraph import __version__
from tracegraph.callgraph import CallGraph, CallGraphNode, callgraph_summary
from tracegraph.errors import TraceGraphError
from tracegraph.program_info import NodeType
from tracegraph.trace_reader import load_trace

_log = logging.getLogger("tracegraph")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2

_GRANULARITIES: Dict[str, Optional[NodeType]] = {
    "function": None,
    "class": NodeType.CLASS,
    "library": NodeType.LIBRARY,
    "package": NodeType.PACKAGE,
}


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``tracegraph`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("tracegraph")
    root.setLevel(level)
    # main() may run several times in one process (tests, embedding).
    for old in [h for h in root.handlers if getattr(h, "_tracegraph_cli", False)]:
        root.removeHandler(old)
    handler._tracegraph_cli = True  # type: ignore[attr-defined]
    root.addHandler(handler)


def _resolve_path(raw: str, label: str = "file") -> Path:
    """Resolve *raw* to an absolute ``Path``, raising on missing files."""
    p = Path(raw).expanduser().resolve()
    if not p.exists():
        _log.error("%s not found: %s", label, p)
        raise SystemExit(EXIT_INFRA)
    return p


def _open_output(dest: Optional[str]) -> TextIO:
    """Return a writable text stream.

    *dest* ``None`` or ``"-"`` → ``sys.stdout``; otherwise open the path
    for writing (creating parent directories as needed).
    """
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _load(args: argparse.Namespace) -> CallGraph:
    """Load the trace named on the command line and apply granularity."""
    path = _resolve_path(args.trace, "trace")
    try:
        cg = load_trace(path)
    except TraceGraphError as exc:
        _log.error("%s: %s", path, exc)
        raise SystemExit(EXIT_ERROR)

    node_type = _GRANULARITIES[getattr(args, "granularity", "function")]
    if node_type is not None:
        cg = cg.collapse(node_type, drop_call_nodes=args.drop_call_nodes)
    return cg


def _import_graphviz():
    """Import the optional ``graphviz`` package with a friendly error."""
    try:
        import graphviz  # type: ignore[import-untyped]
        return graphviz
    except ImportError:
        _log.error(
            "graphviz is not installed.  "
            "Install it with: pip install 'tracegraph[viz]'"
        )
        raise SystemExit(EXIT_INFRA)


# ===========================================================================
# Sub-commands
# ===========================================================================

def cmd_summary(args: argparse.Namespace) -> int:
    """Print node, edge and selector statistics."""
    cg = _load(args)
    out = _open_output(args.output)
    try:
        out.write(callgraph_summary(cg) + "\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


def cmd_dominators(args: argparse.Namespace) -> int:
    """Print the dominator tree, pruned at ``--max-depth``."""
    cg = _load(args)
    cg.compute_dominators()
    sizes = cg.dominator_subtree_sizes()
    max_depth = args.max_depth

    lines: List[str] = []

    def visit(node: CallGraphNode, depth: int) -> bool:
        lines.append(f"{'  ' * depth}{node.label} ({sizes[node.id]})")
        return max_depth is None or depth < max_depth

    cg.root.visit_dominator_tree(visit)

    out = _open_output(args.output)
    try:
        out.write("\n".join(lines) + "\n")
        if cg.unreachable:
            out.write(f"\n{len(cg.unreachable)} unreachable node(s)\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


def cmd_dynamic_calls(args: argparse.Namespace) -> int:
    """List dynamic call selectors and the functions they reach."""
    cg = _load(args)
    out = _open_output(args.output)
    try:
        for node in cg.dynamic_calls:
            out.write(f"{node.label}: {len(node.succ)} target(s)\n")
            for target in node.succ:
                out.write(f"  {target.label}\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


def cmd_dot(args: argparse.Namespace) -> int:
    """Emit the call graph in Graphviz DOT form (optionally rendered)."""
    cg = _load(args)
    dot = cg.to_dot(title=args.title)

    if args.render:
        graphviz = _import_graphviz()
        if args.output is None or args.output == "-":
            _log.error("--render needs an output file (-o).")
            return EXIT_INFRA
        try:
            data = graphviz.Source(dot).pipe(format=args.render)
        except graphviz.ExecutableNotFound as exc:
            _log.error("Graphviz executables not found: %s", exc)
            return EXIT_INFRA
        p = Path(args.output).expanduser().resolve()
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)
        return EXIT_OK

    out = _open_output(args.output)
    try:
        out.write(dot + "\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


# ===========================================================================
# Argument parser construction
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="tracegraph",
        description=(
            "Call graph and dominator analysis of precompiler traces."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              tracegraph summary trace.json
              tracegraph dominators trace.json --granularity package
              tracegraph dynamic-calls trace.json
              tracegraph dot trace.json --granularity library -o graph.dot
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    def _add_common_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("trace", help="Trace file (.json or .json.gz).")
        p.add_argument(
            "-o", "--output",
            default=None,
            help="Write output to this file ('-' for stdout).",
        )

    def _add_granularity_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--granularity",
            choices=sorted(_GRANULARITIES),
            default="function",
            help="Collapse the graph to this level first (default: function).",
        )
        p.add_argument(
            "--drop-call-nodes",
            action="store_true",
            help="Drop dynamic call selector nodes when collapsing.",
        )

    p_summary = subparsers.add_parser(
        "summary", help="Print call graph statistics."
    )
    _add_common_args(p_summary)
    _add_granularity_args(p_summary)
    p_summary.set_defaults(func=cmd_summary)

    p_dom = subparsers.add_parser(
        "dominators", help="Print the dominator tree."
    )
    _add_common_args(p_dom)
    _add_granularity_args(p_dom)
    p_dom.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Do not descend below this depth.",
    )
    p_dom.set_defaults(func=cmd_dominators)

    p_dyn = subparsers.add_parser(
        "dynamic-calls",
        help="List dynamic call selectors and their resolved targets.",
    )
    _add_common_args(p_dyn)
    p_dyn.set_defaults(func=cmd_dynamic_calls, drop_call_nodes=False)

    p_dot = subparsers.add_parser("dot", help="Emit Graphviz DOT.")
    _add_common_args(p_dot)
    _add_granularity_args(p_dot)
    p_dot.add_argument("--title", default=None, help="Graph label.")
    p_dot.add_argument(
        "--render",
        metavar="FORMAT",
        default=None,
        help="Render with graphviz to FORMAT (svg, png, pdf, ...).",
    )
    p_dot.set_defaults(func=cmd_dot)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the tracegraph CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
