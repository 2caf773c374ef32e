"""Entry point for ``python -m tracegraph``."""

from __future__ import annotations

from tracegraph.main import main

if __name__ == "__main__":
    raise SystemExit(main())
