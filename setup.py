#!/usr/bin/env python3
# =============================================================================
#  tracegraph — setup.py
#
#  The version lives in tracegraph/__init__.py so there is a single source
#  of truth.
#
#  For development:
#      pip install -e ".[dev]"
#      python -m pytest
# =============================================================================

from __future__ import annotations

import re
from pathlib import Path

from setuptools import setup, find_packages

_HERE = Path(__file__).resolve().parent


def _read_version() -> str:
    """Extract the version string from tracegraph/__init__.py."""
    init = _HERE / "tracegraph" / "__init__.py"
    text = init.read_text(encoding="utf-8")
    match = re.search(r'^__version__\s*=\s*"([^"]+)"', text, re.MULTILINE)
    if match:
        return match.group(1)
    return "0.0.0"


def _read_long_description() -> str:
    """Read README.md for the long description."""
    readme = _HERE / "README.md"
    if readme.exists():
        return readme.read_text(encoding="utf-8")
    return ""


setup(
    name="tracegraph",
    version=_read_version(),
    description=(
        "Call graph reconstruction, dynamic dispatch resolution and "
        "dominator analysis for ahead-of-time compiler traces."
    ),
    long_description=_read_long_description(),
    long_description_content_type="text/markdown",
    license="MIT",
    author="tracegraph contributors",
    python_requires=">=3.10",
    packages=find_packages(
        include=[
            "tracegraph",
            "tracegraph.*",
        ],
        exclude=[
            "tests",
            "tests.*",
        ],
    ),
    install_requires=[],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "ruff>=0.4",
            "mypy>=1.10",
            "black>=24.0",
            "isort>=5.13",
        ],
        "test": [
            "pytest>=7.0",
        ],
        "viz": [
            "graphviz>=0.20",
        ],
    },

    entry_points={
        "console_scripts": [
            "tracegraph=tracegraph.main:main",
        ],
    },

    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Software Development :: Compilers",
        "Topic :: Software Development :: Quality Assurance",
    ],
    keywords=[
        "call-graph",
        "dominators",
        "program-analysis",
        "binary-size",
        "aot",
    ],
    zip_safe=False,
)
