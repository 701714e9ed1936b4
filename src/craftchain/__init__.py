"""
craftchain: package root

File: src/craftchain/__init__.py

Purpose
- Package root. Tracks crafting/assembly projects as a graph of items whose
  completion is gated on their dependencies.

What should be included in this file
- Version export and minimal public API surface (keep small).
- Import boundary rules: avoid importing heavy submodules at import time.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
