"""
CLI tools for the Thanos operator.

This module provides command-line tools for:
- render: Print the children a parent resource would produce
- validate: Check parent manifests without touching a cluster

Invariants:
    - Tools work offline (no cluster access)
    - Output is deterministic for identical input
"""

from .render import RenderCLI

__all__ = ["RenderCLI"]
