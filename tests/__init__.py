"""
Thanos operator test suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Reconciler passes against the in-memory cluster client
"""
