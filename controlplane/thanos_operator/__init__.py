"""
Thanos Operator - reconciliation engine for Thanos-style topologies.

This package drives a Kubernetes cluster toward the state declared by three
custom resources, each describing one role of a distributed query/storage
service:
- Querier (query aggregation, stateless)
- Store (object-store gateway, stateless)
- Receiver (ingestion, stateful)

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │  Parent CR  │────▶│    kopf     │────▶│   Reconciler    │
    │ (Querier..) │     │  handlers   │     │   (per role)    │
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │
                        ┌────────────────────┬───────┴────────────┐
                        │                    │                    │
                        ▼                    ▼                    ▼
                   ┌─────────┐         ┌──────────┐         ┌──────────┐
                   │Builders │         │Ownership │         │Conditions│
                   │ (pure)  │         │  Guard   │         │ Tracker  │
                   └────┬────┘         └────┬─────┘         └────┬─────┘
                        │                   │                    │
                        ▼                   ▼                    ▼
                   ┌──────────────────────────────────────────────────┐
                   │      ClusterClient (Kubernetes / in-memory)      │
                   └──────────────────────────────────────────────────┘

Invariants:
    - A child resource has the same name and namespace as its parent
    - Children owned by another controller are never mutated
    - Builders are pure; the same spec always yields the same manifests
    - Every pass that touches a child attempts a status persist

How to change safely:
    - New roles need a Role member, a spec model, a workload builder and a
      child set entry
    - Keep generated argument lists stable; reordering flags restarts pods
    - Verify idempotence with a second reconcile against the same spec

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
