"""Object store clients for management clusters.

Exposes:
    ObjectStore           -- ABC consumed by every cluster operation.
    MemoryObjectStore     -- In-process store with API server semantics.
    KubernetesObjectStore -- Store for a live cluster addressed by kubeconfig.
"""

from kubepivot.store.base import ObjectStore
from kubepivot.store.kubernetes import KubernetesObjectStore
from kubepivot.store.memory import MemoryObjectStore

__all__ = ["KubernetesObjectStore", "MemoryObjectStore", "ObjectStore"]
