"""Prometheus counters for provider and pivot operations.

Counters live in a dedicated registry so that importing kubepivot from a
process that already exposes the default registry never collides with it.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter

REGISTRY = CollectorRegistry(auto_describe=True)

objects_moved_total = Counter(
    "kubepivot_objects_moved_total",
    "Objects moved from the source to the target management cluster.",
    ["kind"],
    registry=REGISTRY,
)

providers_installed_total = Counter(
    "kubepivot_providers_installed_total",
    "Provider bundles installed into a management cluster.",
    ["type"],
    registry=REGISTRY,
)

provider_objects_deleted_total = Counter(
    "kubepivot_provider_objects_deleted_total",
    "Provider component objects deleted from a management cluster.",
    ["provider"],
    registry=REGISTRY,
)
