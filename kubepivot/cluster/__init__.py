"""Operations on a management cluster.

Exposes:
    ClusterClient     -- Facade over the store of one management cluster.
    MetadataRegistry  -- Installed-provider records and their validation.
    ProviderComponents -- Create-or-update, scale down, delete and copy of
                         provider components.
    ProviderInstaller -- Validate-then-install queue.
    ObjectGraph       -- Resource graph queries and writes.
    PivotOrchestrator -- End-to-end pivot.
"""

from kubepivot.cluster.client import ClusterClient
from kubepivot.cluster.components import ProviderComponents
from kubepivot.cluster.installer import ProviderInstaller
from kubepivot.cluster.metadata import MetadataRegistry
from kubepivot.cluster.objects import ObjectGraph
from kubepivot.cluster.pivot import PivotOrchestrator

__all__ = [
    "ClusterClient",
    "MetadataRegistry",
    "ObjectGraph",
    "PivotOrchestrator",
    "ProviderComponents",
    "ProviderInstaller",
]
