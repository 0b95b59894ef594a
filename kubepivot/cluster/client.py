"""Entry point to every operation on one management cluster."""

from __future__ import annotations

from kubepivot.cluster.components import ProviderComponents
from kubepivot.cluster.installer import ProviderInstaller
from kubepivot.cluster.metadata import MetadataRegistry
from kubepivot.cluster.objects import ObjectGraph
from kubepivot.cluster.pivot import PivotOrchestrator
from kubepivot.models.config import WaitConfig
from kubepivot.store.base import ObjectStore


class ClusterClient:
    """Groups the registry, components, object graph and services of a cluster."""

    def __init__(self, store: ObjectStore, wait: WaitConfig | None = None) -> None:
        self.store = store
        self.wait = wait or WaitConfig()
        self.metadata = MetadataRegistry(store)
        self.components = ProviderComponents(store, self.wait)
        self.objects = ObjectGraph(store, self.wait)

    def installer(self) -> ProviderInstaller:
        """A new, empty install queue."""
        return ProviderInstaller(self.store, self.metadata, self.components)

    def mover(self) -> PivotOrchestrator:
        return PivotOrchestrator(self.metadata, self.components, self.objects)
