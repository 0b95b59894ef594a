"""End-to-end pivot of a management cluster.

Providers are installed in the target, controllers in the source are
scaled down, the resource graph is moved, and finally the provider
components are removed from the source.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from kubepivot.cluster.components import ProviderComponents
from kubepivot.cluster.metadata import MetadataRegistry
from kubepivot.cluster.mover import move_objects
from kubepivot.cluster.objects import ObjectGraph
from kubepivot.errors import NotFoundError
from kubepivot.models.provider import ProviderRecord

if TYPE_CHECKING:
    from kubepivot.cluster.client import ClusterClient

_log = structlog.get_logger(component="cluster.pivot")


def force_delete_crd_flags(providers: list[ProviderRecord]) -> list[bool]:
    """For each provider, whether deleting it should also delete its CRDs.

    CRDs are shared by every instance of a provider, so only the last
    instance with a given name takes them.
    """
    return [not any(later.name == p.name for later in providers[i + 1 :]) for i, p in enumerate(providers)]


class PivotOrchestrator:
    """Moves providers and the resource graph out of one management cluster."""

    def __init__(self, metadata: MetadataRegistry, components: ProviderComponents, objects: ObjectGraph) -> None:
        self._metadata = metadata
        self._components = components
        self._objects = objects

    async def pivot(self, target: ClusterClient) -> None:
        providers = await self._metadata.list()

        _log.info("installing_providers_in_target", target=target.store.name, providers=[str(p) for p in providers])
        for provider in providers:
            if await self._already_installed(target, provider):
                _log.info("provider_already_in_target", provider=str(provider))
                continue
            await target.metadata.validate(provider)
            await self._components.pivot_to(provider, target.store)
            await target.metadata.create(provider)

        _log.info("scaling_down_source_controllers")
        for provider in providers:
            await self._components.scale_down_controllers(provider)

        _log.info("moving_objects", target=target.store.name)
        await move_objects(self._objects, target.objects)

        _log.info("deleting_source_providers")
        for provider, delete_crd in zip(providers, force_delete_crd_flags(providers), strict=True):
            await self._components.delete(provider, force_delete_namespace=False, force_delete_crd=delete_crd)

    @staticmethod
    async def _already_installed(target: ClusterClient, provider: ProviderRecord) -> bool:
        try:
            installed = await target.metadata.get(provider.namespace, provider.name)
        except NotFoundError:
            return False
        return installed.equivalent(provider)
