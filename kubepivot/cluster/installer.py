"""Queued installation of provider components bundles.

Bundles are validated when queued and only installed by ``install``, so a
whole batch (core, bootstrap and infrastructure providers) is checked
before the first object is written.
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

import structlog

from kubepivot.cluster.components import ProviderComponents
from kubepivot.cluster.metadata import MetadataRegistry
from kubepivot.errors import ConflictError, InstallError
from kubepivot.models.objects import PROVIDER_LABEL, Namespace, ObjectReference
from kubepivot.observability.metrics import providers_installed_total
from kubepivot.store.base import ObjectStore

if TYPE_CHECKING:
    from kubepivot.repository.components import Components

_log = structlog.get_logger(component="cluster.installer")


class ProviderInstaller:
    """Install queue for one management cluster."""

    def __init__(self, store: ObjectStore, metadata: MetadataRegistry, components: ProviderComponents) -> None:
        self._store = store
        self._metadata = metadata
        self._components = components
        self._queue: list[Components] = []

    async def add(self, components: Components, force: bool = False) -> None:
        """Validate *components* against the installed providers and queue it.

        Raises:
            ConflictError -- validation failed and *force* is not set.
        """
        record = components.metadata()
        try:
            await self._metadata.validate(record)
        except ConflictError as exc:
            if not force:
                raise ConflictError(
                    f"installing provider {components.name!r} can lead to a non functioning "
                    f"management cluster (use --force to ignore this error): {exc}"
                ) from exc
            _log.warning("provider_validation_ignored", provider=str(record), reason=str(exc))
        self._queue.append(components)

    async def install(self) -> list[Components]:
        """Install every queued bundle, then detach namespaces shared by several providers.

        The first failure stops the queue; bundles installed before it stay.
        """
        installed: list[Components] = []
        for components in self._queue:
            record = components.metadata()
            _log.info("installing_provider", cluster=self._store.name, provider=str(record), type=str(record.type))
            try:
                await self._components.create(components.objects)
                await self._metadata.create(record)
            except Exception as exc:
                raise InstallError(f"failed to install provider {record}") from exc
            providers_installed_total.labels(type=str(record.type)).inc()
            installed.append(components)
        self._queue.clear()

        await self._detach_shared_namespaces()
        return installed

    async def _detach_shared_namespaces(self) -> None:
        # A namespace hosting several providers belongs to none of them.
        per_namespace = Counter(record.namespace for record in await self._metadata.list())
        for namespace, count in sorted(per_namespace.items()):
            if count < 2:
                continue
            ns = await self._store.get(ObjectReference("v1", Namespace.KIND, namespace))
            if PROVIDER_LABEL not in ns.metadata.labels:
                continue
            del ns.metadata.labels[PROVIDER_LABEL]
            await self._store.update(ns)
            _log.info("namespace_detached", cluster=self._store.name, namespace=namespace, providers=count)
