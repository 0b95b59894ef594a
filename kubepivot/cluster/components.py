"""Provider components inside a management cluster.

ProviderComponents -- applies a components bundle (create-or-update in
                      dependency order), scales provider controllers down,
                      deletes a provider's objects and copies them to
                      another cluster.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from kubepivot.cluster.objects import ensure_namespace
from kubepivot.cluster.wait import poll_immediate
from kubepivot.errors import NotFoundError
from kubepivot.models.config import WaitConfig
from kubepivot.models.objects import (
    Deployment,
    KubeObject,
    LabelQuery,
    Namespace,
    is_namespaced_kind,
)
from kubepivot.models.provider import ProviderRecord
from kubepivot.observability.metrics import provider_objects_deleted_total
from kubepivot.store.base import ObjectStore, expect_kind

_log = structlog.get_logger(component="cluster.components")

# Kinds other objects depend on at creation time, most depended-on first.
CREATE_PRIORITIES: tuple[str, ...] = (
    "Namespace",
    "CustomResourceDefinition",
    "StorageClass",
    "PersistentVolume",
    "PersistentVolumeClaim",
    "Secret",
    "ConfigMap",
    "ServiceAccount",
    "LimitRange",
    "Pod",
    "ReplicaSet",
    "Endpoints",
)

_CRD_KIND = "CustomResourceDefinition"


def sort_for_create(objects: Iterable[KubeObject]) -> list[KubeObject]:
    """Order *objects* by CREATE_PRIORITIES; other kinds keep their relative order at the end."""
    rank = {kind: i for i, kind in enumerate(CREATE_PRIORITIES)}
    ordered = list(objects)
    # sorted() is stable, so unprioritised kinds keep bundle order
    return sorted(ordered, key=lambda obj: rank.get(obj.kind, len(CREATE_PRIORITIES)))


async def apply(store: ObjectStore, obj: KubeObject) -> KubeObject:
    """Create *obj*, or update the existing object with the same identity."""
    try:
        current = await store.get(obj.reference())
    except NotFoundError:
        _log.debug("creating", cluster=store.name, object=str(obj))
        return await store.create(obj)
    _log.debug("updating", cluster=store.name, object=str(obj))
    obj.metadata.resource_version = current.metadata.resource_version
    obj.metadata.uid = current.metadata.uid
    return await store.update(obj)


def select_for_delete(
    objects: list[KubeObject],
    force_delete_namespace: bool,
    force_delete_crd: bool,
) -> list[KubeObject]:
    """Pick which of a provider's objects to delete explicitly.

    CRDs are kept unless *force_delete_crd*.  The Namespace is kept unless
    *force_delete_namespace*; when it goes, the objects it contains are left
    to the namespace deletion.
    """
    selected = objects
    if not force_delete_crd:
        selected = [obj for obj in selected if obj.kind != _CRD_KIND]
    if not force_delete_namespace:
        return [obj for obj in selected if obj.kind != Namespace.KIND]
    namespaces = {obj.name for obj in selected if obj.kind == Namespace.KIND}
    return [obj for obj in selected if not (is_namespaced_kind(obj.kind) and obj.namespace in namespaces)]


class ProviderComponents:
    """Operations on the components of providers installed in one cluster."""

    def __init__(self, store: ObjectStore, wait: WaitConfig | None = None) -> None:
        self._store = store
        self._wait = wait or WaitConfig()

    async def create(self, objects: Iterable[KubeObject]) -> None:
        """Create or update every object of a bundle in dependency order."""
        for obj in sort_for_create(objects):
            await apply(self._store, obj.deep_copy())

    async def scale_down_controllers(self, provider: ProviderRecord) -> None:
        """Scale the provider's Deployments to zero and wait until they drain.

        Raises:
            WaitTimeoutError -- a Deployment still reported replicas after
                                the scale timeout.
        """
        query = LabelQuery.for_provider(provider.name, provider.namespace)
        deployments = await self._store.list("apps/v1", Deployment.KIND, query)
        for deployment in (expect_kind(d, Deployment) for d in deployments):
            if deployment.replicas == 0:
                _log.debug("scale_down_skipped", namespace=deployment.namespace, name=deployment.name)
                continue
            _log.info(
                "scaling_down",
                cluster=self._store.name,
                namespace=deployment.namespace,
                name=deployment.name,
                replicas=deployment.replicas,
            )
            await poll_immediate(
                self._wait.scale_interval,
                self._wait.scale_timeout,
                lambda d=deployment: self._scaled_to_zero(d),
                what=f"{deployment} to scale down",
            )

    async def _scaled_to_zero(self, deployment: Deployment) -> bool:
        try:
            current = expect_kind(await self._store.get(deployment.reference()), Deployment)
        except NotFoundError:
            return True
        if current.replicas != 0:
            current.replicas = 0
            current = expect_kind(await self._store.update(current), Deployment)
        return current.scaled_to(0)

    async def delete(
        self,
        provider: ProviderRecord,
        force_delete_namespace: bool = False,
        force_delete_crd: bool = False,
    ) -> None:
        """Delete the objects labeled with *provider*.

        Controllers are scaled down first unless the CRDs go as well.
        Objects already gone are tolerated, since deleting a namespace or an
        owner cascades to objects still on the list.
        """
        _log.info(
            "deleting_provider",
            cluster=self._store.name,
            provider=str(provider),
            delete_namespace=force_delete_namespace,
            delete_crd=force_delete_crd,
        )
        if not force_delete_crd:
            await self.scale_down_controllers(provider)

        objects = await self._store.list_all(LabelQuery.for_provider(provider.name, provider.namespace))
        for obj in select_for_delete(objects, force_delete_namespace, force_delete_crd):
            _log.debug("deleting", cluster=self._store.name, object=str(obj))
            try:
                await self._store.delete(obj)
            except NotFoundError:
                continue
            provider_objects_deleted_total.labels(provider=provider.name).inc()

    async def pivot_to(self, provider: ProviderRecord, target: ObjectStore) -> None:
        """Copy the components of *provider* into *target*."""
        objects = await self._store.list_all(LabelQuery.for_provider(provider.name, provider.namespace))
        # a namespace shared by several providers carries no provider label
        await ensure_namespace(target, provider.namespace)
        for obj in sort_for_create(objects):
            obj.prepare_for_pivot()
            await apply(target, obj)
        _log.info("provider_components_copied", provider=str(provider), target=target.name, objects=len(objects))
