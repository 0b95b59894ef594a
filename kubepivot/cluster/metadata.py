"""Installed-provider records persisted in the management cluster itself.

MetadataRegistry -- creates the Provider CRD and reads/writes Provider
                    objects; validates new instances against the ones
                    already installed.
"""

from __future__ import annotations

from typing import Any

import structlog

from kubepivot.errors import AlreadyExistsError, ConflictError, NotFoundError
from kubepivot.models.objects import (
    MANAGEMENT_LABEL,
    PROVIDER_API_VERSION,
    LabelQuery,
    ObjectReference,
    ProviderObject,
    from_dict,
)
from kubepivot.models.provider import ProviderRecord, ProviderType
from kubepivot.store.base import ObjectStore, expect_kind

_log = structlog.get_logger(component="cluster.metadata")

PROVIDER_CRD: dict[str, Any] = {
    "apiVersion": "apiextensions.k8s.io/v1",
    "kind": "CustomResourceDefinition",
    "metadata": {
        "name": "providers.clusterctl.cluster.x-k8s.io",
        "labels": {MANAGEMENT_LABEL: ""},
    },
    "spec": {
        "group": "clusterctl.cluster.x-k8s.io",
        "names": {
            "kind": "Provider",
            "listKind": "ProviderList",
            "plural": "providers",
            "singular": "provider",
        },
        "scope": "Namespaced",
        "versions": [
            {
                "name": "v1alpha3",
                "served": True,
                "storage": True,
                "additionalPrinterColumns": [
                    {"name": "Type", "type": "string", "jsonPath": ".type"},
                    {"name": "Version", "type": "string", "jsonPath": ".version"},
                    {"name": "Watch Namespace", "type": "string", "jsonPath": ".watchedNamespace"},
                ],
                "schema": {
                    "openAPIV3Schema": {
                        "type": "object",
                        "properties": {
                            "apiVersion": {"type": "string"},
                            "kind": {"type": "string"},
                            "metadata": {"type": "object"},
                            "type": {"type": "string"},
                            "version": {"type": "string"},
                            "watchedNamespace": {"type": "string"},
                        },
                    }
                },
            }
        ],
    },
}


def _unique(values: list[str]) -> str:
    """Return the only distinct value, or "" when there are none or several."""
    distinct = set(values)
    if len(distinct) == 1:
        return distinct.pop()
    return ""


class MetadataRegistry:
    """Provider records of one management cluster."""

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    async def ensure_metadata(self) -> bool:
        """Install the Provider CRD.

        Returns True when it was already installed, i.e. the cluster has
        been initialised before.
        """
        crd = from_dict(PROVIDER_CRD)
        _log.debug("creating_metadata", cluster=self._store.name, object=str(crd))
        try:
            await self._store.create(crd)
        except AlreadyExistsError:
            return True
        return False

    async def validate(self, candidate: ProviderRecord) -> None:
        """Check that *candidate* can be installed next to the existing instances.

        Raises:
            ConflictError -- an invariant among instances of the same provider
                             would be broken.
        """
        instances = await self.list(name=candidate.name)
        if not instances:
            return

        # Two instances of a provider in one namespace are not supported.
        for instance in instances:
            if instance.namespace == candidate.namespace:
                raise ConflictError(
                    f"there is already an instance of the {candidate.name!r} provider "
                    f"installed in the {candidate.namespace!r} namespace"
                )

        # Non-namespaced objects (CRDs ...) are shared: every instance must run the same version.
        for instance in instances:
            if instance.version != candidate.version:
                raise ConflictError(
                    f"the new instance of the {candidate.name!r} provider has version "
                    f"{candidate.version!r}, different from the installed {instance.version!r}"
                )

        if not candidate.watched_namespace:
            raise ConflictError(
                f"the new instance of the {candidate.name!r} provider is going to watch for objects "
                "in namespaces already controlled by other instances"
            )
        for instance in instances:
            if not instance.watched_namespace or instance.watched_namespace == candidate.watched_namespace:
                raise ConflictError(
                    f"the new instance of the {candidate.name!r} provider is going to watch for objects "
                    f"in the namespace {candidate.watched_namespace!r} that is already controlled by "
                    f"the instance in {instance.namespace!r}"
                )

    async def create(self, record: ProviderRecord) -> None:
        """Persist *record*, replacing an existing record with the same key."""
        obj = record.to_object()
        try:
            current = await self._store.get(obj.reference())
        except NotFoundError:
            await self._store.create(obj)
            _log.info("provider_record_created", cluster=self._store.name, provider=str(record))
            return
        obj.metadata.resource_version = current.metadata.resource_version
        await self._store.update(obj)
        _log.info("provider_record_updated", cluster=self._store.name, provider=str(record))

    async def get(self, namespace: str, name: str) -> ProviderRecord:
        ref = ObjectReference(PROVIDER_API_VERSION, ProviderObject.KIND, name, namespace)
        obj = expect_kind(await self._store.get(ref), ProviderObject)
        return ProviderRecord.from_object(obj)

    async def list(
        self,
        name: str = "",
        namespace: str = "",
        type: ProviderType | None = None,  # noqa: A002
    ) -> list[ProviderRecord]:
        """Installed records, optionally filtered by name, namespace and type."""
        objects = await self._store.list(PROVIDER_API_VERSION, ProviderObject.KIND, LabelQuery.of(namespace))
        records = [ProviderRecord.from_object(obj) for obj in objects if isinstance(obj, ProviderObject)]
        if name:
            records = [r for r in records if r.name == name]
        if namespace:
            records = [r for r in records if r.namespace == namespace]
        if type is not None:
            records = [r for r in records if r.type == type]
        return records

    async def get_default_provider(self, provider_type: ProviderType) -> str:
        return _unique([r.name for r in await self.list(type=provider_type)])

    async def get_default_version(self, name: str) -> str:
        return _unique([r.version for r in await self.list(name=name)])

    async def get_default_namespace(self, name: str) -> str:
        return _unique([r.namespace for r in await self.list(name=name)])
