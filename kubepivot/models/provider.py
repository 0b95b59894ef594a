"""Installed-provider records and their enumerations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from kubepivot.models.objects import (
    PROVIDER_API_VERSION,
    ObjectMeta,
    ProviderObject,
    provider_labels,
)


class ProviderType(StrEnum):
    """Role of a provider inside a management cluster."""

    CORE = "CoreProvider"
    BOOTSTRAP = "BootstrapProvider"
    INFRASTRUCTURE = "InfrastructureProvider"


@dataclass(frozen=True)
class ProviderRecord:
    """One provider instance installed in a management cluster.

    Identified by ``(namespace, name)``.  An empty ``watched_namespace``
    means the controller reconciles objects in every namespace.
    """

    namespace: str
    name: str
    type: ProviderType
    version: str
    watched_namespace: str = ""

    def equivalent(self, other: ProviderRecord) -> bool:
        """Same provider, version and watched namespace (namespace may differ)."""
        return (
            self.name == other.name
            and self.version == other.version
            and self.watched_namespace == other.watched_namespace
        )

    def to_object(self) -> ProviderObject:
        body: dict[str, str] = {"type": str(self.type), "version": self.version}
        if self.watched_namespace:
            body["watchedNamespace"] = self.watched_namespace
        return ProviderObject(
            api_version=PROVIDER_API_VERSION,
            kind=ProviderObject.KIND,
            metadata=ObjectMeta(name=self.name, namespace=self.namespace, labels=provider_labels(self.name)),
            body=body,
        )

    @classmethod
    def from_object(cls, obj: ProviderObject) -> ProviderRecord:
        return cls(
            namespace=obj.namespace,
            name=obj.name,
            type=ProviderType(obj.body.get("type", ProviderType.CORE)),
            version=str(obj.body.get("version", "")),
            watched_namespace=str(obj.body.get("watchedNamespace") or ""),
        )

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}:{self.version}"
