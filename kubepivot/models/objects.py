"""Typed views over management-cluster objects.

Objects travel between stores as plain dicts.  ``from_dict`` turns a dict
into one of a closed set of variants selected by ``kind``; every variant
keeps the untouched body so that fields this package never inspects
survive a move byte-for-byte.  ``Unstructured`` is the catch-all for kinds
outside the set (infrastructure and bootstrap references, CRDs, RBAC ...).
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, ClassVar

# Wire-format constants shared with the controllers running in the cluster.
MANAGEMENT_LABEL = "clusterctl.cluster.x-k8s.io"
PROVIDER_LABEL = "clusterctl.cluster.x-k8s.io/provider"
CLUSTER_NAME_LABEL = "cluster.x-k8s.io/cluster-name"

CLUSTER_API_VERSION = "cluster.x-k8s.io/v1alpha2"
PROVIDER_API_VERSION = "clusterctl.cluster.x-k8s.io/v1alpha3"

PROPAGATION_FOREGROUND = "Foreground"

_CLUSTER_SCOPED_KINDS = frozenset(
    {
        "Namespace",
        "Node",
        "PersistentVolume",
        "PodSecurityPolicy",
        "CertificateSigningRequest",
        "ClusterRoleBinding",
        "ClusterRole",
        "VolumeAttachment",
        "StorageClass",
        "CSIDriver",
        "CSINode",
        "ValidatingWebhookConfiguration",
        "MutatingWebhookConfiguration",
        "CustomResourceDefinition",
        "PriorityClass",
        "RuntimeClass",
    }
)

# Fields the API server owns; they must not be sent when re-creating an object elsewhere.
_SERVER_OWNED_METADATA = ("creationTimestamp", "generation", "managedFields", "selfLink")


def is_namespaced_kind(kind: str) -> bool:
    """Return True unless *kind* is one of the well-known cluster-scoped kinds."""
    return kind not in _CLUSTER_SCOPED_KINDS


def provider_labels(provider_name: str) -> dict[str, str]:
    """Labels that tie an object to a provider installed by kubepivot."""
    return {MANAGEMENT_LABEL: "", PROVIDER_LABEL: provider_name}


def api_group(api_version: str) -> str:
    """``cluster.x-k8s.io/v1alpha2`` -> ``cluster.x-k8s.io``; ``v1`` -> ``""``."""
    return api_version.rpartition("/")[0]


@dataclass(frozen=True)
class LabelQuery:
    """Select objects by namespace and an exact label set.

    An empty namespace selects every namespace; an empty label set selects
    every object.
    """

    namespace: str = ""
    labels: tuple[tuple[str, str], ...] = ()

    @classmethod
    def of(cls, namespace: str = "", labels: dict[str, str] | None = None) -> LabelQuery:
        return cls(namespace=namespace, labels=tuple(sorted((labels or {}).items())))

    @classmethod
    def for_provider(cls, provider_name: str, namespace: str = "") -> LabelQuery:
        return cls.of(namespace, {PROVIDER_LABEL: provider_name})

    @property
    def selector(self) -> str:
        """Label selector string in the API server's syntax."""
        return ",".join(f"{k}={v}" for k, v in self.labels)

    def matches(self, obj: KubeObject) -> bool:
        if self.namespace and is_namespaced_kind(obj.kind) and obj.namespace != self.namespace:
            return False
        return all(obj.metadata.labels.get(k) == v for k, v in self.labels)


@dataclass(frozen=True)
class ObjectReference:
    """Opaque pointer to an object: enough to fetch it, nothing more."""

    api_version: str
    kind: str
    name: str
    namespace: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_namespace: str = "") -> ObjectReference:
        return cls(
            api_version=str(data.get("apiVersion", "")),
            kind=str(data.get("kind", "")),
            name=str(data.get("name", "")),
            namespace=str(data.get("namespace") or default_namespace),
        )

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind} {self.namespace}/{self.name}"
        return f"{self.kind} {self.name}"


@dataclass
class OwnerReference:
    api_version: str
    kind: str
    name: str
    uid: str = ""
    controller: bool = False
    block_owner_deletion: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OwnerReference:
        return cls(
            api_version=str(data.get("apiVersion", "")),
            kind=str(data.get("kind", "")),
            name=str(data.get("name", "")),
            uid=str(data.get("uid", "")),
            controller=bool(data.get("controller", False)),
            block_owner_deletion=bool(data.get("blockOwnerDeletion", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"apiVersion": self.api_version, "kind": self.kind, "name": self.name}
        if self.uid:
            out["uid"] = self.uid
        if self.controller:
            out["controller"] = True
        if self.block_owner_deletion:
            out["blockOwnerDeletion"] = True
        return out


@dataclass
class ObjectMeta:
    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    owner_references: list[OwnerReference] = field(default_factory=list)
    finalizers: list[str] = field(default_factory=list)
    resource_version: str = ""
    uid: str = ""
    deletion_timestamp: str | None = None
    # metadata keys not modelled above (creationTimestamp, generation, ...)
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN: ClassVar[frozenset[str]] = frozenset(
        {
            "name",
            "namespace",
            "labels",
            "annotations",
            "ownerReferences",
            "finalizers",
            "resourceVersion",
            "uid",
            "deletionTimestamp",
        }
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ObjectMeta:
        return cls(
            name=str(data.get("name", "")),
            namespace=str(data.get("namespace") or ""),
            labels=dict(data.get("labels") or {}),
            annotations=dict(data.get("annotations") or {}),
            owner_references=[OwnerReference.from_dict(o) for o in data.get("ownerReferences") or []],
            finalizers=list(data.get("finalizers") or []),
            resource_version=str(data.get("resourceVersion") or ""),
            uid=str(data.get("uid") or ""),
            deletion_timestamp=data.get("deletionTimestamp"),
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in cls._KNOWN},
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = copy.deepcopy(self.extra)
        out["name"] = self.name
        if self.namespace:
            out["namespace"] = self.namespace
        if self.labels:
            out["labels"] = dict(self.labels)
        if self.annotations:
            out["annotations"] = dict(self.annotations)
        if self.owner_references:
            out["ownerReferences"] = [o.to_dict() for o in self.owner_references]
        if self.finalizers:
            out["finalizers"] = list(self.finalizers)
        if self.resource_version:
            out["resourceVersion"] = self.resource_version
        if self.uid:
            out["uid"] = self.uid
        if self.deletion_timestamp:
            out["deletionTimestamp"] = self.deletion_timestamp
        return out


@dataclass
class KubeObject:
    """An object of the management cluster.

    ``body`` holds every top-level field except apiVersion, kind and
    metadata (spec, status, data, type ...).
    """

    api_version: str
    kind: str
    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    body: dict[str, Any] = field(default_factory=dict)

    KIND: ClassVar[str] = ""

    # -- identity ------------------------------------------------------

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def reference(self) -> ObjectReference:
        return ObjectReference(
            api_version=self.api_version,
            kind=self.kind,
            name=self.metadata.name,
            namespace=self.metadata.namespace,
        )

    def __str__(self) -> str:
        return str(self.reference())

    # -- body helpers -------------------------------------------------

    @property
    def spec(self) -> dict[str, Any]:
        return self.body.setdefault("spec", {})

    @property
    def status(self) -> dict[str, Any]:
        return self.body.get("status") or {}

    def nested(self, *path: str) -> Any:
        """Return the value at *path* inside the body, or None."""
        current: Any = self.body
        for key in path:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        return current

    # -- codecs -------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"apiVersion": self.api_version, "kind": self.kind}
        out["metadata"] = self.metadata.to_dict()
        out.update(copy.deepcopy(self.body))
        return out

    def deep_copy(self) -> KubeObject:
        return from_dict(self.to_dict())

    def prepare_for_create(self) -> None:
        """Strip server-owned fields so the object can be created in another store."""
        self.metadata.resource_version = ""
        self.metadata.uid = ""
        self.metadata.deletion_timestamp = None
        for key in _SERVER_OWNED_METADATA:
            self.metadata.extra.pop(key, None)

    def prepare_for_pivot(self) -> None:
        """Hook for kinds that carry cluster-specific allocations."""
        self.prepare_for_create()


class Unstructured(KubeObject):
    """Any object outside the well-known set, addressed only by GVK/namespace/name."""


class Namespace(KubeObject):
    KIND = "Namespace"

    @classmethod
    def new(cls, name: str) -> Namespace:
        return cls(api_version="v1", kind=cls.KIND, metadata=ObjectMeta(name=name))


class Secret(KubeObject):
    KIND = "Secret"


class Service(KubeObject):
    KIND = "Service"

    def prepare_for_pivot(self) -> None:
        super().prepare_for_pivot()
        # ClusterIPs are allocated per cluster; let the target assign a new one.
        if self.spec.get("type") == "ClusterIP":
            self.spec["clusterIP"] = ""


class Deployment(KubeObject):
    KIND = "Deployment"

    @property
    def replicas(self) -> int | None:
        value = self.spec.get("replicas")
        return None if value is None else int(value)

    @replicas.setter
    def replicas(self, value: int) -> None:
        self.spec["replicas"] = value

    def scaled_to(self, replicas: int) -> bool:
        """True when status reports exactly *replicas* replicas, ready and available.

        Status counters are omitted by the API server when zero.
        """
        status = self.status
        return all(
            int(status.get(key, 0) or 0) == replicas for key in ("replicas", "readyReplicas", "availableReplicas")
        )


class Cluster(KubeObject):
    KIND = "Cluster"

    @property
    def infrastructure_ref(self) -> ObjectReference | None:
        ref = self.spec.get("infrastructureRef")
        if not ref:
            return None
        return ObjectReference.from_dict(ref, default_namespace=self.namespace)


class _MachineTemplateOwner(KubeObject):
    """MachineDeployment and MachineSet both embed a Machine template."""

    @property
    def template_infrastructure_ref(self) -> ObjectReference | None:
        ref = self.nested("spec", "template", "spec", "infrastructureRef")
        if not ref:
            return None
        return ObjectReference.from_dict(ref, default_namespace=self.namespace)


class MachineDeployment(_MachineTemplateOwner):
    KIND = "MachineDeployment"


class MachineSet(_MachineTemplateOwner):
    KIND = "MachineSet"


class Machine(KubeObject):
    KIND = "Machine"

    @property
    def infrastructure_ref(self) -> ObjectReference | None:
        ref = self.spec.get("infrastructureRef")
        if not ref:
            return None
        return ObjectReference.from_dict(ref, default_namespace=self.namespace)

    @property
    def bootstrap_config_ref(self) -> ObjectReference | None:
        ref = self.nested("spec", "bootstrap", "configRef")
        if not ref:
            return None
        return ObjectReference.from_dict(ref, default_namespace=self.namespace)

    @property
    def node_ref(self) -> dict[str, Any] | None:
        return self.status.get("nodeRef") or None

    @property
    def being_deleted(self) -> bool:
        return bool(self.metadata.deletion_timestamp)


class ProviderObject(KubeObject):
    """Stored form of an installed-provider record (see ``models.provider``)."""

    KIND = "Provider"


_VARIANTS: dict[str, type[KubeObject]] = {
    cls.KIND: cls
    for cls in (
        Namespace,
        Secret,
        Service,
        Deployment,
        Cluster,
        MachineDeployment,
        MachineSet,
        Machine,
        ProviderObject,
    )
}


def from_dict(data: dict[str, Any]) -> KubeObject:
    """Build the variant matching ``data["kind"]``; unknown kinds become Unstructured."""
    kind = str(data.get("kind", ""))
    variant = _VARIANTS.get(kind, Unstructured)
    body = {k: copy.deepcopy(v) for k, v in data.items() if k not in ("apiVersion", "kind", "metadata")}
    return variant(
        api_version=str(data.get("apiVersion", "")),
        kind=kind,
        metadata=ObjectMeta.from_dict(data.get("metadata") or {}),
        body=body,
    )


def controller_of(obj: KubeObject) -> OwnerReference | None:
    """Return the owner reference flagged as controller, if any."""
    for ref in obj.metadata.owner_references:
        if ref.controller:
            return ref
    return None


def is_controlled_by(obj: KubeObject, owner: KubeObject) -> bool:
    """True when *obj*'s controller reference points at *owner*.

    UIDs are compared only when both sides carry one.
    """
    ref = controller_of(obj)
    if ref is None or ref.kind != owner.kind or ref.name != owner.name:
        return False
    return not (ref.uid and owner.metadata.uid and ref.uid != owner.metadata.uid)


def is_owned_by(obj: KubeObject, owner: KubeObject) -> bool:
    """True when any owner reference of *obj* names *owner* by kind and name."""
    return any(ref.kind == owner.kind and ref.name == owner.name for ref in obj.metadata.owner_references)
