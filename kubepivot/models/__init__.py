"""Core data structures for kubepivot."""

from kubepivot.models.config import KubePivotConfig
from kubepivot.models.objects import (
    Cluster,
    Deployment,
    KubeObject,
    LabelQuery,
    Machine,
    MachineDeployment,
    MachineSet,
    Namespace,
    ObjectMeta,
    ObjectReference,
    OwnerReference,
    ProviderObject,
    Secret,
    Service,
    Unstructured,
    from_dict,
)
from kubepivot.models.provider import ProviderRecord, ProviderType

__all__ = [
    "Cluster",
    "Deployment",
    "KubeObject",
    "KubePivotConfig",
    "LabelQuery",
    "Machine",
    "MachineDeployment",
    "MachineSet",
    "Namespace",
    "ObjectMeta",
    "ObjectReference",
    "OwnerReference",
    "ProviderObject",
    "ProviderRecord",
    "ProviderType",
    "Secret",
    "Service",
    "Unstructured",
    "from_dict",
]
