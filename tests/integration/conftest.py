"""Shared fixtures for kubepivot integration tests.

Provides two in-memory management clusters, a builder for Cluster API
resource graphs (Clusters, MachineDeployments, MachineSets, Machines and
the infrastructure objects they reference) and a local provider
repository, so whole pivots and installs run without a real API server.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from kubepivot.client import KubePivotClient
from kubepivot.cluster.client import ClusterClient
from kubepivot.config import MACHINE_READY_TIMEOUT_ENV
from kubepivot.models.config import WaitConfig
from kubepivot.models.objects import CLUSTER_API_VERSION, CLUSTER_NAME_LABEL, KubeObject, Namespace, from_dict
from kubepivot.models.provider import ProviderType
from kubepivot.repository.filesystem import FilesystemRepository
from kubepivot.repository.providers import ProviderConfig
from kubepivot.store.memory import MemoryObjectStore

NS1 = "ns1"
INFRASTRUCTURE_API_VERSION = "infrastructure.cluster.x-k8s.io/v1alpha3"
BOOTSTRAP_API_VERSION = "bootstrap.cluster.x-k8s.io/v1alpha3"

# Millisecond polls keep the whole pivot well under a second.
FAST_WAIT = WaitConfig(
    resource_ready_interval=0.001,
    resource_ready_timeout=0.2,
    scale_interval=0.001,
    scale_timeout=0.2,
    machine_ready_interval=0.001,
    machine_ready_timeout=0.2,
)


# ---------------------------------------------------------------------------
# Resource graph builder
# ---------------------------------------------------------------------------


def _ref(api_version: str, kind: str, name: str, namespace: str) -> dict:
    return {"apiVersion": api_version, "kind": kind, "name": name, "namespace": namespace}


def _owner(kind: str, name: str, controller: bool = False) -> dict:
    ref: dict = {"apiVersion": CLUSTER_API_VERSION, "kind": kind, "name": name}
    if controller:
        ref["controller"] = True
    else:
        ref["blockOwnerDeletion"] = True
    return ref


class GraphBuilder:
    """Builds a Cluster API resource graph the way controllers would leave it.

    Every Machine gets a ``status.nodeRef`` so that it is immediately ready
    once re-created in the target.
    """

    def __init__(self) -> None:
        self.objects: list[KubeObject] = []
        self._namespaces: set[str] = set()

    def _add(self, data: dict) -> None:
        namespace = data["metadata"].get("namespace", "")
        if namespace and namespace not in self._namespaces:
            self._namespaces.add(namespace)
            self.objects.insert(0, Namespace.new(namespace))
        self.objects.append(from_dict(data))

    def _infrastructure(self, kind: str, name: str, namespace: str) -> None:
        self._add(
            {
                "apiVersion": INFRASTRUCTURE_API_VERSION,
                "kind": kind,
                "metadata": {"name": name, "namespace": namespace},
                "spec": {"providerID": f"fake://{name}"},
            }
        )

    def with_cluster(self, namespace: str, name: str) -> GraphBuilder:
        self._infrastructure("ProviderCluster", name, namespace)
        self._add(
            {
                "apiVersion": CLUSTER_API_VERSION,
                "kind": "Cluster",
                "metadata": {"name": name, "namespace": namespace},
                "spec": {"infrastructureRef": _ref(INFRASTRUCTURE_API_VERSION, "ProviderCluster", name, namespace)},
            }
        )
        self._add(
            {
                "apiVersion": "v1",
                "kind": "Secret",
                "metadata": {"name": f"{name}-kubeconfig", "namespace": namespace},
                "data": {"value": "a3ViZWNvbmZpZw=="},
            }
        )
        return self

    def with_machine_deployment(self, namespace: str, cluster: str, name: str) -> GraphBuilder:
        self._infrastructure("ProviderMachineTemplate", name, namespace)
        metadata: dict = {"name": name, "namespace": namespace}
        if cluster:
            metadata["labels"] = {CLUSTER_NAME_LABEL: cluster}
            metadata["ownerReferences"] = [_owner("Cluster", cluster)]
        self._add(
            {
                "apiVersion": CLUSTER_API_VERSION,
                "kind": "MachineDeployment",
                "metadata": metadata,
                "spec": {
                    "template": {
                        "spec": {
                            "infrastructureRef": _ref(
                                INFRASTRUCTURE_API_VERSION, "ProviderMachineTemplate", name, namespace
                            )
                        }
                    }
                },
            }
        )
        return self

    def with_machine_set(self, namespace: str, cluster: str, md: str, name: str) -> GraphBuilder:
        metadata: dict = {"name": name, "namespace": namespace}
        spec: dict = {}
        if cluster:
            metadata["labels"] = {CLUSTER_NAME_LABEL: cluster}
            metadata["ownerReferences"] = [_owner("Cluster", cluster)]
        if md:
            metadata["ownerReferences"] = [_owner("MachineDeployment", md, controller=True)]
        else:
            self._infrastructure("ProviderMachineTemplate", name, namespace)
            spec["template"] = {
                "spec": {
                    "infrastructureRef": _ref(INFRASTRUCTURE_API_VERSION, "ProviderMachineTemplate", name, namespace)
                }
            }
        self._add({"apiVersion": CLUSTER_API_VERSION, "kind": "MachineSet", "metadata": metadata, "spec": spec})
        return self

    def with_machine(
        self, namespace: str, cluster: str, ms: str, name: str, bootstrap: bool = False, node: bool = True
    ) -> GraphBuilder:
        metadata: dict = {"name": name, "namespace": namespace}
        if cluster:
            metadata["labels"] = {CLUSTER_NAME_LABEL: cluster}
            metadata["ownerReferences"] = [_owner("Cluster", cluster)]
        if ms:
            metadata["ownerReferences"] = [_owner("MachineSet", ms, controller=True)]
        spec: dict = {"infrastructureRef": _ref(INFRASTRUCTURE_API_VERSION, "ProviderMachine", name, namespace)}
        self._infrastructure("ProviderMachine", name, namespace)
        if bootstrap:
            spec["bootstrap"] = {"configRef": _ref(BOOTSTRAP_API_VERSION, "KubeadmConfig", name, namespace)}
            self._add(
                {
                    "apiVersion": BOOTSTRAP_API_VERSION,
                    "kind": "KubeadmConfig",
                    "metadata": {"name": name, "namespace": namespace},
                }
            )
        data: dict = {"apiVersion": CLUSTER_API_VERSION, "kind": "Machine", "metadata": metadata, "spec": spec}
        if node:
            data["status"] = {"nodeRef": {"kind": "Node", "name": f"node-{name}"}}
        self._add(data)
        return self

    def moved_objects(self) -> list[KubeObject]:
        """Every object of the graph except the namespaces, which stay behind."""
        return [obj for obj in self.objects if obj.kind != Namespace.KIND]


def cluster_graph() -> GraphBuilder:
    """A Cluster with MachineDeployment, MachineSets and Machines in every ownership shape."""
    return (
        GraphBuilder()
        .with_cluster(NS1, "cluster1")
        # MachineDeployment with two MachineSets with two and one Machines
        .with_machine_deployment(NS1, "cluster1", "deployment1")
        .with_machine_set(NS1, "cluster1", "deployment1", "machineset1")
        .with_machine(NS1, "cluster1", "machineset1", "machine1", bootstrap=True)
        .with_machine(NS1, "cluster1", "machineset1", "machine2")
        .with_machine_set(NS1, "cluster1", "machinedeployment1", "machineset2")
        .with_machine(NS1, "cluster1", "machineset2", "machine3")
        # MachineSet with two Machines
        .with_machine_set(NS1, "cluster1", "", "machineset3")
        .with_machine(NS1, "cluster1", "machineset3", "machine4")
        .with_machine(NS1, "cluster1", "", "machine5")
        # Machines owned by the Cluster only
        .with_machine(NS1, "cluster1", "", "machine6")
        .with_machine(NS1, "cluster1", "", "machine7")
        .with_machine(NS1, "cluster1", "", "machine")
    )


def standalone_machine_deployment_graph() -> GraphBuilder:
    return (
        GraphBuilder()
        .with_machine_deployment(NS1, "", "deployment1")
        .with_machine_set(NS1, "", "deployment1", "machineset1")
        .with_machine(NS1, "", "machineset1", "machine1")
    )


def standalone_machine_set_graph() -> GraphBuilder:
    return GraphBuilder().with_machine_set(NS1, "", "", "machineset1").with_machine(NS1, "", "machineset1", "machine1")


def standalone_machine_graph() -> GraphBuilder:
    return GraphBuilder().with_machine(NS1, "", "", "machine1")


# ---------------------------------------------------------------------------
# Cluster fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _no_machine_ready_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(MACHINE_READY_TIMEOUT_ENV, raising=False)


@pytest.fixture
def graphs() -> dict[str, Callable[[], GraphBuilder]]:
    """The resource graphs a pivot must move completely, by scenario name."""
    return {
        "cluster": cluster_graph,
        "standalone-machine-deployment": standalone_machine_deployment_graph,
        "standalone-machine-set": standalone_machine_set_graph,
        "standalone-machine": standalone_machine_graph,
    }


@pytest.fixture
def graph_builder() -> type[GraphBuilder]:
    return GraphBuilder


@pytest.fixture
def source_store() -> MemoryObjectStore:
    return MemoryObjectStore("source")


@pytest.fixture
def target_store() -> MemoryObjectStore:
    return MemoryObjectStore("target")


@pytest.fixture
def source(source_store: MemoryObjectStore) -> ClusterClient:
    return ClusterClient(source_store, FAST_WAIT)


@pytest.fixture
def target(target_store: MemoryObjectStore) -> ClusterClient:
    return ClusterClient(target_store, FAST_WAIT)


# ---------------------------------------------------------------------------
# Provider repository fixtures
# ---------------------------------------------------------------------------


def components_yaml(namespace: str, name: str, crd_kind: str) -> str:
    """A minimal provider manifest: namespace, CRD, RBAC, controller Deployment."""
    return f"""\
apiVersion: v1
kind: Namespace
metadata:
  name: {namespace}
---
apiVersion: apiextensions.k8s.io/v1
kind: CustomResourceDefinition
metadata:
  name: {crd_kind.lower()}s.example.cluster.x-k8s.io
spec:
  group: example.cluster.x-k8s.io
  names:
    kind: {crd_kind}
  scope: Namespaced
---
apiVersion: rbac.authorization.k8s.io/v1
kind: ClusterRole
metadata:
  name: {name}-manager-role
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: {name}-controller-manager
  namespace: {namespace}
spec:
  replicas: 1
  template:
    spec:
      containers:
      - name: manager
        image: example.invalid/{name}:${{TAG}}
        args:
        - --enable-leader-election
"""


TEST_PROVIDERS = [
    ProviderConfig("aws", "", ProviderType.INFRASTRUCTURE),
    ProviderConfig("cluster-api", "", ProviderType.CORE),
    ProviderConfig("docker", "", ProviderType.INFRASTRUCTURE),
    ProviderConfig("kubeadm", "", ProviderType.BOOTSTRAP),
]

_MANIFESTS = {
    "cluster-api": ("capi-system", "Cluster"),
    "kubeadm": ("capi-kubeadm-bootstrap-system", "KubeadmConfig"),
    "aws": ("capa-system", "AWSCluster"),
    "docker": ("capd-system", "DockerCluster"),
}


@pytest.fixture
def repository(tmp_path: Path) -> FilesystemRepository:
    """A local repository publishing v0.3.0 and v0.3.1 of every test provider."""
    for name, (namespace, crd_kind) in _MANIFESTS.items():
        for version in ("v0.3.0", "v0.3.1"):
            directory = tmp_path / name / version
            directory.mkdir(parents=True)
            (directory / "components.yaml").write_text(components_yaml(namespace, name, crd_kind), encoding="utf-8")
    return FilesystemRepository(tmp_path)


@pytest.fixture
def clusters(source: ClusterClient, target: ClusterClient) -> dict[str, ClusterClient]:
    return {"source.yaml": source, "target.yaml": target}


@pytest.fixture
def kubepivot_client(repository: FilesystemRepository, clusters: dict[str, ClusterClient]) -> KubePivotClient:
    """KubePivotClient whose kubeconfig paths resolve to the in-memory clusters."""
    return KubePivotClient(clusters.__getitem__, repository, TEST_PROVIDERS, variables={"TAG": "dev"})
