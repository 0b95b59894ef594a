"""Cluster API objects of a management cluster, seen as a source or a target of a move.

ObjectGraph      -- queries the resource graph (Clusters, MachineDeployments,
                    MachineSets, Machines, Secrets and the objects they
                    reference) on a source cluster, force-deletes moved
                    objects, and creates them on a target cluster.
ensure_namespace -- idempotently makes a namespace exist.
"""

from __future__ import annotations

import asyncio

import structlog

from kubepivot.cluster.wait import poll_immediate
from kubepivot.config import machine_ready_timeout_override
from kubepivot.errors import AlreadyExistsError, ForbiddenError, NotFoundError
from kubepivot.models.config import WaitConfig
from kubepivot.models.objects import (
    CLUSTER_API_VERSION,
    CLUSTER_NAME_LABEL,
    PROPAGATION_FOREGROUND,
    Cluster,
    KubeObject,
    LabelQuery,
    Machine,
    MachineDeployment,
    MachineSet,
    Namespace,
    ObjectReference,
    OwnerReference,
    Secret,
    is_controlled_by,
    is_owned_by,
)
from kubepivot.store.base import ObjectStore, expect_kind

_log = structlog.get_logger(component="cluster.objects")


async def ensure_namespace(store: ObjectStore, name: str) -> None:
    """Create namespace *name* in *store* unless it is already there.

    Identities allowed to list but not get namespaces fall back to a
    list-and-match check.
    """
    try:
        await store.get(ObjectReference("v1", Namespace.KIND, name))
        return
    except ForbiddenError:
        namespaces = await store.list("v1", Namespace.KIND)
        if any(ns.name == name for ns in namespaces):
            return
    except NotFoundError:
        pass
    try:
        await store.create(Namespace.new(name))
        _log.info("namespace_created", cluster=store.name, namespace=name)
    except AlreadyExistsError:
        pass


class _FirstError:
    """Single-assignment cell: keeps the first exception recorded, drops the rest."""

    def __init__(self) -> None:
        self._error: BaseException | None = None

    def record(self, exc: BaseException) -> None:
        if self._error is None:
            self._error = exc

    @property
    def error(self) -> BaseException | None:
        return self._error


class ObjectGraph:
    """Resource-graph operations against one management cluster."""

    def __init__(self, store: ObjectStore, wait: WaitConfig | None = None) -> None:
        self._store = store
        self._wait = wait or WaitConfig()

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    async def wait_for_cluster_api_ready(self) -> None:
        """Block until Cluster objects can be listed.

        Raises:
            WaitTimeoutError -- the Cluster kind was not listable before the
                                resource-ready timeout.
        """

        async def listable() -> bool:
            try:
                await self._store.list(CLUSTER_API_VERSION, Cluster.KIND)
            except Exception as exc:  # noqa: BLE001
                _log.debug("cluster_api_not_ready", cluster=self._store.name, error=str(exc))
                return False
            return True

        await poll_immediate(
            self._wait.resource_ready_interval,
            self._wait.resource_ready_timeout,
            listable,
            what=f"Cluster resources to be listable on {self._store.name}",
        )

    # ------------------------------------------------------------------
    # Source side
    # ------------------------------------------------------------------

    async def get_clusters(self, namespace: str = "") -> list[Cluster]:
        objects = await self._store.list(CLUSTER_API_VERSION, Cluster.KIND, LabelQuery.of(namespace))
        return [obj for obj in objects if isinstance(obj, Cluster)]

    async def get_object(self, ref: ObjectReference) -> KubeObject:
        return await self._store.get(ref)

    async def get_cluster_secrets(self, cluster: Cluster) -> list[Secret]:
        """Secrets in the cluster's namespace named `<cluster>-<suffix>`."""
        objects = await self._store.list("v1", Secret.KIND, LabelQuery.of(cluster.namespace))
        return [obj for obj in objects if isinstance(obj, Secret) and obj.name.startswith(f"{cluster.name}-")]

    async def get_machine_deployments(self, namespace: str = "") -> list[MachineDeployment]:
        objects = await self._store.list(CLUSTER_API_VERSION, MachineDeployment.KIND, LabelQuery.of(namespace))
        return [obj for obj in objects if isinstance(obj, MachineDeployment)]

    async def get_machine_deployments_for_cluster(self, cluster: Cluster) -> list[MachineDeployment]:
        objects = await self._store.list(CLUSTER_API_VERSION, MachineDeployment.KIND, self._cluster_query(cluster))
        return [obj for obj in objects if isinstance(obj, MachineDeployment) and is_owned_by(obj, cluster)]

    async def get_machine_sets(self, namespace: str = "") -> list[MachineSet]:
        objects = await self._store.list(CLUSTER_API_VERSION, MachineSet.KIND, LabelQuery.of(namespace))
        return [obj for obj in objects if isinstance(obj, MachineSet)]

    async def get_machine_sets_for_cluster(self, cluster: Cluster) -> list[MachineSet]:
        objects = await self._store.list(CLUSTER_API_VERSION, MachineSet.KIND, self._cluster_query(cluster))
        return [obj for obj in objects if isinstance(obj, MachineSet) and is_owned_by(obj, cluster)]

    async def get_machine_sets_for_machine_deployment(self, md: MachineDeployment) -> list[MachineSet]:
        return [ms for ms in await self.get_machine_sets(md.namespace) if is_controlled_by(ms, md)]

    async def get_machines(self, namespace: str = "") -> list[Machine]:
        objects = await self._store.list(CLUSTER_API_VERSION, Machine.KIND, LabelQuery.of(namespace))
        return [obj for obj in objects if isinstance(obj, Machine)]

    async def get_machines_for_cluster(self, cluster: Cluster) -> list[Machine]:
        objects = await self._store.list(CLUSTER_API_VERSION, Machine.KIND, self._cluster_query(cluster))
        return [obj for obj in objects if isinstance(obj, Machine)]

    async def get_machines_for_machine_set(self, ms: MachineSet) -> list[Machine]:
        return [m for m in await self.get_machines(ms.namespace) if is_controlled_by(m, ms)]

    async def force_delete(
        self,
        ref: ObjectReference,
        propagation_policy: str | None = None,
        missing_ok: bool = False,
    ) -> None:
        """Clear the finalizers of the object, then delete it.

        The controllers that would normally remove the finalizers are
        already scaled down when objects are moved.
        """
        try:
            current = await self._store.get(ref)
        except NotFoundError:
            if missing_ok:
                return
            raise
        if current.metadata.finalizers:
            current.metadata.finalizers = []
            current = await self._store.update(current)
            if current.metadata.deletion_timestamp:
                # already marked for deletion: it goes away with its last finalizer
                return
        await self._store.delete(current, propagation_policy=propagation_policy)
        _log.debug("force_deleted", cluster=self._store.name, object=str(ref))

    async def force_delete_owned(self, obj: MachineDeployment | MachineSet | Machine) -> None:
        """Force-delete a Machine-family object with foreground propagation."""
        await self.force_delete(obj.reference(), propagation_policy=PROPAGATION_FOREGROUND)

    # ------------------------------------------------------------------
    # Target side
    # ------------------------------------------------------------------

    async def ensure_namespace(self, name: str) -> None:
        await ensure_namespace(self._store, name)

    async def create_if_missing(self, obj: KubeObject) -> KubeObject:
        """Create *obj*, or return the copy an interrupted move already created."""
        try:
            return await self._store.create(obj)
        except AlreadyExistsError:
            _log.info("object_already_moved", cluster=self._store.name, object=str(obj))
            return await self._store.get(obj.reference())

    async def get_cluster(self, namespace: str, name: str) -> Cluster:
        obj = await self._store.get(ObjectReference(CLUSTER_API_VERSION, Cluster.KIND, name, namespace))
        return expect_kind(obj, Cluster)

    @staticmethod
    def set_cluster_owner_ref(obj: KubeObject, cluster: Cluster) -> None:
        """Make *cluster* the only owner of *obj*."""
        obj.metadata.owner_references = [
            OwnerReference(
                api_version=CLUSTER_API_VERSION,
                kind=Cluster.KIND,
                name=cluster.name,
                uid=cluster.metadata.uid,
            )
        ]

    async def create_machines(self, machines: list[Machine]) -> None:
        """Create *machines* concurrently, each waiting for its Node.

        Every creation runs to completion even when a sibling fails; the
        first failure is raised once all of them are done.
        """
        timeout = machine_ready_timeout_override(self._wait.machine_ready_timeout)
        first_error = _FirstError()

        async def create_one(machine: Machine) -> None:
            try:
                await self.create_if_missing(machine)
                await self.wait_for_machine_ready(machine, timeout)
            except Exception as exc:  # noqa: BLE001
                first_error.record(exc)

        await asyncio.gather(*(create_one(m) for m in machines))
        if first_error.error is not None:
            raise first_error.error

    async def wait_for_machine_ready(self, machine: Machine, timeout: float) -> None:
        """Poll until *machine* reports a Node reference."""
        ref = machine.reference()

        async def has_node() -> bool:
            _log.debug("waiting_for_machine", cluster=self._store.name, namespace=ref.namespace, name=ref.name)
            try:
                current = await self._store.get(ref)
            except Exception as exc:  # noqa: BLE001
                _log.debug("machine_not_readable", name=ref.name, error=str(exc))
                return False
            return isinstance(current, Machine) and current.node_ref is not None

        await poll_immediate(
            self._wait.machine_ready_interval,
            timeout,
            has_node,
            what=f"{ref} to become ready",
        )

    # ------------------------------------------------------------------

    @staticmethod
    def _cluster_query(cluster: Cluster) -> LabelQuery:
        return LabelQuery.of(cluster.namespace, {CLUSTER_NAME_LABEL: cluster.name})
