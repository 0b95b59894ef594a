"""Move the Cluster API resource graph from one management cluster to another.

Parents are created in the target before their children; children are
deleted from the source before their parents.  Every object is created in
the target first and force-deleted from the source afterwards, so a failed
move leaves objects duplicated rather than lost.  The first error aborts
the walk; nothing is rolled back.  Re-running a failed move picks up where
it stopped: objects already in the target are kept, and references whose
source copy is gone are taken as moved.
"""

from __future__ import annotations

import structlog

from kubepivot.cluster.objects import ObjectGraph
from kubepivot.errors import MoveError, NotFoundError
from kubepivot.models.objects import (
    Cluster,
    KubeObject,
    Machine,
    MachineDeployment,
    MachineSet,
    ObjectReference,
    Secret,
    controller_of,
)
from kubepivot.observability.metrics import objects_moved_total

_log = structlog.get_logger(component="cluster.mover")


def _for_target(obj: KubeObject) -> KubeObject:
    """Copy of *obj* that can be created in another cluster, without owners."""
    copy = obj.deep_copy()
    copy.prepare_for_create()
    copy.metadata.owner_references = []
    return copy


def _moved(obj: KubeObject) -> None:
    objects_moved_total.labels(kind=obj.kind).inc()
    _log.debug("object_moved", kind=obj.kind, namespace=obj.namespace, name=obj.name)


async def move_objects(source: ObjectGraph, target: ObjectGraph) -> None:
    """Move every Cluster with its dependants, then the objects not tied to any Cluster."""
    for graph, side in ((source, "source"), (target, "target")):
        try:
            await graph.wait_for_cluster_api_ready()
        except Exception as exc:
            raise MoveError(f"Cluster resources are not ready on the {side} cluster") from exc

    clusters = await source.get_clusters()
    _log.info("moving_clusters", clusters=[c.name for c in clusters])
    for cluster in clusters:
        await move_cluster(source, target, cluster)

    # Objects not associated with any Cluster
    machine_deployments = await source.get_machine_deployments()
    for namespace in sorted({md.namespace for md in machine_deployments}):
        await target.ensure_namespace(namespace)
    await move_machine_deployments(source, target, machine_deployments)

    machine_sets = await source.get_machine_sets()
    for namespace in sorted({ms.namespace for ms in machine_sets}):
        await target.ensure_namespace(namespace)
    await move_machine_sets(source, target, machine_sets)

    machines = await source.get_machines()
    for namespace in sorted({m.namespace for m in machines}):
        await target.ensure_namespace(namespace)
    await move_machines(source, target, machines)


async def move_cluster(source: ObjectGraph, target: ObjectGraph, cluster: Cluster) -> None:
    _log.info("moving_cluster", namespace=cluster.namespace, name=cluster.name)
    try:
        await target.ensure_namespace(cluster.namespace)
        await target.create_if_missing(_for_target(cluster))

        if (ref := cluster.infrastructure_ref) is not None:
            await move_reference(source, target, ref)

        # Secrets need the UID the target assigned to the Cluster.
        await move_secrets(source, target, cluster)

        await move_machine_deployments(source, target, await source.get_machine_deployments_for_cluster(cluster))
        await move_machine_sets(source, target, await source.get_machine_sets_for_cluster(cluster))
        await move_machines(source, target, await source.get_machines_for_cluster(cluster))

        await source.force_delete(cluster.reference())
    except Exception as exc:
        raise MoveError(f"failed to move Cluster {cluster.namespace}/{cluster.name}") from exc
    _moved(cluster)


async def move_reference(source: ObjectGraph, target: ObjectGraph, ref: ObjectReference) -> None:
    """Move the object behind an infrastructure or bootstrap reference."""
    try:
        try:
            obj = await source.get_object(ref)
        except NotFoundError:
            # moved by an earlier run that failed further on
            await target.get_object(ref)
            _log.debug("reference_already_moved", object=str(ref))
            return
        await target.create_if_missing(_for_target(obj))
        await source.force_delete(ref, missing_ok=True)
    except Exception as exc:
        raise MoveError(f"failed to move {ref} ({ref.api_version})") from exc
    _moved(obj)


async def move_secrets(source: ObjectGraph, target: ObjectGraph, cluster: Cluster) -> None:
    secrets = await source.get_cluster_secrets(cluster)
    if not secrets:
        return
    target_cluster = await target.get_cluster(cluster.namespace, cluster.name)
    for secret in secrets:
        await move_secret(source, target, secret, target_cluster)


async def move_secret(source: ObjectGraph, target: ObjectGraph, secret: Secret, target_cluster: Cluster) -> None:
    try:
        copy = _for_target(secret)
        target.set_cluster_owner_ref(copy, target_cluster)
        await target.create_if_missing(copy)
        await source.force_delete(secret.reference(), missing_ok=True)
    except Exception as exc:
        raise MoveError(f"failed to move Secret {secret.namespace}/{secret.name}") from exc
    _moved(secret)


async def move_machine_deployments(
    source: ObjectGraph,
    target: ObjectGraph,
    machine_deployments: list[MachineDeployment],
) -> None:
    if machine_deployments:
        _log.debug("moving_machine_deployments", names=[md.name for md in machine_deployments])
    for md in machine_deployments:
        await move_machine_deployment(source, target, md)


async def move_machine_deployment(source: ObjectGraph, target: ObjectGraph, md: MachineDeployment) -> None:
    try:
        await move_machine_sets(source, target, await source.get_machine_sets_for_machine_deployment(md))
        if (ref := md.template_infrastructure_ref) is not None:
            await move_reference(source, target, ref)
        await target.create_if_missing(_for_target(md))
        await source.force_delete_owned(md)
    except Exception as exc:
        raise MoveError(f"failed to move MachineDeployment {md.namespace}/{md.name}") from exc
    _moved(md)


async def move_machine_sets(source: ObjectGraph, target: ObjectGraph, machine_sets: list[MachineSet]) -> None:
    if machine_sets:
        _log.debug("moving_machine_sets", names=[ms.name for ms in machine_sets])
    for ms in machine_sets:
        await move_machine_set(source, target, ms)


async def move_machine_set(source: ObjectGraph, target: ObjectGraph, ms: MachineSet) -> None:
    try:
        await move_machines(source, target, await source.get_machines_for_machine_set(ms))
        # A controlling MachineDeployment moves the shared template itself.
        if controller_of(ms) is None and (ref := ms.template_infrastructure_ref) is not None:
            await move_reference(source, target, ref)
        await target.create_if_missing(_for_target(ms))
        await source.force_delete_owned(ms)
    except Exception as exc:
        raise MoveError(f"failed to move MachineSet {ms.namespace}/{ms.name}") from exc
    _moved(ms)


async def move_machines(source: ObjectGraph, target: ObjectGraph, machines: list[Machine]) -> None:
    """Move one batch of Machines; creation in the target runs concurrently."""
    batch: list[Machine] = []
    for machine in machines:
        if machine.being_deleted:
            _log.debug("skipping_deleted_machine", namespace=machine.namespace, name=machine.name)
            continue
        batch.append(machine)
    if not batch:
        return
    names = [m.name for m in batch]
    _log.debug("moving_machines", names=names)

    for machine in batch:
        try:
            if (ref := machine.bootstrap_config_ref) is not None:
                await move_reference(source, target, ref)
            if (ref := machine.infrastructure_ref) is not None:
                await move_reference(source, target, ref)
        except Exception as exc:
            raise MoveError(f"failed to move Machine {machine.namespace}/{machine.name}") from exc

    copies = [_for_target(m) for m in batch]
    try:
        await target.create_machines([c for c in copies if isinstance(c, Machine)])
    except Exception as exc:
        raise MoveError(f"failed to create Machines {names} in the target cluster") from exc

    for machine in batch:
        try:
            await source.force_delete_owned(machine)
        except Exception as exc:
            raise MoveError(f"failed to move Machine {machine.namespace}/{machine.name}") from exc
        _moved(machine)
