"""ObjectStore backed by a live API server.

Uses the dynamic client of the official ``kubernetes`` package so that any
kind (including provider CRDs unknown to this package) can be addressed by
apiVersion and kind.  The client is blocking; every call is pushed to a
worker thread so the event loop stays free for the Machine creation
fan-out.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import structlog

from kubepivot.errors import (
    AlreadyExistsError,
    ForbiddenError,
    NotFoundError,
    StoreError,
    VersionConflictError,
)
from kubepivot.models.objects import KubeObject, LabelQuery, ObjectReference, api_group, from_dict
from kubepivot.store.base import ObjectStore

_log = structlog.get_logger(component="store.kubernetes")


def _classify(exc: Exception, what: str) -> StoreError:
    """Map an API exception onto the StoreError hierarchy."""
    status = getattr(exc, "status", None)
    reason = getattr(exc, "reason", "") or ""
    body = getattr(exc, "body", None)
    if body:
        try:
            reason = json.loads(body).get("reason", reason)
        except (TypeError, ValueError):
            pass
    message = f"{what}: {reason or exc}"
    if status == 404:
        return NotFoundError(message)
    if status == 403:
        return ForbiddenError(message)
    if status == 409:
        if reason == "AlreadyExists":
            return AlreadyExistsError(message)
        return VersionConflictError(message)
    return StoreError(message)


class KubernetesObjectStore(ObjectStore):
    """ObjectStore for the cluster addressed by a kubeconfig file."""

    def __init__(self, kubeconfig: str | None = None, context: str | None = None) -> None:
        self._kubeconfig = kubeconfig
        self._context = context
        self._client: Any = None
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self._context or self._kubeconfig or "default"

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    async def _dynamic(self) -> Any:
        async with self._lock:
            if self._client is None:
                try:
                    self._client = await asyncio.to_thread(self._connect)
                except Exception as exc:
                    raise StoreError(f"failed to load kubeconfig for {self.name}: {exc}") from exc
                _log.info("kubernetes_client_configured", cluster=self.name)
        return self._client

    def _connect(self) -> Any:
        # Imported lazily so that tests and --help never touch kubeconfig handling.
        from kubernetes import config as k8s_config  # type: ignore[import-untyped]
        from kubernetes import dynamic  # type: ignore[import-untyped]

        api = k8s_config.new_client_from_config(config_file=self._kubeconfig, context=self._context)
        return dynamic.DynamicClient(api)

    async def _resource(self, api_version: str, kind: str) -> Any:
        client = await self._dynamic()
        try:
            return await asyncio.to_thread(client.resources.get, api_version=api_version, kind=kind)
        except Exception as exc:
            # ResourceNotFoundError carries no HTTP status
            if type(exc).__name__ == "ResourceNotFoundError":
                raise NotFoundError(f"kind {kind} ({api_version}) is not served by {self.name}") from exc
            raise _classify(exc, f"discovering {kind}") from exc

    async def _call(self, what: str, fn: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except Exception as exc:
            raise _classify(exc, what) from exc

    @staticmethod
    def _items(result: Any, resource: Any) -> list[KubeObject]:
        items = []
        for item in result.to_dict().get("items") or []:
            # list responses omit the type of their items
            item.setdefault("apiVersion", resource.group_version)
            item.setdefault("kind", resource.kind)
            items.append(from_dict(item))
        return items

    # ------------------------------------------------------------------
    # ObjectStore
    # ------------------------------------------------------------------

    async def get(self, ref: ObjectReference) -> KubeObject:
        resource = await self._resource(ref.api_version, ref.kind)
        client = await self._dynamic()
        namespace = ref.namespace if resource.namespaced else None
        result = await self._call(f"getting {ref}", client.get, resource, name=ref.name, namespace=namespace)
        return from_dict(result.to_dict())

    async def list(self, api_version: str, kind: str, query: LabelQuery | None = None) -> list[KubeObject]:
        query = query or LabelQuery()
        resource = await self._resource(api_version, kind)
        client = await self._dynamic()
        namespace = query.namespace if resource.namespaced and query.namespace else None
        result = await self._call(
            f"listing {kind}",
            client.get,
            resource,
            namespace=namespace,
            label_selector=query.selector or None,
        )
        return self._items(result, resource)

    async def list_all(self, query: LabelQuery) -> list[KubeObject]:
        client = await self._dynamic()
        resources = await self._call("discovering resources", client.resources.search)
        seen: set[tuple[str, str]] = set()
        objects: list[KubeObject] = []
        for resource in resources:
            verbs = getattr(resource, "verbs", None) or ()
            if "list" not in verbs or "delete" not in verbs or not getattr(resource, "preferred", False):
                continue
            identity = (api_group(resource.group_version), resource.kind)
            if identity in seen:
                continue
            seen.add(identity)
            namespace = query.namespace if resource.namespaced and query.namespace else None
            result = await self._call(
                f"listing {resource.kind}",
                client.get,
                resource,
                namespace=namespace,
                label_selector=query.selector or None,
            )
            objects.extend(self._items(result, resource))
        return objects

    async def create(self, obj: KubeObject) -> KubeObject:
        resource = await self._resource(obj.api_version, obj.kind)
        client = await self._dynamic()
        namespace = obj.namespace if resource.namespaced else None
        result = await self._call(f"creating {obj}", client.create, resource, body=obj.to_dict(), namespace=namespace)
        return from_dict(result.to_dict())

    async def update(self, obj: KubeObject) -> KubeObject:
        resource = await self._resource(obj.api_version, obj.kind)
        client = await self._dynamic()
        namespace = obj.namespace if resource.namespaced else None
        result = await self._call(
            f"updating {obj}",
            client.replace,
            resource,
            body=obj.to_dict(),
            name=obj.name,
            namespace=namespace,
        )
        return from_dict(result.to_dict())

    async def delete(self, obj: KubeObject, propagation_policy: str | None = None) -> None:
        resource = await self._resource(obj.api_version, obj.kind)
        client = await self._dynamic()
        namespace = obj.namespace if resource.namespaced else None
        body = None
        if propagation_policy:
            body = {"apiVersion": "v1", "kind": "DeleteOptions", "propagationPolicy": propagation_policy}
        await self._call(f"deleting {obj}", client.delete, resource, name=obj.name, namespace=namespace, body=body)
