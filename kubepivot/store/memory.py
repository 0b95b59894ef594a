"""In-process object store.

MemoryObjectStore follows the API server behaviour that the installer,
teardown and mover depend on:

* every write assigns a new, monotonically increasing resource version;
* create assigns a fresh UID and rejects objects that still carry a
  resource version (objects copied from another store must be cleared);
* update is an optimistic-lock compare on the resource version;
* delete of an object with finalizers only sets ``deletionTimestamp``; the
  object disappears once an update clears its finalizers;
* namespaced objects can only be created in an existing namespace, and
  deleting a namespace deletes everything inside it.

Objects are deep-copied on the way in and out so callers never share
state with the store.
"""

from __future__ import annotations

import itertools
from datetime import UTC, datetime
from uuid import uuid4

import structlog

from kubepivot.errors import (
    AlreadyExistsError,
    NotFoundError,
    StoreError,
    VersionConflictError,
)
from kubepivot.models.objects import (
    KubeObject,
    LabelQuery,
    ObjectReference,
    api_group,
    is_namespaced_kind,
)
from kubepivot.store.base import ObjectStore

_log = structlog.get_logger(component="store.memory")

# (group, kind, namespace, name)
_Key = tuple[str, str, str, str]


def _key(api_version: str, kind: str, namespace: str, name: str) -> _Key:
    if not is_namespaced_kind(kind):
        namespace = ""
    return (api_group(api_version), kind, namespace, name)


def _key_of(obj: KubeObject) -> _Key:
    return _key(obj.api_version, obj.kind, obj.namespace, obj.name)


class MemoryObjectStore(ObjectStore):
    """Dict-backed ObjectStore keyed by (group, kind, namespace, name)."""

    def __init__(self, name: str = "memory") -> None:
        self._name = name
        self._objects: dict[_Key, KubeObject] = {}
        self._versions = itertools.count(1)
        # (reference, propagation policy) of every accepted delete call
        self.deletions: list[tuple[ObjectReference, str | None]] = []

    @property
    def name(self) -> str:
        return self._name

    # ------------------------------------------------------------------
    # Seeding and inspection helpers
    # ------------------------------------------------------------------

    def seed(self, *objects: KubeObject) -> None:
        """Insert objects as-is, bypassing create validation."""
        for obj in objects:
            stored = obj.deep_copy()
            if not is_namespaced_kind(stored.kind):
                stored.metadata.namespace = ""
            stored.metadata.resource_version = str(next(self._versions))
            stored.metadata.uid = stored.metadata.uid or str(uuid4())
            self._objects[_key_of(stored)] = stored

    def contains(self, api_version: str, kind: str, namespace: str, name: str) -> bool:
        return _key(api_version, kind, namespace, name) in self._objects

    def snapshot(self) -> list[KubeObject]:
        """Every stored object, in insertion order."""
        return [obj.deep_copy() for obj in self._objects.values()]

    # ------------------------------------------------------------------
    # ObjectStore
    # ------------------------------------------------------------------

    async def get(self, ref: ObjectReference) -> KubeObject:
        stored = self._objects.get(_key(ref.api_version, ref.kind, ref.namespace, ref.name))
        if stored is None:
            raise NotFoundError(f"{ref} not found in {self._name}")
        return stored.deep_copy()

    async def list(self, api_version: str, kind: str, query: LabelQuery | None = None) -> list[KubeObject]:
        query = query or LabelQuery()
        group = api_group(api_version)
        return [
            obj.deep_copy()
            for key, obj in self._objects.items()
            if key[0] == group and key[1] == kind and query.matches(obj)
        ]

    async def list_all(self, query: LabelQuery) -> list[KubeObject]:
        return [obj.deep_copy() for obj in self._objects.values() if query.matches(obj)]

    async def create(self, obj: KubeObject) -> KubeObject:
        if obj.metadata.resource_version:
            raise StoreError(f"{obj}: resourceVersion should not be set on objects to be created")
        if not obj.name:
            raise StoreError(f"{obj.kind}: name is required")
        stored = obj.deep_copy()
        namespaced = is_namespaced_kind(stored.kind)
        if namespaced:
            if not stored.namespace:
                raise StoreError(f"{obj}: namespace is required")
            if _key("v1", "Namespace", "", stored.namespace) not in self._objects:
                raise NotFoundError(f"namespace {stored.namespace!r} not found in {self._name}")
        else:
            stored.metadata.namespace = ""
        key = _key_of(stored)
        if key in self._objects:
            raise AlreadyExistsError(f"{obj} already exists in {self._name}")
        stored.metadata.resource_version = str(next(self._versions))
        stored.metadata.uid = str(uuid4())
        stored.metadata.deletion_timestamp = None
        self._objects[key] = stored
        _log.debug("object_created", store=self._name, object=str(stored))
        return stored.deep_copy()

    async def update(self, obj: KubeObject) -> KubeObject:
        key = _key_of(obj)
        current = self._objects.get(key)
        if current is None:
            raise NotFoundError(f"{obj} not found in {self._name}")
        if obj.metadata.resource_version != current.metadata.resource_version:
            raise VersionConflictError(
                f"{obj}: resourceVersion {obj.metadata.resource_version!r} "
                f"does not match {current.metadata.resource_version!r}"
            )
        stored = obj.deep_copy()
        stored.metadata.namespace = current.metadata.namespace
        stored.metadata.uid = current.metadata.uid
        stored.metadata.deletion_timestamp = current.metadata.deletion_timestamp
        stored.metadata.resource_version = str(next(self._versions))
        if stored.metadata.deletion_timestamp and not stored.metadata.finalizers:
            self._remove(key)
            _log.debug("object_finalized", store=self._name, object=str(stored))
        else:
            self._objects[key] = stored
        return stored.deep_copy()

    async def delete(self, obj: KubeObject, propagation_policy: str | None = None) -> None:
        key = _key_of(obj)
        current = self._objects.get(key)
        if current is None:
            raise NotFoundError(f"{obj} not found in {self._name}")
        self.deletions.append((current.reference(), propagation_policy))
        self._terminate(key, current)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _terminate(self, key: _Key, current: KubeObject) -> None:
        if current.metadata.finalizers:
            if not current.metadata.deletion_timestamp:
                current.metadata.deletion_timestamp = datetime.now(tz=UTC).isoformat()
                current.metadata.resource_version = str(next(self._versions))
            return
        self._remove(key)

    def _remove(self, key: _Key) -> None:
        removed = self._objects.pop(key)
        _log.debug("object_deleted", store=self._name, object=str(removed))
        if removed.kind != "Namespace" or api_group(removed.api_version):
            return
        for child_key, child in list(self._objects.items()):
            if child_key[2] == removed.name and is_namespaced_kind(child.kind):
                self._terminate(child_key, child)
