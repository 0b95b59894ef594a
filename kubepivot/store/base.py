"""Abstract object store every management-cluster client implements.

All operations are coroutines and raise the classified ``StoreError``
subclasses from ``kubepivot.errors``; callers decide which of them to
tolerate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TypeVar

from kubepivot.errors import StoreError
from kubepivot.models.objects import KubeObject, LabelQuery, ObjectReference

_T = TypeVar("_T", bound=KubeObject)


def expect_kind(obj: KubeObject, cls: type[_T]) -> _T:
    """Return *obj* as a *cls*, or raise StoreError when the store returned another kind."""
    if not isinstance(obj, cls):
        raise StoreError(f"expected {cls.__name__}, got {type(obj).__name__} for {obj}")
    return obj


class ObjectStore(ABC):
    """Create/get/update/delete/list over namespaced, labeled objects."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable identifier of the cluster (used in logs)."""

    @abstractmethod
    async def get(self, ref: ObjectReference) -> KubeObject:
        """Return the object addressed by *ref*.

        Raises:
            NotFoundError -- no such object.
        """

    @abstractmethod
    async def list(self, api_version: str, kind: str, query: LabelQuery | None = None) -> list[KubeObject]:
        """Return objects of one kind, optionally filtered by namespace and labels."""

    @abstractmethod
    async def list_all(self, query: LabelQuery) -> list[KubeObject]:
        """Return objects of every listable kind matching *query*.

        The namespace of *query* restricts namespaced kinds only;
        cluster-scoped objects are returned whenever their labels match.
        """

    @abstractmethod
    async def create(self, obj: KubeObject) -> KubeObject:
        """Persist a new object and return it as stored.

        Raises:
            AlreadyExistsError -- an object with the same identity exists.
        """

    @abstractmethod
    async def update(self, obj: KubeObject) -> KubeObject:
        """Replace an existing object, guarded by its resource version.

        Raises:
            NotFoundError        -- no such object.
            VersionConflictError -- the resource version is stale.
        """

    @abstractmethod
    async def delete(self, obj: KubeObject, propagation_policy: str | None = None) -> None:
        """Request deletion of *obj*.

        Objects carrying finalizers are only marked for deletion.

        Raises:
            NotFoundError -- no such object.
        """
