"""Exception hierarchy for kubepivot.

KubePivotError       -- Root of every error raised by this package.
StoreError           -- Object store failures (transport, permissions, other).
  NotFoundError        -- The addressed object does not exist.
  AlreadyExistsError   -- Create of an object that already exists.
  ForbiddenError       -- The store refused the request for the current identity.
  VersionConflictError -- Optimistic-lock mismatch on update.
ConflictError        -- A provider validation invariant is violated.
WaitTimeoutError     -- A bounded poll exceeded its deadline.
ConfigurationError   -- Invalid user input, rejected before any I/O.
InstallError         -- Annotates a failure while installing a provider.
MoveError            -- Annotates a failure while moving the object graph.
"""

from __future__ import annotations


class KubePivotError(Exception):
    """Base class for all kubepivot errors."""


class StoreError(KubePivotError):
    """Raised when the object store rejects or fails a request."""


class NotFoundError(StoreError):
    """Raised when the addressed object does not exist."""


class AlreadyExistsError(StoreError):
    """Raised when creating an object whose identity is already taken."""


class ForbiddenError(StoreError):
    """Raised when the store denies access to the requested object."""


class VersionConflictError(StoreError):
    """Raised when an update carries a stale or missing resource version."""


class ConflictError(KubePivotError):
    """Raised when installing a provider would break a co-installed instance."""


class WaitTimeoutError(KubePivotError, TimeoutError):
    """Raised when a poll loop does not observe its condition before the deadline."""


class ConfigurationError(KubePivotError, ValueError):
    """Raised for malformed provider names, manifests or missing options."""


class InstallError(KubePivotError):
    """Raised when a queued provider could not be installed."""


class MoveError(KubePivotError):
    """Raised when an object of the resource graph could not be moved."""


def format_error_chain(exc: BaseException) -> str:
    """Join the messages of *exc* and of every exception it was raised from.

    ``MoveError("failed to move Cluster ns1/c1") from NotFoundError("...")``
    renders as ``failed to move Cluster ns1/c1: ...``.
    """
    parts: list[str] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        message = str(current) or type(current).__name__
        if message not in parts:
            parts.append(message)
        current = current.__cause__
    return ": ".join(parts)
