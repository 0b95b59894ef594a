"""Provider configurations and components bundles."""

from kubepivot.repository.components import Components, build_components
from kubepivot.repository.filesystem import FilesystemRepository
from kubepivot.repository.providers import CLUSTER_API, ProviderConfig, default_providers, get_provider

__all__ = [
    "CLUSTER_API",
    "Components",
    "FilesystemRepository",
    "ProviderConfig",
    "build_components",
    "default_providers",
    "get_provider",
]
