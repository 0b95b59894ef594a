"""Known providers and where their components come from."""

from __future__ import annotations

from dataclasses import dataclass

from kubepivot.errors import ConfigurationError
from kubepivot.models.provider import ProviderType

CLUSTER_API = "cluster-api"


@dataclass(frozen=True)
class ProviderConfig:
    """A provider kubepivot can install.

    ``url`` is either a release URL (informational) or a local directory
    holding ``<version>/components.yaml``; see ``FilesystemRepository``.
    """

    name: str
    url: str
    type: ProviderType


def default_providers() -> list[ProviderConfig]:
    """Built-in provider configurations, sorted by name."""
    defaults = [
        ProviderConfig(
            CLUSTER_API,
            "https://github.com/kubernetes-sigs/cluster-api/releases/latest/cluster-api-components.yaml",
            ProviderType.CORE,
        ),
        ProviderConfig(
            "aws",
            "https://github.com/kubernetes-sigs/cluster-api-provider-aws/releases/latest/infrastructure-components.yaml",
            ProviderType.INFRASTRUCTURE,
        ),
        ProviderConfig(
            "docker",
            "https://github.com/kubernetes-sigs/cluster-api-provider-docker/releases/latest/provider_components.yaml",
            ProviderType.INFRASTRUCTURE,
        ),
        ProviderConfig(
            "vsphere",
            "https://github.com/kubernetes-sigs/cluster-api-provider-vsphere/releases/latest/infrastructure-components.yaml",
            ProviderType.INFRASTRUCTURE,
        ),
        ProviderConfig(
            "kubeadm",
            "https://github.com/kubernetes-sigs/cluster-api-bootstrap-provider-kubeadm/releases/latest/bootstrap-components.yaml",
            ProviderType.BOOTSTRAP,
        ),
    ]
    return sorted(defaults, key=lambda p: p.name)


def get_provider(name: str, providers: list[ProviderConfig] | None = None) -> ProviderConfig:
    """Look up a provider configuration by name.

    Raises:
        ConfigurationError -- no provider with that name is configured.
    """
    for provider in providers if providers is not None else default_providers():
        if provider.name == name:
            return provider
    raise ConfigurationError(f"failed to get configuration for the {name!r} provider")
