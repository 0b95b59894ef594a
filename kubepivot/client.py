"""High-level operations: init, delete and pivot of management clusters.

KubePivotClient wires provider configurations, the provider repository and
a factory of ClusterClient objects; the CLI is a thin layer over it.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

import structlog

from kubepivot.cluster.client import ClusterClient
from kubepivot.cluster.installer import ProviderInstaller
from kubepivot.errors import ConfigurationError
from kubepivot.models.provider import ProviderRecord, ProviderType
from kubepivot.repository.components import Components
from kubepivot.repository.filesystem import FilesystemRepository
from kubepivot.repository.providers import CLUSTER_API, ProviderConfig, default_providers, get_provider

_log = structlog.get_logger(component="client")

ClusterFactory = Callable[[str], ClusterClient]

_DNS1123_LABEL_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_DNS1123_LABEL_MAX = 63


@dataclass(frozen=True)
class ProviderName:
    """A provider as typed by the user: ``[namespace/]name[:version]``."""

    namespace: str
    name: str
    version: str


def parse_provider_name(value: str) -> ProviderName:
    """Parse ``[namespace/]name[:version]``, lowercasing every part.

    Raises:
        ConfigurationError -- too many separators, or the name is not a
                              DNS-1123 label.
    """
    invalid = ConfigurationError(
        f"invalid provider name {value!r}; provider name should be in the form [namespace/]name[:version]"
    )
    namespace = ""
    rest = value.lower()
    parts = rest.split("/")
    if len(parts) > 2:
        raise invalid
    if len(parts) == 2:
        namespace, rest = parts

    parts = rest.split(":")
    if len(parts) > 2:
        raise invalid
    name = parts[0]
    version = parts[1] if len(parts) == 2 else ""

    if len(name) > _DNS1123_LABEL_MAX or not _DNS1123_LABEL_RE.match(name):
        raise ConfigurationError(
            f"invalid name value {name!r}: a DNS-1123 label must consist of lower case alphanumeric "
            "characters or '-', and must start and end with an alphanumeric character"
        )
    return ProviderName(namespace=namespace, name=name, version=version)


class KubePivotClient:
    """Entry point of the init, delete and pivot operations."""

    def __init__(
        self,
        cluster_factory: ClusterFactory,
        repository: FilesystemRepository,
        providers: list[ProviderConfig] | None = None,
        variables: Mapping[str, str] | None = None,
    ) -> None:
        self._cluster_factory = cluster_factory
        self._repository = repository
        self._providers = providers if providers is not None else default_providers()
        self._variables = variables

    def providers_config(self) -> list[ProviderConfig]:
        return list(self._providers)

    def get_components(self, provider: str, target_namespace: str = "", watching_namespace: str = "") -> Components:
        """Resolve a user-typed provider name to its components bundle.

        An explicit *target_namespace* wins over the namespace in the name.
        """
        parsed = parse_provider_name(provider)
        config = get_provider(parsed.name, self._providers)
        return self._repository.get_components(
            config,
            parsed.version,
            target_namespace=target_namespace or parsed.namespace,
            watching_namespace=watching_namespace,
            variables=self._variables,
        )

    # ------------------------------------------------------------------
    # init
    # ------------------------------------------------------------------

    async def init(
        self,
        kubeconfig: str,
        core: str = "",
        bootstrap: Sequence[str] = (),
        infrastructure: Sequence[str] = (),
        target_namespace: str = "",
        watching_namespace: str = "",
        force: bool = False,
    ) -> tuple[list[Components], bool]:
        """Install providers in a management cluster.

        Every requested bundle is validated before the first one is
        installed. Returns the installed bundles and whether this was the
        first initialisation of the cluster.
        """
        cluster = self._cluster_factory(kubeconfig)
        has_crd = await cluster.metadata.ensure_metadata()
        if not has_crd and not core:
            core = CLUSTER_API

        installer = cluster.installer()
        if core:
            await self._add_to_installer(installer, ProviderType.CORE, target_namespace, watching_namespace, force, [core])
        await self._add_to_installer(
            installer, ProviderType.BOOTSTRAP, target_namespace, watching_namespace, force, bootstrap
        )
        await self._add_to_installer(
            installer, ProviderType.INFRASTRUCTURE, target_namespace, watching_namespace, force, infrastructure
        )

        installed = await installer.install()
        _log.info("init_completed", providers=[str(c.metadata()) for c in installed], first_run=not has_crd)
        return installed, not has_crd

    async def _add_to_installer(
        self,
        installer: ProviderInstaller,
        provider_type: ProviderType,
        target_namespace: str,
        watching_namespace: str,
        force: bool,
        providers: Sequence[str],
    ) -> None:
        for provider in providers:
            components = self.get_components(provider, target_namespace, watching_namespace)
            if components.type != provider_type:
                raise ConfigurationError(
                    f"can't use {provider!r} provider as an {str(provider_type)!r}, it is a {str(components.type)!r}"
                )
            await installer.add(components, force=force)

    # ------------------------------------------------------------------
    # delete
    # ------------------------------------------------------------------

    async def delete(
        self,
        kubeconfig: str,
        providers: Sequence[str] = (),
        delete_all: bool = False,
        force_delete_namespace: bool = False,
        force_delete_crd: bool = False,
    ) -> list[ProviderRecord]:
        """Delete providers from a management cluster; returns the deleted records.

        Raises:
            ConfigurationError -- a name cannot be resolved to exactly one
                                  installed provider.
        """
        cluster = self._cluster_factory(kubeconfig)
        await cluster.metadata.ensure_metadata()
        installed = await cluster.metadata.list()

        if delete_all:
            to_delete = installed
        else:
            to_delete = [await self._resolve_installed(cluster, provider, installed) for provider in providers]

        for record in to_delete:
            await cluster.components.delete(
                record, force_delete_namespace=force_delete_namespace, force_delete_crd=force_delete_crd
            )
            _log.info("provider_deleted", provider=str(record))
        return to_delete

    @staticmethod
    async def _resolve_installed(
        cluster: ClusterClient, provider: str, installed: list[ProviderRecord]
    ) -> ProviderRecord:
        parsed = parse_provider_name(provider)
        namespace = parsed.namespace
        if not namespace:
            namespace = await cluster.metadata.get_default_namespace(parsed.name)
            if not namespace:
                raise ConfigurationError(
                    f"unable to find default namespace for {parsed.name!r} provider; "
                    "please specify the provider's namespace"
                )
        for record in installed:
            if record.name == parsed.name and record.namespace == namespace:
                return record
        raise ConfigurationError(f"failed to find provider {provider!r}")

    # ------------------------------------------------------------------
    # pivot
    # ------------------------------------------------------------------

    async def pivot(self, from_kubeconfig: str, to_kubeconfig: str) -> None:
        """Move providers and the resource graph from one management cluster to another."""
        source = self._cluster_factory(from_kubeconfig)
        await source.metadata.ensure_metadata()
        target = self._cluster_factory(to_kubeconfig)
        await target.metadata.ensure_metadata()

        await source.mover().pivot(target)
        _log.info("pivot_completed", source=source.store.name, target=target.store.name)
