"""Local provider repository.

Layout::

    <root>/<provider>/<version>/components.yaml

A provider whose ``url`` points at an existing local directory is read
from that directory instead of ``<root>/<provider>``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path

import structlog

from kubepivot.errors import ConfigurationError
from kubepivot.repository.components import Components, build_components
from kubepivot.repository.providers import ProviderConfig

_log = structlog.get_logger(component="repository.filesystem")

LATEST = "latest"
COMPONENTS_FILE = "components.yaml"

_VERSION_RE = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:-([0-9A-Za-z.-]+))?$")


def version_key(version: str) -> tuple[int, int, int, int, str]:
    """Sort key ordering version directory names by semantic version.

    Pre-releases sort before the release they precede. Names that are not
    versions sort first.
    """
    match = _VERSION_RE.match(version)
    if match is None:
        return (-1, -1, -1, -1, version)
    major, minor, patch, pre = match.groups()
    return (int(major), int(minor or 0), int(patch or 0), 0 if pre else 1, pre or "")


class FilesystemRepository:
    """Reads provider components from a directory tree."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).expanduser()

    def provider_dir(self, provider: ProviderConfig) -> Path:
        if provider.url:
            local = Path(provider.url).expanduser()
            if local.is_dir():
                return local
        return self._root / provider.name

    def versions(self, provider: ProviderConfig) -> list[str]:
        """Available versions of *provider*, lowest first."""
        base = self.provider_dir(provider)
        if not base.is_dir():
            return []
        names = [p.name for p in base.iterdir() if (p / COMPONENTS_FILE).is_file()]
        return sorted(names, key=version_key)

    def resolve_version(self, provider: ProviderConfig, version: str = "") -> str:
        if version and version != LATEST:
            return version
        available = self.versions(provider)
        if not available:
            raise ConfigurationError(
                f"no versions of the {provider.name!r} provider found in {self.provider_dir(provider)}"
            )
        return available[-1]

    def read_components(self, provider: ProviderConfig, version: str = "") -> tuple[str, str]:
        """Return the resolved version and the raw components YAML."""
        resolved = self.resolve_version(provider, version)
        path = self.provider_dir(provider) / resolved / COMPONENTS_FILE
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ConfigurationError(
                f"components file for {provider.name}:{resolved} not found at {path}"
            ) from exc
        _log.debug("components_read", provider=provider.name, version=resolved, path=str(path))
        return resolved, raw

    def get_components(
        self,
        provider: ProviderConfig,
        version: str = "",
        target_namespace: str = "",
        watching_namespace: str = "",
        variables: Mapping[str, str] | None = None,
    ) -> Components:
        resolved, raw = self.read_components(provider, version)
        return build_components(
            provider,
            resolved,
            raw,
            target_namespace=target_namespace,
            watching_namespace=watching_namespace,
            variables=variables,
        )
