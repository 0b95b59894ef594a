"""Provider components bundles built from raw manifests.

build_components turns the YAML published by a provider into a
``Components`` bundle ready to be installed:

1. ``${VAR}`` placeholders are replaced from a variables mapping;
2. the target namespace defaults to the bundle's only Namespace object;
3. the watching namespace is read from and written to the ``--namespace=``
   argument of the ``manager`` container of each Deployment;
4. namespaced objects are moved into the target namespace, which is added
   to the bundle when missing;
5. every object gets the management and provider labels.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog
import yaml

from kubepivot.errors import ConfigurationError
from kubepivot.models.objects import KubeObject, Namespace, from_dict, is_namespaced_kind, provider_labels
from kubepivot.models.provider import ProviderRecord, ProviderType
from kubepivot.repository.providers import ProviderConfig

_log = structlog.get_logger(component="repository.components")

_VARIABLE_RE = re.compile(r"\$\{\s*([A-Z0-9_]+)\s*\}")
_NAMESPACE_ARG = "--namespace="
_CONTROLLER_CONTAINER = "manager"


@dataclass
class Components:
    """One provider's objects, ready to be installed in a management cluster."""

    provider: ProviderConfig
    version: str
    target_namespace: str
    watching_namespace: str
    variables: list[str] = field(default_factory=list)
    objects: list[KubeObject] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.provider.name

    @property
    def type(self) -> ProviderType:
        return self.provider.type

    def metadata(self) -> ProviderRecord:
        """The Provider record describing this bundle once installed."""
        return ProviderRecord(
            namespace=self.target_namespace,
            name=self.provider.name,
            type=self.provider.type,
            version=self.version,
            watched_namespace=self.watching_namespace,
        )

    def to_yaml(self) -> str:
        return yaml.safe_dump_all([obj.to_dict() for obj in self.objects], sort_keys=False)


def inspect_variables(raw: str) -> list[str]:
    """Names of the ``${VAR}`` placeholders in *raw*, sorted and unique."""
    return sorted(set(_VARIABLE_RE.findall(raw)))


def replace_variables(raw: str, names: list[str], values: Mapping[str, str]) -> str:
    missing = [name for name in names if name not in values]
    if missing:
        raise ConfigurationError(
            f"value for variables [{', '.join(missing)}] is not set; set them as environment variables"
        )
    return _VARIABLE_RE.sub(lambda m: values[m.group(1)], raw)


def parse_objects(raw: str) -> list[dict[str, Any]]:
    try:
        documents = list(yaml.safe_load_all(raw))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"failed to parse components yaml: {exc}") from exc
    objects = []
    for doc in documents:
        if doc is None:
            continue
        if not isinstance(doc, dict) or "kind" not in doc:
            raise ConfigurationError("invalid components yaml: every document must be an object with a kind")
        objects.append(doc)
    return objects


def inspect_target_namespace(objects: list[dict[str, Any]]) -> str:
    """Name of the bundle's Namespace object, "" when there is none."""
    names = [obj.get("metadata", {}).get("name", "") for obj in objects if obj["kind"] == Namespace.KIND]
    if len(names) > 1:
        raise ConfigurationError(
            "invalid manifest: there should be no more than one object of kind Namespace in the provider components"
        )
    return names[0] if names else ""


def _manager_containers(obj: dict[str, Any]) -> list[dict[str, Any]]:
    if obj["kind"] != "Deployment":
        return []
    containers = obj.get("spec", {}).get("template", {}).get("spec", {}).get("containers") or []
    return [c for c in containers if c.get("name") == _CONTROLLER_CONTAINER]


def inspect_watch_namespace(objects: list[dict[str, Any]]) -> str:
    """Namespace the controllers are configured to watch, "" for all namespaces."""
    namespace = ""
    for obj in objects:
        for container in _manager_containers(obj):
            for arg in container.get("args") or []:
                if not arg.startswith(_NAMESPACE_ARG):
                    continue
                value = arg.removeprefix(_NAMESPACE_ARG)
                if namespace and value != namespace:
                    raise ConfigurationError(
                        "invalid manifest: all the controllers should have the same --namespace arg"
                    )
                namespace = value
    return namespace


def fix_watch_namespace(objects: list[dict[str, Any]], watching_namespace: str) -> None:
    for obj in objects:
        for container in _manager_containers(obj):
            args = [a for a in container.get("args") or [] if not a.startswith(_NAMESPACE_ARG)]
            if watching_namespace:
                args.append(f"{_NAMESPACE_ARG}{watching_namespace}")
            container["args"] = args


def fix_target_namespace(objects: list[dict[str, Any]], target_namespace: str) -> list[dict[str, Any]]:
    found = False
    for obj in objects:
        metadata = obj.setdefault("metadata", {})
        if obj["kind"] == Namespace.KIND:
            found = True
            metadata["name"] = target_namespace
        if is_namespaced_kind(obj["kind"]):
            metadata["namespace"] = target_namespace
    if not found:
        objects.append(Namespace.new(target_namespace).to_dict())
    return objects


def build_components(
    provider: ProviderConfig,
    version: str,
    raw: str,
    target_namespace: str = "",
    watching_namespace: str = "",
    variables: Mapping[str, str] | None = None,
) -> Components:
    """Build the bundle for *provider* from its raw components YAML.

    Raises:
        ConfigurationError -- a variable has no value, the manifest is
                              malformed, or no target namespace can be
                              determined.
    """
    names = inspect_variables(raw)
    raw = replace_variables(raw, names, os.environ if variables is None else variables)
    objects = parse_objects(raw)

    target_namespace = target_namespace or inspect_target_namespace(objects)
    if not target_namespace:
        raise ConfigurationError("target namespace can't be defaulted; please specify a target namespace")

    if inspect_watch_namespace(objects) != watching_namespace:
        fix_watch_namespace(objects, watching_namespace)
    objects = fix_target_namespace(objects, target_namespace)

    typed = [from_dict(obj) for obj in objects]
    for obj in typed:
        obj.metadata.labels.update(provider_labels(provider.name))

    _log.debug(
        "components_built",
        provider=provider.name,
        version=version,
        target_namespace=target_namespace,
        watching_namespace=watching_namespace,
        objects=len(typed),
    )
    return Components(
        provider=provider,
        version=version,
        target_namespace=target_namespace,
        watching_namespace=watching_namespace,
        variables=names,
        objects=typed,
    )
