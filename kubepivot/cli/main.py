"""kubepivot command-line interface.

Usage:
    kubepivot init --infrastructure docker
    kubepivot delete aws --delete-crd
    kubepivot delete --all
    kubepivot pivot --to target-kubeconfig.yaml
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Coroutine
from typing import Any, TypeVar

import click

from kubepivot import __version__
from kubepivot.client import KubePivotClient
from kubepivot.cluster.client import ClusterClient
from kubepivot.config import load_config
from kubepivot.errors import KubePivotError, format_error_chain
from kubepivot.models.config import KubePivotConfig
from kubepivot.observability.logging import bind_cluster, get_logger, setup_logging
from kubepivot.repository.filesystem import FilesystemRepository
from kubepivot.store.kubernetes import KubernetesObjectStore

_log = get_logger("cli")

T = TypeVar("T")

_KUBECONFIG_HELP = (
    "Path to the kubeconfig file to use for accessing the management cluster. "
    "If empty, default rules for kubeconfig discovery will be used."
)


def build_client(config: KubePivotConfig) -> KubePivotClient:
    """KubePivotClient talking to live clusters through their kubeconfig."""

    def cluster_factory(kubeconfig: str) -> ClusterClient:
        return ClusterClient(KubernetesObjectStore(kubeconfig or None), config.wait)

    return KubePivotClient(cluster_factory, FilesystemRepository(config.repository.path))


def _client(ctx: click.Context) -> KubePivotClient:
    if ctx.obj.get("client") is None:
        ctx.obj["client"] = build_client(ctx.obj["config"])
    return ctx.obj["client"]


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except KubePivotError as exc:
        _log.error("command_failed", error=format_error_chain(exc))
        click.echo(f"Error: {format_error_chain(exc)}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(__version__, prog_name="kubepivot")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Log verbosity (defaults to KUBEPIVOT_LOG_LEVEL, then info).",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """Manage the lifecycle of Cluster API management clusters."""
    ctx.ensure_object(dict)
    try:
        config = load_config()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    if log_level:
        config.log.level = log_level.lower()
    setup_logging(config.log.level)
    ctx.obj["config"] = config


@cli.command()
@click.option("--kubeconfig", default="", help=_KUBECONFIG_HELP)
@click.option("--core", default="", help="Core provider version (e.g. cluster-api:v0.3.0) to add to the management cluster.")
@click.option(
    "--bootstrap",
    "-b",
    multiple=True,
    help="Bootstrap providers and versions (e.g. kubeadm:v0.3.0) to add to the management cluster.",
)
@click.option(
    "--infrastructure",
    "-i",
    multiple=True,
    help="Infrastructure providers and versions (e.g. aws:v0.5.0) to add to the management cluster.",
)
@click.option("--target-namespace", default="", help="The target namespace where the providers should be deployed.")
@click.option(
    "--watching-namespace",
    default="",
    help="Namespace the providers should watch when reconciling objects. If unset, all namespaces are watched.",
)
@click.option("--force", is_flag=True, help="Force the installation of providers even if validation fails.")
@click.pass_context
def init(
    ctx: click.Context,
    kubeconfig: str,
    core: str,
    bootstrap: tuple[str, ...],
    infrastructure: tuple[str, ...],
    target_namespace: str,
    watching_namespace: str,
    force: bool,
) -> None:
    """Initialize a management cluster with providers."""
    bind_cluster(kubeconfig or "default")
    installed, first_run = _run(
        _client(ctx).init(
            kubeconfig,
            core=core,
            bootstrap=bootstrap,
            infrastructure=infrastructure,
            target_namespace=target_namespace,
            watching_namespace=watching_namespace,
            force=force,
        )
    )
    for components in installed:
        click.echo(
            f"Installed {components.name} {components.version} ({components.type}) "
            f"in namespace {components.target_namespace}"
        )
    if first_run:
        click.echo("Your management cluster has been initialized successfully!")


@cli.command()
@click.argument("providers", nargs=-1)
@click.option("--kubeconfig", default="", help=_KUBECONFIG_HELP)
@click.option(
    "--delete-namespace",
    "-n",
    is_flag=True,
    help="Force the deletion of the namespace where the providers are hosted (and of all the contained objects).",
)
@click.option(
    "--delete-crd",
    "-c",
    is_flag=True,
    help="Force the deletion of the provider's CRDs (and of all the related objects).",
)
@click.option("--all", "delete_all", is_flag=True, help="Delete all the providers.")
@click.pass_context
def delete(
    ctx: click.Context,
    providers: tuple[str, ...],
    kubeconfig: str,
    delete_namespace: bool,
    delete_crd: bool,
    delete_all: bool,
) -> None:
    """Delete one or more providers from the management cluster."""
    if delete_all and providers:
        raise click.UsageError("the --all flag can't be used in combination with the list of providers")
    if not delete_all and not providers:
        raise click.UsageError("at least one provider should be specified or the --all flag should be set")

    bind_cluster(kubeconfig or "default")
    deleted = _run(
        _client(ctx).delete(
            kubeconfig,
            providers,
            delete_all=delete_all,
            force_delete_namespace=delete_namespace,
            force_delete_crd=delete_crd,
        )
    )
    for record in deleted:
        click.echo(f"Deleted {record}")


@cli.command()
@click.option("--kubeconfig", default="", help="Path to the kubeconfig file of the source management cluster.")
@click.option("--to", "to_kubeconfig", required=True, help="Path to the kubeconfig file of the target management cluster.")
@click.pass_context
def pivot(ctx: click.Context, kubeconfig: str, to_kubeconfig: str) -> None:
    """Move providers and Cluster API objects to another management cluster."""
    if not to_kubeconfig:
        raise click.UsageError("please specify a target cluster using the --to flag")
    bind_cluster(kubeconfig or "default")
    _run(_client(ctx).pivot(kubeconfig, to_kubeconfig))
    click.echo(f"Pivot to {to_kubeconfig} completed")
