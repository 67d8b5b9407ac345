"""Click commands for running the agent."""

from __future__ import annotations

import asyncio
import os

import click

from kubesync import __version__


def _apply_overrides(endpoint: str | None, log_level: str | None, kinds: tuple[str, ...]) -> None:
    # Options map onto KUBESYNC_* variables so load_config() stays the single source.
    if endpoint:
        os.environ["KUBESYNC_TRANSPORT_ENDPOINT"] = endpoint
    if log_level:
        os.environ["KUBESYNC_LOG_LEVEL"] = log_level
    if kinds:
        os.environ["KUBESYNC_REPORT_KINDS"] = ",".join(kinds)


@click.group()
@click.version_option(__version__, prog_name="kubesync")
def cli() -> None:
    """Mirror Kubernetes resource state to a control plane."""


@cli.command()
@click.option("--endpoint", help="Control plane host:port.")
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), help="Log level.")
@click.option("--kind", "kinds", multiple=True, help="Report only this kind; repeatable.")
def run(endpoint: str | None, log_level: str | None, kinds: tuple[str, ...]) -> None:
    """Run the agent until SIGTERM/SIGINT."""
    from kubesync.app import main

    _apply_overrides(endpoint, log_level, kinds)
    asyncio.run(main())


@cli.command("sync-once")
@click.option("--endpoint", help="Control plane host:port.")
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), help="Log level.")
@click.option("--kind", "kinds", multiple=True, help="Report only this kind; repeatable.")
def sync_once(endpoint: str | None, log_level: str | None, kinds: tuple[str, ...]) -> None:
    """Run a single report cycle for every enabled kind and exit."""
    from kubesync.app import KubeSyncApp, _ComponentError

    _apply_overrides(endpoint, log_level, kinds)
    try:
        asyncio.run(KubeSyncApp().sync_once())
    except _ComponentError as exc:
        raise click.ClickException(str(exc)) from exc
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc


@cli.command()
def version() -> None:
    """Print the kubesync version."""
    click.echo(__version__)
