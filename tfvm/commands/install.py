"""Install and uninstall commands."""

from __future__ import annotations

import asyncio
import json

import click
import httpx
import structlog
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TransferSpeedColumn,
)

from tfvm.core.config import AppConfig
from tfvm.core.errors import TfvmError
from tfvm.core.install import Installer
from tfvm.core.store import VersionStore
from tfvm.core.types import InstallResult

logger = structlog.get_logger()


def _get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console]:
    """Extract common context objects."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]
    return config, console


def _run_install(
    installer: Installer, version: str, console: Console, show_progress: bool
) -> InstallResult:
    if not show_progress:
        return asyncio.run(installer.install(version))

    with Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(f"{version}", total=None)

        def on_progress(received: int, total: int | None) -> None:
            progress.update(task, completed=received, total=total)

        return asyncio.run(installer.install(version, progress=on_progress))


@click.command()
@click.argument("version")
@click.pass_context
def install(ctx: click.Context, version: str) -> None:
    """Install the specified version of the tool."""
    config, console = _get_context_objects(ctx)

    if config.output_format != "json":
        console.print(f"Downloading {config.tool_name} version {version}...")

    try:
        installer = Installer(config)
        result = _run_install(
            installer, version, console, show_progress=config.output_format == "rich"
        )
    except (TfvmError, OSError, httpx.HTTPError) as e:
        raise click.ClickException(str(e) or type(e).__name__) from e

    if config.output_format == "json":
        print(json.dumps({
            "version": result.version,
            "path": str(result.path),
            "digest": result.digest,
            "already_installed": result.already_installed,
        }, indent=2))
    elif result.already_installed:
        console.print(f"Version {version} is already installed")
    else:
        console.print("[green]Complete[/green]")


@click.command()
@click.argument("version")
@click.pass_context
def uninstall(ctx: click.Context, version: str) -> None:
    """Uninstall the specified version of the tool."""
    config, console = _get_context_objects(ctx)

    if config.output_format != "json":
        console.print(f"Uninstalling {config.tool_name} version {version}...")

    try:
        VersionStore(config).uninstall(version)
    except (TfvmError, OSError) as e:
        raise click.ClickException(str(e)) from e

    if config.output_format == "json":
        print(json.dumps({"uninstalled": version}, indent=2))
    else:
        console.print("[green]Complete[/green]")
