"""Commands that inspect and switch installed versions."""

from __future__ import annotations

import json

import click
from rich.console import Console

from tfvm.core.config import AppConfig
from tfvm.core.errors import TfvmError
from tfvm.core.store import VersionStore


@click.command(name="list")
@click.pass_context
def list_versions(ctx: click.Context) -> None:
    """Show installed versions, marking the current one."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]

    try:
        store = VersionStore(config)
        current = store.get_current()
        versions = store.list()
    except (TfvmError, OSError) as e:
        raise click.ClickException(str(e)) from e

    if config.output_format == "json":
        print(json.dumps({"current": current, "versions": versions}, indent=2))
        return

    if not versions:
        console.print("No versions installed")
        return

    for version in versions:
        if version == current:
            console.print(f"  * [green]{version}[/green]", highlight=False)
        else:
            console.print(f"    {version}", highlight=False)


@click.command()
@click.argument("version")
@click.pass_context
def use(ctx: click.Context, version: str) -> None:
    """Switch to the specified version."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]

    try:
        VersionStore(config).set_current(version)
    except (TfvmError, OSError) as e:
        raise click.ClickException(str(e)) from e

    if config.output_format == "json":
        print(json.dumps({"current": version}, indent=2))
    else:
        console.print(f"Now using {config.tool_name} version {version}")


@click.command()
@click.pass_context
def current(ctx: click.Context) -> None:
    """Show the current version."""
    config: AppConfig = ctx.obj["config"]
    console: Console = ctx.obj["console"]

    try:
        version = VersionStore(config).get_current()
    except (TfvmError, OSError) as e:
        raise click.ClickException(str(e)) from e

    if config.output_format == "json":
        print(json.dumps({"current": version}, indent=2))
    elif version is None:
        console.print("No current version")
    else:
        console.print(version, highlight=False)
