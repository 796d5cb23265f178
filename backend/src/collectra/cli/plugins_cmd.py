"""Plugin CLI commands: list, enable, disable, install, uninstall."""

import asyncio

import click

from collectra.cli.main import resolve_config
from collectra.errors import PluginError
from collectra.plugins import PluginRegistry, PluginStore


def _open_store() -> PluginStore:
    database = resolve_config().database
    database.ensure_directory()
    return PluginStore(database.sqlalchemy_url)


def _run(action: str, title: str, **kwargs) -> None:
    store = _open_store()

    async def apply() -> None:
        registry = PluginRegistry(store)
        registry.load()
        await getattr(registry, action)(title, **kwargs)

    try:
        asyncio.run(apply())
    except PluginError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)
    finally:
        store.close()


@click.group()
def plugins():
    """Plugin commands."""
    pass


@plugins.command("list")
def list_cmd():
    """List installed plugins."""
    store = _open_store()
    try:
        installed = store.list_all()
    finally:
        store.close()

    if not installed:
        click.echo("No plugins installed.")
        return
    for plugin in installed:
        state = click.style("active", fg="green") if plugin.active else "inactive"
        click.echo(f"{plugin.title} {plugin.version} [{state}] {plugin.target or ''}".rstrip())


@plugins.command()
@click.argument("title")
def enable(title: str):
    """Enable an installed plugin."""
    _run("enable", title)
    click.echo(f"Enabled plugin: {title}.")


@plugins.command()
@click.argument("title")
def disable(title: str):
    """Disable an installed plugin."""
    _run("disable", title)
    click.echo(f"Disabled plugin: {title}.")


@plugins.command()
@click.argument("title")
@click.option(
    "--target",
    default=None,
    help="module:function of the transform (default: look up the "
    "'collectra.plugins' entry point named TITLE).",
)
def install(title: str, target: str | None):
    """Install a plugin."""
    _run("install", title, target=target)
    click.echo(f"Installed plugin: {title}.")


@plugins.command()
@click.argument("title")
def uninstall(title: str):
    """Uninstall a plugin."""
    _run("uninstall", title)
    click.echo(f"Uninstalled plugin: {title}.")
