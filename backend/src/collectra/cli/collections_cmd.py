"""Collections CLI commands: list and validate."""

import click

from collectra.cli.main import resolve_config
from collectra.errors import ConfigurationError
from collectra.hooks import register_builtin_hooks
from collectra.metadata.loader import CollectionRegistry, MetadataLoader


def _load_registry() -> CollectionRegistry:
    config = resolve_config()
    if not config.metadata_path.exists():
        click.echo(f"Error: Metadata directory not found at {config.metadata_path}", err=True)
        raise SystemExit(1)

    register_builtin_hooks()
    loader = MetadataLoader(config.metadata_path)
    loader.load_all()
    return loader.build_registry(config.users_slug)


@click.group()
def collections():
    """Collection commands."""
    pass


@collections.command("list")
def list_cmd():
    """List collections with their routes and field counts."""
    try:
        registry = _load_registry()
    except ConfigurationError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)

    for collection in registry.values():
        click.echo(
            f"/{collection.route_slug}  {collection.name} "
            f"({len(collection.fields)} fields, id: {collection.id_strategy}, "
            f"{collection.hooks.count()} hooks, {len(collection.webhooks)} webhooks)"
        )


@collections.command()
def validate():
    """Load the collection YAML files and report configuration errors."""
    try:
        registry = _load_registry()
    except ConfigurationError as e:
        click.echo(click.style(f"Configuration error: {e}", fg="red"), err=True)
        raise SystemExit(1)

    click.echo(f"Loaded {len(registry)} collections:")
    for name in sorted(registry):
        click.echo(f"  ✓ {name} ({len(registry[name].fields)} fields)")
    click.echo(click.style("\nAll collections are valid.", fg="green", bold=True))
