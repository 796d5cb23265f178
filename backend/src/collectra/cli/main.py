"""Collectra CLI entry point."""

from pathlib import Path

import click

from collectra.config import AppConfig


def resolve_config() -> AppConfig:
    """Build config from the environment, rooted at the project directory."""
    cwd = Path.cwd()
    if cwd.name == "backend":
        base_path = cwd.parent
    else:
        base_path = cwd
    return AppConfig.from_env(base_path)


@click.group()
def cli():
    """Collectra - collections as CRUD HTTP endpoints."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", type=int, default=None, help="Port (default: COLLECTRA_PORT or 8000).")
@click.option("--reload", is_flag=True, default=False, help="Reload on code changes.")
def serve(host: str, port: int | None, reload: bool):
    """Run the HTTP server."""
    import uvicorn

    config = resolve_config()
    uvicorn.run(
        "collectra.api.app:app",
        host=host,
        port=port or config.port,
        reload=reload,
        log_level=config.log_level.lower(),
    )


# Register subcommand groups
from collectra.cli.collections_cmd import collections  # noqa: E402
from collectra.cli.plugins_cmd import plugins  # noqa: E402

cli.add_command(collections)
cli.add_command(plugins)
