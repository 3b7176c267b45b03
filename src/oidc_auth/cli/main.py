"""Main CLI entry point for oidc-auth.

Defines the CLI group and registers all subcommands.

Commands:
    serve     - Run the API server
    discover  - Resolve an issuer's discovery document and signing keys

Subcommand help:
    oidc-auth COMMAND -h       Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli"]

import sys

import click

from oidc_auth import __version__
from oidc_auth.constants import APP_NAME

from .commands.discover import discover
from .commands.serve import serve


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.pass_context
def cli(ctx: click.Context, version: bool) -> None:
    """oidc-auth: OIDC workload identity login service."""
    if version:
        click.echo(f"{APP_NAME} {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(serve)
cli.add_command(discover)


def main() -> None:
    """CLI entry point."""
    cli()
