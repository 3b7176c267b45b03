"""Serve command for oidc-auth CLI.

Runs the HTTP API with uvicorn.
"""

from __future__ import annotations

__all__ = ["serve"]

import sys
from pathlib import Path

import click
import uvicorn

from oidc_auth.api.server import create_api_app
from oidc_auth.config import AppConfig
from oidc_auth.constants import DEFAULT_API_HOST, DEFAULT_API_PORT
from oidc_auth.container import build_container
from oidc_auth.exceptions import ConfigurationError
from oidc_auth.telemetry.system_logger import get_system_logger

from ..styling import style_error


@click.command()
@click.option("--host", default=DEFAULT_API_HOST, show_default=True, help="Interface to bind")
@click.option("--port", default=DEFAULT_API_PORT, show_default=True, type=int, help="Port to bind")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSON config file (default: OIDC_AUTH_* environment variables)",
)
def serve(host: str, port: int, config_path: Path | None) -> None:
    """Run the OIDC auth API server."""
    try:
        config = AppConfig.load_from_file(config_path) if config_path else AppConfig.from_env()
    except ConfigurationError as e:
        click.echo(style_error(e.message), err=True)
        sys.exit(1)

    container = build_container(config)
    app = create_api_app(container)

    get_system_logger().info(
        {"event": "api_server_starting", "message": f"Listening on {host}:{port}", "host": host, "port": port}
    )
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())
