"""Discover command for oidc-auth CLI.

Resolves an issuer's discovery document and key set with the same resolver
the login flow uses, so TLS and key-id problems can be reproduced from a
shell.
"""

from __future__ import annotations

__all__ = ["discover"]

import asyncio
import sys
from pathlib import Path

import click

from oidc_auth.auth.key_resolver import SigningKeyResolver
from oidc_auth.constants import DEFAULT_HTTP_TIMEOUT_SECONDS
from oidc_auth.exceptions import UpstreamIdentityProviderError

from ..styling import style_dim, style_error, style_label, style_success


async def _discover(
    resolver: SigningKeyResolver,
    url: str,
    ca_cert: str | None,
    kid: str | None,
) -> None:
    key_set = await resolver.get_key_set(url, ca_cert)
    click.echo(f"{style_label('JWKS URI')} {key_set.jwks_uri}")
    click.echo(f"{style_label('Signing keys')} {len(key_set.keys)}")
    if not key_set.keys:
        click.echo(style_dim("  (none)"))
    for key in key_set.keys:
        click.echo(f"  {key.key_id or '(no kid)'}  {key.key_type}  {key.algorithm_name}")

    if kid is not None:
        key = await resolver.resolve(url, kid, ca_cert)
        click.echo(style_success(f"kid '{kid}' resolves to a {key.key_type} key"))


@click.command()
@click.argument("url")
@click.option(
    "--ca-cert",
    "ca_cert_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="PEM CA certificate to trust instead of the system store",
)
@click.option("--kid", default=None, help="Key identifier to resolve")
@click.option(
    "--timeout",
    default=DEFAULT_HTTP_TIMEOUT_SECONDS,
    show_default=True,
    type=float,
    help="Request timeout in seconds",
)
def discover(url: str, ca_cert_path: Path | None, kid: str | None, timeout: float) -> None:
    """Fetch URL's discovery document and list its signing keys."""
    ca_cert = ca_cert_path.read_text(encoding="utf-8") if ca_cert_path else None
    resolver = SigningKeyResolver(timeout_seconds=timeout)
    try:
        asyncio.run(_discover(resolver, url, ca_cert, kid))
    except UpstreamIdentityProviderError as e:
        click.echo(style_error(e.message), err=True)
        sys.exit(1)
