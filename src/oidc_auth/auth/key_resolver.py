"""Signing key resolution over OIDC discovery.

Fetches <discovery_url>/.well-known/openid-configuration, follows its
jwks_uri, and returns the key matching a token's key identifier.

TLS:
- With a custom CA certificate, only that CA is trusted
- Without one, the system trust store is used
- Peer verification is mandatory in both cases

Caching (per discovery URL and CA certificate):
- A key set younger than cache_ttl is served without a request
- An older key set is refetched; if the refetch fails, the old set is
  served only while it is younger than cache_max_age
- An unknown kid triggers one refetch (key rotation), at most once per
  KID_MISS_REFETCH_SECONDS
"""

from __future__ import annotations

__all__ = [
    "KID_MISS_REFETCH_SECONDS",
    "ResolvedKeySet",
    "SigningKeyResolver",
]

import asyncio
import hashlib
import json
import ssl
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
from jwt import PyJWK, PyJWKSet
from jwt.exceptions import PyJWKSetError

from oidc_auth.constants import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    JWKS_CACHE_MAX_AGE_SECONDS,
    JWKS_CACHE_TTL_SECONDS,
    MAX_DISCOVERY_RESPONSE_BYTES,
    OIDC_DISCOVERY_PATH,
)
from oidc_auth.exceptions import (
    InvalidDiscoveryDocumentError,
    SigningKeyNotFoundError,
    TrustEndpointUnreachableError,
    UpstreamIdentityProviderError,
)
from oidc_auth.telemetry.system_logger import get_system_logger

KID_MISS_REFETCH_SECONDS = 30.0


@dataclass(frozen=True)
class ResolvedKeySet:
    """Signing keys published by one issuer.

    Attributes:
        discovery_url: Discovery base URL the set was resolved from.
        jwks_uri: Key set URL taken from the discovery document.
        keys: Signature keys ('use' absent or "sig").
        fetched_at: Monotonic time of the fetch.
    """

    discovery_url: str
    jwks_uri: str
    keys: tuple[PyJWK, ...]
    fetched_at: float

    def find(self, kid: str | None) -> PyJWK | None:
        """Find the key for kid.

        A token without kid resolves only when the set holds exactly one key.
        """
        if kid is None:
            return self.keys[0] if len(self.keys) == 1 else None
        for key in self.keys:
            if key.key_id == kid:
                return key
        return None


def _build_ssl_context(ca_cert: str | None) -> ssl.SSLContext:
    """TLS context trusting either the custom CA alone or the system store."""
    try:
        if ca_cert:
            context = ssl.create_default_context(cadata=ca_cert)
        else:
            context = ssl.create_default_context()
    except (ssl.SSLError, ValueError) as e:
        raise TrustEndpointUnreachableError(f"Custom CA certificate could not be loaded: {e}") from e
    context.check_hostname = True
    context.verify_mode = ssl.CERT_REQUIRED
    return context


class SigningKeyResolver:
    """Resolves token signing keys from an issuer's discovery endpoint.

    Usage:
        resolver = SigningKeyResolver(timeout_seconds=10)
        key = await resolver.resolve("https://idp.example", kid, ca_cert=None)
        claims = verifier.verify(token, key, expected_issuer)
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        cache_ttl_seconds: float = JWKS_CACHE_TTL_SECONDS,
        cache_max_age_seconds: float = JWKS_CACHE_MAX_AGE_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the resolver.

        Args:
            timeout_seconds: Bound on one whole refresh (discovery plus JWKS),
                and on each connect and read within it.
            cache_ttl_seconds: Age after which a key set is refetched.
            cache_max_age_seconds: Age after which a key set is never served.
            transport: httpx transport override (tests use httpx.MockTransport).
            clock: Monotonic clock, injectable for tests.
        """
        if cache_ttl_seconds > cache_max_age_seconds:
            raise ValueError("cache_ttl_seconds cannot exceed cache_max_age_seconds")
        self._timeout_seconds = timeout_seconds
        self._timeout = httpx.Timeout(timeout_seconds, connect=timeout_seconds)
        self._cache_ttl = cache_ttl_seconds
        self._cache_max_age = cache_max_age_seconds
        self._transport = transport
        self._clock = clock
        self._cache: dict[tuple[str, str], ResolvedKeySet] = {}

    @staticmethod
    def _cache_key(discovery_url: str, ca_cert: str | None) -> tuple[str, str]:
        ca_fingerprint = hashlib.sha256(ca_cert.encode("utf-8")).hexdigest() if ca_cert else ""
        return discovery_url, ca_fingerprint

    def clear_cache(self) -> None:
        """Drop every cached key set."""
        self._cache.clear()

    async def get_key_set(self, discovery_url: str, ca_cert: str | None = None) -> ResolvedKeySet:
        """Return the issuer's key set, from cache when fresh.

        Raises:
            TrustEndpointUnreachableError: Network, TLS or HTTP status failure.
            InvalidDiscoveryDocumentError: Malformed discovery document or key set.
        """
        cache_key = self._cache_key(discovery_url, ca_cert)
        cached = self._cache.get(cache_key)
        now = self._clock()

        if cached is not None and now - cached.fetched_at <= self._cache_ttl:
            return cached

        try:
            return await self._refresh(discovery_url, ca_cert)
        except UpstreamIdentityProviderError as e:
            if cached is not None and now - cached.fetched_at <= self._cache_max_age:
                get_system_logger().warning(
                    {
                        "event": "jwks_refresh_failed",
                        "message": f"Serving cached keys for {discovery_url}: {e.message}",
                        "discovery_url": discovery_url,
                    }
                )
                return cached
            self._cache.pop(cache_key, None)
            raise

    async def resolve(self, discovery_url: str, kid: str | None, ca_cert: str | None = None) -> PyJWK:
        """Return the signing key matching kid.

        Args:
            discovery_url: Issuer discovery base URL.
            kid: Key identifier from the token header.
            ca_cert: PEM CA certificate to trust instead of the system store.

        Raises:
            SigningKeyNotFoundError: If no key matches kid after one refetch.
            TrustEndpointUnreachableError: Network, TLS or HTTP status failure.
            InvalidDiscoveryDocumentError: Malformed discovery document or key set.
        """
        key_set = await self.get_key_set(discovery_url, ca_cert)
        key = key_set.find(kid)
        if key is not None:
            return key

        if self._clock() - key_set.fetched_at >= KID_MISS_REFETCH_SECONDS:
            key_set = await self._refresh(discovery_url, ca_cert)
            key = key_set.find(kid)
            if key is not None:
                return key

        raise SigningKeyNotFoundError(
            f"No signing key matching kid '{kid}' at {key_set.jwks_uri}",
            kid=kid,
            url=key_set.jwks_uri,
        )

    async def _refresh(self, discovery_url: str, ca_cert: str | None) -> ResolvedKeySet:
        discovery_endpoint = f"{discovery_url.rstrip('/')}{OIDC_DISCOVERY_PATH}"
        try:
            # Bounds the whole exchange, not just each socket read
            async with asyncio.timeout(self._timeout_seconds):
                jwks_uri, jwks = await self._fetch_documents(discovery_endpoint, ca_cert)
        except TimeoutError as e:
            raise TrustEndpointUnreachableError(
                f"Fetching signing keys from {discovery_endpoint} timed out after {self._timeout_seconds}s",
                url=discovery_endpoint,
            ) from e

        if not isinstance(jwks, dict):
            raise InvalidDiscoveryDocumentError("Key set is not a JSON object", url=jwks_uri)
        try:
            jwk_set = PyJWKSet.from_dict(jwks)
        except PyJWKSetError as e:
            raise InvalidDiscoveryDocumentError(f"Key set is unusable: {e}", url=jwks_uri) from e

        keys = tuple(key for key in jwk_set.keys if key.public_key_use in (None, "sig"))
        key_set = ResolvedKeySet(
            discovery_url=discovery_url,
            jwks_uri=jwks_uri,
            keys=keys,
            fetched_at=self._clock(),
        )
        self._cache[self._cache_key(discovery_url, ca_cert)] = key_set
        return key_set

    async def _fetch_documents(self, discovery_endpoint: str, ca_cert: str | None) -> tuple[str, Any]:
        """Fetch the discovery document, then the key set it points to."""
        async with httpx.AsyncClient(
            verify=_build_ssl_context(ca_cert),
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=True,
        ) as client:
            document = await self._get_json(client, discovery_endpoint)
            if not isinstance(document, dict):
                raise InvalidDiscoveryDocumentError(
                    "Discovery document is not a JSON object", url=discovery_endpoint
                )
            jwks_uri = document.get("jwks_uri")
            if not isinstance(jwks_uri, str) or not jwks_uri:
                raise InvalidDiscoveryDocumentError(
                    "Discovery document has no jwks_uri", url=discovery_endpoint
                )
            return jwks_uri, await self._get_json(client, jwks_uri)

    @staticmethod
    async def _get_json(client: httpx.AsyncClient, url: str) -> Any:
        body = bytearray()
        try:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > MAX_DISCOVERY_RESPONSE_BYTES:
                        raise InvalidDiscoveryDocumentError(
                            f"{url} returned more than {MAX_DISCOVERY_RESPONSE_BYTES} bytes", url=url
                        )
        except httpx.TimeoutException as e:
            raise TrustEndpointUnreachableError(f"Request to {url} timed out", url=url) from e
        except httpx.HTTPStatusError as e:
            raise TrustEndpointUnreachableError(
                f"{url} returned HTTP {e.response.status_code}", url=url
            ) from e
        except httpx.HTTPError as e:
            # Connection, TLS and protocol failures
            raise TrustEndpointUnreachableError(f"Cannot reach {url}: {type(e).__name__}: {e}", url=url) from e

        try:
            return json.loads(body)
        except ValueError as e:
            raise InvalidDiscoveryDocumentError(f"{url} did not return JSON", url=url) from e
