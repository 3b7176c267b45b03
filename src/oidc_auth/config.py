"""Process configuration for oidc-auth.

Holds the process-wide secrets (access token signing secret, root encryption
key) and the tunables of the signing key resolver. Configuration is read from
OIDC_AUTH_* environment variables or from a JSON file.

Example usage:
    # From environment
    config = AppConfig.from_env()

    # From file
    config = AppConfig.load_from_file(Path("/etc/oidc-auth/config.json"))
"""

from __future__ import annotations

__all__ = [
    "AppConfig",
    "ENV_PREFIX",
]

import base64
import binascii
import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from oidc_auth.constants import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    JWKS_CACHE_MAX_AGE_SECONDS,
    JWKS_CACHE_TTL_SECONDS,
    MAX_HTTP_TIMEOUT_SECONDS,
    MIN_HTTP_TIMEOUT_SECONDS,
    SYMMETRIC_KEY_BYTES,
)
from oidc_auth.exceptions import ConfigurationError

ENV_PREFIX = "OIDC_AUTH_"

# Environment variable suffix -> AppConfig field
_ENV_FIELDS: dict[str, str] = {
    "SECRET": "auth_secret",
    "ROOT_ENCRYPTION_KEY": "root_encryption_key",
    "HTTP_TIMEOUT": "http_timeout_seconds",
    "JWKS_CACHE_TTL": "jwks_cache_ttl_seconds",
    "JWKS_CACHE_MAX_AGE": "jwks_cache_max_age_seconds",
    "LOG_LEVEL": "log_level",
    "LOG_DIR": "log_dir",
}


class AppConfig(BaseModel):
    """Process-wide configuration.

    Attributes:
        auth_secret: HMAC secret used to sign issued access tokens.
        root_encryption_key: Base64 encoded 32-byte root key. Wraps every
            tenant's symmetric key.
        http_timeout_seconds: Timeout for discovery and JWKS fetches.
        jwks_cache_ttl_seconds: Age after which a cached key set is refetched.
        jwks_cache_max_age_seconds: Age after which a cached key set is never served.
        log_level: Logging level for the system logger.
        log_dir: Directory for JSONL logs. Console only when unset.
    """

    auth_secret: str = Field(min_length=32)
    root_encryption_key: str = Field(min_length=1)
    http_timeout_seconds: float = Field(
        default=DEFAULT_HTTP_TIMEOUT_SECONDS,
        ge=MIN_HTTP_TIMEOUT_SECONDS,
        le=MAX_HTTP_TIMEOUT_SECONDS,
    )
    jwks_cache_ttl_seconds: int = Field(default=JWKS_CACHE_TTL_SECONDS, ge=0)
    jwks_cache_max_age_seconds: int = Field(default=JWKS_CACHE_MAX_AGE_SECONDS, ge=0)
    log_level: Literal["DEBUG", "INFO"] = "INFO"
    log_dir: str | None = None

    @field_validator("root_encryption_key")
    @classmethod
    def _check_root_key(cls, value: str) -> str:
        try:
            raw = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("root_encryption_key must be base64") from e
        if len(raw) != SYMMETRIC_KEY_BYTES:
            raise ValueError(f"root_encryption_key must decode to {SYMMETRIC_KEY_BYTES} bytes")
        return value

    @model_validator(mode="after")
    def _check_cache_window(self) -> "AppConfig":
        if self.jwks_cache_ttl_seconds > self.jwks_cache_max_age_seconds:
            raise ValueError("jwks_cache_ttl_seconds cannot exceed jwks_cache_max_age_seconds")
        return self

    @property
    def root_key_bytes(self) -> bytes:
        """Decoded root encryption key."""
        return base64.b64decode(self.root_encryption_key)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AppConfig":
        """Build configuration from OIDC_AUTH_* environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            Validated AppConfig.

        Raises:
            ConfigurationError: If required variables are missing or invalid.
        """
        env = os.environ if environ is None else environ
        data = {
            field: env[f"{ENV_PREFIX}{suffix}"]
            for suffix, field in _ENV_FIELDS.items()
            if f"{ENV_PREFIX}{suffix}" in env
        }
        return cls._validate(data, source="environment")

    @classmethod
    def load_from_file(cls, path: Path) -> "AppConfig":
        """Load configuration from a JSON file.

        Args:
            path: Path to the JSON config file.

        Returns:
            Validated AppConfig.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid.
        """
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found at {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file {path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Could not read configuration file {path}: {e}") from e
        return cls._validate(data, source=str(path))

    @classmethod
    def _validate(cls, data: object, *, source: str) -> "AppConfig":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            errors = []
            for error in e.errors():
                loc = ".".join(str(part) for part in error["loc"]) or "config"
                errors.append(f"  {loc}: {error['msg']}")
            raise ConfigurationError(f"Invalid configuration ({source}):\n" + "\n".join(errors)) from e
