"""Authentication audit logger.

Logs login outcomes and trust policy changes as JSONL. Identifiers are hashed
before being written. Tokens, CA certificates and key material are never
logged.

Usage:
    auth_logger = create_auth_logger(Path("/var/log/oidc-auth/audit/auth.jsonl"))
    auth_logger.log_login_denied(identity_id=..., error=exc)
"""

from __future__ import annotations

__all__ = [
    "AuthLogger",
    "create_auth_logger",
]

import logging
import sys
from pathlib import Path

from oidc_auth.constants import APP_NAME
from oidc_auth.exceptions import OIDCAuthError
from oidc_auth.telemetry.events import AdminEvent, LoginEvent
from oidc_auth.telemetry.formatting import ISO8601Formatter, serialize_event
from oidc_auth.telemetry.system_logger import get_system_logger


class AuthLogger:
    """Audit logger for authentication events."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _emit(self, event: LoginEvent | AdminEvent, level: int = logging.INFO) -> None:
        self._logger.log(level, serialize_event(event))

    def log_login_succeeded(
        self,
        *,
        identity_id: str,
        org_id: str,
        subject: str | None,
        issuer: str | None,
        access_token_id: str,
    ) -> None:
        self._emit(
            LoginEvent(
                event_type="login_succeeded",
                status="Success",
                identity_id=identity_id,
                org_id=org_id,
                subject=subject,
                issuer=issuer,
                access_token_id=access_token_id,
            )
        )

    def log_login_denied(self, *, identity_id: str, error: OIDCAuthError, org_id: str | None = None) -> None:
        """Log a rejected login with the internal reason.

        Args:
            identity_id: Identity that attempted to log in.
            error: AccessDeniedError (or subclass) explaining the rejection.
            org_id: Organization, when it was resolved before the failure.
        """
        self._emit(
            LoginEvent(
                event_type="login_denied",
                status="Failure",
                identity_id=identity_id,
                org_id=org_id,
                error_type=type(error).__name__,
                reason=getattr(error, "reason", error.message),
            ),
            logging.WARNING,
        )

    def log_login_failed(self, *, identity_id: str, error: OIDCAuthError, org_id: str | None = None) -> None:
        """Log a login that failed for a non-policy reason (missing config, IdP down)."""
        self._emit(
            LoginEvent(
                event_type="login_failed",
                status="Failure",
                identity_id=identity_id,
                org_id=org_id,
                error_type=type(error).__name__,
                reason=error.message,
            ),
            logging.WARNING,
        )

    def log_admin_change(self, event: AdminEvent) -> None:
        self._emit(event)


def create_auth_logger(log_path: Path | None = None) -> AuthLogger:
    """Create the auth audit logger.

    Args:
        log_path: JSONL file for audit events. When None, events go to the
            system logger's handlers only.

    Returns:
        AuthLogger writing to the requested destination.
    """
    if log_path is None:
        return AuthLogger(get_system_logger())

    log_path.parent.mkdir(parents=True, exist_ok=True)
    if sys.platform != "win32":
        log_path.parent.chmod(0o700)

    logger = logging.getLogger(f"{APP_NAME}.audit.auth")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setFormatter(ISO8601Formatter())
    logger.addHandler(file_handler)

    return AuthLogger(logger)
