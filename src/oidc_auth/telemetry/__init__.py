"""Operational and audit logging."""

from oidc_auth.telemetry.auth_logger import AuthLogger, create_auth_logger
from oidc_auth.telemetry.system_logger import configure_system_logger_file, get_system_logger

__all__ = [
    "AuthLogger",
    "configure_system_logger_file",
    "create_auth_logger",
    "get_system_logger",
]
