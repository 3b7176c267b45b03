"""Pydantic models for auth audit events (audit/auth.jsonl).

The 'time' field is added by ISO8601Formatter at log time, not stored here.
"""

from __future__ import annotations

__all__ = [
    "AdminEvent",
    "LoginEvent",
]

from typing import Literal

from pydantic import BaseModel


class LoginEvent(BaseModel):
    """Outcome of one login attempt.

    reason is internal only: clients get a uniform access-denied message.
    """

    event_type: Literal["login_succeeded", "login_denied", "login_failed"]
    status: Literal["Success", "Failure"]
    identity_id: str
    org_id: str | None = None
    subject: str | None = None
    issuer: str | None = None
    access_token_id: str | None = None
    error_type: str | None = None
    reason: str | None = None


class AdminEvent(BaseModel):
    """Change to an identity's OIDC trust policy."""

    event_type: Literal["oidc_auth_attached", "oidc_auth_updated", "oidc_auth_revoked"]
    identity_id: str
    org_id: str
    actor_type: str
    actor_id: str
    revoked_tokens: int | None = None
