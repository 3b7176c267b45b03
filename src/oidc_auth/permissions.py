"""Organization permissions.

Permission sets are explicit, enumerable capability sets: frozensets of
(action, subject) pairs. Checks are pure functions over those sets.

The permission and license collaborators are consumed through the
PermissionService and LicenseService protocols. StaticPermissionService and
StaticLicenseService are table-driven implementations used by the default
API wiring and the tests.
"""

from __future__ import annotations

__all__ = [
    "ADMIN_ROLE",
    "BoundaryCheck",
    "LicenseService",
    "MEMBER_ROLE",
    "NO_ACCESS_ROLE",
    "OrgPermission",
    "OrgPermissionAction",
    "OrgPermissionSubject",
    "PermissionService",
    "PermissionSet",
    "ROLE_PERMISSIONS",
    "StaticLicenseService",
    "StaticPermissionService",
    "can_perform",
    "throw_unless_can",
    "validate_permission_boundary",
]

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from oidc_auth.exceptions import ForbiddenError, NotFoundError
from oidc_auth.models import ActorType, AuthMethod, Plan
from oidc_auth.store import Store


class OrgPermissionAction(str, Enum):
    READ = "read"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


class OrgPermissionSubject(str, Enum):
    IDENTITY = "identity"
    MEMBER = "member"
    ROLE = "role"
    SETTINGS = "settings"


Capability = tuple[OrgPermissionAction, OrgPermissionSubject]


@dataclass(frozen=True)
class PermissionSet:
    """Immutable set of capabilities."""

    capabilities: frozenset[Capability] = frozenset()

    @classmethod
    def of(cls, capabilities: Iterable[Capability]) -> "PermissionSet":
        return cls(frozenset(capabilities))

    @classmethod
    def everything(cls) -> "PermissionSet":
        return cls.of((action, subject) for action in OrgPermissionAction for subject in OrgPermissionSubject)

    def __contains__(self, capability: object) -> bool:
        return capability in self.capabilities

    def __iter__(self) -> Iterator[Capability]:
        return iter(self.capabilities)


@dataclass(frozen=True)
class OrgPermission:
    """Result of a permission lookup: the actor's capabilities and role in the org."""

    permission: PermissionSet
    role: str


@dataclass(frozen=True)
class BoundaryCheck:
    """Outcome of validate_permission_boundary.

    Attributes:
        is_valid: True if the caller holds every capability of the target.
        missing_permissions: Target capabilities the caller lacks, as
            sorted "action:subject" strings.
    """

    is_valid: bool
    missing_permissions: list[str] = field(default_factory=list)


def can_perform(permission_set: PermissionSet, action: OrgPermissionAction, subject: OrgPermissionSubject) -> bool:
    """Check whether a permission set grants action on subject."""
    return (action, subject) in permission_set


def throw_unless_can(
    permission_set: PermissionSet,
    action: OrgPermissionAction,
    subject: OrgPermissionSubject,
) -> None:
    """Raise ForbiddenError unless the permission set grants action on subject."""
    if not can_perform(permission_set, action, subject):
        raise ForbiddenError(
            f"You are not allowed to {action.value} on {subject.value}",
            action=action.value,
            subject=subject.value,
        )


def validate_permission_boundary(caller: PermissionSet, target: PermissionSet) -> BoundaryCheck:
    """Check that the caller is not less privileged than the target.

    Args:
        caller: Capabilities of the actor performing the operation.
        target: Capabilities of the identity being acted on.

    Returns:
        BoundaryCheck listing every target capability the caller lacks.
    """
    missing = sorted(
        f"{action.value}:{subject.value}" for action, subject in target.capabilities - caller.capabilities
    )
    return BoundaryCheck(is_valid=not missing, missing_permissions=missing)


# =============================================================================
# Collaborator protocols
# =============================================================================


class PermissionService(Protocol):
    """Resolves an actor's permissions inside an organization."""

    async def get_org_permission(
        self,
        actor_type: ActorType,
        actor_id: str,
        org_id: str,
        actor_auth_method: AuthMethod | None,
        actor_org_id: str,
    ) -> OrgPermission: ...


class LicenseService(Protocol):
    """Resolves an organization's plan entitlements."""

    async def get_plan(self, org_id: str) -> Plan: ...


# =============================================================================
# Table-driven implementations
# =============================================================================

ADMIN_ROLE = "admin"
MEMBER_ROLE = "member"
NO_ACCESS_ROLE = "no-access"

ROLE_PERMISSIONS: dict[str, PermissionSet] = {
    ADMIN_ROLE: PermissionSet.everything(),
    MEMBER_ROLE: PermissionSet.of(
        [
            (OrgPermissionAction.READ, OrgPermissionSubject.IDENTITY),
            (OrgPermissionAction.READ, OrgPermissionSubject.MEMBER),
            (OrgPermissionAction.READ, OrgPermissionSubject.ROLE),
        ]
    ),
    NO_ACCESS_ROLE: PermissionSet(),
}


class StaticPermissionService:
    """PermissionService backed by a role table.

    Identity actors get the role stored on their membership. Users and
    services get the role from user_roles, keyed by (org_id, actor_id).
    """

    def __init__(
        self,
        store: Store,
        *,
        roles: Mapping[str, PermissionSet] | None = None,
        user_roles: Mapping[tuple[str, str], str] | None = None,
    ) -> None:
        self._store = store
        self._roles = dict(ROLE_PERMISSIONS if roles is None else roles)
        self._user_roles = dict(user_roles or {})

    async def get_org_permission(
        self,
        actor_type: ActorType,
        actor_id: str,
        org_id: str,
        actor_auth_method: AuthMethod | None,
        actor_org_id: str,
    ) -> OrgPermission:
        if actor_org_id != org_id:
            raise ForbiddenError("Actor does not belong to the organization")

        if actor_type == ActorType.IDENTITY:
            membership = await self._store.memberships.find_one(identity_id=actor_id, org_id=org_id)
            if membership is None:
                raise NotFoundError(f"Identity with ID '{actor_id}' is not a member of organization '{org_id}'")
            role = membership.role
        else:
            role = self._user_roles.get((org_id, actor_id))
            if role is None:
                raise ForbiddenError(f"{actor_type.value.capitalize()} is not a member of the organization")

        return OrgPermission(permission=self._roles.get(role, PermissionSet()), role=role)


class StaticLicenseService:
    """LicenseService backed by a plan table. Unknown orgs get the default plan."""

    def __init__(self, plans: Mapping[str, Plan] | None = None, default: Plan | None = None) -> None:
        self._plans = plans if plans is not None else {}
        self._default = default or Plan()

    async def get_plan(self, org_id: str) -> Plan:
        return self._plans.get(org_id, self._default)
