from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from crm_core import audit
from crm_core.core.errors import ForbiddenError
from crm_core.metrics import observe_authz_denied
from crm_core.platform.security.identity import (
    CAPABILITY_RESOURCES,
    Capability,
    Identity,
    ResourceKind,
    Role,
)


logger = logging.getLogger("crm_core.security")


class Action(StrEnum):
    READ = "read"
    WRITE = "write"
    MANAGE = "manage"


class UserOperation(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DEACTIVATE = "deactivate"
    DELETE = "delete"


@dataclass(slots=True, frozen=True)
class Decision:
    allowed: bool
    reason: str = ""


ALLOW = Decision(allowed=True)


def _business_decision(identity: Identity, action: Action, resource_kind: ResourceKind) -> Decision:
    if identity.role in (Role.SUPER_ADMIN, Role.ADMIN):
        return ALLOW
    if action == Action.MANAGE:
        return Decision(False, f"Role {identity.role} cannot manage {resource_kind}")
    if identity.capabilities is None:
        return ALLOW
    granted = identity.capabilities.get(resource_kind, frozenset())
    if Capability(action.value) in granted:
        return ALLOW
    return Decision(False, f"Missing capability {resource_kind}:{action}")


def authorize(identity: Identity, action: Action, resource_kind: ResourceKind) -> Decision:
    """Role policy check, independent of which tenant the data belongs to."""

    if resource_kind in (ResourceKind.TENANTS, ResourceKind.SYSTEM):
        if identity.is_super_admin:
            return ALLOW
        return Decision(False, f"Only super admins may access {resource_kind}")

    if resource_kind == ResourceKind.USERS:
        if identity.is_admin:
            return ALLOW
        return Decision(False, "Only admins may manage users")

    if resource_kind in CAPABILITY_RESOURCES:
        return _business_decision(identity, action, resource_kind)

    return Decision(False, f"Unknown resource kind {resource_kind}")


def _deny(identity: Identity, action: str, resource: str, reason: str) -> None:
    observe_authz_denied(action=action, resource=resource)
    logger.warning(
        "authz.denied",
        extra={
            "user_id": identity.user_id,
            "action": action,
            "resource": resource,
            "reason": reason,
        },
    )
    audit.record(
        actor_user_id=identity.user_id,
        entity_type="security.authz",
        entity_id=resource,
        action="authz.denied",
        tenant_id=identity.tenant_id,
        after={"action": action, "resource": resource, "reason": reason, "role": str(identity.role)},
    )


def require(identity: Identity, action: Action, resource_kind: ResourceKind) -> None:
    decision = authorize(identity, action, resource_kind)
    if not decision.allowed:
        _deny(identity, str(action), str(resource_kind), decision.reason)
        raise ForbiddenError(decision.reason)


def ensure_tenant_match(identity: Identity, record_tenant_id: str | None, resource_kind: ResourceKind) -> None:
    """Second check after a scoped load: the record must sit in the caller's tenant."""

    if identity.is_super_admin:
        return
    if record_tenant_id is None or record_tenant_id != identity.tenant_id:
        reason = "Record belongs to another tenant"
        _deny(identity, "tenant_match", str(resource_kind), reason)
        raise ForbiddenError(reason)


def authorize_user_change(
    identity: Identity,
    operation: UserOperation,
    *,
    target_user_id: str | None = None,
    target_role: Role | None = None,
    new_role: Role | None = None,
) -> Decision:
    """Rules for creating, updating, deactivating and deleting user accounts."""

    if not identity.is_admin:
        return Decision(False, "Only admins may manage users")

    is_self = target_user_id is not None and target_user_id == identity.user_id
    if operation == UserOperation.DEACTIVATE and is_self:
        return Decision(False, "You cannot deactivate your own account")
    if operation == UserOperation.DELETE and is_self:
        return Decision(False, "You cannot delete your own account")

    if identity.is_super_admin:
        return ALLOW

    if new_role is not None and new_role != Role.USER:
        if operation == UserOperation.CREATE:
            return Decision(False, "Admins may only create USER accounts")
        return Decision(False, "Admins may not assign a role above USER")
    if target_role == Role.SUPER_ADMIN:
        return Decision(False, "Admins may not modify super admin accounts")
    if target_role == Role.ADMIN and not is_self:
        # Only a super admin demotes, deactivates or deletes another admin.
        if operation == UserOperation.DELETE:
            return Decision(False, "Admins may not delete other admins")
        if operation == UserOperation.DEACTIVATE:
            return Decision(False, "Admins may not deactivate other admins")
        if operation == UserOperation.UPDATE and new_role is not None and new_role != Role.ADMIN:
            return Decision(False, "Admins may not change another admin's role")
    return ALLOW


def require_user_change(
    identity: Identity,
    operation: UserOperation,
    *,
    target_user_id: str | None = None,
    target_role: Role | None = None,
    new_role: Role | None = None,
) -> None:
    decision = authorize_user_change(
        identity,
        operation,
        target_user_id=target_user_id,
        target_role=target_role,
        new_role=new_role,
    )
    if not decision.allowed:
        _deny(identity, f"user.{operation}", str(ResourceKind.USERS), decision.reason)
        raise ForbiddenError(decision.reason)
