from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import ColumnElement, true

from crm_core import audit
from crm_core.core.errors import ForbiddenError
from crm_core.metrics import observe_scope_fail_closed
from crm_core.platform.security.identity import Identity


logger = logging.getLogger("crm_core.security")


@dataclass(slots=True, frozen=True)
class TenantScope:
    """Row predicate for a caller: universal, or pinned to a single tenant."""

    tenant_id: str | None
    universal: bool = False

    def clause(self, model: Any) -> ColumnElement[bool]:
        if self.universal:
            return true()
        return model.tenant_id == self.tenant_id

    def matches(self, tenant_id: str | None) -> bool:
        if self.universal:
            return True
        return tenant_id is not None and tenant_id == self.tenant_id


def scope_filter(identity: Identity) -> TenantScope:
    """Turn an identity into the tenant predicate every storage call must carry.

    Super admins get the universal scope. Everyone else is pinned to their own
    tenant; an identity with no tenant is rejected rather than widened or
    narrowed to an empty result.
    """

    if identity.is_super_admin:
        return TenantScope(tenant_id=None, universal=True)
    if not identity.tenant_id:
        observe_scope_fail_closed()
        logger.warning(
            "scope.fail_closed",
            extra={"user_id": identity.user_id, "reason": "missing_tenant"},
        )
        audit.record(
            actor_user_id=identity.user_id,
            entity_type="security.scope",
            entity_id="tenant",
            action="scope.fail_closed",
            tenant_id=None,
            after={"role": str(identity.role)},
        )
        raise ForbiddenError("No tenant associated with this identity")
    return TenantScope(tenant_id=identity.tenant_id)
