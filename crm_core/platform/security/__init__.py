from crm_core.platform.security.guard import (
    Action,
    Decision,
    UserOperation,
    authorize,
    authorize_user_change,
    ensure_tenant_match,
    require,
    require_user_change,
)
from crm_core.platform.security.identity import Capability, CapabilitySet, Identity, ResourceKind, Role
from crm_core.platform.security.repository import TenantScopedRepository, resolve_write_tenant
from crm_core.platform.security.scope import TenantScope, scope_filter

__all__ = [
    "Action",
    "Capability",
    "CapabilitySet",
    "Decision",
    "Identity",
    "ResourceKind",
    "Role",
    "TenantScope",
    "TenantScopedRepository",
    "UserOperation",
    "authorize",
    "authorize_user_change",
    "ensure_tenant_match",
    "require",
    "require_user_change",
    "resolve_write_tenant",
    "scope_filter",
]
