from __future__ import annotations

from crm_core.platform.security.repository import TenantScopedRepository
from crm_core.tenancy.models import User


class UserRepository(TenantScopedRepository[User]):
    model = User
    resource = "User"
