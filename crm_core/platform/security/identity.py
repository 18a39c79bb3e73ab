from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, RootModel, field_validator

from crm_core.core.errors import ValidationError


class Role(StrEnum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    USER = "USER"


class ResourceKind(StrEnum):
    CUSTOMERS = "customers"
    SERVICES = "services"
    PROJECTS = "projects"
    INVOICES = "invoices"
    CASHFLOW = "cashflow"
    EVENTS = "events"
    REPORTS = "reports"
    USERS = "users"
    TENANTS = "tenants"
    SYSTEM = "system"


# Resource kinds a per-user capability set may name.
CAPABILITY_RESOURCES = frozenset(
    {
        ResourceKind.CUSTOMERS,
        ResourceKind.SERVICES,
        ResourceKind.PROJECTS,
        ResourceKind.INVOICES,
        ResourceKind.CASHFLOW,
        ResourceKind.EVENTS,
        ResourceKind.REPORTS,
    }
)


class Capability(StrEnum):
    READ = "read"
    WRITE = "write"


class CapabilitySet(RootModel[dict[ResourceKind, set[Capability]]]):
    """Per-user ``{resource_kind: {"read", "write"}}`` flags."""

    @field_validator("root")
    @classmethod
    def _only_business_resources(cls, value: dict[ResourceKind, set[Capability]]) -> dict[ResourceKind, set[Capability]]:
        unknown = sorted(str(kind) for kind in value if kind not in CAPABILITY_RESOURCES)
        if unknown:
            raise ValueError(f"unsupported resource kinds: {', '.join(unknown)}")
        return value

    def to_storage(self) -> dict[str, list[str]]:
        return {str(kind): sorted(str(cap) for cap in caps) for kind, caps in self.root.items()}


def parse_capabilities(raw: Any) -> dict[ResourceKind, frozenset[Capability]] | None:
    """Validate a raw capability mapping; ``None`` means no restrictions configured."""

    if raw is None:
        return None
    if isinstance(raw, CapabilitySet):
        validated = raw
    else:
        try:
            validated = CapabilitySet.model_validate(raw)
        except ValueError as exc:
            raise ValidationError("permissions", f"Invalid capability set: {exc}") from exc
    return {kind: frozenset(caps) for kind, caps in validated.root.items()}


@dataclass(slots=True, frozen=True)
class Identity:
    """Authenticated caller. ``tenant_id`` is ``None`` only for super admins."""

    user_id: str
    role: Role
    tenant_id: str | None = None
    capabilities: dict[ResourceKind, frozenset[Capability]] | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.SUPER_ADMIN)


class IdentityClaims(BaseModel):
    sub: str
    role: Role
    tenant_id: str | None = None
    permissions: dict[str, list[str]] | None = None

    @field_validator("sub")
    @classmethod
    def _non_empty_subject(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("sub must not be empty")
        return value
