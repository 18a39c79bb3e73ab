from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crm_core.platform.security.identity import CapabilitySet, Role


EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def normalize_email(value: str | None) -> str | None:
    return value.strip().lower() if isinstance(value, str) else value


class TenantRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    domain: str | None
    plan: str
    active: bool
    created_at: datetime
    updated_at: datetime


class TenantListItem(TenantRead):
    user_count: int = 0
    customer_count: int = 0
    service_count: int = 0
    project_count: int = 0


class TenantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    domain: str | None = Field(default=None, max_length=255)
    plan: str = Field(default="Basic", min_length=1, max_length=64)
    admin_email: str = Field(pattern=EMAIL_PATTERN, max_length=320)
    admin_password: str = Field(min_length=8, max_length=128)
    admin_name: str = Field(min_length=1, max_length=255)

    @field_validator("admin_email", mode="before")
    @classmethod
    def _normalize_admin_email(cls, value: str | None) -> str | None:
        return normalize_email(value)


class TenantUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    domain: str | None = Field(default=None, max_length=255)
    plan: str | None = Field(default=None, min_length=1, max_length=64)
    active: bool | None = None


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    role: Role
    active: bool
    tenant_id: str | None
    permissions: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime


class TenantCreatedRead(BaseModel):
    tenant: TenantRead
    admin: UserRead


class UserCreate(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=320)
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=1, max_length=255)
    role: Role = Role.USER
    permissions: CapabilitySet | None = None
    act_as_tenant_id: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: str | None) -> str | None:
        return normalize_email(value)


class UserUpdate(BaseModel):
    email: str | None = Field(default=None, pattern=EMAIL_PATTERN, max_length=320)
    password: str | None = Field(default=None, min_length=8, max_length=128)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    role: Role | None = None
    permissions: CapabilitySet | None = None
    active: bool | None = None

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: str | None) -> str | None:
        return normalize_email(value)


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: str | None) -> str | None:
        return normalize_email(value)


class TokenRead(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead
