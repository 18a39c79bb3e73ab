from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from crm_core.core.auth import get_identity
from crm_core.core.database import get_db
from crm_core.platform.security import Identity, Role
from crm_core.tenancy.schemas import (
    LoginRequest,
    TenantCreate,
    TenantCreatedRead,
    TenantListItem,
    TenantRead,
    TenantUpdate,
    TokenRead,
    UserCreate,
    UserRead,
    UserUpdate,
)
from crm_core.tenancy.service import tenant_service, user_service


auth_router = APIRouter(prefix="/api/auth", tags=["auth"])
tenants_router = APIRouter(prefix="/api/admin/tenants", tags=["tenancy.tenants"])
users_router = APIRouter(prefix="/api/users", tags=["tenancy.users"])


@auth_router.post("/login", response_model=TokenRead)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> TokenRead:
    return user_service.authenticate(db, payload)


@tenants_router.get("", response_model=list[TenantListItem])
def list_tenants(
    search: str | None = Query(default=None, max_length=255),
    active: bool | None = Query(default=None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> list[TenantListItem]:
    return tenant_service.list_tenants(db, identity, search=search, active=active)


@tenants_router.post("", response_model=TenantCreatedRead, status_code=status.HTTP_201_CREATED)
def create_tenant(
    payload: TenantCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> TenantCreatedRead:
    return tenant_service.create_tenant(db, identity, payload)


@tenants_router.get("/{tenant_id}", response_model=TenantRead)
def get_tenant(
    tenant_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> TenantRead:
    return tenant_service.get_tenant(db, identity, tenant_id)


@tenants_router.put("/{tenant_id}", response_model=TenantRead)
def update_tenant(
    tenant_id: str,
    payload: TenantUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> TenantRead:
    return tenant_service.update_tenant(db, identity, tenant_id, payload)


@tenants_router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tenant(
    tenant_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> Response:
    tenant_service.delete_tenant(db, identity, tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@tenants_router.get("/{tenant_id}/users", response_model=list[UserRead])
def list_tenant_users(
    tenant_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> list[UserRead]:
    return tenant_service.list_tenant_users(db, identity, tenant_id)


@users_router.get("", response_model=list[UserRead])
def list_users(
    search: str | None = Query(default=None, max_length=255),
    role: Role | None = Query(default=None),
    active: bool | None = Query(default=None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> list[UserRead]:
    return user_service.list_users(db, identity, search=search, role=role, active=active)


@users_router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> UserRead:
    return user_service.create_user(db, identity, payload)


@users_router.get("/{user_id}", response_model=UserRead)
def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> UserRead:
    return user_service.get_user(db, identity, user_id)


@users_router.put("/{user_id}", response_model=UserRead)
def update_user(
    user_id: str,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> UserRead:
    return user_service.update_user(db, identity, user_id, payload)


@users_router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> Response:
    user_service.delete_user(db, identity, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
