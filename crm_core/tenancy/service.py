from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import ColumnElement, func, or_, select
from sqlalchemy.orm import Session

from crm_core import audit
from crm_core.business.models import Customer, Project, Service
from crm_core.core.auth import create_access_token
from crm_core.core.errors import ConflictError, ForbiddenError, NotFoundError, UnauthenticatedError, ValidationError
from crm_core.platform.security import (
    Action,
    Identity,
    ResourceKind,
    Role,
    TenantScope,
    UserOperation,
    ensure_tenant_match,
    require,
    require_user_change,
    resolve_write_tenant,
    scope_filter,
)
from crm_core.tenancy.models import Tenant, User
from crm_core.tenancy.passwords import hash_password, verify_password
from crm_core.tenancy.repository import UserRepository
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


logger = logging.getLogger("crm_core.tenancy")


def _snapshot(record: Tenant | User, fields: tuple[str, ...]) -> dict[str, Any]:
    return {name: getattr(record, name) for name in fields}


_TENANT_AUDIT_FIELDS = ("name", "domain", "plan", "active")
_USER_AUDIT_FIELDS = ("email", "name", "role", "active", "tenant_id", "permissions")


def _ensure_unique_email(session: Session, email: str, *, exclude_id: str | None = None) -> None:
    stmt = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    if session.scalar(stmt) is not None:
        raise ConflictError(f"Email {email} is already registered", details={"field": "email"})


def _ensure_unique_domain(session: Session, domain: str | None, *, exclude_id: str | None = None) -> None:
    if not domain:
        return
    stmt = select(Tenant.id).where(Tenant.domain == domain)
    if exclude_id is not None:
        stmt = stmt.where(Tenant.id != exclude_id)
    if session.scalar(stmt) is not None:
        raise ConflictError(f"Domain {domain} is already in use", details={"field": "domain"})


@dataclass(slots=True)
class TenantService:
    """Tenant management; every operation is reserved to super admins."""

    def _get(self, session: Session, tenant_id: str) -> Tenant:
        tenant = session.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant")
        return tenant

    @staticmethod
    def _record_counts(session: Session, model: Any, tenant_ids: list[str]) -> dict[str, int]:
        if not tenant_ids:
            return {}
        rows = session.execute(
            select(model.tenant_id, func.count()).where(model.tenant_id.in_(tenant_ids)).group_by(model.tenant_id)
        ).all()
        return {tenant_id: int(count) for tenant_id, count in rows}

    def list_tenants(
        self,
        session: Session,
        identity: Identity,
        *,
        search: str | None = None,
        active: bool | None = None,
    ) -> list[TenantListItem]:
        require(identity, Action.MANAGE, ResourceKind.TENANTS)
        stmt = select(Tenant)
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(Tenant.name.ilike(pattern), Tenant.domain.ilike(pattern)))
        if active is not None:
            stmt = stmt.where(Tenant.active == active)
        tenants = list(session.scalars(stmt.order_by(Tenant.created_at.desc(), Tenant.name)).all())

        ids = [tenant.id for tenant in tenants]
        users = self._record_counts(session, User, ids)
        customers = self._record_counts(session, Customer, ids)
        services = self._record_counts(session, Service, ids)
        projects = self._record_counts(session, Project, ids)
        return [
            TenantListItem(
                **TenantRead.model_validate(tenant).model_dump(),
                user_count=users.get(tenant.id, 0),
                customer_count=customers.get(tenant.id, 0),
                service_count=services.get(tenant.id, 0),
                project_count=projects.get(tenant.id, 0),
            )
            for tenant in tenants
        ]

    def get_tenant(self, session: Session, identity: Identity, tenant_id: str) -> TenantRead:
        require(identity, Action.READ, ResourceKind.TENANTS)
        return TenantRead.model_validate(self._get(session, tenant_id))

    def create_tenant(self, session: Session, identity: Identity, payload: TenantCreate) -> TenantCreatedRead:
        """Create a tenant together with its first ADMIN account in one transaction."""

        require(identity, Action.MANAGE, ResourceKind.TENANTS)
        _ensure_unique_domain(session, payload.domain)
        _ensure_unique_email(session, payload.admin_email)

        tenant = Tenant(name=payload.name, domain=payload.domain or None, plan=payload.plan, active=True)
        session.add(tenant)
        session.flush()

        admin = User(
            email=payload.admin_email,
            name=payload.admin_name,
            password_hash=hash_password(payload.admin_password),
            role=Role.ADMIN.value,
            active=True,
            tenant_id=tenant.id,
        )
        session.add(admin)
        session.commit()
        session.refresh(tenant)
        session.refresh(admin)

        audit.record(
            actor_user_id=identity.user_id,
            entity_type="tenant",
            entity_id=tenant.id,
            action="tenant.created",
            tenant_id=tenant.id,
            after={**_snapshot(tenant, _TENANT_AUDIT_FIELDS), "admin_user_id": admin.id},
        )
        logger.info(
            "tenant.created",
            extra={"user_id": identity.user_id, "resource": tenant.id, "action": "create"},
        )
        return TenantCreatedRead(tenant=TenantRead.model_validate(tenant), admin=UserRead.model_validate(admin))

    def update_tenant(
        self,
        session: Session,
        identity: Identity,
        tenant_id: str,
        payload: TenantUpdate,
    ) -> TenantRead:
        require(identity, Action.MANAGE, ResourceKind.TENANTS)
        tenant = self._get(session, tenant_id)
        changes = payload.model_dump(exclude_unset=True)
        for key in ("name", "plan", "active"):
            if key in changes and changes[key] is None:
                raise ValidationError(key, f"{key} cannot be null")
        if "domain" in changes:
            changes["domain"] = changes["domain"] or None
            _ensure_unique_domain(session, changes["domain"], exclude_id=tenant.id)

        before = _snapshot(tenant, _TENANT_AUDIT_FIELDS)
        for key, value in changes.items():
            setattr(tenant, key, value)
        session.add(tenant)
        session.commit()
        session.refresh(tenant)

        audit.record(
            actor_user_id=identity.user_id,
            entity_type="tenant",
            entity_id=tenant.id,
            action="tenant.updated",
            tenant_id=tenant.id,
            before=before,
            after=_snapshot(tenant, _TENANT_AUDIT_FIELDS),
        )
        return TenantRead.model_validate(tenant)

    def delete_tenant(self, session: Session, identity: Identity, tenant_id: str) -> None:
        """Delete an empty tenant; tenants still holding customers or services are kept."""

        require(identity, Action.MANAGE, ResourceKind.TENANTS)
        tenant = self._get(session, tenant_id)
        scope = TenantScope(tenant_id=tenant.id)
        customers = int(session.scalar(select(func.count()).select_from(Customer).where(scope.clause(Customer))) or 0)
        services = int(session.scalar(select(func.count()).select_from(Service).where(scope.clause(Service))) or 0)
        if customers or services:
            raise ConflictError(
                "Tenant still has customers or services",
                details={"customers": customers, "services": services},
            )

        before = _snapshot(tenant, _TENANT_AUDIT_FIELDS)
        for user in session.scalars(select(User).where(User.tenant_id == tenant.id)).all():
            session.delete(user)
        session.delete(tenant)
        session.commit()

        audit.record(
            actor_user_id=identity.user_id,
            entity_type="tenant",
            entity_id=tenant_id,
            action="tenant.deleted",
            tenant_id=tenant_id,
            before=before,
        )
        logger.info(
            "tenant.deleted",
            extra={"user_id": identity.user_id, "resource": tenant_id, "action": "delete"},
        )

    def list_tenant_users(self, session: Session, identity: Identity, tenant_id: str) -> list[UserRead]:
        require(identity, Action.READ, ResourceKind.TENANTS)
        self._get(session, tenant_id)
        users = session.scalars(select(User).where(User.tenant_id == tenant_id).order_by(User.name)).all()
        return [UserRead.model_validate(user) for user in users]


@dataclass(slots=True)
class UserService:
    repository: UserRepository = field(default_factory=UserRepository)

    def _scope(self, identity: Identity, action: Action) -> TenantScope:
        scope = scope_filter(identity)
        require(identity, action, ResourceKind.USERS)
        return scope

    def _load(self, session: Session, identity: Identity, scope: TenantScope, user_id: str) -> User:
        user = self.repository.get(session, scope, user_id)
        ensure_tenant_match(identity, user.tenant_id, ResourceKind.USERS)
        return user

    def list_users(
        self,
        session: Session,
        identity: Identity,
        *,
        search: str | None = None,
        role: Role | None = None,
        active: bool | None = None,
    ) -> list[UserRead]:
        scope = self._scope(identity, Action.READ)
        clauses: list[ColumnElement[bool]] = []
        if search:
            pattern = f"%{search.strip()}%"
            clauses.append(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
        if role is not None:
            clauses.append(User.role == role.value)
        if active is not None:
            clauses.append(User.active == active)
        users = self.repository.find(session, scope, *clauses, order_by=(User.created_at.desc(), User.name))
        return [UserRead.model_validate(user) for user in users]

    def get_user(self, session: Session, identity: Identity, user_id: str) -> UserRead:
        scope = self._scope(identity, Action.READ)
        return UserRead.model_validate(self._load(session, identity, scope, user_id))

    def create_user(self, session: Session, identity: Identity, payload: UserCreate) -> UserRead:
        self._scope(identity, Action.MANAGE)
        require_user_change(identity, UserOperation.CREATE, new_role=payload.role)

        if payload.role == Role.SUPER_ADMIN:
            tenant_id: str | None = None
        else:
            tenant_id = resolve_write_tenant(session, identity, payload.act_as_tenant_id)
        _ensure_unique_email(session, payload.email)

        user = User(
            email=payload.email,
            name=payload.name,
            password_hash=hash_password(payload.password),
            role=payload.role.value,
            active=True,
            tenant_id=tenant_id,
            permissions=payload.permissions.to_storage() if payload.permissions is not None else None,
        )
        self.repository.add(session, user)
        session.commit()
        session.refresh(user)

        audit.record(
            actor_user_id=identity.user_id,
            entity_type="user",
            entity_id=user.id,
            action="user.created",
            tenant_id=user.tenant_id,
            after=_snapshot(user, _USER_AUDIT_FIELDS),
        )
        logger.info(
            "user.created",
            extra={"user_id": identity.user_id, "resource": user.id, "action": "create"},
        )
        return UserRead.model_validate(user)

    def update_user(self, session: Session, identity: Identity, user_id: str, payload: UserUpdate) -> UserRead:
        scope = self._scope(identity, Action.MANAGE)
        user = self._load(session, identity, scope, user_id)
        changes = payload.model_dump(exclude_unset=True)
        for key in ("email", "password", "name", "role", "active"):
            if key in changes and changes[key] is None:
                raise ValidationError(key, f"{key} cannot be null")

        target_role = Role(user.role)
        new_role = payload.role if "role" in changes else None
        require_user_change(
            identity,
            UserOperation.UPDATE,
            target_user_id=user.id,
            target_role=target_role,
            new_role=new_role,
        )
        if changes.get("active") is False and user.active:
            require_user_change(
                identity,
                UserOperation.DEACTIVATE,
                target_user_id=user.id,
                target_role=target_role,
            )
        if new_role is not None and new_role != Role.SUPER_ADMIN and user.tenant_id is None:
            raise ValidationError("role", "A user without a tenant can only hold the SUPER_ADMIN role")

        before = _snapshot(user, _USER_AUDIT_FIELDS)
        if "email" in changes and changes["email"] != user.email:
            _ensure_unique_email(session, changes["email"], exclude_id=user.id)
            user.email = changes["email"]
        if "password" in changes:
            user.password_hash = hash_password(changes["password"])
        if "name" in changes:
            user.name = changes["name"]
        if new_role is not None:
            user.role = new_role.value
            if new_role == Role.SUPER_ADMIN:
                user.tenant_id = None
        if "active" in changes:
            user.active = changes["active"]
        if "permissions" in changes:
            user.permissions = payload.permissions.to_storage() if payload.permissions is not None else None

        session.add(user)
        session.commit()
        session.refresh(user)

        audit.record(
            actor_user_id=identity.user_id,
            entity_type="user",
            entity_id=user.id,
            action="user.updated",
            tenant_id=user.tenant_id,
            before=before,
            after=_snapshot(user, _USER_AUDIT_FIELDS),
        )
        return UserRead.model_validate(user)

    def delete_user(self, session: Session, identity: Identity, user_id: str) -> None:
        scope = self._scope(identity, Action.MANAGE)
        user = self._load(session, identity, scope, user_id)
        require_user_change(
            identity,
            UserOperation.DELETE,
            target_user_id=user.id,
            target_role=Role(user.role),
        )

        before = _snapshot(user, _USER_AUDIT_FIELDS)
        self.repository.delete(session, user)
        session.commit()

        audit.record(
            actor_user_id=identity.user_id,
            entity_type="user",
            entity_id=user_id,
            action="user.deleted",
            tenant_id=before["tenant_id"],
            before=before,
        )
        logger.info(
            "user.deleted",
            extra={"user_id": identity.user_id, "resource": user_id, "action": "delete"},
        )

    def authenticate(self, session: Session, payload: LoginRequest) -> TokenRead:
        """Exchange email and password for a bearer token."""

        user = session.scalars(select(User).where(func.lower(User.email) == payload.email)).first()
        if user is None or not verify_password(user.password_hash, payload.password):
            logger.warning("auth.login_failed", extra={"reason": "invalid_credentials"})
            raise UnauthenticatedError("Invalid email or password")
        if not user.active:
            logger.warning("auth.login_failed", extra={"user_id": user.id, "reason": "user_inactive"})
            raise ForbiddenError("This account is deactivated")

        role = Role(user.role)
        if role != Role.SUPER_ADMIN:
            tenant = session.get(Tenant, user.tenant_id) if user.tenant_id else None
            if tenant is None:
                raise ForbiddenError("No tenant associated with this identity")
            if not tenant.active:
                logger.warning("auth.login_failed", extra={"user_id": user.id, "reason": "tenant_inactive"})
                raise ForbiddenError("This organization is deactivated")

        token = create_access_token(user.id, role, user.tenant_id, user.permissions)
        logger.info("auth.login", extra={"user_id": user.id, "tenant_id": user.tenant_id})
        return TokenRead(access_token=token, user=UserRead.model_validate(user))


tenant_service = TenantService()
user_service = UserService()
