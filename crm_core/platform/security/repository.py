from __future__ import annotations

from typing import Any, Generic, Sequence, TypeVar

from sqlalchemy import ColumnElement, Select, func, select
from sqlalchemy.orm import Session

from crm_core.core.errors import ForbiddenError, NotFoundError, ValidationError
from crm_core.platform.security.identity import Identity
from crm_core.platform.security.scope import TenantScope
from crm_core.tenancy.models import Tenant


ModelT = TypeVar("ModelT")


class TenantScopedRepository(Generic[ModelT]):
    """Storage access that ANDs the caller's tenant predicate into every query."""

    model: type[ModelT]
    resource = ""

    def apply_scope_query(self, query: Select[Any], scope: TenantScope) -> Select[Any]:
        return query.where(scope.clause(self.model))

    def find(
        self,
        session: Session,
        scope: TenantScope,
        *filters: ColumnElement[bool],
        order_by: Sequence[Any] = (),
        offset: int | None = None,
        limit: int | None = None,
    ) -> list[ModelT]:
        stmt = self.apply_scope_query(select(self.model), scope)
        if filters:
            stmt = stmt.where(*filters)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(session.scalars(stmt).all())

    def count(self, session: Session, scope: TenantScope, *filters: ColumnElement[bool]) -> int:
        stmt = self.apply_scope_query(select(func.count()).select_from(self.model), scope)
        if filters:
            stmt = stmt.where(*filters)
        return int(session.scalar(stmt) or 0)

    def group_sum(
        self,
        session: Session,
        scope: TenantScope,
        group_columns: Sequence[Any],
        sum_column: Any,
        *filters: ColumnElement[bool],
    ) -> list[tuple[Any, ...]]:
        stmt = self.apply_scope_query(
            select(*group_columns, func.coalesce(func.sum(sum_column), 0)).select_from(self.model),
            scope,
        )
        if filters:
            stmt = stmt.where(*filters)
        stmt = stmt.group_by(*group_columns)
        return [tuple(row) for row in session.execute(stmt).all()]

    def get(self, session: Session, scope: TenantScope, record_id: Any) -> ModelT:
        stmt = self.apply_scope_query(select(self.model), scope).where(self.model.id == record_id)  # type: ignore[attr-defined]
        record = session.scalars(stmt).first()
        if record is None:
            raise NotFoundError(self.resource or self.model.__name__)
        return record

    def add(self, session: Session, record: ModelT) -> ModelT:
        session.add(record)
        session.flush()
        return record

    def delete(self, session: Session, record: ModelT) -> None:
        session.delete(record)
        session.flush()


def resolve_write_tenant(session: Session, identity: Identity, act_as_tenant_id: str | None) -> str:
    """Tenant a newly created record is assigned to.

    Super admins must name an existing tenant explicitly. Other roles always
    write into their own tenant and may not point at any other one.
    """

    if identity.is_super_admin:
        if not act_as_tenant_id:
            raise ValidationError("act_as_tenant_id", "Super admins must choose a target tenant")
        if session.get(Tenant, act_as_tenant_id) is None:
            raise ValidationError("act_as_tenant_id", "Target tenant does not exist")
        return act_as_tenant_id
    if not identity.tenant_id:
        raise ForbiddenError("No tenant associated with this identity")
    if act_as_tenant_id and act_as_tenant_id != identity.tenant_id:
        raise ForbiddenError("Cannot create records in another tenant")
    return identity.tenant_id
