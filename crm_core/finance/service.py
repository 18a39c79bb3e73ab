from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import ColumnElement
from sqlalchemy.orm import Session

from crm_core.business.models import Customer, Project, Service
from crm_core.core.errors import ConflictError, ValidationError
from crm_core.finance.aggregation import DateRange, grouped_from_group_totals, summary_from_group_totals
from crm_core.finance.models import CashFlowEntry, Invoice
from crm_core.finance.repository import CashFlowEntryRepository, InvoiceRepository
from crm_core.finance.schemas import (
    CashFlowAnalyticsRead,
    CashFlowEntryCreate,
    CashFlowEntryRead,
    CashFlowEntryUpdate,
    CashFlowListRead,
    InvoiceCreate,
    InvoiceRead,
    InvoiceUpdate,
    SummaryRead,
)
from crm_core.platform.security import (
    Action,
    Identity,
    ResourceKind,
    TenantScope,
    ensure_tenant_match,
    require,
    resolve_write_tenant,
    scope_filter,
)


logger = logging.getLogger("crm_core.finance")


@dataclass(slots=True)
class CashFlowFilters:
    type: str | None = None
    category: str | None = None
    status: str | None = None
    date_range: DateRange = field(default_factory=DateRange)

    def clauses(self) -> list[ColumnElement[bool]]:
        result: list[ColumnElement[bool]] = []
        if self.type:
            result.append(CashFlowEntry.type == self.type)
        if self.category:
            result.append(CashFlowEntry.category == self.category)
        if self.status:
            result.append(CashFlowEntry.status == self.status)
        result.extend(self.date_range.clauses(CashFlowEntry.transaction_date))
        return result


_LINKED_MODELS: dict[str, Any] = {
    "customer_id": Customer,
    "service_id": Service,
    "project_id": Project,
    "invoice_id": Invoice,
}


_NULLABLE_FIELDS = frozenset(
    {
        "subcategory",
        "payment_method",
        "bank_account",
        "reference_number",
        "notes",
        "customer_id",
        "service_id",
        "project_id",
        "invoice_id",
        "payment_date",
    }
)


def _changes(payload: Any) -> dict[str, Any]:
    """Fields the client set; explicit nulls only clear columns that accept them."""

    changes = payload.model_dump(exclude_unset=True)
    for key, value in changes.items():
        if value is None and key not in _NULLABLE_FIELDS:
            raise ValidationError(key, f"{key} cannot be null")
    return changes


def _validate_links(session: Session, tenant_id: str, payload: dict[str, Any]) -> None:
    """Linked records must exist inside the tenant the record is written to."""

    for field_name, model in _LINKED_MODELS.items():
        linked_id = payload.get(field_name)
        if linked_id is None:
            continue
        linked = session.get(model, linked_id)
        if linked is None or linked.tenant_id != tenant_id:
            raise ValidationError(field_name, f"{field_name} does not reference a record in this tenant")


@dataclass(slots=True)
class CashFlowService:
    repository: CashFlowEntryRepository = field(default_factory=CashFlowEntryRepository)

    def _scope(self, identity: Identity, action: Action) -> TenantScope:
        scope = scope_filter(identity)
        require(identity, action, ResourceKind.CASHFLOW)
        return scope

    def list_entries(
        self,
        session: Session,
        identity: Identity,
        filters: CashFlowFilters,
        *,
        page: int,
        limit: int,
    ) -> CashFlowListRead:
        scope = self._scope(identity, Action.READ)
        clauses = filters.clauses()
        entries = self.repository.find(
            session,
            scope,
            *clauses,
            order_by=(CashFlowEntry.transaction_date.desc(), CashFlowEntry.created_at.desc()),
            offset=(page - 1) * limit,
            limit=limit,
        )
        total = self.repository.count(session, scope, *clauses)
        rows = self.repository.group_sum(session, scope, [CashFlowEntry.type], CashFlowEntry.amount, *clauses)
        summary = summary_from_group_totals(rows)
        return CashFlowListRead(
            items=[CashFlowEntryRead.model_validate(entry) for entry in entries],
            page=page,
            limit=limit,
            total=total,
            pages=math.ceil(total / limit) if total else 0,
            summary=SummaryRead.from_summary(summary),
        )

    def analytics(self, session: Session, identity: Identity, filters: CashFlowFilters) -> CashFlowAnalyticsRead:
        scope = self._scope(identity, Action.READ)
        clauses = filters.clauses()
        summary = summary_from_group_totals(
            self.repository.group_sum(session, scope, [CashFlowEntry.type], CashFlowEntry.amount, *clauses)
        )
        by_category = grouped_from_group_totals(
            self.repository.group_sum(
                session, scope, [CashFlowEntry.category, CashFlowEntry.type], CashFlowEntry.amount, *clauses
            )
        )
        by_payment_method = grouped_from_group_totals(
            self.repository.group_sum(
                session,
                scope,
                [CashFlowEntry.payment_method, CashFlowEntry.type],
                CashFlowEntry.amount,
                *clauses,
                CashFlowEntry.payment_method.is_not(None),
            )
        )
        return CashFlowAnalyticsRead.build(summary, by_category, by_payment_method)

    def entries_for_export(self, session: Session, identity: Identity, filters: CashFlowFilters) -> list[CashFlowEntry]:
        scope = scope_filter(identity)
        require(identity, Action.READ, ResourceKind.CASHFLOW)
        require(identity, Action.READ, ResourceKind.REPORTS)
        return self.repository.find(
            session,
            scope,
            *filters.clauses(),
            order_by=(CashFlowEntry.transaction_date.desc(), CashFlowEntry.created_at.desc()),
        )

    def get_entry(self, session: Session, identity: Identity, entry_id: uuid.UUID) -> CashFlowEntryRead:
        scope = self._scope(identity, Action.READ)
        entry = self.repository.get(session, scope, entry_id)
        ensure_tenant_match(identity, entry.tenant_id, ResourceKind.CASHFLOW)
        return CashFlowEntryRead.model_validate(entry)

    def create_entry(self, session: Session, identity: Identity, payload: CashFlowEntryCreate) -> CashFlowEntryRead:
        self._scope(identity, Action.WRITE)
        tenant_id = resolve_write_tenant(session, identity, payload.act_as_tenant_id)
        values = payload.model_dump(exclude={"act_as_tenant_id"})
        _validate_links(session, tenant_id, values)

        entry = CashFlowEntry(**values, tenant_id=tenant_id, created_by=identity.user_id)
        self.repository.add(session, entry)
        session.commit()
        session.refresh(entry)
        logger.info(
            "cashflow.created",
            extra={"user_id": identity.user_id, "resource": str(entry.id), "action": "create"},
        )
        return CashFlowEntryRead.model_validate(entry)

    def update_entry(
        self,
        session: Session,
        identity: Identity,
        entry_id: uuid.UUID,
        payload: CashFlowEntryUpdate,
    ) -> CashFlowEntryRead:
        scope = self._scope(identity, Action.WRITE)
        entry = self.repository.get(session, scope, entry_id)
        ensure_tenant_match(identity, entry.tenant_id, ResourceKind.CASHFLOW)

        changes = _changes(payload)
        _validate_links(session, entry.tenant_id, changes)
        for key, value in changes.items():
            setattr(entry, key, value)

        session.add(entry)
        session.commit()
        session.refresh(entry)
        return CashFlowEntryRead.model_validate(entry)

    def delete_entry(self, session: Session, identity: Identity, entry_id: uuid.UUID) -> None:
        scope = self._scope(identity, Action.WRITE)
        entry = self.repository.get(session, scope, entry_id)
        ensure_tenant_match(identity, entry.tenant_id, ResourceKind.CASHFLOW)
        self.repository.delete(session, entry)
        session.commit()
        logger.info(
            "cashflow.deleted",
            extra={"user_id": identity.user_id, "resource": str(entry_id), "action": "delete"},
        )


@dataclass(slots=True)
class InvoiceService:
    repository: InvoiceRepository = field(default_factory=InvoiceRepository)

    def _scope(self, identity: Identity, action: Action) -> TenantScope:
        scope = scope_filter(identity)
        require(identity, action, ResourceKind.INVOICES)
        return scope

    def _ensure_unique_number(
        self,
        session: Session,
        tenant_id: str,
        invoice_number: str,
        *,
        exclude_id: uuid.UUID | None = None,
    ) -> None:
        clauses: list[ColumnElement[bool]] = [Invoice.invoice_number == invoice_number]
        if exclude_id is not None:
            clauses.append(Invoice.id != exclude_id)
        if self.repository.count(session, TenantScope(tenant_id=tenant_id), *clauses):
            raise ConflictError(f"Invoice number {invoice_number} already exists", details={"field": "invoice_number"})

    def list_invoices(
        self,
        session: Session,
        identity: Identity,
        *,
        status: str | None = None,
        customer_id: uuid.UUID | None = None,
        date_range: DateRange | None = None,
    ) -> list[InvoiceRead]:
        scope = self._scope(identity, Action.READ)
        clauses: list[ColumnElement[bool]] = []
        if status:
            clauses.append(Invoice.status == status)
        if customer_id is not None:
            clauses.append(Invoice.customer_id == customer_id)
        if date_range is not None:
            clauses.extend(date_range.clauses(Invoice.due_date))
        invoices = self.repository.find(
            session, scope, *clauses, order_by=(Invoice.due_date.desc(), Invoice.created_at.desc())
        )
        return [InvoiceRead.model_validate(invoice) for invoice in invoices]

    def get_invoice_record(self, session: Session, identity: Identity, invoice_id: uuid.UUID) -> Invoice:
        scope = self._scope(identity, Action.READ)
        invoice = self.repository.get(session, scope, invoice_id)
        ensure_tenant_match(identity, invoice.tenant_id, ResourceKind.INVOICES)
        return invoice

    def get_invoice(self, session: Session, identity: Identity, invoice_id: uuid.UUID) -> InvoiceRead:
        return InvoiceRead.model_validate(self.get_invoice_record(session, identity, invoice_id))

    def create_invoice(self, session: Session, identity: Identity, payload: InvoiceCreate) -> InvoiceRead:
        self._scope(identity, Action.WRITE)
        tenant_id = resolve_write_tenant(session, identity, payload.act_as_tenant_id)
        values = payload.model_dump(exclude={"act_as_tenant_id"})
        _validate_links(session, tenant_id, values)
        self._ensure_unique_number(session, tenant_id, payload.invoice_number)

        invoice = Invoice(**values, tenant_id=tenant_id)
        self.repository.add(session, invoice)
        session.commit()
        session.refresh(invoice)
        logger.info(
            "invoice.created",
            extra={"user_id": identity.user_id, "resource": str(invoice.id), "action": "create"},
        )
        return InvoiceRead.model_validate(invoice)

    def update_invoice(
        self,
        session: Session,
        identity: Identity,
        invoice_id: uuid.UUID,
        payload: InvoiceUpdate,
    ) -> InvoiceRead:
        scope = self._scope(identity, Action.WRITE)
        invoice = self.repository.get(session, scope, invoice_id)
        ensure_tenant_match(identity, invoice.tenant_id, ResourceKind.INVOICES)

        changes = _changes(payload)
        _validate_links(session, invoice.tenant_id, changes)
        if changes.get("invoice_number") and changes["invoice_number"] != invoice.invoice_number:
            self._ensure_unique_number(session, invoice.tenant_id, changes["invoice_number"], exclude_id=invoice.id)

        issue_date = changes.get("issue_date", invoice.issue_date)
        due_date = changes.get("due_date", invoice.due_date)
        if issue_date is not None and due_date is not None and due_date < issue_date:
            raise ValidationError("due_date", "due_date must not be before issue_date")

        for key, value in changes.items():
            setattr(invoice, key, value)

        session.add(invoice)
        session.commit()
        session.refresh(invoice)
        return InvoiceRead.model_validate(invoice)

    def delete_invoice(self, session: Session, identity: Identity, invoice_id: uuid.UUID) -> None:
        scope = self._scope(identity, Action.WRITE)
        invoice = self.repository.get(session, scope, invoice_id)
        ensure_tenant_match(identity, invoice.tenant_id, ResourceKind.INVOICES)
        self.repository.delete(session, invoice)
        session.commit()


cashflow_service = CashFlowService()
invoice_service = InvoiceService()
