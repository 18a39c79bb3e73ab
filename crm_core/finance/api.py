from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from crm_core.core.auth import get_identity
from crm_core.core.config import get_settings
from crm_core.core.database import get_db
from crm_core.core.errors import ValidationError
from crm_core.finance.aggregation import DateRange
from crm_core.finance.schemas import (
    CashFlowAnalyticsRead,
    CashFlowEntryCreate,
    CashFlowEntryRead,
    CashFlowEntryUpdate,
    CashFlowListRead,
    EntryStatusValue,
    EntryTypeValue,
    InvoiceCreate,
    InvoiceRead,
    InvoiceStatusValue,
    InvoiceUpdate,
)
from crm_core.finance.service import CashFlowFilters, cashflow_service, invoice_service
from crm_core.platform.security import Identity


cashflow_router = APIRouter(prefix="/api/cashflow", tags=["finance.cashflow"])
invoices_router = APIRouter(prefix="/api/financial/invoices", tags=["finance.invoices"])


def date_range_params(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
) -> DateRange:
    if start_date is not None and end_date is not None and start_date > end_date:
        raise ValidationError("start_date", "start_date must not be after end_date")
    return DateRange(start=start_date, end=end_date)


def get_cashflow_filters(
    type_filter: EntryTypeValue | None = Query(default=None, alias="type"),
    category: str | None = Query(default=None),
    status_filter: EntryStatusValue | None = Query(default=None, alias="status"),
    date_range: DateRange = Depends(date_range_params),
) -> CashFlowFilters:
    return CashFlowFilters(type=type_filter, category=category, status=status_filter, date_range=date_range)


@cashflow_router.get("", response_model=CashFlowListRead)
def list_cashflow(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    filters: CashFlowFilters = Depends(get_cashflow_filters),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> CashFlowListRead:
    limit = min(limit, get_settings().pagination_max_limit)
    return cashflow_service.list_entries(db, identity, filters, page=page, limit=limit)


@cashflow_router.get("/analytics", response_model=CashFlowAnalyticsRead)
def cashflow_analytics(
    filters: CashFlowFilters = Depends(get_cashflow_filters),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> CashFlowAnalyticsRead:
    return cashflow_service.analytics(db, identity, filters)


@cashflow_router.post("", response_model=CashFlowEntryRead, status_code=status.HTTP_201_CREATED)
def create_cashflow_entry(
    payload: CashFlowEntryCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> CashFlowEntryRead:
    return cashflow_service.create_entry(db, identity, payload)


@cashflow_router.get("/{entry_id}", response_model=CashFlowEntryRead)
def get_cashflow_entry(
    entry_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> CashFlowEntryRead:
    return cashflow_service.get_entry(db, identity, entry_id)


@cashflow_router.put("/{entry_id}", response_model=CashFlowEntryRead)
def update_cashflow_entry(
    entry_id: uuid.UUID,
    payload: CashFlowEntryUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> CashFlowEntryRead:
    return cashflow_service.update_entry(db, identity, entry_id, payload)


@cashflow_router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_cashflow_entry(
    entry_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> Response:
    cashflow_service.delete_entry(db, identity, entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@invoices_router.get("", response_model=list[InvoiceRead])
def list_invoices(
    status_filter: InvoiceStatusValue | None = Query(default=None, alias="status"),
    customer_id: uuid.UUID | None = Query(default=None),
    date_range: DateRange = Depends(date_range_params),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> list[InvoiceRead]:
    return invoice_service.list_invoices(
        db,
        identity,
        status=status_filter,
        customer_id=customer_id,
        date_range=date_range,
    )


@invoices_router.post("", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: InvoiceCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> InvoiceRead:
    return invoice_service.create_invoice(db, identity, payload)


@invoices_router.get("/{invoice_id}", response_model=InvoiceRead)
def get_invoice(
    invoice_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> InvoiceRead:
    return invoice_service.get_invoice(db, identity, invoice_id)


@invoices_router.put("/{invoice_id}", response_model=InvoiceRead)
def update_invoice(
    invoice_id: uuid.UUID,
    payload: InvoiceUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> InvoiceRead:
    return invoice_service.update_invoice(db, identity, invoice_id, payload)


@invoices_router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> Response:
    invoice_service.delete_invoice(db, identity, invoice_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
