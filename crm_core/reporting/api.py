from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from crm_core.core.auth import get_identity
from crm_core.core.database import get_db
from crm_core.finance.aggregation import DateRange
from crm_core.finance.api import date_range_params, get_cashflow_filters
from crm_core.finance.service import CashFlowFilters
from crm_core.platform.security import Identity
from crm_core.reporting.schemas import DashboardRead, FinancialReportRead, ProjectsReportRead, SalesReportRead
from crm_core.reporting.service import reporting_service
from crm_core.reporting.types import RenderedReport, ReportFormat


exports_router = APIRouter(prefix="/api/cashflow/export", tags=["reporting.exports"])
invoice_documents_router = APIRouter(prefix="/api/financial/invoices", tags=["reporting.exports"])
reports_router = APIRouter(prefix="/api/reports", tags=["reporting"])


def _download(report: RenderedReport) -> Response:
    return Response(
        content=report.content,
        media_type=report.media_type,
        headers={"Content-Disposition": report.content_disposition},
    )


@exports_router.get("/csv")
def export_cashflow_csv(
    filters: CashFlowFilters = Depends(get_cashflow_filters),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> Response:
    return _download(reporting_service.export_cashflow(db, identity, filters, ReportFormat.CSV))


@exports_router.get("/pdf")
def export_cashflow_pdf(
    filters: CashFlowFilters = Depends(get_cashflow_filters),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> Response:
    return _download(reporting_service.export_cashflow(db, identity, filters, ReportFormat.PDF))


@invoice_documents_router.get("/{invoice_id}/pdf")
def invoice_pdf(
    invoice_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> Response:
    return _download(reporting_service.invoice_document(db, identity, invoice_id))


@reports_router.get("/dashboard", response_model=DashboardRead)
def dashboard(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> DashboardRead:
    return reporting_service.dashboard(db, identity)


@reports_router.get("/financial", response_model=FinancialReportRead)
def financial_report(
    date_range: DateRange = Depends(date_range_params),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> FinancialReportRead:
    return reporting_service.financial_report(db, identity, date_range)


@reports_router.get("/sales", response_model=SalesReportRead)
def sales_report(
    date_range: DateRange = Depends(date_range_params),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> SalesReportRead:
    return reporting_service.sales_report(db, identity, date_range)


@reports_router.get("/projects", response_model=ProjectsReportRead)
def projects_report(
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_identity),
) -> ProjectsReportRead:
    return reporting_service.projects_report(db, identity)
