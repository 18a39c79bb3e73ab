from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import ColumnElement
from sqlalchemy.orm import Session

from crm_core import audit
from crm_core.business.models import Customer, Event, Project, Service
from crm_core.business.repository import CustomerRepository, EventRepository, ProjectRepository, ServiceRepository
from crm_core.core.config import get_settings
from crm_core.finance.aggregation import DateRange, InvoiceStatus, aggregate, revenue_total
from crm_core.finance.models import Invoice
from crm_core.finance.repository import InvoiceRepository
from crm_core.finance.schemas import InvoiceRead
from crm_core.finance.service import CashFlowFilters, CashFlowService, InvoiceService, cashflow_service, invoice_service
from crm_core.platform.security import Action, Identity, ResourceKind, require, scope_filter
from crm_core.reporting.invoice_pdf import InvoiceDocument, invoice_filename, render_invoice_pdf
from crm_core.reporting.renderer import render
from crm_core.reporting.schemas import (
    DashboardRead,
    FinancialReportRead,
    ProjectsReportRead,
    ProjectSummary,
    SalesReportRead,
    ServiceSummary,
)
from crm_core.reporting.types import MEDIA_TYPES, RenderedReport, ReportContext, ReportFormat
from crm_core.tenancy.models import Tenant


logger = logging.getLogger("crm_core.reporting")


def _created_between(column: Any, date_range: DateRange) -> list[ColumnElement[bool]]:
    """Date bounds applied to a timestamp column; the end day is included whole."""

    result: list[ColumnElement[bool]] = []
    if date_range.start is not None:
        result.append(column >= datetime.combine(date_range.start, time.min, tzinfo=timezone.utc))
    if date_range.end is not None:
        result.append(column < datetime.combine(date_range.end + timedelta(days=1), time.min, tzinfo=timezone.utc))
    return result


@dataclass(slots=True)
class ReportingService:
    cashflow: CashFlowService = field(default_factory=lambda: cashflow_service)
    invoices: InvoiceService = field(default_factory=lambda: invoice_service)
    customer_repository: CustomerRepository = field(default_factory=CustomerRepository)
    service_repository: ServiceRepository = field(default_factory=ServiceRepository)
    project_repository: ProjectRepository = field(default_factory=ProjectRepository)
    event_repository: EventRepository = field(default_factory=EventRepository)
    invoice_repository: InvoiceRepository = field(default_factory=InvoiceRepository)

    @staticmethod
    def _tenant_name(session: Session, tenant_id: str | None) -> str:
        if tenant_id is None:
            return "All tenants"
        tenant = session.get(Tenant, tenant_id)
        return tenant.name if tenant is not None else ""

    def export_cashflow(
        self,
        session: Session,
        identity: Identity,
        filters: CashFlowFilters,
        fmt: ReportFormat,
    ) -> RenderedReport:
        entries = self.cashflow.entries_for_export(session, identity, filters)
        summary = aggregate(entries)
        context = ReportContext(
            tenant_name=self._tenant_name(session, identity.tenant_id),
            date_range=filters.date_range,
            generated_at=datetime.now(timezone.utc),
        )
        report = render(entries, summary, fmt, context=context)

        audit.record(
            actor_user_id=identity.user_id,
            entity_type="report.cashflow",
            entity_id=report.filename,
            action="report.exported",
            tenant_id=identity.tenant_id,
            after={"format": str(fmt), "record_count": len(entries), "page_count": report.page_count},
        )
        logger.info(
            "report.exported",
            extra={"user_id": identity.user_id, "format": str(fmt), "record_count": len(entries)},
        )
        return report

    def invoice_document(self, session: Session, identity: Identity, invoice_id: uuid.UUID) -> RenderedReport:
        invoice = self.invoices.get_invoice_record(session, identity, invoice_id)
        customer = session.get(Customer, invoice.customer_id) if invoice.customer_id else None
        service = session.get(Service, invoice.service_id) if invoice.service_id else None
        settings = get_settings()

        content = render_invoice_pdf(
            InvoiceDocument(
                invoice=invoice,
                tenant_name=self._tenant_name(session, invoice.tenant_id),
                customer_name=customer.full_name if customer is not None else None,
                customer_email=customer.email if customer is not None else None,
                service_name=service.name if service is not None else None,
            ),
            currency=settings.report_currency_symbol,
            decimal_separator=settings.report_decimal_separator,
            date_format=settings.report_date_format,
        )
        audit.record(
            actor_user_id=identity.user_id,
            entity_type="report.invoice",
            entity_id=str(invoice.id),
            action="report.exported",
            tenant_id=invoice.tenant_id,
            after={"format": "pdf"},
        )
        return RenderedReport(
            content=content,
            media_type=MEDIA_TYPES[ReportFormat.PDF],
            filename=invoice_filename(invoice.invoice_number),
            page_count=1,
        )

    def dashboard(self, session: Session, identity: Identity) -> DashboardRead:
        scope = scope_filter(identity)
        require(identity, Action.READ, ResourceKind.REPORTS)

        paid = self.invoice_repository.find(session, scope, Invoice.status == InvoiceStatus.PAID.value)
        return DashboardRead(
            total_customers=self.customer_repository.count(session, scope),
            total_services=self.service_repository.count(session, scope),
            total_projects=self.project_repository.count(session, scope),
            total_invoices=self.invoice_repository.count(session, scope),
            total_revenue=revenue_total(paid),
            pending_invoices=self.invoice_repository.count(session, scope, Invoice.status == InvoiceStatus.OPEN.value),
            upcoming_events=self.event_repository.count(session, scope, Event.start_date >= datetime.now(timezone.utc)),
        )

    def financial_report(self, session: Session, identity: Identity, date_range: DateRange) -> FinancialReportRead:
        scope = scope_filter(identity)
        require(identity, Action.READ, ResourceKind.REPORTS)

        invoices = self.invoice_repository.find(
            session,
            scope,
            *date_range.clauses(Invoice.issue_date),
            order_by=(Invoice.issue_date.desc(), Invoice.created_at.desc()),
        )
        status_count = Counter(invoice.status for invoice in invoices)
        return FinancialReportRead(
            invoices=[InvoiceRead.model_validate(invoice) for invoice in invoices],
            status_count=dict(status_count),
            total_revenue=revenue_total(i for i in invoices if i.status == InvoiceStatus.PAID.value),
            total_pending=revenue_total(i for i in invoices if i.status == InvoiceStatus.OPEN.value),
        )

    def sales_report(self, session: Session, identity: Identity, date_range: DateRange) -> SalesReportRead:
        scope = scope_filter(identity)
        require(identity, Action.READ, ResourceKind.REPORTS)

        services = self.service_repository.find(
            session,
            scope,
            *_created_between(Service.created_at, date_range),
            order_by=(Service.created_at.desc(),),
        )
        paid = self.invoice_repository.find(
            session,
            scope,
            Invoice.status == InvoiceStatus.PAID.value,
            *date_range.clauses(Invoice.issue_date),
            order_by=(Invoice.payment_date.desc(), Invoice.issue_date.desc()),
        )
        return SalesReportRead(
            services=[ServiceSummary.model_validate(service) for service in services],
            invoices=[InvoiceRead.model_validate(invoice) for invoice in paid],
            total_revenue=revenue_total(paid),
            total_contracts=sum((Decimal(s.total_value or 0) for s in services), Decimal("0.00")),
            total_services=len(services),
            total_invoices=len(paid),
        )

    def projects_report(self, session: Session, identity: Identity) -> ProjectsReportRead:
        scope = scope_filter(identity)
        require(identity, Action.READ, ResourceKind.REPORTS)

        projects = self.project_repository.find(session, scope, order_by=(Project.created_at.desc(),))
        return ProjectsReportRead(
            projects=[ProjectSummary.model_validate(project) for project in projects],
            total_projects=len(projects),
            status_count=dict(Counter(project.status for project in projects)),
        )


reporting_service = ReportingService()
