from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from crm_core.finance.schemas import InvoiceRead


class DashboardRead(BaseModel):
    total_customers: int
    total_services: int
    total_projects: int
    total_invoices: int
    total_revenue: Decimal
    pending_invoices: int
    upcoming_events: int


class FinancialReportRead(BaseModel):
    invoices: list[InvoiceRead]
    status_count: dict[str, int] = Field(default_factory=dict)
    total_revenue: Decimal
    total_pending: Decimal


class ServiceSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    customer_id: UUID | None = None
    name: str
    total_value: Decimal
    created_at: datetime


class SalesReportRead(BaseModel):
    services: list[ServiceSummary]
    invoices: list[InvoiceRead]
    total_revenue: Decimal
    total_contracts: Decimal
    total_services: int
    total_invoices: int


class ProjectSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    name: str
    status: str
    created_at: datetime


class ProjectsReportRead(BaseModel):
    projects: list[ProjectSummary]
    total_projects: int
    status_count: dict[str, int] = Field(default_factory=dict)
