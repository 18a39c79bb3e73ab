from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import StrEnum
from typing import Protocol

from crm_core.finance.aggregation import DateRange


class ReportFormat(StrEnum):
    CSV = "csv"
    PDF = "pdf"


MEDIA_TYPES = {
    ReportFormat.CSV: "text/csv; charset=utf-8",
    ReportFormat.PDF: "application/pdf",
}


class ReportRecord(Protocol):
    transaction_date: date
    type: str
    category: str
    subcategory: str | None
    description: str
    amount: Decimal
    payment_method: str | None
    bank_account: str | None
    reference_number: str | None
    status: str
    reconciled: bool
    notes: str | None


@dataclass(slots=True, frozen=True)
class ReportContext:
    tenant_name: str = ""
    date_range: DateRange = field(default_factory=DateRange)
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True, frozen=True)
class RenderedReport:
    content: bytes
    media_type: str
    filename: str
    page_count: int

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self.filename}"'
