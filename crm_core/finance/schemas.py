from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from crm_core.finance.aggregation import GroupedSummary, Summary, effective_amount


EntryTypeValue = Literal["Income", "Expense"]
EntryStatusValue = Literal["Confirmed", "Pending", "Cancelled"]
InvoiceStatusValue = Literal["Open", "Paid", "Overdue", "PartiallyPaid", "Cancelled"]


class SummaryRead(BaseModel):
    income: Decimal
    expense: Decimal
    balance: Decimal

    @classmethod
    def from_summary(cls, summary: Summary) -> SummaryRead:
        return cls(income=summary.income, expense=summary.expense, balance=summary.balance)


class CashFlowEntryBase(BaseModel):
    type: EntryTypeValue
    amount: Decimal = Field(ge=Decimal("0"), max_digits=18, decimal_places=2)
    transaction_date: date
    category: str = Field(min_length=1, max_length=128)
    subcategory: str | None = Field(default=None, max_length=128)
    description: str = Field(min_length=1)
    payment_method: str | None = Field(default=None, max_length=64)
    bank_account: str | None = Field(default=None, max_length=128)
    reference_number: str | None = Field(default=None, max_length=128)
    status: EntryStatusValue = "Confirmed"
    reconciled: bool = False
    notes: str | None = None
    customer_id: UUID | None = None
    invoice_id: UUID | None = None
    project_id: UUID | None = None


class CashFlowEntryCreate(CashFlowEntryBase):
    act_as_tenant_id: str | None = None


class CashFlowEntryUpdate(BaseModel):
    type: EntryTypeValue | None = None
    amount: Decimal | None = Field(default=None, ge=Decimal("0"), max_digits=18, decimal_places=2)
    transaction_date: date | None = None
    category: str | None = Field(default=None, min_length=1, max_length=128)
    subcategory: str | None = Field(default=None, max_length=128)
    description: str | None = Field(default=None, min_length=1)
    payment_method: str | None = Field(default=None, max_length=64)
    bank_account: str | None = Field(default=None, max_length=128)
    reference_number: str | None = Field(default=None, max_length=128)
    status: EntryStatusValue | None = None
    reconciled: bool | None = None
    notes: str | None = None
    customer_id: UUID | None = None
    invoice_id: UUID | None = None
    project_id: UUID | None = None


class CashFlowEntryRead(CashFlowEntryBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    created_by: str | None
    created_at: datetime
    updated_at: datetime


class CashFlowListRead(BaseModel):
    items: list[CashFlowEntryRead]
    page: int
    limit: int
    total: int
    pages: int
    summary: SummaryRead


class CategoryBreakdownRead(BaseModel):
    category: str | None
    income: Decimal
    expense: Decimal
    balance: Decimal


class PaymentMethodBreakdownRead(BaseModel):
    payment_method: str
    income: Decimal
    expense: Decimal
    balance: Decimal


class CashFlowAnalyticsRead(BaseModel):
    summary: SummaryRead
    by_category: list[CategoryBreakdownRead]
    by_payment_method: list[PaymentMethodBreakdownRead]

    @classmethod
    def build(cls, summary: Summary, by_category: GroupedSummary, by_payment_method: GroupedSummary) -> CashFlowAnalyticsRead:
        return cls(
            summary=SummaryRead.from_summary(summary),
            by_category=[
                CategoryBreakdownRead(category=key, income=item.income, expense=item.expense, balance=item.balance)
                for key, item in by_category.groups.items()
            ],
            by_payment_method=[
                PaymentMethodBreakdownRead(
                    payment_method=key, income=item.income, expense=item.expense, balance=item.balance
                )
                for key, item in by_payment_method.groups.items()
                if key is not None
            ],
        )


class InvoiceBase(BaseModel):
    invoice_number: str = Field(min_length=1, max_length=64)
    customer_id: UUID | None = None
    service_id: UUID | None = None
    amount: Decimal = Field(ge=Decimal("0"), max_digits=18, decimal_places=2)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), max_digits=18, decimal_places=2)
    fee_amount: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), max_digits=18, decimal_places=2)
    paid_amount: Decimal = Field(default=Decimal("0"), ge=Decimal("0"), max_digits=18, decimal_places=2)
    status: InvoiceStatusValue = "Open"
    issue_date: date
    due_date: date
    payment_date: date | None = None
    payment_method: str | None = Field(default=None, max_length=64)
    notes: str | None = None


class InvoiceCreate(InvoiceBase):
    act_as_tenant_id: str | None = None

    @model_validator(mode="after")
    def _due_after_issue(self) -> InvoiceCreate:
        if self.due_date < self.issue_date:
            raise ValueError("due_date must not be before issue_date")
        return self


class InvoiceUpdate(BaseModel):
    invoice_number: str | None = Field(default=None, min_length=1, max_length=64)
    customer_id: UUID | None = None
    service_id: UUID | None = None
    amount: Decimal | None = Field(default=None, ge=Decimal("0"), max_digits=18, decimal_places=2)
    discount_amount: Decimal | None = Field(default=None, ge=Decimal("0"), max_digits=18, decimal_places=2)
    fee_amount: Decimal | None = Field(default=None, ge=Decimal("0"), max_digits=18, decimal_places=2)
    paid_amount: Decimal | None = Field(default=None, ge=Decimal("0"), max_digits=18, decimal_places=2)
    status: InvoiceStatusValue | None = None
    issue_date: date | None = None
    due_date: date | None = None
    payment_date: date | None = None
    payment_method: str | None = Field(default=None, max_length=64)
    notes: str | None = None


class InvoiceRead(InvoiceBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: str
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> Decimal:
        return effective_amount(self)
